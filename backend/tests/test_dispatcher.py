import pytest

from chatbot.errors import MiddlewareError, PersistenceError
from chatbot.models import Message
from chatbot.pipeline import TurnDispatcher
from chatbot.services import InMemorySessionStore


class RecordingStore(InMemorySessionStore):
    def __init__(self):
        super().__init__()
        self.calls: list[str] = []

    async def create(self, conversation_id):
        self.calls.append("create")
        return await super().create(conversation_id)

    async def find_by_id(self, conversation_id):
        self.calls.append("find_by_id")
        return await super().find_by_id(conversation_id)

    async def save(self, session):
        self.calls.append("save")
        return await super().save(session)


class FailingSaveStore(InMemorySessionStore):
    async def save(self, session):
        raise PersistenceError("disk on fire")


def message(conversation_id: str = "conv-1") -> Message:
    return Message(conversation_id=conversation_id, content="hi")


@pytest.fixture
def dispatcher(persistent_config, memory_store):
    return TurnDispatcher(persistent_config, nlu=object(), store=memory_store)


@pytest.mark.asyncio
async def test_use_returns_dispatcher_for_chaining(dispatcher):
    async def m(ctx, next):
        await next()

    assert dispatcher.use(m).use(m) is dispatcher
    assert dispatcher.middlewares == [m, m]


def test_use_rejects_non_callable(dispatcher):
    with pytest.raises(TypeError):
        dispatcher.use("not a middleware")


@pytest.mark.asyncio
async def test_middlewares_run_in_registration_order_with_pre_and_post_work(dispatcher):
    events = []

    def make(name):
        async def m(ctx, next):
            events.append(f"{name}:before")
            await next()
            events.append(f"{name}:after")
        return m

    dispatcher.use(make("a")).use(make("b")).use(make("c"))
    await dispatcher.on_message(message())

    assert events == [
        "a:before", "b:before", "c:before",
        "c:after", "b:after", "a:after",
    ]


@pytest.mark.asyncio
async def test_short_circuit_scenario(dispatcher):
    counters = {"m1": 0, "m2": 0, "m3": 0}

    async def m1(ctx, next):
        counters["m1"] += 1
        await next()

    async def m2(ctx, next):
        counters["m2"] += 1

    async def m3(ctx, next):
        counters["m3"] += 1
        await next()

    dispatcher.use(m1).use(m2).use(m3)
    await dispatcher.on_message(message())

    assert counters == {"m1": 1, "m2": 1, "m3": 0}


@pytest.mark.asyncio
async def test_calling_next_twice_does_not_rerun_the_chain(dispatcher):
    runs = []

    async def greedy(ctx, next):
        await next()
        await next()

    async def tail(ctx, next):
        runs.append(ctx.conversation_id)
        await next()

    dispatcher.use(greedy).use(tail)
    await dispatcher.on_message(message())

    assert runs == ["conv-1"]


@pytest.mark.asyncio
async def test_turn_updates_counters_and_exposes_snapshot(dispatcher, memory_store):
    stored = await memory_store.create("conv-1")
    stored.consecutive_not_understand = 2
    stored.message_count = 5
    await memory_store.save(stored)

    seen = {}

    async def inspect(ctx, next):
        seen["previous"] = ctx.previous_not_understand
        seen["current"] = ctx.session.consecutive_not_understand
        seen["count"] = ctx.session.message_count
        await next()

    dispatcher.use(inspect)
    await dispatcher.on_message(message())

    assert seen == {"previous": 2, "current": 0, "count": 6}
    after = await memory_store.find_by_id("conv-1")
    assert after.message_count == 6
    assert after.consecutive_not_understand == 0


@pytest.mark.asyncio
async def test_new_conversation_gets_a_session(dispatcher, memory_store):
    ctx = await dispatcher.on_message(message("fresh"))

    assert ctx.session.conversation_id == "fresh"
    assert ctx.session.message_count == 1
    assert ctx.previous_not_understand == 0
    assert "fresh" in memory_store


@pytest.mark.asyncio
async def test_middleware_can_update_and_save_session(dispatcher, memory_store):
    async def not_understood(ctx, next):
        ctx.session.consecutive_not_understand = ctx.previous_not_understand + 1
        await memory_store.save(ctx.session)

    dispatcher.use(not_understood)

    for expected in (1, 2, 2):
        await dispatcher.on_message(message())
        stored = await memory_store.find_by_id("conv-1")
        assert stored.consecutive_not_understand == expected

    assert stored.message_count == 3


@pytest.mark.asyncio
async def test_previous_not_understand_is_not_persisted(dispatcher, memory_store):
    ctx = await dispatcher.on_message(message())

    assert "previous_not_understand" not in ctx.session.model_dump()
    assert "previous_not_understand" not in memory_store._records["conv-1"]


@pytest.mark.asyncio
async def test_each_turn_gets_a_fresh_context(dispatcher):
    contexts = []

    async def keep(ctx, next):
        ctx.state["seen"] = True
        contexts.append(ctx)
        await next()

    dispatcher.use(keep)
    await dispatcher.on_message(message())
    await dispatcher.on_message(message())

    assert contexts[0] is not contexts[1]
    assert contexts[1].state == {"seen": True}


@pytest.mark.asyncio
async def test_persistence_disabled_never_touches_store(stateless_config):
    store = RecordingStore()
    dispatcher = TurnDispatcher(stateless_config, nlu=object(), store=store)
    ran = []

    async def m(ctx, next):
        ran.append(ctx.session)
        await next()

    dispatcher.use(m)
    ctx = await dispatcher.on_message(message())

    assert store.calls == []
    assert ran == [None]
    assert ctx.previous_not_understand is None


@pytest.mark.asyncio
async def test_no_store_runs_chain_without_session(persistent_config):
    dispatcher = TurnDispatcher(persistent_config, nlu=object(), store=None)
    ran = []

    async def m(ctx, next):
        ran.append(ctx.session)

    dispatcher.use(m)
    await dispatcher.on_message(message())

    assert not dispatcher.persistence_enabled
    assert ran == [None]


@pytest.mark.asyncio
async def test_persist_failure_aborts_turn_before_chain(persistent_config):
    dispatcher = TurnDispatcher(persistent_config, nlu=object(), store=FailingSaveStore())
    ran = []

    async def m(ctx, next):
        ran.append(True)

    dispatcher.use(m)
    with pytest.raises(PersistenceError):
        await dispatcher.on_message(message())

    assert ran == []


@pytest.mark.asyncio
async def test_middleware_failure_is_wrapped_and_stops_the_chain(dispatcher):
    ran = []

    async def outer(ctx, next):
        ran.append("outer")
        await next()
        ran.append("outer:after")

    async def broken(ctx, next):
        raise ValueError("bad input")

    async def never(ctx, next):
        ran.append("never")

    dispatcher.use(outer).use(broken).use(never)
    with pytest.raises(MiddlewareError) as excinfo:
        await dispatcher.on_message(message())

    assert excinfo.value.middleware == "broken"
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert ran == ["outer"]


@pytest.mark.asyncio
async def test_persistence_error_inside_middleware_propagates_unchanged(dispatcher):
    async def saver(ctx, next):
        raise PersistenceError("lost connection")

    dispatcher.use(saver)
    with pytest.raises(PersistenceError):
        await dispatcher.on_message(message())


@pytest.mark.asyncio
async def test_middleware_registered_during_turn_runs_next_turn(dispatcher):
    ran = []

    async def late(ctx, next):
        ran.append("late")

    async def registrar(ctx, next):
        dispatcher.use(late)
        await next()

    dispatcher.use(registrar)
    await dispatcher.on_message(message())
    assert ran == []

    await dispatcher.on_message(message())
    assert ran == ["late"]
