"""
Shared pytest fixtures.

The NLU service is replaced by an httpx.MockTransport that records every
request, so no test talks to the network.
"""
import json

import httpx
import pytest

from chatbot.config import ChatbotConfig, DatabaseConfig
from chatbot.db import create_db_engine
from chatbot.services import InMemorySessionStore, NluClient, SqlSessionStore


class FakeNlu:
    """Scripted NLU backend for httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.replies: list[str] = ["Hello there"]
        self.conversation_token = "tok-1"
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "boom"})
        if request.url.path.endswith("/converse"):
            return httpx.Response(200, json={
                "results": {
                    "replies": self.replies,
                    "conversation_token": self.conversation_token,
                    "action": None,
                    "intents": [],
                },
            })
        return httpx.Response(201, json={"results": None, "message": "Messages successfully posted"})

    def json_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def fake_nlu() -> FakeNlu:
    return FakeNlu()


@pytest.fixture
def nlu_client(fake_nlu: FakeNlu) -> NluClient:
    return NluClient(
        request_token="req-token",
        language="en",
        connect_token="connect-token",
        client=httpx.AsyncClient(transport=httpx.MockTransport(fake_nlu)),
    )


@pytest.fixture
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def sql_store(tmp_path) -> SqlSessionStore:
    engine = create_db_engine(DatabaseConfig(url=f"sqlite:///{tmp_path / 'sessions.db'}"))
    store = SqlSessionStore(engine)
    store.create_tables()
    yield store
    engine.dispose()


@pytest.fixture
def persistent_config() -> ChatbotConfig:
    return ChatbotConfig(request_token="req-token", database={"url": "sqlite://"})


@pytest.fixture
def stateless_config() -> ChatbotConfig:
    return ChatbotConfig(request_token="req-token")


def webhook_body(conversation_id: str = "conv-1", content: str = "hi") -> dict:
    return {
        "message": {
            "conversation": conversation_id,
            "attachment": {"type": "text", "content": content},
            "participant": "p-1",
        },
        "senderId": "sender-1",
        "chatId": "chat-1",
    }
