"""Session stores for per-conversation state."""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from chatbot.db import init_db
from chatbot.errors import DuplicateSessionError, NotFoundError, PersistenceError
from chatbot.models import Session as SessionModel, SessionRecord

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """
    Durable mapping from conversation id to session state.

    Implementations provide `create`, `find_by_id` and `save`. The base class
    composes them into `find_or_create_by_id`, serialized per conversation id
    so concurrent first turns for the same conversation create one record.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @abstractmethod
    async def create(self, conversation_id: str) -> SessionModel:
        """Create a new session. Raises DuplicateSessionError if one exists."""

    @abstractmethod
    async def find_by_id(self, conversation_id: str) -> SessionModel:
        """Load a session. Raises NotFoundError if none is stored."""

    @abstractmethod
    async def save(self, session: SessionModel) -> SessionModel:
        """Persist the session's current fields and refresh `updated_at`."""

    async def find_or_create_by_id(self, conversation_id: str) -> SessionModel:
        """Load the session for a conversation, creating it on first use."""
        async with self._creation_lock(conversation_id):
            try:
                return await self.find_by_id(conversation_id)
            except NotFoundError:
                pass

            try:
                return await self.create(conversation_id)
            except DuplicateSessionError:
                # Another process created it between our read and write
                logger.info("Session %s created concurrently, reloading", conversation_id)

            try:
                return await self.find_by_id(conversation_id)
            except NotFoundError as e:
                raise PersistenceError(
                    f"Session {conversation_id} vanished after a conflicting create"
                ) from e

    @asynccontextmanager
    async def _creation_lock(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        self._lock_users[conversation_id] = self._lock_users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[conversation_id] -= 1
            if not self._lock_users[conversation_id]:
                del self._lock_users[conversation_id]
                del self._locks[conversation_id]


class SqlSessionStore(SessionStore):
    """Session store backed by a SQLModel engine."""

    def __init__(self, engine: Engine) -> None:
        super().__init__()
        self.engine = engine

    def create_tables(self) -> None:
        init_db(self.engine)

    async def create(self, conversation_id: str) -> SessionModel:
        return await asyncio.to_thread(self._create, conversation_id)

    async def find_by_id(self, conversation_id: str) -> SessionModel:
        return await asyncio.to_thread(self._find_by_id, conversation_id)

    async def save(self, session: SessionModel) -> SessionModel:
        created_at, updated_at = await asyncio.to_thread(self._save, session)
        session.created_at = created_at
        session.updated_at = updated_at
        return session

    def _create(self, conversation_id: str) -> SessionModel:
        now = datetime.now(timezone.utc)
        record = SessionRecord(
            conversation_id=conversation_id,
            consecutive_not_understand=0,
            message_count=0,
            created_at=now,
            updated_at=now,
        )
        try:
            with Session(self.engine) as db:
                db.add(record)
                db.commit()
                db.refresh(record)
                return _to_session(record)
        except IntegrityError as e:
            raise DuplicateSessionError(conversation_id) from e
        except SQLAlchemyError as e:
            logger.error("Failed to create session %s: %s", conversation_id, e)
            raise PersistenceError(f"Failed to create session {conversation_id}") from e

    def _find_by_id(self, conversation_id: str) -> SessionModel:
        try:
            with Session(self.engine) as db:
                record = db.get(SessionRecord, conversation_id)
                if record is None:
                    raise NotFoundError(conversation_id)
                return _to_session(record)
        except SQLAlchemyError as e:
            logger.error("Failed to load session %s: %s", conversation_id, e)
            raise PersistenceError(f"Failed to load session {conversation_id}") from e

    def _save(self, session: SessionModel) -> tuple[datetime, datetime]:
        now = datetime.now(timezone.utc)
        try:
            with Session(self.engine) as db:
                record = db.get(SessionRecord, session.conversation_id)
                if record is None:
                    raise PersistenceError(
                        f"No stored session {session.conversation_id} to save"
                    )
                record.consecutive_not_understand = session.consecutive_not_understand
                record.message_count = session.message_count
                if record.created_at is None:
                    record.created_at = session.created_at or now
                record.updated_at = now
                db.add(record)
                db.commit()
                db.refresh(record)
                return record.created_at, record.updated_at
        except SQLAlchemyError as e:
            logger.error("Failed to save session %s: %s", session.conversation_id, e)
            raise PersistenceError(f"Failed to save session {session.conversation_id}") from e


class InMemorySessionStore(SessionStore):
    """Process-local session store. Hands out copies of the stored state."""

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, dict] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._records

    async def create(self, conversation_id: str) -> SessionModel:
        # Yield to the loop like a backend round-trip would
        await asyncio.sleep(0)
        if conversation_id in self._records:
            raise DuplicateSessionError(conversation_id)
        now = datetime.now(timezone.utc)
        session = SessionModel(conversation_id=conversation_id, created_at=now, updated_at=now)
        self._records[conversation_id] = session.model_dump()
        return session

    async def find_by_id(self, conversation_id: str) -> SessionModel:
        await asyncio.sleep(0)
        data = self._records.get(conversation_id)
        if data is None:
            raise NotFoundError(conversation_id)
        return SessionModel(**data)

    async def save(self, session: SessionModel) -> SessionModel:
        await asyncio.sleep(0)
        stored = self._records.get(session.conversation_id)
        if stored is None:
            raise PersistenceError(f"No stored session {session.conversation_id} to save")
        now = datetime.now(timezone.utc)
        data = session.model_dump()
        data["created_at"] = stored["created_at"] or now
        data["updated_at"] = now
        self._records[session.conversation_id] = data
        session.created_at = data["created_at"]
        session.updated_at = now
        return session


def _to_session(record: SessionRecord) -> SessionModel:
    return SessionModel(
        conversation_id=record.conversation_id,
        consecutive_not_understand=record.consecutive_not_understand,
        message_count=record.message_count,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
