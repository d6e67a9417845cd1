"""Database engine setup for session storage."""
import logging

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from chatbot.config import DatabaseConfig
from chatbot.models import SessionRecord

logger = logging.getLogger(__name__)


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create the SQLModel engine described by a connection descriptor."""
    url = config.sqlalchemy_url()
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        # Store calls run in worker threads
        connect_args["check_same_thread"] = False

    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def init_db(engine: Engine) -> None:
    """Initialize the session tables."""
    SQLModel.metadata.create_all(engine, tables=[SessionRecord.__table__])
    logger.info("Session tables ready on %s", engine.url.render_as_string(hide_password=True))
