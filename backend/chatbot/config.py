"""Configuration management for the chatbot."""
import json
from typing import Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from chatbot.errors import ConfigurationError


class DatabaseConfig(BaseModel):
    """Connection descriptor for the session backend."""

    hostname: Optional[str] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    ssl: bool = False
    replica_set_name: Optional[str] = None
    port: Optional[int] = None
    scheme: str = "postgresql+psycopg"
    # Explicit DSN, takes precedence over the individual fields
    url: Optional[str] = None
    enabled: bool = False

    def sqlalchemy_url(self) -> URL:
        """Build the SQLAlchemy URL for this descriptor."""
        if self.url:
            try:
                return make_url(self.url)
            except ArgumentError as e:
                raise ConfigurationError(f"Invalid database url: {e}") from e

        if not self.hostname or not self.database:
            raise ConfigurationError(
                "Database config needs either a url or both hostname and database"
            )

        query: dict[str, str] = {}
        if self.ssl:
            query["sslmode"] = "require"
        if self.replica_set_name:
            # Only the writable primary of the cluster is accepted
            query["target_session_attrs"] = "read-write"

        return URL.create(
            self.scheme,
            username=self.username,
            password=self.password if self.username else None,
            host=self.hostname,
            port=self.port,
            database=self.database,
            query=query,
        )


class ChatbotConfig(BaseModel):
    """Configuration accepted by the Chatbot at construction."""

    model_config = ConfigDict(extra="forbid")

    language: Literal["en", "fr"] = "en"
    request_token: str
    connect_token: Optional[str] = None
    nlu_api_url: str = "https://api.recast.ai/v2"
    connect_api_url: str = "https://api.recast.ai/connect/v1"
    nlu_timeout: float = 10.0
    database: Optional[DatabaseConfig] = None

    @field_validator("request_token")
    @classmethod
    def _require_token(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("request_token must not be empty")
        return v

    @model_validator(mode="after")
    def _enable_database(self) -> "ChatbotConfig":
        if self.database is not None:
            self.database.enabled = True
        return self

    @property
    def persistence_enabled(self) -> bool:
        return self.database is not None and self.database.enabled

    @classmethod
    def parse(cls, data: "ChatbotConfig | dict") -> "ChatbotConfig":
        """Validate raw config data, raising ConfigurationError on failure."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # NLU
    nlu_language: str = "en"
    nlu_request_token: str = ""
    nlu_connect_token: Optional[str] = None
    nlu_api_url: str = "https://api.recast.ai/v2"
    connect_api_url: str = "https://api.recast.ai/connect/v1"
    nlu_timeout: float = 10.0

    # Database (optional, sessions are tracked only when configured)
    database_url: Optional[str] = None
    db_hostname: Optional[str] = None
    db_name: Optional[str] = None
    db_username: Optional[str] = None
    db_password: Optional[str] = None
    db_ssl: bool = False
    db_replica_set_name: Optional[str] = None
    db_port: Optional[int] = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    cors_origins_str: str = Field(default="*", alias="CORS_ORIGINS")

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string or JSON list."""
        v = self.cors_origins_str
        if not v.strip():
            return ["*"]
        if v.strip().startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    def chatbot_config(self) -> ChatbotConfig:
        """Build the ChatbotConfig described by these settings."""
        database = None
        if self.database_url or self.db_hostname:
            database = {
                "url": self.database_url,
                "hostname": self.db_hostname,
                "database": self.db_name,
                "username": self.db_username,
                "password": self.db_password,
                "ssl": self.db_ssl,
                "replica_set_name": self.db_replica_set_name,
                "port": self.db_port,
            }
        return ChatbotConfig.parse({
            "language": self.nlu_language,
            "request_token": self.nlu_request_token,
            "connect_token": self.nlu_connect_token,
            "nlu_api_url": self.nlu_api_url,
            "connect_api_url": self.connect_api_url,
            "nlu_timeout": self.nlu_timeout,
            "database": database,
        })


settings = Settings()
