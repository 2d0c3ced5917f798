"""Settings via pydantic-settings with CHATSYNC_ env prefix.

DB connection fields use validation_alias to read from the same unprefixed
env vars (DB_PASSWORD, DB_PORT, etc.) that docker-compose uses, so a single
.env file drives both the container and the Python app.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHATSYNC_", env_file=".env")

    # DB connection — unprefixed aliases match docker-compose env vars
    db_host: str = Field("localhost", validation_alias="DB_HOST")
    db_port: int = Field(5432, validation_alias="DB_PORT")
    db_user: str = Field("chatsync", validation_alias="DB_USER")
    db_password: str = Field("chatsync_dev_password", validation_alias="DB_PASSWORD")
    db_name: str = Field("chatsync", validation_alias="DB_NAME")
    # Full URL override (tests use sqlite+aiosqlite://)
    database_url: str = ""

    db_pool_size: int = 10
    db_max_overflow: int = 5
    log_level: str = "info"

    # Reply service
    reply_base_url: str = "http://localhost:54321"
    reply_path: str = "/functions/v1/chat"
    reply_api_key: str = Field("", validation_alias="REPLY_API_KEY")
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Conversations
    title_word_count: int = 5
    default_chat_title: str = "New Chat"

    # Notification channel
    event_queue_size: int = 1000

    @model_validator(mode="after")
    def _validate_title(self) -> "Settings":
        if self.title_word_count < 1:
            raise ValueError("title_word_count must be >= 1")
        return self

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
