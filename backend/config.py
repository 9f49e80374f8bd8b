from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Application
    app_name: str = "Today's Tasks"
    debug: bool = False

    # Supabase project (auth + REST). The anon key is public; row-level
    # security on the backend restricts every row to its owner.
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Direct Postgres connection, only used by Alembic migrations
    database_url: str = ""

    # HTTP client
    http_timeout_seconds: float = 20.0

    # Retry / resilience (idempotent reads only)
    store_max_retries: int = 2
    store_retry_base_delay_ms: int = 300
    store_retry_max_delay_ms: int = 3000

    # Where the CLI keeps the signed-in session between invocations
    session_file: str = "~/.todays-tasks/session.json"
    # Refresh the access token this long before it actually expires
    session_refresh_margin_seconds: int = 60

    # Shown in place of a task description that cannot be decrypted
    decryption_failure_placeholder: str = "[Decryption failed]"

    model_config = {
        "env_file": ("../.env", ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
