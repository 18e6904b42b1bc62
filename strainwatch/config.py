"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Strainwatch"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- WHOOP OAuth client ---
    whoop_client_id: str
    whoop_client_secret: str  # also the webhook signing key
    whoop_api_base: str = "https://api.prod.whoop.com"
    http_timeout_seconds: float = 15.0

    # --- Credential vault ---
    vault_secret: str  # key material for AES-256-GCM, never logged
    credential_backend: str = "file"  # file | postgres | memory
    token_file: str = "data/tokens.json"
    database_url: str = ""  # asyncpg DSN when credential_backend == "postgres"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    # --- Analytics sink ---
    sink_uri: str = ""  # empty disables forwarding
    sink_token: str = ""
    sink_category: str = "strain"

    # --- Polling ---
    poll_interval_seconds: float = 600.0
    poll_bootstrap_enabled: bool = True

    # --- Live stream ---
    stream_heartbeat_seconds: float = 15.0
    stream_retry_millis: int = 5000
    stream_queue_size: int = 32

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
