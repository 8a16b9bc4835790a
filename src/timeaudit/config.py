from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./timeaudit.db"
    queue_slot_name: str = "time_audit_pending_activities"
    max_retries: int = 3
    confirmed_retention_hours: int = 24
    retry_interval_seconds: int = 30
    cleanup_interval_minutes: int = 60

    remote_backend: str = "supabase"  # "supabase" or "sql"
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_table: str = "activities"
    remote_database_url: str = "sqlite:///./timeaudit_remote.db"
    request_timeout_seconds: float = 10.0

    owner_id: Optional[str] = None  # single-user default; overridden by access_token lookup
    access_token: str = ""
    timezone: str = "UTC"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "TIMEAUDIT_"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
