from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Lesson Ledger'
    app_env: str = 'local'
    app_timezone: str = 'Europe/Moscow'
    database_url: str = 'sqlite:///./lesson_ledger.db'
    default_session_duration: int = 60
    cache_backend: str = 'memory'
    cache_redis_url: str | None = None
    default_cache_ttl: int = 60
    ledger_cache_ttl: int = 300
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()
