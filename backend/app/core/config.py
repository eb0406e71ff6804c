from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    app_name: str = 'backoffice-sync-api'
    app_env: str = Field(default='dev', alias='APP_ENV')
    app_port: int = Field(default=8000, alias='APP_PORT')
    log_level: str = Field(default='INFO', alias='LOG_LEVEL')

    database_url: str = Field(default='sqlite:///./data/backoffice_sync.db', alias='DATABASE_URL')
    db_pool_size: int = Field(default=10, alias='DB_POOL_SIZE')
    db_max_overflow: int = Field(default=20, alias='DB_MAX_OVERFLOW')
    db_pool_timeout: int = Field(default=30, alias='DB_POOL_TIMEOUT')
    db_pool_recycle: int = Field(default=1800, alias='DB_POOL_RECYCLE')
    db_bootstrap_on_start: bool = Field(default=False, alias='DB_BOOTSTRAP_ON_START')
    db_demo_probe_on_start: bool = Field(default=True, alias='DB_DEMO_PROBE_ON_START')
    postgres_password: str = Field(default='', alias='POSTGRES_PASSWORD')

    jwt_secret_key: str = Field(default='change_me_jwt_secret', alias='JWT_SECRET_KEY')
    jwt_algorithm: str = Field(default='HS256', alias='JWT_ALGORITHM')
    jwt_expire_minutes: int = Field(default=120, alias='JWT_EXPIRE_MINUTES')

    cors_origins: str = Field(default='*', alias='CORS_ORIGINS')
    write_rate_limit: int = Field(default=30, alias='WRITE_RATE_LIMIT')
    write_rate_window_seconds: int = Field(default=60, alias='WRITE_RATE_WINDOW_SECONDS')

    backoffice_base_url: str = Field(default='', alias='BACKOFFICE_BASE_URL')
    backoffice_api_token: str = Field(default='', alias='BACKOFFICE_API_TOKEN')
    backoffice_timeout_seconds: float = Field(default=60.0, alias='BACKOFFICE_TIMEOUT_SECONDS')
    backoffice_page_size: int = Field(default=500, alias='BACKOFFICE_PAGE_SIZE')

    sync_chunk_days: int = Field(default=7, alias='SYNC_CHUNK_DAYS')
    sync_lock_wait_seconds: float = Field(default=0.0, alias='SYNC_LOCK_WAIT_SECONDS')
    sync_request_timeout_seconds: float = Field(default=300.0, alias='SYNC_REQUEST_TIMEOUT_SECONDS')

    stalled_task_days: int = Field(default=7, alias='STALLED_TASK_DAYS')
    alert_hours_before_deadline: int = Field(default=24, alias='ALERT_HOURS_BEFORE_DEADLINE')
    settings_cache_ttl_seconds: int = Field(default=60, alias='SETTINGS_CACHE_TTL_SECONDS')

    demo_admin_user: str = Field(default='admin', alias='DEMO_ADMIN_USER')
    demo_admin_password: str = Field(default='admin123', alias='DEMO_ADMIN_PASSWORD')
    demo_manager_user: str = Field(default='manager', alias='DEMO_MANAGER_USER')
    demo_manager_password: str = Field(default='manager123', alias='DEMO_MANAGER_PASSWORD')
    demo_viewer_user: str = Field(default='viewer', alias='DEMO_VIEWER_USER')
    demo_viewer_password: str = Field(default='viewer123', alias='DEMO_VIEWER_PASSWORD')


settings = Settings()
