# hotelguard/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite+aiosqlite:///./hotelguard.db"
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # 0 disables the periodic history check
    INTEGRITY_CHECK_MINUTES: int = 60

    DEFAULT_AUDITOR: str = "Lead Auditor"


settings = Settings()
