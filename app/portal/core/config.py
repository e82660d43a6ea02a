from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "PRACTICE-PORTAL"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite+pysqlite:///./portal.db"
    PERMISSION_CACHE_TTL_SECONDS: int = 300
    ALLOW_PROTECTED_ROLE_ASSIGNMENT: bool = False
    METRICS_ENABLED: bool = True
    SUPERADMIN_USER_ID: str = "superadmin"
    SUPERADMIN_EMAIL: str = "superadmin@example.com"
    SUPERADMIN_NAME: str = "Super Administrator"

settings = Settings()
