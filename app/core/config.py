from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "app"
    APP_ENV: str = "development"  # development | production | test
    PORT: int = 8080

    DATABASE_URL: str
    DB_POOL_SIZE: int = 5
    DB_ECHO_QUERIES: bool = True

    LOG_LEVEL: str = ""  # empty -> INFO in production, DEBUG otherwise
    LOG_PRETTY: bool = False

    CORS_ORIGINS: str = "*"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL.strip():
            return self.LOG_LEVEL.strip().upper()
        return "INFO" if self.is_production else "DEBUG"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
