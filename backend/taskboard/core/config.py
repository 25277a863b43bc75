from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./taskboard.db"
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None
    TASK_DEFAULT_LIMIT: int = 100
    CORS_ORIGINS: List[str] = ["*"]
    API_PORT: int = 8000

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
