from typing import Optional
from pydantic_settings import BaseSettings

from dotenv import load_dotenv

load_dotenv()  # load .env file

class Settings(BaseSettings):
    SUPABASE_URL: str
    SUPABASE_SERVICE_KEY: str
    SUPABASE_ANON_KEY: Optional[str] = None

    # Shared secret for the external scheduler hitting /api/cron/*
    CRON_SECRET: Optional[str] = None

    ENVIRONMENT: str = "production"
    TIMEZONE: str = "Asia/Bangkok"
    LOG_LEVEL: str = "INFO"

    MAKEUP_QUOTA: int = 4

    LINE_API_BASE_URL: str = "https://api.line.me/v2/bot"
    LINE_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

settings = Settings()
