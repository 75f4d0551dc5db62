from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "ClinicStock"
    APP_PORT: int = 9210
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_BASE_URL: str = "http://localhost:9210"
    SCHEDULER_ENABLED: bool = True
    
    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "clinicstock"
    POSTGRES_PORT: int = 5432
    SQLALCHEMY_DATABASE_URI: Optional[str] = None
    
    # Paths / blob storage
    DATA_PATH: str = "./data/clinicstock"
    STORAGE_SIGNING_KEY: str = "clinicstock-storage-key-change-in-production"
    SIGNED_URL_TTL_SECONDS: int = 600
    INVOICE_URL_TTL_SECONDS: int = 300
    
    # Document extraction
    OCR_SERVICE_URL: str = "http://localhost:8884/ocr"
    OCR_REQUEST_TIMEOUT_SECONDS: float = 60.0
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    AI_REQUEST_TIMEOUT_SECONDS: float = 120.0
    MATCH_SCORE_THRESHOLD: float = 0.4
    
    # Approval workflow
    APPROVAL_TOKEN_TTL_HOURS: int = 48
    RESEND_API_KEY: str = ""
    RESEND_API_URL: str = "https://api.resend.com/emails"
    SENDER_EMAIL: str = "inventory@clinicstock.local"
    
    # Background jobs
    SWEEP_INTERVAL_MINUTES: int = 30
    EXPIRY_WARNING_DAYS: int = 30
    
    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
    
    class Config:
        env_file = ".env"
        extra = "ignore"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
