from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App settings
    PROJECT_NAME: str = "IncomeExpenseTracker"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")
    PORT: int = Field(default=5000)
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: List[str] = Field(default=["http://localhost:3000"])

    # Used to build links embedded in emails
    FRONTEND_URI: str = Field(default="http://localhost:3000")

    # DynamoDB
    DYNAMO_REGION: str = Field(default="eu-west-1")
    DYNAMO_ENDPOINT_URL: Optional[str] = Field(default=None)
    DYNAMO_USERS_TABLE: str = Field(default="tracker-users")
    DYNAMO_CATEGORIES_TABLE: str = Field(default="tracker-categories")
    DYNAMO_TRANSACTIONS_TABLE: str = Field(default="tracker-transactions")
    DYNAMO_CREATE_TABLES: bool = Field(default=False)

    # AWS S3 (avatar uploads, optional)
    S3_BUCKET_NAME: Optional[str] = Field(default=None)
    S3_REGION: str = Field(default="eu-west-1")

    # JWT Authentication
    JWT_SECRET_KEY: str = Field(default="change-me-in-production")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # SMTP
    SMTP_HOST: str = Field(default="smtp.gmail.com")
    SMTP_PORT: int = Field(default=587)
    EMAIL_USER: str = Field(default="")
    EMAIL_PASS: str = Field(default="")
    EMAIL_FROM: Optional[str] = Field(default=None)

    # Background jobs
    SCHEDULER_ENABLED: bool = Field(default=True)
    ORPHAN_SWEEP_INTERVAL_MINUTES: int = Field(default=60)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
