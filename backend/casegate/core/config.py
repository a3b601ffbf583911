# casegate/core/config.py
"""
Application configuration using Pydantic Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import json
from pydantic import field_validator, model_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """

    # Application
    APP_NAME: str = "Casegate"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    DB_CREATE_TABLES: bool = False  # create_all on startup (dev only)

    # JWT Authentication
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # AWS Configuration
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "eu-west-2"

    # Content generation (Bedrock)
    CONTENT_MODEL_ID: str = "anthropic.claude-3-haiku-20240307-v1:0"
    CONTENT_MAX_TOKENS: int = 4096
    CONTENT_TEMPERATURE: float = 0.3
    CONTENT_GENERATION_TIMEOUT_SECONDS: int = 120

    @field_validator("CONTENT_MODEL_ID", mode="before")
    @classmethod
    def strip_content_model_id(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip()
        return v

    # Rendered artifacts (S3)
    ARTIFACT_S3_BUCKET: str = "casegate-documents"
    ARTIFACT_S3_PREFIX: str = "generated"

    # Sufficiency thresholds
    SUFFICIENCY_MIN_KEY_FACTS: int = 5
    SUFFICIENCY_MIN_OUTCOME_LENGTH: int = 15
    SUFFICIENCY_MIN_EVIDENCE_ITEMS: int = 1

    # Routing
    ROUTING_MIN_CONFIDENCE: float = 0.6

    # Document generation
    MAX_DOCUMENT_RETRIES: int = 2   # retries beyond the first attempt
    CONTENT_MIN_LENGTH: int = 50

    # Generation queue
    GENERATION_WORKER_ENABLED: bool = True
    GENERATION_WORKER_INTERVAL_SECONDS: int = 30
    GENERATION_WORKER_BATCH_SIZE: int = 10
    GENERATION_TASK_LEASE_SECONDS: int = 900
    GENERATION_TASK_MAX_DELIVERIES: int = 3
    WORKER_TOKEN: str = ""

    @model_validator(mode="after")
    def lease_outlasts_one_document(self) -> "Settings":
        # The lease is renewed before each document, so it must cover one generation call.
        if self.GENERATION_TASK_LEASE_SECONDS <= self.CONTENT_GENERATION_TIMEOUT_SECONDS:
            raise ValueError(
                "GENERATION_TASK_LEASE_SECONDS must exceed CONTENT_GENERATION_TIMEOUT_SECONDS"
            )
        return self

    # Deadlines
    RESPONSE_DEADLINE_DAYS: int = 14
    DEADLINE_SWEEP_ENABLED: bool = True
    DEADLINE_SWEEP_INTERVAL_MINUTES: int = 60

    # CORS
    CORS_ORIGINS: str = '["http://localhost:3000"]'

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from string to list"""
        try:
            if isinstance(self.CORS_ORIGINS, str):
                return json.loads(self.CORS_ORIGINS)
            return self.CORS_ORIGINS
        except json.JSONDecodeError:
            return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


# Create settings instance
settings = Settings()
