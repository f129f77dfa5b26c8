# Application Configuration using Pydantic BaseSettings
import logging
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class AppSettings(BaseSettings):
    # MongoDB
    MONGO_DETAILS: str = "mongodb://mongo:27017"
    DB_NAME: str = "kyc_review_db"
    KYC_TABLE_COLLECTION_NAME: str = "kyc_table"  # Single table: documents and user profiles
    AUDIT_LOG_COLLECTION_NAME: str = "audit_log"

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:29092"
    KYC_EVENTS_TOPIC: str = "kyc_events"
    EVENT_SOURCE: str = "kyc.review_service"

    # Observability
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_METRICS_ENDPOINT: Optional[str] = None
    SERVICE_NAME_API: str = "kyc-review-api"

    # Retry policy for store calls
    RETRY_MAX_ATTEMPTS: int = 4
    RETRY_BASE_DELAY_SECONDS: float = 0.2
    RETRY_MAX_DELAY_SECONDS: float = 3.0
    RETRY_BACKOFF_MULTIPLIER: float = 2.0

    # Hard time budget imposed by the hosting platform on one invocation
    INVOCATION_TIMEOUT_SECONDS: float = 30.0

    # Listing
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 100

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def retry_budget_fits_invocation_budget(self) -> "AppSettings":
        if self.RETRY_MAX_ATTEMPTS < 1:
            raise ValueError("RETRY_MAX_ATTEMPTS must be at least 1")
        if self.RETRY_BASE_DELAY_SECONDS < 0 or self.RETRY_MAX_DELAY_SECONDS < self.RETRY_BASE_DELAY_SECONDS:
            raise ValueError("Retry delays must satisfy 0 <= base delay <= max delay")
        # Worst case: every retry sleeps the full capped delay.
        worst_case_delay = (self.RETRY_MAX_ATTEMPTS - 1) * self.RETRY_MAX_DELAY_SECONDS
        if worst_case_delay >= self.INVOCATION_TIMEOUT_SECONDS / 2:
            raise ValueError(
                f"Retry worst-case delay of {worst_case_delay}s must stay below half of the "
                f"invocation budget ({self.INVOCATION_TIMEOUT_SECONDS}s)"
            )
        if not 1 <= self.DEFAULT_PAGE_SIZE <= self.MAX_PAGE_SIZE:
            raise ValueError("DEFAULT_PAGE_SIZE must be between 1 and MAX_PAGE_SIZE")
        return self


# Instantiate settings to be imported by other modules
settings = AppSettings()

logger.info("Application settings module initialized.")
