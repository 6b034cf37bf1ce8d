"""
Pydantic Settings — centralized configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database ──────────────────────────────
    POSTGRES_USER: str = "policies_user"
    POSTGRES_PASSWORD: str = "policies_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "policies_db"

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for app runtime (asyncpg)."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Redis / Celery ────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # ── Extraction service ────────────────────
    EXTRACTION_SERVICE_URL: str = "http://localhost:5678/webhook/policy-extraction"
    EXTRACTION_TIMEOUT_SECONDS: float = 600.0
    EXTRACTION_MAX_BATCH_FILES: int = 10
    EXTRACTION_MAX_FILE_SIZE_MB: int = 20
    EXTRACTION_ALLOWED_EXTENSIONS: list[str] = [".pdf"]
    EXTRACTION_RESPONSE_KEYS: list[str] = ["policies", "apolices", "data", "results"]
    EXTRACTION_MAX_RETRIES: int = 1
    EXTRACTION_RETRY_BACKOFF_SECONDS: float = 1.0

    # ── Policy lifecycle ──────────────────────
    STATUS_EXPIRING_WINDOW_DAYS: int = 30
    STATUS_SUPERSEDED_AFTER_DAYS: int = 30
    PLACEHOLDER_POLICY_PREFIX: str = "PENDING"
    MONTHLY_AMOUNT_TOLERANCE: float = 0.15

    # ── Batch processing ──────────────────────
    STATUS_CLEAR_DELAY_SUCCESS_SECONDS: float = 3.0
    STATUS_CLEAR_DELAY_FAILURE_SECONDS: float = 5.0
    RECORD_STEP_MAX_RETRIES: int = 2
    RECORD_RETRY_BACKOFF_SECONDS: float = 1.0
    UPLOAD_DIR: str = "/tmp/policy_intake/uploads"

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
