from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables with validation.
    """
    # Application settings
    PROJECT_NAME: str = "TimeSync API"
    API_V1_PREFIX: str = "/api/v1"
    ENVIRONMENT: str = Field("development", env="ENVIRONMENT")  # development, staging, production
    CORS_ORIGINS: List[str] = Field(["*"], env="CORS_ORIGINS")

    # Security
    PASSWORD_HASH_ITERATIONS: int = Field(200_000, env="PASSWORD_HASH_ITERATIONS")

    # Gemini API settings
    GEMINI_API_KEY: Optional[str] = Field(None, env="GEMINI_API_KEY")
    GEMINI_MODEL: str = Field("gemini-2.0-flash-lite", env="GEMINI_MODEL")
    GEMINI_TEMPERATURE: float = Field(0.3, env="GEMINI_TEMPERATURE")
    GEMINI_TOP_P: float = Field(0.95, env="GEMINI_TOP_P")
    GEMINI_TOP_K: int = Field(40, env="GEMINI_TOP_K")
    GEMINI_MAX_OUTPUT_TOKENS: int = Field(1000, env="GEMINI_MAX_OUTPUT_TOKENS")
    LLM_TIMEOUT_SECONDS: float = Field(20.0, env="LLM_TIMEOUT_SECONDS")

    # Room behaviour
    FILTER_TO_ROOM_PERIOD: bool = Field(True, env="FILTER_TO_ROOM_PERIOD")
    ROOM_RETENTION_DAYS: int = Field(90, env="ROOM_RETENTION_DAYS")
    ROOM_PURGE_INTERVAL_SECONDS: float = Field(3600.0, env="ROOM_PURGE_INTERVAL_SECONDS")
    MAX_MESSAGE_LENGTH: int = Field(500, env="MAX_MESSAGE_LENGTH")

    # Submission guard (per sender session)
    SUBMIT_MIN_INTERVAL_SECONDS: float = Field(1.0, env="SUBMIT_MIN_INTERVAL_SECONDS")
    SUBMIT_BURST_WINDOW_SECONDS: float = Field(5.0, env="SUBMIT_BURST_WINDOW_SECONDS")
    SUBMIT_BURST_LIMIT: int = Field(3, env="SUBMIT_BURST_LIMIT")
    SUBMIT_LOCKOUT_SECONDS: float = Field(30.0, env="SUBMIT_LOCKOUT_SECONDS")

    # Logging settings
    AUDIT_LOG_PATH: str = Field("logs/timesync_audit.log", env="AUDIT_LOG_PATH")

    @field_validator("AUDIT_LOG_PATH")
    @classmethod
    def validate_audit_log_path(cls, v: str) -> str:
        """Validate the audit log path exists or can be created"""
        if not v:
            return v
        log_dir = Path(v).parent
        if not log_dir.exists():
            try:
                log_dir.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                raise ValueError(f"Failed to create log directory: {e}")
        return v

    @field_validator("ROOM_RETENTION_DAYS", "SUBMIT_BURST_LIMIT")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in the environment


settings = Settings()
