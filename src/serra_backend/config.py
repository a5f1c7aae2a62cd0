"""
Configuration module for the Serra device backend.

Loads and validates environment variables using Pydantic settings.
"""
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Operator API
    OPERATOR_TOKEN: str

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Liveness
    LIVENESS_WINDOW_SECONDS: int = 300  # 5 minutes
    CONNECTION_FAILED_GRACE_SECONDS: int = 30
    NEW_DEVICE_WINDOW_SECONDS: int = 300

    # Command queue
    COMMAND_EXPIRY_SECONDS: int = 300
    COMMAND_BATCH_SIZE: int = 10

    # Identity
    MAX_SLOT_NUMBER: int = 20

    # Background sweeps (0 disables the in-process scheduler)
    SWEEP_INTERVAL_SECONDS: int = 60

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS string into list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    def validate_config(self) -> None:
        """Validate critical configuration values."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL must be set")

        if not self.OPERATOR_TOKEN or len(self.OPERATOR_TOKEN) < 16:
            raise ValueError("OPERATOR_TOKEN must be at least 16 characters")

        for name in (
            "LIVENESS_WINDOW_SECONDS",
            "CONNECTION_FAILED_GRACE_SECONDS",
            "NEW_DEVICE_WINDOW_SECONDS",
            "COMMAND_EXPIRY_SECONDS",
            "COMMAND_BATCH_SIZE",
            "MAX_SLOT_NUMBER",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

        if self.CONNECTION_FAILED_GRACE_SECONDS >= self.NEW_DEVICE_WINDOW_SECONDS:
            raise ValueError("CONNECTION_FAILED_GRACE_SECONDS must be shorter than NEW_DEVICE_WINDOW_SECONDS")

        if self.SWEEP_INTERVAL_SECONDS < 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS must not be negative")


# Global settings instance
settings = Settings()

# Validate on import
settings.validate_config()
