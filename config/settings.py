"""
Configuration Management

Loads environment variables and provides settings for the sync pipeline.
Uses python-dotenv for local development and environment variables for production.
"""

import os

from dotenv import load_dotenv


class Settings:
    """
    Application settings loaded from environment variables.

    Built once at startup and passed to the pipeline; credentials have no
    default and must come from the environment or a .env file.
    """

    REQUIRED_FIELDS = ["DB_USER", "DB_PASSWORD"]

    def __init__(self, load_env_file: bool = True):
        """
        Read settings from the environment and validate them.

        Args:
            load_env_file: Whether to load a .env file first

        Raises:
            ValueError: If required settings are missing or malformed
        """
        if load_env_file:
            load_dotenv()

        # Database Configuration
        self.DB_HOST: str = os.getenv("DB_HOST", "localhost")
        self.DB_PORT: int = self._int_setting("DB_PORT", "5432")
        self.DB_NAME: str = os.getenv("DB_NAME", "us_wind_power_stats")
        self.DB_USER: str = os.getenv("DB_USER")
        self.DB_PASSWORD: str = os.getenv("DB_PASSWORD")
        self.DB_CONNECT_TIMEOUT: int = self._int_setting("DB_CONNECT_TIMEOUT", "10")

        # Sync Configuration
        self.MAX_RETRIES: int = self._int_setting("MAX_RETRIES", "3")

        # Logging Configuration
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
        self.LOG_FILE: str = os.getenv("LOG_FILE", "logs/sync.log")

        self._validate_settings()

    @staticmethod
    def _int_setting(name: str, default: str) -> int:
        value = os.getenv(name, default)
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Environment variable {name} must be an integer, got: {value}") from None

    def _validate_settings(self) -> None:
        """
        Validate that all required settings are provided.

        Raises:
            ValueError: If required settings are missing
        """
        missing_fields = [
            field for field in self.REQUIRED_FIELDS
            if not getattr(self, field, None)
        ]

        if missing_fields:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing_fields)}. "
                f"Please check your .env file."
            )

        if self.MAX_RETRIES < 0:
            raise ValueError("MAX_RETRIES must not be negative")

    def __repr__(self) -> str:
        """Return string representation (excluding sensitive data)."""
        return (
            f"Settings("
            f"DB_HOST={self.DB_HOST}, "
            f"DB_PORT={self.DB_PORT}, "
            f"DB_NAME={self.DB_NAME}, "
            f"MAX_RETRIES={self.MAX_RETRIES}"
            f")"
        )
