"""
Store Configuration Module

Centralized configuration management with Pydantic validation.
Settings are read from FIRESCHEMA_* environment variables (and a local .env
file) and validated once, so a misconfigured backend fails fast.
"""

from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_BACKENDS = ("firestore", "mongodb", "memory")


class StoreSettings(BaseSettings):
    """
    Backing store configuration with validation.

    All settings can be overridden via environment variables prefixed with
    FIRESCHEMA_ (e.g. FIRESCHEMA_BACKEND=mongodb).
    """

    model_config = SettingsConfigDict(env_prefix="FIRESCHEMA_", case_sensitive=False)

    # === Backend selection ===
    backend: str = Field(
        default="firestore",
        description="Backing store: firestore, mongodb or memory"
    )

    # === Firestore ===
    project_id: Optional[str] = Field(
        default=None,
        description="Google Cloud project ID (defaults to the ambient credentials' project)"
    )
    database: str = Field(
        default="(default)",
        description="Firestore database name"
    )
    emulator_host: Optional[str] = Field(
        default=None,
        description="Firestore emulator host:port (exported as FIRESTORE_EMULATOR_HOST)"
    )

    # === MongoDB ===
    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    mongo_db_name: str = Field(
        default="fireschema",
        description="MongoDB database name"
    )

    # === Logging ===
    log_level: str = Field(
        default="INFO",
        description="Log level for setup_logging()"
    )
    log_format: str = Field(
        default="simple",
        description="Log format: simple or json"
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate backend is a known value."""
        v_lower = v.strip().lower()
        if v_lower not in SUPPORTED_BACKENDS:
            raise ValueError(f"backend must be one of: {', '.join(SUPPORTED_BACKENDS)}")
        return v_lower

    @field_validator("mongodb_uri")
    @classmethod
    def validate_mongodb_uri(cls, v: str) -> str:
        """Basic URI format validation."""
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(f"Invalid MongoDB URI format: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        v_upper = v.upper()
        if v_upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        v_lower = v.lower()
        if v_lower not in {"simple", "json"}:
            raise ValueError("log_format must be 'simple' or 'json'")
        return v_lower

    @property
    def uses_emulator(self) -> bool:
        """Check if the Firestore emulator is configured."""
        return bool(self.emulator_host)

    def validate_backend_config(self) -> List[str]:
        """
        Check the settings of the selected backend for likely mistakes.

        Returns list of warning messages.
        """
        issues = []

        if self.backend == "firestore" and not self.project_id and not self.uses_emulator:
            issues.append("WARNING: FIRESCHEMA_PROJECT_ID not set, relying on ambient credentials")
        if self.backend == "mongodb" and "localhost" in self.mongodb_uri:
            issues.append("WARNING: Using localhost MongoDB")
        if self.backend == "memory":
            issues.append("WARNING: Memory backend keeps data in-process only")

        return issues


@lru_cache()
def get_settings() -> StoreSettings:
    """
    Get cached settings instance.

    Loads a local .env file (if present) before reading the environment.
    Use get_settings.cache_clear() after changing the environment.
    """
    load_dotenv()
    return StoreSettings()
