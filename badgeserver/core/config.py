"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.

The master encryption key is the only required secret. It is not given a
default here: the envelope cipher refuses to start without it.
"""
import logging
from typing import Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

# PBKDF2 floor for deriving per-record keys from the master secret
MIN_KDF_ITERATIONS = 100_000


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================================
    # Key Protection
    # ============================================================
    master_encryption_key: Optional[str] = Field(
        None,
        description="Master secret for encrypting signing keys at rest (MASTER_ENCRYPTION_KEY)",
    )
    kdf_iterations: int = Field(
        MIN_KDF_ITERATIONS,
        description="PBKDF2-SHA512 iterations used to derive per-record keys",
    )

    # ============================================================
    # Database Configuration
    # ============================================================
    database_url: str = Field("sqlite:///./badges.db", description="SQLAlchemy connection URL")
    database_pool_size: int = Field(5, description="Database connection pool size")

    # ============================================================
    # Issuer / Signing Configuration
    # ============================================================
    issuer_base_url: str = Field(
        "https://badges.example.org/issuers",
        description="Base URL used to build key controller identifiers",
    )
    signing_key_type: str = Field(
        "Ed25519VerificationKey2020",
        description="Verification method type recorded on new keys",
    )
    compact_token_ttl_seconds: int = Field(
        3600, description="Lifetime of compact tokens when timestamps are requested"
    )

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("kdf_iterations")
    @classmethod
    def _check_iterations(cls, value: int) -> int:
        if value < MIN_KDF_ITERATIONS:
            raise ValueError(f"kdf_iterations must be >= {MIN_KDF_ITERATIONS}, got {value}")
        return value

    def controller_for(self, owner_id: str) -> str:
        """Controller identifier for an issuer's keys."""
        return f"{self.issuer_base_url.rstrip('/')}/{owner_id}"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Apply the configured log level and format (call once from entry points)."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )
