# ============================================================================
# MODULE CONTEXT - APPLICATION CONFIGURATION
# ============================================================================
# STATUS: Core Infrastructure - Configuration Management
# PURPOSE: PostGIS connection settings with password or managed identity auth
# EXPORTS: AppConfig, get_app_config, get_postgres_connection_string
# DEPENDENCIES: pydantic-settings, azure-identity (managed identity only)
# SOURCE: Environment variables, .env file, Azure managed identity
# PATTERNS: Singleton pattern for config, lazy credential import
# ============================================================================

"""
Application Configuration Module

Connection settings for the PostGIS database holding the point tables.

Authentication Modes:
    1. Password-based (local development):
       - Requires: POSTGIS_HOST, POSTGIS_DATABASE, POSTGIS_USER, POSTGIS_PASSWORD
       - Use when: USE_MANAGED_IDENTITY=false or not set

    2. Managed Identity (Azure):
       - Requires: System-assigned managed identity with database access
       - Use when: USE_MANAGED_IDENTITY=true

Usage:
    from config import get_postgres_connection_string

    conn = psycopg.connect(get_postgres_connection_string())
"""

import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Scope for Azure Database for PostgreSQL tokens
AZURE_POSTGRES_SCOPE = "https://ossrdbms-aad.database.windows.net/.default"


class AppConfig(BaseSettings):
    """
    Database configuration loaded from environment variables.

    Attributes:
        postgis_host: PostgreSQL server hostname
        postgis_port: PostgreSQL server port
        postgis_database: Database name
        postgis_user: Database username
        postgis_password: Database password (not needed with managed identity)
        postgis_sslmode: libpq sslmode
        use_managed_identity: Authenticate with an Azure AD token
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    use_managed_identity: bool = Field(
        default=False,
        description="Use Azure managed identity for authentication"
    )

    postgis_host: str = Field(..., description="PostgreSQL hostname")
    postgis_port: int = Field(default=5432, description="PostgreSQL port")
    postgis_database: str = Field(..., description="Database name")
    postgis_user: str = Field(..., description="Database username")
    postgis_password: Optional[str] = Field(default=None, description="Database password")
    postgis_sslmode: str = Field(default="prefer", description="libpq sslmode (require for Azure)")

    @field_validator("postgis_password")
    @classmethod
    def validate_password(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Password is required unless managed identity is enabled."""
        if not info.data.get("use_managed_identity", False) and not v:
            raise ValueError("POSTGIS_PASSWORD is required when USE_MANAGED_IDENTITY=false")
        return v


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """
    Get singleton application configuration instance.

    Raises:
        ValidationError: If required environment variables are missing
    """
    return AppConfig()


def get_postgres_connection_string(config: Optional[AppConfig] = None) -> str:
    """
    Build a psycopg connection URL for the configured authentication mode.

    Args:
        config: Explicit configuration (defaults to the singleton)

    Returns:
        postgresql:// URL
    """
    config = config or get_app_config()

    if config.use_managed_identity:
        password = _acquire_managed_identity_token(config)
    else:
        password = config.postgis_password

    return (
        f"postgresql://{quote_plus(config.postgis_user)}:{quote_plus(password)}"
        f"@{config.postgis_host}:{config.postgis_port}"
        f"/{config.postgis_database}"
        f"?sslmode={config.postgis_sslmode}"
    )


def _acquire_managed_identity_token(config: AppConfig) -> str:
    """
    Acquire an Azure AD access token to use as the database password.

    Tokens live about an hour; callers that hold connections longer must
    reconnect with a fresh connection string.
    """
    logger.info(f"Acquiring managed identity token for {config.postgis_host}")

    try:
        from azure.identity import DefaultAzureCredential
    except ImportError as e:
        raise ValueError(
            "Managed identity requires the azure-identity package. "
            "Install with: pip install azure-identity"
        ) from e

    token = DefaultAzureCredential().get_token(AZURE_POSTGRES_SCOPE)
    logger.info("Acquired managed identity token")
    return token.token

