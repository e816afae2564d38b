"""
Application Settings - Pydantic Settings for configuration management.

Supports environment variables and .env file loading.
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import BeforeValidator, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_to_lowercase(v: str) -> str:
    """Normalize string to lowercase."""
    if isinstance(v, str):
        return v.lower()
    return v


# Standard template field IDs of the clone relationship (__Source, __Source Item)
SOURCE_FIELD_ID = "{1B86697D-60CA-4D80-83FB-7555A2E6CE1C}"
SOURCE_ITEM_FIELD_ID = "{19B597D3-2EDD-4AE2-AEFE-4A94C7F10E31}"


class Neo4jSettings(BaseSettings):
    """Neo4j connection settings for the durable link index."""

    model_config = SettingsConfigDict(env_prefix="NEO4J_")

    uri: str = Field(default="bolt://localhost:7687", description="Neo4j connection URI")
    username: str = Field(default="neo4j", description="Neo4j username")
    password: SecretStr = Field(default=SecretStr("password"), description="Neo4j password")
    database: str = Field(default="neo4j", description="Neo4j database name")
    max_connection_pool_size: int = Field(default=50, description="Connection pool size")


class LinkIndexSettings(BaseSettings):
    """Link index backend selection."""

    model_config = SettingsConfigDict(env_prefix="LINK_INDEX_")

    backend: Annotated[
        Literal["memory", "neo4j"],
        BeforeValidator(normalize_to_lowercase),
    ] = Field(default="memory", description="Link index backend")


class ReportSettings(BaseSettings):
    """Reference report settings."""

    model_config = SettingsConfigDict(env_prefix="REPORT_")

    content_database: str = Field(default="master", description="Database the operator works on")
    ignore_clones: bool = Field(default=False, description="Hide clone-source references by default")
    clone_field_ids: list[str] = Field(
        default=[SOURCE_ITEM_FIELD_ID, SOURCE_FIELD_ID],
        description="Field IDs that express a clone relationship rather than a content reference",
    )
    item_level_label: str = Field(default="Template", description="Label for item-level references")
    unknown_field_label: str = Field(default="Unknown field", description="Label for unmapped fields")


class RepairSettings(BaseSettings):
    """Link repair engine settings."""

    model_config = SettingsConfigDict(env_prefix="REPAIR_")

    maintenance_mode: bool = Field(default=True, description="Bypass item protection while editing")
    reinsert_relinked: bool = Field(
        default=True, description="Index the replacement link after a relink rewrite"
    )


class APISettings(BaseSettings):
    """FastAPI server settings."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", description="API host")  # nosec B104 - intentional for container deployment
    port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Debug mode")


class ObservabilitySettings(BaseSettings):
    """Observability and monitoring settings."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_")

    log_format: Literal["json", "console"] = Field(
        default="json", description="Log format (json for production, console for development)"
    )
    metrics_enabled: bool = Field(default=True, description="Enable metrics collection")


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Content Link Repair", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Sub-settings
    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    link_index: LinkIndexSettings = Field(default_factory=LinkIndexSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)
    repair: RepairSettings = Field(default_factory=RepairSettings)
    api: APISettings = Field(default_factory=APISettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
