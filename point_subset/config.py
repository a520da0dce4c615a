# ============================================================================
# MODULE CONTEXT - POINT SUBSET CONFIGURATION
# ============================================================================
# STATUS: Standalone Configuration - Point subset queries
# PURPOSE: Table/column names, timeouts and display settings for subset queries
# EXPORTS: PointSubsetConfig, get_subset_config
# PYDANTIC_MODELS: PointSubsetConfig
# DEPENDENCIES: pydantic, os
# SOURCE: Environment variables
# PATTERNS: Settings Pattern, Singleton via cached function
# ============================================================================

"""
Point Subset Configuration

Environment Variables (all optional):
    - SUBSET_SCHEMA: Schema containing the point table (default: "public")
    - SUBSET_TABLE: Default point table (default: "fires")
    - SUBSET_ID_COLUMN: Primary key column (default: "ogc_fid")
    - SUBSET_GEOMETRY_COLUMN: Point geometry column (default: "wkb_geometry")
    - SUBSET_TIME_COLUMN: Timestamp column (default: "time")
    - SUBSET_QUERY_TIMEOUT: Statement timeout in seconds (default: 30)
    - SUBSET_MAX_FEATURES: Row cap for HTTP queries (default: 10000)
    - SUBSET_DISPLAY_CRS: Display reference system (default: "EPSG:4326")

Database credentials come from the application config (POSTGIS_*).
"""

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PointSubsetConfig(BaseModel):
    """Configuration for point subset queries and display."""

    subset_schema: str = Field(
        default_factory=lambda: os.getenv("SUBSET_SCHEMA", "public"),
        description="Schema containing the point table"
    )
    default_table: str = Field(
        default_factory=lambda: os.getenv("SUBSET_TABLE", "fires"),
        description="Default point table"
    )
    id_column: str = Field(
        default_factory=lambda: os.getenv("SUBSET_ID_COLUMN", "ogc_fid"),
        description="Primary key column"
    )
    geometry_column: str = Field(
        default_factory=lambda: os.getenv("SUBSET_GEOMETRY_COLUMN", "wkb_geometry"),
        description="Point geometry column"
    )
    time_column: str = Field(
        default_factory=lambda: os.getenv("SUBSET_TIME_COLUMN", "time"),
        description="Timestamp column"
    )
    query_timeout_seconds: int = Field(
        default_factory=lambda: int(os.getenv("SUBSET_QUERY_TIMEOUT", "30")),
        ge=1,
        le=300,
        description="Maximum query execution time in seconds"
    )
    max_features: int = Field(
        default_factory=lambda: int(os.getenv("SUBSET_MAX_FEATURES", "10000")),
        ge=1,
        description="Maximum number of points returned by an HTTP query"
    )
    display_crs: str = Field(
        default_factory=lambda: os.getenv("SUBSET_DISPLAY_CRS", "EPSG:4326"),
        description="Reference system maps are rendered in"
    )

    @field_validator("subset_schema", "default_table", "id_column", "geometry_column", "time_column")
    @classmethod
    def validate_not_empty(cls, v: str, info) -> str:
        if not v:
            raise ValueError(f"{info.field_name} must not be empty")
        return v


_config_cache: Optional[PointSubsetConfig] = None


def get_subset_config() -> PointSubsetConfig:
    """Get singleton point subset configuration instance."""
    global _config_cache

    if _config_cache is None:
        _config_cache = PointSubsetConfig()

    return _config_cache
