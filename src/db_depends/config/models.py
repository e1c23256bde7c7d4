"""Pydantic models for database configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"  # Only postgres is supported


class DependencySettings(BaseModel):
    """Defaults for dependency resolution, from the ``[dependencies]`` table."""

    batch_terminator: str = "GO"
    include_script: bool = True
    allow_system_objects: bool = False
    timeout: float | None = Field(default=None, gt=0)  # Seconds per catalog call
    concurrency: int = Field(default=1, ge=1)
    connect_timeout: int = Field(default=10, gt=0)


class DatabaseConfig(BaseModel):
    """Complete database configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    dependencies: DependencySettings = Field(default_factory=DependencySettings)


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_verify()."""

    success: bool
    profile_name: str | None = None
    server: str | None = None
    database: str | None = None
    error: str | None = None
