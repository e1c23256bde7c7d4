"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_depends.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from db_depends.config.loader import load_db_config
from db_depends.config.models import (
    ConnectionResult,
    DatabaseConfig,
    DatabaseProfile,
    DependencySettings,
)

__all__ = [
    "load_db_config",
    "ConnectionResult",
    "DatabaseConfig",
    "DatabaseProfile",
    "DependencySettings",
]
