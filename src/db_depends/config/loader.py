"""Configuration loading from db.toml."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_depends.config.models import DatabaseConfig, DatabaseProfile, DependencySettings


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ./db.toml in the current
            working directory)

    Returns:
        DatabaseConfig with all profiles and dependency settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create db.toml with at least one [profiles.<name>] table."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        # Parse profiles
        profiles = {}
        for name, profile_data in data.get("profiles", {}).items():
            profiles[name] = DatabaseProfile(**profile_data)

        # Parse dependency settings
        dependencies = DependencySettings(**data.get("dependencies", {}))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e

    return DatabaseConfig(profiles=profiles, dependencies=dependencies)
