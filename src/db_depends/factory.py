"""Catalog factory.

Profile mode only: db.toml profiles plus a ``.db-profile`` lock file, both in
the current working directory.  ``connect_and_verify()`` checks a profile
against its live database and locks it in; ``get_catalog()`` builds an
unopened ``PostgresCatalog`` for the active profile.
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from db_depends.catalog.postgres import PostgresCatalog
from db_depends.config import load_db_config
from db_depends.config.models import ConnectionResult, DatabaseProfile

logger = logging.getLogger(__name__)

# Profile lock file name, resolved against the working directory on each use
_PROFILE_LOCK_NAME = ".db-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def _lock_path() -> Path:
    return Path.cwd() / _PROFILE_LOCK_NAME


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    lock_file = _lock_path()
    if lock_file.exists():
        return lock_file.read_text().strip()
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful connection check.

    Args:
        profile_name: Name of verified profile
    """
    _lock_path().write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    _lock_path().unlink(missing_ok=True)


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. {env_prefix}DB_PROFILE env var (for initial connect or CI/CD)
    2. .db-profile file (verified profile from previous connect)
    3. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix of the environment variable, e.g. ``"APP_"``
            reads ``APP_DB_PROFILE``.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_var}=<name> db-depends connect\n"
        "Profiles are defined in db.toml (see: db-depends profiles)"
    )


def get_active_profile(env_prefix: str = "") -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured
        KeyError: If profile not found in db.toml
    """
    profile_name = get_active_profile_name(env_prefix)
    config = load_db_config()

    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


# ============================================================================
# Connection and Verification
# ============================================================================


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


async def connect_and_verify(
    profile_name: str | None = None,
    env_prefix: str = "",
) -> ConnectionResult:
    """Connect to a profile's database and lock the profile in.

    Args:
        profile_name: Profile name from db.toml. If None, uses the
            {env_prefix}DB_PROFILE env var or the existing .db-profile lock.
        env_prefix: Prefix of the profile environment variable.

    Returns:
        ConnectionResult with success status, server and database names

    Example:
        >>> result = await connect_and_verify("local")
        >>> if result.success:
        ...     print(f"Connected to {result.profile_name}")
        ... else:
        ...     print(f"Failed: {result.error}")
    """
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError as e:
            return ConnectionResult(success=False, error=str(e))

    try:
        config = load_db_config()
    except (FileNotFoundError, ValueError) as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys())
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Profile '{profile_name}' not found. Available: {available}",
        )
    profile = config.profiles[profile_name]

    try:
        async with PostgresCatalog(
            resolve_url(profile),
            connect_timeout=config.dependencies.connect_timeout,
        ) as catalog:
            await catalog.test_connection()
            server, database = catalog.server_name, catalog.database
    except Exception as e:
        logger.debug("Connection check for profile %s failed", profile_name, exc_info=True)
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Failed to connect to database: {e}",
        )

    write_profile_lock(profile_name)
    return ConnectionResult(
        success=True,
        profile_name=profile_name,
        server=server,
        database=database,
    )


# ============================================================================
# Catalog Factory
# ============================================================================


def get_catalog(
    profile_name: str | None = None,
    env_prefix: str = "",
) -> PostgresCatalog:
    """Build a catalog for a profile.

    The returned catalog is not connected yet; use it as an async context
    manager.

    Args:
        profile_name: Profile name from db.toml. If None, the active profile
            is used.
        env_prefix: Prefix of the profile environment variable.

    Raises:
        ProfileNotFoundError: If no profile is configured
        KeyError: If the profile is not in db.toml
        FileNotFoundError: If db.toml is missing

    Example:
        >>> async with get_catalog() as catalog:
        ...     root = await catalog.identify("public.orders")
    """
    config = load_db_config()

    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)

    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    profile = config.profiles[profile_name]
    return PostgresCatalog(
        resolve_url(profile),
        connect_timeout=config.dependencies.connect_timeout,
    )
