"""db-depends: Database dependency discovery and precedence ordering.

Discovers the objects that depend on (or are required by) database objects,
orders them so every object comes after what it relies on, and renders
their creation scripts.  Ships a PostgreSQL catalog backend, multi-profile
configuration, and a CLI.

Usage:
    from db_depends import PostgresCatalog, get_dependencies, render_script
    from db_depends import DependencyDirection, Urn
    from db_depends import get_catalog, load_db_config
"""

__version__ = "0.1.0"

# Identities
from db_depends.identity import ObjectIdentity, Urn

# Dependency engine
from db_depends.dependency import (
    DEFAULT_BATCH_TERMINATOR,
    DependencyDirection,
    DependencyRecord,
    DependencyResult,
    FlatNode,
    NodeError,
    ObjectInfo,
    RawTreeNode,
    discover,
    enrich,
    flatten,
    get_dependencies,
    get_dependencies_batch,
    normalize_script,
    render_script,
    resolve_precedence,
)

# Catalog backends
from db_depends.catalog import CatalogResolver, DiscoveryService, PostgresCatalog

# Config
from db_depends.config.loader import load_db_config
from db_depends.config.models import (
    ConnectionResult,
    DatabaseConfig,
    DatabaseProfile,
    DependencySettings,
)

# Factory
from db_depends.factory import (
    ProfileNotFoundError,
    connect_and_verify,
    get_catalog,
    resolve_url,
)

# Exceptions
from db_depends.exceptions import (
    CatalogError,
    ContextResolutionError,
    DependencyError,
    DiscoveryError,
    InvalidInput,
    ObjectNotFoundError,
    ResolutionError,
)

__all__ = [
    # Identities
    "ObjectIdentity",
    "Urn",
    # Dependency engine
    "DEFAULT_BATCH_TERMINATOR",
    "DependencyDirection",
    "DependencyRecord",
    "DependencyResult",
    "FlatNode",
    "NodeError",
    "ObjectInfo",
    "RawTreeNode",
    "discover",
    "enrich",
    "flatten",
    "get_dependencies",
    "get_dependencies_batch",
    "normalize_script",
    "render_script",
    "resolve_precedence",
    # Catalog backends
    "CatalogResolver",
    "DiscoveryService",
    "PostgresCatalog",
    # Config
    "load_db_config",
    "ConnectionResult",
    "DatabaseConfig",
    "DatabaseProfile",
    "DependencySettings",
    # Factory
    "ProfileNotFoundError",
    "connect_and_verify",
    "get_catalog",
    "resolve_url",
    # Exceptions
    "CatalogError",
    "ContextResolutionError",
    "DependencyError",
    "DiscoveryError",
    "InvalidInput",
    "ObjectNotFoundError",
    "ResolutionError",
]
