"""Dependency discovery, flattening, enrichment, and precedence ordering.

Usage:
    from db_depends.dependency import get_dependencies, DependencyDirection
    from db_depends.dependency import flatten, resolve_precedence, normalize_script
"""

from db_depends.dependency.discovery import discover
from db_depends.dependency.engine import (
    get_dependencies,
    get_dependencies_batch,
    render_script,
)
from db_depends.dependency.enrich import (
    DEFAULT_BATCH_TERMINATOR,
    enrich,
    normalize_script,
)
from db_depends.dependency.flatten import flatten
from db_depends.dependency.models import (
    DependencyDirection,
    DependencyRecord,
    DependencyResult,
    FlatNode,
    NodeError,
    ObjectInfo,
    RawTreeNode,
)
from db_depends.dependency.precedence import resolve_precedence

__all__ = [
    "discover",
    "flatten",
    "enrich",
    "normalize_script",
    "resolve_precedence",
    "get_dependencies",
    "get_dependencies_batch",
    "render_script",
    "DEFAULT_BATCH_TERMINATOR",
    "DependencyDirection",
    "DependencyRecord",
    "DependencyResult",
    "FlatNode",
    "NodeError",
    "ObjectInfo",
    "RawTreeNode",
]
