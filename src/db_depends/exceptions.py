"""Exceptions raised by the dependency engine and catalog backends.

Exception Hierarchy:
-------------------
DependencyError (base for engine errors)
├── InvalidInput             # Empty batch, unknown root, mixed server context
├── ContextResolutionError   # Root has no traceable owning server/database
├── DiscoveryError           # Discovery service call failed (root-level)
└── ResolutionError          # One node could not be resolved (node-level)

CatalogError (base for backend errors)
└── ObjectNotFoundError      # Identity does not exist in the catalog

Root-level errors stop processing for one root only.  ``ResolutionError``
is isolated to the node it names -- the pipeline records it and moves on.
Nothing here is retried.
"""

from typing import Any


class DependencyError(Exception):
    """Base exception for all dependency engine errors."""

    pass


class InvalidInput(DependencyError):
    """Raised when a root is missing, unknown, or the batch is empty."""

    def __init__(self, message: str, root: Any = None) -> None:
        self.root = root
        super().__init__(message)


class ContextResolutionError(DependencyError):
    """Raised when the server/database owning an identity cannot be determined."""

    def __init__(self, message: str, root: Any = None) -> None:
        self.root = root
        super().__init__(message)


class DiscoveryError(DependencyError):
    """Raised when the discovery service fails for a set of roots.

    The original failure is chained as ``__cause__``.
    """

    def __init__(self, message: str, roots: tuple = ()) -> None:
        self.roots = tuple(roots)
        super().__init__(message)


class ResolutionError(DependencyError):
    """Raised when a discovered node cannot be resolved during enrichment."""

    def __init__(self, message: str, identity: Any = None) -> None:
        self.identity = identity
        super().__init__(message)


class CatalogError(Exception):
    """Base exception for catalog backend failures."""

    pass


class ObjectNotFoundError(CatalogError):
    """Raised when an identity does not exist in the catalog."""

    def __init__(self, identity: Any, message: str | None = None) -> None:
        self.identity = identity
        super().__init__(message or f"Object not found: {identity}")
