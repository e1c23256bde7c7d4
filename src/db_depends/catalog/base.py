"""Catalog protocols consumed by the dependency engine.

Defines the two capabilities every backend must provide.  All methods are
``async def`` -- each one is a call against the live server.

Usage:
    from db_depends.catalog.base import CatalogResolver, DiscoveryService

    async def describe(resolver: CatalogResolver, urn) -> str:
        info = await resolver.resolve(urn)
        return f"{info.kind} {info.name} owned by {info.owner}"
"""

from __future__ import annotations

from collections.abc import Collection
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from db_depends.dependency.models import (
        DependencyDirection,
        ObjectInfo,
        RawTreeNode,
    )
    from db_depends.identity import ObjectIdentity


class DiscoveryService(Protocol):
    """Structural discovery of dependency trees."""

    async def discover(
        self,
        roots: Collection[ObjectIdentity],
        allow_system_objects: bool,
        direction: DependencyDirection,
    ) -> RawTreeNode:
        """Discover the dependency tree below a set of roots.

        Args:
            roots: Root identities, all on the same server/database.
            allow_system_objects: Include objects in system schemas.
            direction: ``DEPENDENTS`` or ``DEPENDENCIES``.

        Returns:
            Synthetic tree root whose children are the root objects.

        Raises:
            ObjectNotFoundError: If a root does not exist.
            CatalogError: On any other backend failure.
        """
        ...


class CatalogResolver(Protocol):
    """Identity lookup and scripting."""

    async def resolve(self, identity: ObjectIdentity) -> ObjectInfo:
        """Describe one object.

        Raises:
            ObjectNotFoundError: If the object no longer exists.
            CatalogError: On any other backend failure.
        """
        ...

    async def script(self, identity: ObjectIdentity) -> str:
        """Return the creation script of one object.

        Raises:
            ObjectNotFoundError: If the object no longer exists.
            CatalogError: On any other backend failure.
        """
        ...
