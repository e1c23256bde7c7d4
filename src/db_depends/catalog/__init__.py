"""Catalog backends package.

Provides the ``DiscoveryService`` and ``CatalogResolver`` Protocols and the
PostgreSQL backend implementing both.

Usage:
    from db_depends.catalog import PostgresCatalog

    async with PostgresCatalog("postgresql://localhost/app") as catalog:
        root = await catalog.identify("public.orders")
"""

from db_depends.catalog.base import CatalogResolver, DiscoveryService
from db_depends.catalog.postgres import PostgresCatalog

__all__ = [
    "CatalogResolver",
    "DiscoveryService",
    "PostgresCatalog",
]
