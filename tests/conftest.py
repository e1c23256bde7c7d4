"""Shared fixtures: an in-memory catalog implementing both catalog Protocols."""

import asyncio

import pytest

from db_depends.dependency.models import DependencyDirection, ObjectInfo, RawTreeNode
from db_depends.exceptions import CatalogError, ObjectNotFoundError
from db_depends.identity import Urn

SERVER = "srv1"
DATABASE = "app"


def make_urn(
    name: str,
    kind: str = "Table",
    schema: str = "public",
    server: str = SERVER,
    database: str = DATABASE,
) -> Urn:
    """URN of a test object."""
    return Urn.build(server, database, kind, name, schema=schema)


class FakeCatalog:
    """Dependency graph held in dictionaries.

    ``link(parent, child)`` records that ``child`` depends on ``parent``.
    Discovery unfolds the graph into one tree path per route, skipping a
    node already on its own ancestor path.
    """

    def __init__(self) -> None:
        self.objects: dict[Urn, ObjectInfo] = {}
        self.scripts: dict[Urn, str] = {}
        self.dependents: dict[Urn, list[tuple[Urn, bool]]] = {}
        self.failing: set[Urn] = set()
        self.discover_error: Exception | None = None
        self.delays: dict[Urn, float] = {}
        self.discover_calls: list[tuple] = []
        self.active = 0
        self.max_active = 0

    # ----- graph setup -----

    def add(
        self,
        name: str,
        kind: str = "Table",
        owner: str = "postgres",
        script: str | None = None,
    ) -> Urn:
        urn = make_urn(name, kind)
        self.objects[urn] = ObjectInfo(identity=urn, name=name, kind=kind, owner=owner)
        if script is not None:
            self.scripts[urn] = script
        return urn

    def link(self, parent: Urn, child: Urn, schema_bound: bool = False) -> None:
        self.dependents.setdefault(parent, []).append((child, schema_bound))

    def _edges(self, direction: DependencyDirection) -> dict[Urn, list[tuple[Urn, bool]]]:
        if direction == DependencyDirection.DEPENDENTS:
            return self.dependents
        reverse: dict[Urn, list[tuple[Urn, bool]]] = {}
        for parent, children in self.dependents.items():
            for child, bound in children:
                reverse.setdefault(child, []).append((parent, bound))
        return reverse

    def _unfold(self, urn, edges, path, bound=False) -> RawTreeNode:
        path = path | {urn}
        children = [
            self._unfold(child, edges, path, child_bound)
            for child, child_bound in edges.get(urn, [])
            if child not in path
        ]
        return RawTreeNode.build(urn, children, is_schema_bound=bound)

    # ----- DiscoveryService -----

    async def discover(self, roots, allow_system_objects, direction) -> RawTreeNode:
        self.discover_calls.append((tuple(roots), allow_system_objects, direction))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            for root in roots:
                if root in self.delays:
                    await asyncio.sleep(self.delays[root])
            if self.discover_error is not None:
                raise self.discover_error
            for root in roots:
                if root not in self.objects:
                    raise ObjectNotFoundError(root)
            edges = self._edges(direction)
            return RawTreeNode.build(
                None, [self._unfold(root, edges, frozenset()) for root in roots]
            )
        finally:
            self.active -= 1

    # ----- CatalogResolver -----

    async def resolve(self, identity) -> ObjectInfo:
        if identity in self.failing:
            raise CatalogError(f"permission denied for {identity}")
        if identity not in self.objects:
            raise ObjectNotFoundError(identity)
        return self.objects[identity]

    async def script(self, identity) -> str:
        info = await self.resolve(identity)
        return self.scripts.get(identity, f"CREATE {info.kind.upper()} {info.name} ()")

    # ----- PostgresCatalog surface used by the CLI -----

    async def __aenter__(self) -> "FakeCatalog":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def identify(self, name: str, kind: str = "table") -> Urn:
        schema, _, bare = name.rpartition(".")
        for urn, info in self.objects.items():
            if info.name == bare and urn.schema == (schema or "public"):
                return urn
        raise ObjectNotFoundError(name)


@pytest.fixture
def catalog() -> FakeCatalog:
    """Empty fake catalog."""
    return FakeCatalog()


@pytest.fixture
def diamond(catalog: FakeCatalog) -> FakeCatalog:
    """``orders`` <- ``v_a``, ``v_b`` <- ``v_top`` (depends on both views)."""
    orders = catalog.add("orders", script="CREATE TABLE orders (id int)")
    v_a = catalog.add("v_a", kind="View")
    v_b = catalog.add("v_b", kind="View")
    v_top = catalog.add("v_top", kind="View", owner="reporting")
    catalog.link(orders, v_a, schema_bound=True)
    catalog.link(orders, v_b)
    catalog.link(v_a, v_top)
    catalog.link(v_b, v_top, schema_bound=True)
    return catalog
