"""Data model for dependency discovery and ordering.

- ``DependencyDirection``: which way discovery walks the graph
- ``RawTreeNode``: first-child/next-sibling tree returned by discovery
- ``FlatNode``: one flattened tree node with its signed tier
- ``ObjectInfo``: catalog description of one object
- ``DependencyRecord``: enriched, script-ready dependency row
- ``NodeError`` / ``DependencyResult``: per-root pipeline outcome

All records except ``RawTreeNode`` are frozen: they are built once by the
stage that owns them and never mutated afterwards.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from db_depends.identity import ObjectIdentity


class DependencyDirection(str, Enum):
    """Discovery direction.

    ``DEPENDENTS`` walks to objects that rely on the root; ``DEPENDENCIES``
    walks to objects the root relies on (its "parents").
    """

    DEPENDENTS = "dependents"
    DEPENDENCIES = "dependencies"


@dataclass(eq=False)
class RawTreeNode:
    """Node of a first-child/next-sibling dependency tree.

    The tree returned by discovery has a synthetic root (``identity`` is
    ``None``) whose children are the requested root objects.
    ``is_schema_bound`` describes the edge between a node and its tree
    parent.
    """

    identity: ObjectIdentity | None = None
    is_schema_bound: bool = False
    first_child: RawTreeNode | None = None
    next_sibling: RawTreeNode | None = None

    @classmethod
    def build(
        cls,
        identity: ObjectIdentity | None,
        children: Iterable[RawTreeNode] = (),
        is_schema_bound: bool = False,
    ) -> RawTreeNode:
        """Create a node and link ``children`` as its sibling chain.

        Example:
            tree = RawTreeNode.build(None, [
                RawTreeNode.build(root, [RawTreeNode.build(view)]),
            ])
        """
        node = cls(identity=identity, is_schema_bound=is_schema_bound)
        previous: RawTreeNode | None = None
        for child in children:
            if previous is None:
                node.first_child = child
            else:
                previous.next_sibling = child
            previous = child
        return node

    def children(self) -> Iterator[RawTreeNode]:
        """Iterate direct children in sibling order."""
        child = self.first_child
        while child is not None:
            yield child
            child = child.next_sibling

    def count(self) -> int:
        """Count real (non-synthetic) nodes in this subtree."""
        total = 0
        stack = [self]
        while stack:
            node = stack.pop()
            if node.identity is not None:
                total += 1
            stack.extend(node.children())
        return total


@dataclass(frozen=True, eq=False)
class FlatNode:
    """A flattened tree node.

    ``parent`` is the structural parent's ``FlatNode``; ``None`` means the
    synthetic tree root.  Identity equality (``eq=False``) keeps two
    occurrences of the same object distinct at this stage.
    """

    identity: ObjectIdentity
    tier: int
    parent: FlatNode | None = None
    is_schema_bound: bool = False


@dataclass(frozen=True)
class ObjectInfo:
    """Catalog description of one object."""

    identity: ObjectIdentity
    name: str
    kind: str
    owner: str | None = None
    is_schema_bound: bool = False


@dataclass(frozen=True)
class DependencyRecord:
    """One discovered dependency, ready for ordering and scripting.

    Attributes:
        dependent: Identity of the object this record describes.
        name: Object name.
        kind: Object kind (``Table``, ``View``, ...).
        owner: Owning role/user.
        is_schema_bound: Whether the edge to ``parent`` is schema-bound.
        parent: Identity of the structural parent (``None`` for a root
            object included via ``include_self``).
        parent_name: Name of the structural parent.
        parent_kind: Kind of the structural parent.
        tier: Signed distance from the root (negative for dependencies).
        script: Normalized creation script, if requested.
        origin: Root identity whose discovery produced this record.
    """

    dependent: ObjectIdentity
    name: str
    kind: str
    owner: str | None
    is_schema_bound: bool
    parent: ObjectIdentity | None
    parent_name: str | None
    parent_kind: str | None
    tier: int
    script: str | None = None
    origin: ObjectIdentity | None = None


@dataclass(frozen=True)
class NodeError:
    """A node that could not be enriched."""

    identity: ObjectIdentity
    error: str


@dataclass
class DependencyResult:
    """Outcome of resolving one root object.

    A failed result has ``stage`` set to ``"input"``, ``"context"`` or
    ``"discovery"`` and an ``error`` message.  A successful result with no
    records means no dependencies were found -- it is not an error.
    """

    root: ObjectIdentity
    records: list[DependencyRecord] = field(default_factory=list)
    node_errors: list[NodeError] = field(default_factory=list)
    stage: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def is_empty(self) -> bool:
        """True when the root resolved cleanly but had nothing to report."""
        return self.success and not self.records and not self.node_errors
