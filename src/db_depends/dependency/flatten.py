"""Tree flattener: first-child/next-sibling tree -> ordered ``FlatNode`` list.

The walk is pre-order and uses an explicit work stack, so tree depth never
turns into Python call depth.  Tiers count the distance from the root
object: the root itself is tier 0, its direct dependents tier 1, and so on.
For ``DEPENDENCIES`` every tier is negated, which keeps ascending tier order
a valid causal order in both directions.
"""

from db_depends.dependency.models import DependencyDirection, FlatNode, RawTreeNode


def flatten(
    tree: RawTreeNode,
    direction: DependencyDirection = DependencyDirection.DEPENDENTS,
    include_self: bool = False,
) -> list[FlatNode]:
    """Flatten a discovery tree into annotated nodes.

    Args:
        tree: Synthetic tree root returned by discovery.  Its children are
            the root objects.
        direction: Discovery direction; ``DEPENDENCIES`` negates tiers.
        include_self: Emit the root objects themselves at tier 0.

    Returns:
        Nodes in pre-order.  Empty when the tree holds fewer than one node
        (``include_self``) or two nodes (otherwise).

    Example:
        nodes = flatten(tree, DependencyDirection.DEPENDENTS)
        [(str(n.identity), n.tier) for n in nodes]
    """
    minimum = 1 if include_self else 2
    if tree.count() < minimum:
        return []

    sign = -1 if direction == DependencyDirection.DEPENDENCIES else 1
    result: list[FlatNode] = []

    # (node, tier, parent); the parent's FlatNode is created before any of
    # its children are pushed, so it is always available here.
    stack: list[tuple[RawTreeNode, int, FlatNode | None]] = []

    for root in reversed(list(tree.children())):
        if root.identity is None:
            continue
        if include_self:
            stack.append((root, 0, None))
        elif root.first_child is not None:
            root_node = FlatNode(identity=root.identity, tier=0)
            stack.append((root.first_child, 1, root_node))

    while stack:
        node, tier, parent = stack.pop()

        flat = FlatNode(
            identity=node.identity,
            tier=tier * sign,
            parent=parent,
            is_schema_bound=node.is_schema_bound,
        )
        result.append(flat)

        # Sibling is pushed first so the child subtree is visited before it.
        if node.next_sibling is not None and parent is not None:
            stack.append((node.next_sibling, tier, parent))
        if node.first_child is not None:
            stack.append((node.first_child, tier + 1, flat))

    return result
