"""Tests for the tree flattener."""

from conftest import make_urn

from db_depends.dependency.flatten import flatten
from db_depends.dependency.models import DependencyDirection, RawTreeNode

ROOT = make_urn("orders")
A = make_urn("v_a", "View")
B = make_urn("v_b", "View")
C = make_urn("v_c", "View")


def _tree(*roots: RawTreeNode) -> RawTreeNode:
    return RawTreeNode.build(None, roots)


def _summary(nodes) -> list[tuple[str, int, str | None]]:
    return [
        (n.identity.name, n.tier, n.parent.identity.name if n.parent else None)
        for n in nodes
    ]


# ============================================================================
# Test: Degenerate trees
# ============================================================================


class TestDegenerateTrees:
    """Verify trees below the minimum size flatten to nothing."""

    def test_synthetic_root_only(self) -> None:
        assert flatten(_tree()) == []
        assert flatten(_tree(), include_self=True) == []

    def test_root_without_children(self) -> None:
        tree = _tree(RawTreeNode.build(ROOT))
        assert flatten(tree) == []

    def test_root_without_children_include_self(self) -> None:
        tree = _tree(RawTreeNode.build(ROOT))
        nodes = flatten(tree, include_self=True)
        assert _summary(nodes) == [("orders", 0, None)]


# ============================================================================
# Test: Pre-order traversal and tiers
# ============================================================================


class TestTraversal:
    """Verify pre-order output, tiers, and structural parents."""

    def test_chain(self) -> None:
        tree = _tree(
            RawTreeNode.build(ROOT, [RawTreeNode.build(A, [RawTreeNode.build(B)])])
        )
        assert _summary(flatten(tree)) == [
            ("v_a", 1, "orders"),
            ("v_b", 2, "v_a"),
        ]

    def test_siblings_keep_order_and_subtrees_come_first(self) -> None:
        tree = _tree(
            RawTreeNode.build(
                ROOT,
                [
                    RawTreeNode.build(A, [RawTreeNode.build(C)]),
                    RawTreeNode.build(B),
                ],
            )
        )
        assert _summary(flatten(tree)) == [
            ("v_a", 1, "orders"),
            ("v_c", 2, "v_a"),
            ("v_b", 1, "orders"),
        ]

    def test_include_self_emits_root_first(self) -> None:
        tree = _tree(RawTreeNode.build(ROOT, [RawTreeNode.build(A)]))
        nodes = flatten(tree, include_self=True)
        assert _summary(nodes) == [("orders", 0, None), ("v_a", 1, "orders")]
        # child's parent is the emitted root node itself
        assert nodes[1].parent is nodes[0]

    def test_dependencies_direction_negates_tiers(self) -> None:
        tree = _tree(
            RawTreeNode.build(ROOT, [RawTreeNode.build(A, [RawTreeNode.build(B)])])
        )
        nodes = flatten(tree, DependencyDirection.DEPENDENCIES, include_self=True)
        assert [n.tier for n in nodes] == [0, -1, -2]

    def test_tier_sign_matches_direction(self) -> None:
        tree = _tree(
            RawTreeNode.build(
                ROOT, [RawTreeNode.build(A, [RawTreeNode.build(C)]), RawTreeNode.build(B)]
            )
        )
        assert all(n.tier > 0 for n in flatten(tree))
        assert all(
            n.tier < 0 for n in flatten(tree, DependencyDirection.DEPENDENCIES)
        )

    def test_schema_bound_flag_is_carried(self) -> None:
        tree = _tree(
            RawTreeNode.build(
                ROOT,
                [RawTreeNode.build(A, is_schema_bound=True), RawTreeNode.build(B)],
            )
        )
        assert [n.is_schema_bound for n in flatten(tree)] == [True, False]

    def test_duplicate_paths_are_all_emitted(self) -> None:
        tree = _tree(
            RawTreeNode.build(
                ROOT,
                [
                    RawTreeNode.build(A, [RawTreeNode.build(C)]),
                    RawTreeNode.build(B, [RawTreeNode.build(C)]),
                ],
            )
        )
        names = [n.identity.name for n in flatten(tree)]
        assert names.count("v_c") == 2

    def test_multiple_roots(self) -> None:
        other = make_urn("customers")
        tree = _tree(
            RawTreeNode.build(ROOT, [RawTreeNode.build(A)]),
            RawTreeNode.build(other, [RawTreeNode.build(B)]),
        )
        assert _summary(flatten(tree)) == [
            ("v_a", 1, "orders"),
            ("v_b", 1, "customers"),
        ]
        assert _summary(flatten(tree, include_self=True)) == [
            ("orders", 0, None),
            ("v_a", 1, "orders"),
            ("customers", 0, None),
            ("v_b", 1, "customers"),
        ]

    def test_every_node_is_emitted_once_per_occurrence(self) -> None:
        tree = _tree(
            RawTreeNode.build(
                ROOT,
                [
                    RawTreeNode.build(A, [RawTreeNode.build(B), RawTreeNode.build(C)]),
                    RawTreeNode.build(B, [RawTreeNode.build(C)]),
                ],
            )
        )
        assert len(flatten(tree, include_self=True)) == tree.count()


class TestDeepTrees:
    """Verify deep trees do not hit the recursion limit."""

    def test_ten_thousand_level_chain(self) -> None:
        depth = 10_000
        leaf = None
        for i in reversed(range(depth)):
            node = RawTreeNode(identity=make_urn(f"v_{i}", "View"))
            node.first_child = leaf
            leaf = node
        tree = _tree(RawTreeNode.build(ROOT, [leaf]))

        nodes = flatten(tree)

        assert len(nodes) == depth
        assert nodes[-1].tier == depth
        assert nodes[-1].identity.name == f"v_{depth - 1}"
