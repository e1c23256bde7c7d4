"""Tests for the end-to-end dependency pipeline."""

import pytest
from conftest import FakeCatalog, make_urn

from db_depends.dependency.engine import (
    get_dependencies,
    get_dependencies_batch,
    render_script,
)
from db_depends.dependency.models import DependencyDirection
from db_depends.exceptions import CatalogError, InvalidInput
from db_depends.identity import Urn


def _names(result) -> list[tuple[str, int]]:
    return [(r.name, r.tier) for r in result.records]


# ============================================================================
# Test: get_dependencies()
# ============================================================================


class TestGetDependencies:
    """Verify single-root pipeline behavior."""

    @pytest.mark.asyncio
    async def test_no_dependencies_is_empty_success(self, catalog: FakeCatalog) -> None:
        orders = catalog.add("orders")

        result = await get_dependencies(orders, catalog, catalog)

        assert result.success is True
        assert result.is_empty is True
        assert result.records == []
        assert result.stage is None

    @pytest.mark.asyncio
    async def test_diamond_orders_shared_dependent_last(self, diamond: FakeCatalog) -> None:
        result = await get_dependencies(make_urn("orders"), diamond, diamond)

        assert result.success is True
        assert _names(result) == [("v_a", 1), ("v_b", 1), ("v_top", 2)]
        top = result.records[-1]
        # first path at the deepest tier wins
        assert top.parent_name == "v_a"
        assert top.owner == "reporting"

    @pytest.mark.asyncio
    async def test_records_carry_origin_and_scripts(self, diamond: FakeCatalog) -> None:
        orders = make_urn("orders")
        result = await get_dependencies(orders, diamond, diamond)

        assert all(r.origin == orders for r in result.records)
        assert result.records[0].script == "CREATE VIEW v_a ()\nGO"
        assert result.records[0].is_schema_bound is True
        assert result.records[1].is_schema_bound is False

    @pytest.mark.asyncio
    async def test_include_self(self, diamond: FakeCatalog) -> None:
        result = await get_dependencies(
            make_urn("orders"), diamond, diamond, include_self=True
        )

        assert _names(result)[0] == ("orders", 0)
        assert result.records[0].parent is None
        assert result.records[0].script == "CREATE TABLE orders (id int)\nGO"

    @pytest.mark.asyncio
    async def test_without_scripts(self, diamond: FakeCatalog) -> None:
        result = await get_dependencies(
            make_urn("orders"), diamond, diamond, include_script=False
        )
        assert all(r.script is None for r in result.records)

    @pytest.mark.asyncio
    async def test_dependencies_direction(self, diamond: FakeCatalog) -> None:
        result = await get_dependencies(
            make_urn("v_top", "View"),
            diamond,
            diamond,
            direction=DependencyDirection.DEPENDENCIES,
            include_self=True,
        )

        assert result.success is True
        assert all(r.tier <= 0 for r in result.records)
        assert result.records[-1].name == "v_top"
        assert [r.tier for r in result.records] == sorted(r.tier for r in result.records)
        assert {r.name for r in result.records} == {"orders", "v_a", "v_b", "v_top"}

    @pytest.mark.asyncio
    async def test_ascending_tiers_and_unique_dependents(self, diamond: FakeCatalog) -> None:
        result = await get_dependencies(make_urn("orders"), diamond, diamond)
        tiers = [r.tier for r in result.records]
        assert tiers == sorted(tiers)
        assert len({r.dependent for r in result.records}) == len(result.records)

    @pytest.mark.asyncio
    async def test_shared_dependent_keeps_deeper_tier(self, catalog: FakeCatalog) -> None:
        orders = catalog.add("orders")
        v_report = catalog.add("v_report", kind="View")
        v_mid = catalog.add("v_mid", kind="View")
        # v_report reads orders directly and through v_mid
        catalog.link(orders, v_report)
        catalog.link(orders, v_mid)
        catalog.link(v_mid, v_report)

        result = await get_dependencies(orders, catalog, catalog)

        assert _names(result) == [("v_mid", 1), ("v_report", 2)]
        assert result.records[-1].parent_name == "v_mid"

    @pytest.mark.asyncio
    async def test_dependencies_keep_deepest_occurrence(self, catalog: FakeCatalog) -> None:
        v_a = catalog.add("v_a", kind="View")
        v_b = catalog.add("v_b", kind="View")
        d = catalog.add("d")
        # v_a reads v_b and d; v_b reads d
        catalog.link(v_b, v_a)
        catalog.link(d, v_a)
        catalog.link(d, v_b)

        result = await get_dependencies(
            v_a, catalog, catalog, direction=DependencyDirection.DEPENDENCIES
        )

        assert _names(result) == [("d", -2), ("v_b", -1)]
        assert result.records[0].parent_name == "v_b"

    @pytest.mark.asyncio
    async def test_resolver_failure_skips_one_node(self, catalog: FakeCatalog) -> None:
        orders = catalog.add("orders")
        views = [catalog.add(f"v_{i}", kind="View") for i in range(5)]
        for view in views:
            catalog.link(orders, view)
        catalog.failing.add(views[2])

        result = await get_dependencies(orders, catalog, catalog)

        assert result.success is True
        assert len(result.records) == 4
        assert views[2] not in {r.dependent for r in result.records}
        assert len(result.node_errors) == 1
        assert result.node_errors[0].identity == views[2]
        assert "permission denied" in result.node_errors[0].error
        assert result.is_empty is False


class TestGetDependenciesFailures:
    """Verify root-level failures are reported in the result."""

    @pytest.mark.asyncio
    async def test_unknown_root(self, catalog: FakeCatalog) -> None:
        result = await get_dependencies(make_urn("ghost"), catalog, catalog)
        assert result.success is False
        assert result.stage == "input"
        assert "ghost" in result.error

    @pytest.mark.asyncio
    async def test_untraceable_root(self, catalog: FakeCatalog) -> None:
        root = Urn("Table[@Name='orders']")
        result = await get_dependencies(root, catalog, catalog)
        assert result.success is False
        assert result.stage == "context"

    @pytest.mark.asyncio
    async def test_discovery_failure(self, diamond: FakeCatalog) -> None:
        diamond.discover_error = CatalogError("statement timeout")
        result = await get_dependencies(make_urn("orders"), diamond, diamond)
        assert result.success is False
        assert result.stage == "discovery"
        assert "statement timeout" in result.error
        assert result.records == []

    @pytest.mark.asyncio
    async def test_discovery_timeout(self, diamond: FakeCatalog) -> None:
        orders = make_urn("orders")
        diamond.delays[orders] = 1.0
        result = await get_dependencies(orders, diamond, diamond, timeout=0.01)
        assert result.stage == "discovery"
        assert "timed out" in result.error


# ============================================================================
# Test: get_dependencies_batch()
# ============================================================================


class TestGetDependenciesBatch:
    """Verify batch ordering, isolation, and concurrency bounds."""

    @pytest.mark.asyncio
    async def test_empty_batch_raises(self, catalog: FakeCatalog) -> None:
        with pytest.raises(InvalidInput):
            await get_dependencies_batch([], catalog, catalog)

    @pytest.mark.asyncio
    async def test_invalid_concurrency_raises(self, diamond: FakeCatalog) -> None:
        with pytest.raises(ValueError, match="concurrency"):
            await get_dependencies_batch(
                [make_urn("orders")], diamond, diamond, concurrency=0
            )

    @pytest.mark.asyncio
    async def test_failed_root_does_not_stop_others(self, diamond: FakeCatalog) -> None:
        roots = [make_urn("ghost"), make_urn("orders")]

        results = await get_dependencies_batch(roots, diamond, diamond)

        assert [r.root for r in results] == roots
        assert results[0].stage == "input"
        assert results[1].success is True
        assert len(results[1].records) == 3

    @pytest.mark.asyncio
    async def test_sequential_by_default(self, diamond: FakeCatalog) -> None:
        roots = [make_urn("orders"), make_urn("v_a", "View"), make_urn("v_b", "View")]
        for root in roots:
            diamond.delays[root] = 0.01

        await get_dependencies_batch(roots, diamond, diamond)

        assert diamond.max_active == 1
        assert [call[0] for call in diamond.discover_calls] == [(r,) for r in roots]

    @pytest.mark.asyncio
    async def test_concurrent_results_keep_input_order(self, diamond: FakeCatalog) -> None:
        roots = [make_urn("orders"), make_urn("v_a", "View"), make_urn("v_b", "View")]
        # first root finishes last
        diamond.delays[roots[0]] = 0.05
        diamond.delays[roots[1]] = 0.01
        diamond.delays[roots[2]] = 0.02

        results = await get_dependencies_batch(roots, diamond, diamond, concurrency=2)

        assert [r.root for r in results] == roots
        assert diamond.max_active <= 2
        assert diamond.max_active == 2

    @pytest.mark.asyncio
    async def test_options_forwarded(self, diamond: FakeCatalog) -> None:
        results = await get_dependencies_batch(
            [make_urn("orders")], diamond, diamond, include_self=True, include_script=False
        )
        assert results[0].records[0].tier == 0
        assert results[0].records[0].script is None


# ============================================================================
# Test: render_script()
# ============================================================================


class TestRenderScript:
    """Verify ordered script concatenation."""

    @pytest.mark.asyncio
    async def test_scripts_in_record_order(self, diamond: FakeCatalog) -> None:
        result = await get_dependencies(
            make_urn("orders"), diamond, diamond, include_self=True
        )

        script = render_script(result.records)

        assert script.index("CREATE TABLE orders") < script.index("CREATE VIEW v_a")
        assert script.index("CREATE VIEW v_b") < script.index("CREATE VIEW v_top")
        assert script.endswith("GO\n")
        assert "\nGO\n\nCREATE" in script

    def test_no_records(self) -> None:
        assert render_script([]) == ""

    @pytest.mark.asyncio
    async def test_records_without_scripts_skipped(self, diamond: FakeCatalog) -> None:
        result = await get_dependencies(
            make_urn("orders"), diamond, diamond, include_script=False
        )
        assert render_script(result.records) == ""
