"""Dependency pipeline: discovery -> flatten -> enrich -> precedence.

Runs the four stages for one root object, or for an ordered batch of roots.
Root-level failures are reported in the root's ``DependencyResult`` instead
of raised, so one bad root never hides the results of the others.  A node
that cannot be resolved is logged, recorded as a ``NodeError`` and skipped.

Usage:
    from db_depends.catalog.postgres import PostgresCatalog
    from db_depends.dependency.engine import get_dependencies

    async with PostgresCatalog(url) as catalog:
        root = await catalog.identify("public.orders", kind="table")
        result = await get_dependencies(root, catalog, catalog)
        for record in result.records:
            print(record.tier, record.kind, record.name)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from db_depends.dependency.discovery import discover
from db_depends.dependency.enrich import DEFAULT_BATCH_TERMINATOR, enrich
from db_depends.dependency.flatten import flatten
from db_depends.dependency.models import (
    DependencyDirection,
    DependencyRecord,
    DependencyResult,
    NodeError,
)
from db_depends.dependency.precedence import resolve_precedence
from db_depends.exceptions import (
    ContextResolutionError,
    DiscoveryError,
    InvalidInput,
    ResolutionError,
)
from db_depends.identity import ObjectIdentity

if TYPE_CHECKING:
    from db_depends.catalog.base import CatalogResolver, DiscoveryService

logger = logging.getLogger(__name__)


async def get_dependencies(
    root: ObjectIdentity,
    discovery: DiscoveryService,
    resolver: CatalogResolver,
    *,
    allow_system_objects: bool = False,
    direction: DependencyDirection = DependencyDirection.DEPENDENTS,
    include_self: bool = False,
    include_script: bool = True,
    batch_terminator: str = DEFAULT_BATCH_TERMINATOR,
    timeout: float | None = None,
) -> DependencyResult:
    """Resolve the ordered dependency list of one root object.

    Args:
        root: Identity of the root object.
        discovery: Backend implementing ``DiscoveryService``.
        resolver: Backend implementing ``CatalogResolver``.
        allow_system_objects: Include system objects.
        direction: ``DEPENDENTS`` (objects relying on ``root``) or
            ``DEPENDENCIES`` (objects ``root`` relies on).
        include_self: Include ``root`` itself at tier 0.
        include_script: Attach normalized creation scripts.
        batch_terminator: Terminator appended to each script.
        timeout: Optional bound in seconds on each external call.

    Returns:
        ``DependencyResult`` with records in causal order, or with
        ``stage``/``error`` set when the root could not be processed.
    """
    result = DependencyResult(root=root)

    try:
        tree = await discover(
            discovery,
            [root],
            allow_system_objects=allow_system_objects,
            direction=direction,
            timeout=timeout,
        )
    except InvalidInput as e:
        logger.error("Invalid root %s: %s", root, e)
        result.stage, result.error = "input", str(e)
        return result
    except ContextResolutionError as e:
        logger.error("Cannot resolve context of %s: %s", root, e)
        result.stage, result.error = "context", str(e)
        return result
    except DiscoveryError as e:
        logger.error("Discovery failed for %s: %s", root, e)
        result.stage, result.error = "discovery", str(e)
        return result

    nodes = flatten(tree, direction, include_self=include_self)
    if not nodes:
        logger.info("No dependencies detected for %s", root)
        return result

    records: list[DependencyRecord] = []
    for node in nodes:
        try:
            record = await enrich(
                node,
                resolver,
                include_script=include_script,
                batch_terminator=batch_terminator,
                timeout=timeout,
                origin=root,
            )
        except ResolutionError as e:
            logger.warning("Skipping %s: %s", node.identity, e)
            result.node_errors.append(NodeError(identity=node.identity, error=str(e)))
            continue
        records.append(record)

    result.records = resolve_precedence(records)
    logger.debug(
        "Resolved %d records (%d discovered, %d failed) for %s",
        len(result.records),
        len(nodes),
        len(result.node_errors),
        root,
    )
    return result


async def get_dependencies_batch(
    roots: Sequence[ObjectIdentity],
    discovery: DiscoveryService,
    resolver: CatalogResolver,
    *,
    concurrency: int = 1,
    **options,
) -> list[DependencyResult]:
    """Resolve several roots, returning one result per root in input order.

    Args:
        roots: Root identities, in the order results should be returned.
        discovery: Backend implementing ``DiscoveryService``.
        resolver: Backend implementing ``CatalogResolver``.
        concurrency: Number of roots processed at once.  ``1`` runs them
            one after another.
        **options: Keyword options forwarded to ``get_dependencies``.

    Raises:
        InvalidInput: If ``roots`` is empty.
        ValueError: If ``concurrency`` is below 1.
    """
    if not roots:
        raise InvalidInput("No root objects supplied")
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    if concurrency == 1:
        results = []
        for root in roots:
            results.append(await get_dependencies(root, discovery, resolver, **options))
        return results

    semaphore = asyncio.Semaphore(concurrency)

    async def _bounded(root: ObjectIdentity) -> DependencyResult:
        async with semaphore:
            return await get_dependencies(root, discovery, resolver, **options)

    # gather preserves argument order
    return list(await asyncio.gather(*[_bounded(root) for root in roots]))


def render_script(records: Sequence[DependencyRecord]) -> str:
    """Concatenate the scripts of ordered records into one deployable script.

    Records without a script are skipped.
    """
    scripts = [r.script for r in records if r.script]
    return "\n\n".join(scripts) + ("\n" if scripts else "")
