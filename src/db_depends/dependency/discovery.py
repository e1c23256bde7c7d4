"""Discovery requester: one discovery call for a set of roots.

Validates the roots, issues a single request to the discovery service and
returns its tree unchanged.  Failures are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Collection
from typing import TYPE_CHECKING

from db_depends.dependency.models import DependencyDirection, RawTreeNode
from db_depends.exceptions import (
    CatalogError,
    DiscoveryError,
    InvalidInput,
    ObjectNotFoundError,
)
from db_depends.identity import ObjectIdentity, owning_context

if TYPE_CHECKING:
    from db_depends.catalog.base import DiscoveryService

logger = logging.getLogger(__name__)


def _check_roots(roots: Collection[ObjectIdentity]) -> None:
    """Require a non-empty set of roots sharing one server/database."""
    if not roots:
        raise InvalidInput("No root objects supplied")

    context: tuple[str, str] | None = None
    for root in roots:
        if root is None:
            raise InvalidInput("Root object has no identity", root=root)
        root_context = owning_context(root)
        if context is None:
            context = root_context
        elif root_context != context:
            raise InvalidInput(
                f"{root} belongs to {root_context[0]}/{root_context[1]}, "
                f"expected {context[0]}/{context[1]}",
                root=root,
            )


async def discover(
    service: DiscoveryService,
    roots: Collection[ObjectIdentity],
    allow_system_objects: bool = False,
    direction: DependencyDirection = DependencyDirection.DEPENDENTS,
    timeout: float | None = None,
) -> RawTreeNode:
    """Request the dependency tree for ``roots``.

    Args:
        service: Backend implementing ``DiscoveryService``.
        roots: Root identities (non-empty, same server and database).
        allow_system_objects: Include system objects in the tree.
        direction: Walk dependents or dependencies.
        timeout: Optional bound in seconds on the external call.

    Returns:
        The synthetic tree root produced by the service.

    Raises:
        InvalidInput: Empty roots, mixed context, or a root the service
            does not know.
        ContextResolutionError: A root has no traceable owning server.
        DiscoveryError: The service call failed or timed out.
    """
    _check_roots(roots)
    roots = tuple(roots)

    logger.debug(
        "Discovering %s for %s", direction.value, ", ".join(str(r) for r in roots)
    )

    try:
        return await asyncio.wait_for(
            service.discover(roots, allow_system_objects, direction),
            timeout=timeout,
        )
    except ObjectNotFoundError as e:
        raise InvalidInput(
            f"Root object cannot be resolved: {e.identity}", root=e.identity
        ) from e
    except CatalogError as e:
        raise DiscoveryError(
            f"Discovery failed for {', '.join(str(r) for r in roots)}: {e}",
            roots=roots,
        ) from e
    except asyncio.TimeoutError as e:
        raise DiscoveryError(
            f"Discovery timed out after {timeout}s for "
            f"{', '.join(str(r) for r in roots)}",
            roots=roots,
        ) from e
