"""Node enricher: ``FlatNode`` + catalog lookups -> ``DependencyRecord``.

Also owns the script normalization applied to every creation script:

- ``SET ANSI_NULLS ON`` and ``SET QUOTED_IDENTIFIER ON`` statements are
  stripped (any casing, any number of occurrences).
- A batch terminator is appended on its own line.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

from db_depends.dependency.models import DependencyRecord, FlatNode, ObjectInfo
from db_depends.exceptions import CatalogError, ResolutionError
from db_depends.identity import ObjectIdentity

if TYPE_CHECKING:
    from db_depends.catalog.base import CatalogResolver

DEFAULT_BATCH_TERMINATOR = "GO"

_SESSION_SETTING_RE = re.compile(
    r"\bSET\s+(?:ANSI_NULLS|QUOTED_IDENTIFIER)\s+ON\b[ \t]*;?",
    re.IGNORECASE,
)


def normalize_script(script: str, batch_terminator: str = DEFAULT_BATCH_TERMINATOR) -> str:
    """Strip session-setting statements and append the batch terminator.

    Lines that only held a stripped statement are dropped; other lines are
    kept as they are.  Normalizing an already normalized script returns it
    unchanged.

    Example:
        >>> normalize_script("SET ANSI_NULLS ON\\nCREATE VIEW v AS SELECT 1")
        'CREATE VIEW v AS SELECT 1\\nGO'
    """
    lines = []
    for line in script.splitlines():
        stripped = _SESSION_SETTING_RE.sub("", line)
        if stripped.strip() or not line.strip():
            lines.append(stripped.rstrip())
    body = "\n".join(lines).strip()

    if batch_terminator:
        last_line = body.rsplit("\n", 1)[-1].strip()
        if last_line.lower() != batch_terminator.lower():
            body = f"{body}\n{batch_terminator}" if body else batch_terminator
    return body


async def _lookup(
    resolver: CatalogResolver,
    identity: ObjectIdentity,
    timeout: float | None,
) -> ObjectInfo:
    try:
        return await asyncio.wait_for(resolver.resolve(identity), timeout=timeout)
    except CatalogError as e:
        raise ResolutionError(f"Cannot resolve {identity}: {e}", identity=identity) from e
    except asyncio.TimeoutError as e:
        raise ResolutionError(
            f"Resolving {identity} timed out after {timeout}s", identity=identity
        ) from e


async def enrich(
    node: FlatNode,
    resolver: CatalogResolver,
    include_script: bool = True,
    batch_terminator: str = DEFAULT_BATCH_TERMINATOR,
    timeout: float | None = None,
    origin: ObjectIdentity | None = None,
) -> DependencyRecord:
    """Build the dependency record for one flattened node.

    Args:
        node: Flattened node to describe.
        resolver: Backend implementing ``CatalogResolver``.
        include_script: Fetch and normalize the creation script.
        batch_terminator: Terminator appended to the script.
        timeout: Optional bound in seconds on each resolver call.
        origin: Root identity whose discovery produced ``node``.

    Returns:
        A frozen ``DependencyRecord``.

    Raises:
        ResolutionError: If the node or its parent cannot be resolved, or
            the script cannot be fetched.
    """
    info = await _lookup(resolver, node.identity, timeout)

    parent_info: ObjectInfo | None = None
    if node.parent is not None:
        parent_info = await _lookup(resolver, node.parent.identity, timeout)

    script: str | None = None
    if include_script:
        try:
            raw = await asyncio.wait_for(resolver.script(node.identity), timeout=timeout)
        except CatalogError as e:
            raise ResolutionError(
                f"Cannot script {node.identity}: {e}", identity=node.identity
            ) from e
        except asyncio.TimeoutError as e:
            raise ResolutionError(
                f"Scripting {node.identity} timed out after {timeout}s",
                identity=node.identity,
            ) from e
        script = normalize_script(raw, batch_terminator)

    return DependencyRecord(
        dependent=node.identity,
        name=info.name,
        kind=info.kind,
        owner=info.owner,
        is_schema_bound=node.is_schema_bound,
        parent=node.parent.identity if node.parent is not None else None,
        parent_name=parent_info.name if parent_info else None,
        parent_kind=parent_info.kind if parent_info else None,
        tier=node.tier,
        script=script,
        origin=origin,
    )
