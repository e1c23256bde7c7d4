"""Object identities (URNs) for database objects.

The engine only needs identities to compare equal and hash stably, which is
all ``ObjectIdentity`` asks for.  ``Urn`` is the concrete identity shipped
with the PostgreSQL backend: a path of typed segments, each with optional
attribute filters.

Usage:
    from db_depends.identity import Urn

    urn = Urn("Server[@Name='db1']/Database[@Name='app']/View[@Name='v' and @Schema='public']")
    urn.server    # 'db1'
    urn.database  # 'app'
    urn.type      # 'View'
    urn.name      # 'v'
    urn.schema    # 'public'

    Urn.build("db1", "app", "Table", "orders", schema="public")
"""

import re
from dataclasses import dataclass, field
from typing import Protocol

from db_depends.exceptions import ContextResolutionError


class ObjectIdentity(Protocol):
    """Comparable identity of one database object."""

    def __eq__(self, other: object) -> bool: ...

    def __hash__(self) -> int: ...

    def __str__(self) -> str: ...


_QUOTED = r"'(?:[^']|'')*'"
_ATTR = rf"@(?P<key>\w+)\s*=\s*(?P<value>{_QUOTED})"
_ATTR_RE = re.compile(_ATTR)
_FILTER_RE = re.compile(
    rf"\s*@\w+\s*=\s*{_QUOTED}(?:\s+and\s+@\w+\s*=\s*{_QUOTED})*\s*",
    re.IGNORECASE,
)
_SEGMENT_RE = re.compile(
    rf"(?P<type>[A-Za-z_]\w*)(?:\[(?P<filter>(?:[^'\]]|{_QUOTED})*)\])?"
)

Segment = tuple[str, tuple[tuple[str, str], ...]]


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _unquote(value: str) -> str:
    return value[1:-1].replace("''", "'")


def _parse(text: str) -> tuple[Segment, ...]:
    """Split URN text into ``(type, ((attr, value), ...))`` segments."""
    if not text:
        raise ValueError("Empty URN")

    segments: list[Segment] = []
    pos = 0
    while True:
        match = _SEGMENT_RE.match(text, pos)
        if not match:
            raise ValueError(f"Malformed URN at position {pos}: {text!r}")

        attrs: tuple[tuple[str, str], ...] = ()
        raw_filter = match.group("filter")
        if raw_filter is not None:
            if not _FILTER_RE.fullmatch(raw_filter):
                raise ValueError(f"Malformed URN filter {raw_filter!r} in {text!r}")
            attrs = tuple(
                (m.group("key"), _unquote(m.group("value")))
                for m in _ATTR_RE.finditer(raw_filter)
            )
        segments.append((match.group("type"), attrs))

        pos = match.end()
        if pos == len(text):
            break
        if text[pos] != "/":
            raise ValueError(f"Malformed URN at position {pos}: {text!r}")
        pos += 1

    return tuple(segments)


def _format(segments: tuple[Segment, ...]) -> str:
    parts = []
    for seg_type, attrs in segments:
        if attrs:
            inner = " and ".join(f"@{k}={_quote(v)}" for k, v in attrs)
            parts.append(f"{seg_type}[{inner}]")
        else:
            parts.append(seg_type)
    return "/".join(parts)


@dataclass(frozen=True)
class Urn:
    """Hierarchical identity of a database object.

    Equality and hashing use the canonical text, so two URNs that differ
    only in filter whitespace compare equal.
    """

    value: str
    segments: tuple[Segment, ...] = field(
        init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        segments = _parse(self.value)
        object.__setattr__(self, "segments", segments)
        object.__setattr__(self, "value", _format(segments))

    @classmethod
    def build(
        cls,
        server: str,
        database: str,
        kind: str,
        name: str,
        schema: str | None = None,
    ) -> "Urn":
        """Build the URN of a schema-scoped object."""
        leaf = f"@Name={_quote(name)}"
        if schema is not None:
            leaf += f" and @Schema={_quote(schema)}"
        return cls(
            f"Server[@Name={_quote(server)}]"
            f"/Database[@Name={_quote(database)}]"
            f"/{kind}[{leaf}]"
        )

    def _attr(self, segment_type: str | None, key: str) -> str | None:
        if segment_type is None:
            candidates = self.segments[-1:]
        else:
            candidates = [s for s in self.segments if s[0] == segment_type]
        for _, attrs in candidates:
            for k, v in attrs:
                if k == key:
                    return v
        return None

    @property
    def server(self) -> str | None:
        """Name of the owning server, if the URN carries one."""
        return self._attr("Server", "Name")

    @property
    def database(self) -> str | None:
        """Name of the owning database, if the URN carries one."""
        return self._attr("Database", "Name")

    @property
    def type(self) -> str:
        """Type of the leaf segment (``Table``, ``View``, ...)."""
        return self.segments[-1][0]

    @property
    def name(self) -> str | None:
        return self._attr(None, "Name")

    @property
    def schema(self) -> str | None:
        return self._attr(None, "Schema")

    def __str__(self) -> str:
        return self.value


def owning_context(identity: ObjectIdentity) -> tuple[str, str]:
    """Return the ``(server, database)`` an identity belongs to.

    Raises:
        ContextResolutionError: If the identity is not a URN or carries no
            server or database segment.
    """
    if isinstance(identity, Urn):
        urn = identity
    else:
        try:
            urn = Urn(str(identity))
        except ValueError as e:
            raise ContextResolutionError(
                f"Cannot determine owning server of {identity}: {e}",
                root=identity,
            ) from e

    if not urn.server or not urn.database:
        raise ContextResolutionError(
            f"{identity} has no traceable owning server and database",
            root=identity,
        )
    return urn.server, urn.database
