"""Precedence resolver: deduplicate records and sort them into causal order.

An object reachable through several paths shows up once per path.  Only the
deepest occurrence (greatest ``abs(tier)``) is kept, and the survivors are
sorted ascending by tier.  For ``DEPENDENTS`` the deepest occurrence is the
maximum tier; for ``DEPENDENCIES`` tiers are negative and it is the minimum.
"""

from collections.abc import Iterable

from db_depends.dependency.models import DependencyRecord


def resolve_precedence(records: Iterable[DependencyRecord]) -> list[DependencyRecord]:
    """Collapse duplicates and order records so prerequisites come first.

    Pure and total: never raises, and an empty input gives an empty list.
    On equal depths the first occurrence wins, and the sort is stable, so
    identical input always yields identical output.

    Example:
        ordered = resolve_precedence(records)
        assert [r.tier for r in ordered] == sorted(r.tier for r in ordered)
    """
    best: dict[object, DependencyRecord] = {}
    for record in records:
        current = best.get(record.dependent)
        if current is None or abs(record.tier) > abs(current.tier):
            best[record.dependent] = record

    return sorted(best.values(), key=lambda r: r.tier)
