"""Data visibility scopes and location partitioning helpers.

Scopes are totally ordered by breadth: ``SELF < LOCATION < ALL_LOCATIONS < GLOBAL``.
Every resolver compares scopes through :func:`scope_rank` so the ordering is
defined exactly once.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Literal

from sqlalchemy import ColumnElement


class DataScope(str, Enum):
    SELF = "SELF"
    LOCATION = "LOCATION"
    ALL_LOCATIONS = "ALL_LOCATIONS"
    GLOBAL = "GLOBAL"


EVERY_LOCATION: Literal["ALL"] = "ALL"
LocationSet = frozenset[str] | Literal["ALL"]

_SCOPE_RANK = {
    DataScope.SELF: 0,
    DataScope.LOCATION: 1,
    DataScope.ALL_LOCATIONS: 2,
    DataScope.GLOBAL: 3,
}
BROAD_SCOPES = frozenset({DataScope.ALL_LOCATIONS, DataScope.GLOBAL})


def normalize_scope(value: DataScope | str | None) -> DataScope:
    if isinstance(value, DataScope):
        return value
    try:
        return DataScope((value or "").strip().upper())
    except ValueError:
        return DataScope.SELF


def scope_rank(value: DataScope | str | None) -> int:
    return _SCOPE_RANK[normalize_scope(value)]


def max_scope(scopes: Iterable[DataScope | str | None]) -> DataScope:
    highest = DataScope.SELF
    for scope in scopes:
        if scope_rank(scope) > scope_rank(highest):
            highest = normalize_scope(scope)
    return highest


def is_broad_scope(value: DataScope | str | None) -> bool:
    return normalize_scope(value) in BROAD_SCOPES


def manageable_locations(data_scope: DataScope, location_ids: Iterable[str]) -> LocationSet:
    if is_broad_scope(data_scope):
        return EVERY_LOCATION
    return frozenset(location_ids)


def location_allowed(allowed: LocationSet, location_id: str) -> bool:
    if allowed == EVERY_LOCATION:
        return True
    return location_id in allowed


def build_location_filter(location_ids: LocationSet, column) -> ColumnElement[bool] | None:
    """Return a ``WHERE`` clause restricting ``column`` to ``location_ids``.

    ``None`` means no restriction applies (the caller sees every location).
    """
    if location_ids == EVERY_LOCATION:
        return None
    return column.in_(sorted(location_ids))
