"""Query-string filters, sorting and text search for list endpoints.

List endpoints pass their optional query parameters straight through as a
``{key: value}`` mapping; ``None`` means "not supplied" and is skipped.
A key is a mapped attribute name, optionally followed by an operator
suffix::

    employee_id=<uuid>          equality
    status__in=[...]            membership
    name__ilike="ada"           case-insensitive substring
    date__from=2024-03-01       >=
    date__to=2024-03-31         <=
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from sqlalchemy import Select, String, and_, cast, or_
from sqlalchemy.orm import InstrumentedAttribute

_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "ilike": lambda col, value: col.ilike(f"%{value}%"),
    "from": lambda col, value: col >= value,
    "to": lambda col, value: col <= value,
    "in": lambda col, value: col.in_(value),
}


def _split_key(key: str) -> tuple[str, str]:
    name, sep, op = key.rpartition("__")
    if sep and op in _OPERATORS:
        return name, op
    return key, "eq"


# ── Filtering ───────────────────────────────────────────────────────

def apply_filters(query: Select, model: Any, filters: dict[str, Any]) -> Select:
    """AND together one condition per supplied filter; unknown attributes are ignored."""
    conditions = []
    for key, value in filters.items():
        if value is None:
            continue
        name, op = _split_key(key)
        col = _get_column(model, name)
        if col is None:
            continue
        if op == "eq":
            conditions.append(col.is_(value) if isinstance(value, bool) else col == value)
        else:
            conditions.append(_OPERATORS[op](col, value))

    if conditions:
        query = query.where(and_(*conditions))
    return query


# ── Sorting ─────────────────────────────────────────────────────────

def apply_sorting(query: Select, model: Any, sort: Optional[str]) -> Select:
    """ORDER BY ``sort`` (``"-date"`` for descending); unknown names leave *query* as is."""
    if not sort:
        return query
    col = _get_column(model, sort.lstrip("-"))
    if col is None:
        return query
    return query.order_by(col.desc() if sort.startswith("-") else col.asc())


# ── Text search ─────────────────────────────────────────────────────

def apply_search(
    query: Select,
    model: Any,
    search: Optional[str],
    columns: Sequence[str],
) -> Select:
    """Case-insensitive substring match of *search* across any of *columns*."""
    term = (search or "").strip()
    if not term:
        return query

    like_conds = [
        cast(col, String).ilike(f"%{term}%")
        for col in (_get_column(model, name) for name in columns)
        if col is not None
    ]
    if not like_conds:
        return query
    return query.where(or_(*like_conds))


# ── Internal helper ─────────────────────────────────────────────────

def _get_column(model: Any, name: str) -> Optional[InstrumentedAttribute]:
    """Mapped attribute *name* of *model*, or None for private or unknown names."""
    if not name or name.startswith("_"):
        return None
    attr = getattr(model, name, None)
    return attr if isinstance(attr, InstrumentedAttribute) else None
