from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from crud_engine.adapters.schemas import ResultMetadata, SortConfig


FALLBACK_SEARCH_FIELDS: tuple[str, ...] = ("name", "entity_name", "description", "sku")

_RANGE_KEYS = ({"min", "max"}, {"start", "end"})
_NUMERIC_TYPES = (int, float, Decimal)


def field_value(entity: Any, field: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(field)
    return getattr(entity, field, None)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, _NUMERIC_TYPES):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def cast_value(value: Any, cast: str | None) -> Any:
    if cast == "number":
        return _to_number(value)
    if cast == "date":
        return _to_datetime(value)
    if cast == "string":
        return None if value is None else str(value).lower()
    return value


def _infer_range_cast(bounds: Iterable[Any]) -> str | None:
    present = [bound for bound in bounds if not _is_blank(bound)]
    if present and all(_to_number(bound) is not None for bound in present):
        return "number"
    if present and all(_to_datetime(bound) is not None for bound in present):
        return "date"
    return None


def is_range_filter(value: Any) -> bool:
    if not isinstance(value, Mapping) or not value:
        return False
    keys = set(value.keys())
    return any(keys <= range_keys for range_keys in _RANGE_KEYS)


def matches_range(entity_value: Any, bounds: Mapping[str, Any], cast: str | None = None) -> bool:
    lower = bounds.get("min", bounds.get("start"))
    upper = bounds.get("max", bounds.get("end"))
    if _is_blank(lower) and _is_blank(upper):
        return True

    resolved_cast = cast or _infer_range_cast([lower, upper])
    candidate = cast_value(entity_value, resolved_cast)
    if candidate is None:
        return False

    if not _is_blank(lower):
        low = cast_value(lower, resolved_cast)
        if low is None or candidate < low:
            return False
    if not _is_blank(upper):
        high = cast_value(upper, resolved_cast)
        if high is None or candidate > high:
            return False
    return True


def matches_filter(entity_value: Any, value: Any, cast: str | None = None) -> bool:
    if _is_blank(value):
        return True
    if isinstance(value, bool):
        return entity_value == value
    if isinstance(value, str):
        if entity_value is None:
            return False
        return value.lower() in str(entity_value).lower()
    if isinstance(value, (list, tuple, set, frozenset)):
        if not value:
            return True
        return entity_value in value
    if is_range_filter(value):
        return matches_range(entity_value, value, cast)
    return entity_value == value


def matches_search(entity: Any, query: str, fields: Sequence[str]) -> bool:
    needle = query.lower()
    for field in fields:
        candidate = field_value(entity, field)
        if candidate is None:
            continue
        if needle in str(candidate).lower():
            return True
    return False


def resolve_search_fields(fields: Iterable[str] | None) -> list[str]:
    resolved: list[str] = []
    for field in [*(fields or []), *FALLBACK_SEARCH_FIELDS]:
        if field not in resolved:
            resolved.append(field)
    return resolved


def apply_search(items: Sequence[Any], query: str | None, fields: Iterable[str] | None = None) -> list[Any]:
    if query is None or not query.strip():
        return list(items)
    search_fields = resolve_search_fields(fields)
    normalized = query.strip()
    return [item for item in items if matches_search(item, normalized, search_fields)]


def apply_field_filters(
    items: Sequence[Any],
    filters: Mapping[str, Any] | None,
    *,
    known_fields: Iterable[str] | None = None,
    casts: Mapping[str, str | None] | None = None,
) -> list[Any]:
    if not filters:
        return list(items)

    allowed = set(known_fields) if known_fields is not None else None
    active = {
        field: value
        for field, value in filters.items()
        if not _is_blank(value) and (allowed is None or field in allowed)
    }
    if not active:
        return list(items)

    cast_map = casts or {}
    return [
        item
        for item in items
        if all(matches_filter(field_value(item, field), value, cast_map.get(field)) for field, value in active.items())
    ]


def _sort_value(value: Any, sort_type: str | None) -> Any:
    if value is None:
        return None
    if sort_type == "number":
        return _to_number(value)
    if sort_type == "date":
        return _to_datetime(value)
    if sort_type == "string":
        return str(value).lower()
    return value


def apply_sort(items: Sequence[Any], sort: SortConfig | None) -> list[Any]:
    """Single-key sort. Equal keys keep their input order; missing values go last."""

    if sort is None or not sort.key:
        return list(items)

    key = sort.key
    reverse = sort.direction == "desc"
    present: list[tuple[Any, Any]] = []
    missing: list[Any] = []
    for item in items:
        value = _sort_value(field_value(item, key), sort.type)
        if value is None:
            missing.append(item)
        else:
            present.append((value, item))

    try:
        ordered = sorted(present, key=lambda pair: pair[0], reverse=reverse)
    except TypeError:
        ordered = sorted(present, key=lambda pair: str(pair[0]).lower(), reverse=reverse)
    return [item for _, item in ordered] + missing


def paginate(items: Sequence[Any], page: int, page_size: int) -> tuple[list[Any], ResultMetadata]:
    total = len(items)
    offset = (page - 1) * page_size
    window = list(items[offset : offset + page_size])
    metadata = ResultMetadata(
        total=total,
        page=page,
        page_size=page_size,
        has_more=offset + page_size < total,
    )
    return window, metadata
