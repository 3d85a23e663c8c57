"""
Record Mapper

Normalizes rows from either backend into one canonical shape:

- JSON fields arriving as text are decoded; malformed blobs become an empty
  list/dict and are logged, never raised
- 0/1 booleans become ``bool``
- ``Decimal`` numerics become ``float``
- SQLite timestamp strings become ``datetime``

Computed values (effective price and the like) are left to callers.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping

import structlog

logger = structlog.get_logger(__name__)


class EntityKind(str, Enum):
    """Row shapes known to the mapper"""
    PRODUCT = "product"
    USER = "user"
    ORDER = "order"
    ORDER_ITEM = "order_item"
    ANALYTICS_EVENT = "analytics_event"
    ANALYTICS_SUMMARY = "analytics_summary"
    GENERIC = "generic"


@dataclass(frozen=True)
class FieldSpec:
    json_lists: FrozenSet[str] = frozenset()
    json_objects: FrozenSet[str] = frozenset()
    booleans: FrozenSet[str] = frozenset()
    decimals: FrozenSet[str] = frozenset()
    timestamps: FrozenSet[str] = frozenset({"created_at", "updated_at"})


_SPECS: Dict[EntityKind, FieldSpec] = {
    EntityKind.PRODUCT: FieldSpec(
        json_lists=frozenset({"tags", "images"}),
        json_objects=frozenset({"attributes"}),
        booleans=frozenset({"is_active"}),
        decimals=frozenset({"price", "sale_price", "rating", "relevance_score"}),
    ),
    EntityKind.USER: FieldSpec(
        booleans=frozenset({"is_active"}),
    ),
    EntityKind.ORDER: FieldSpec(
        json_objects=frozenset({"shipping_address", "billing_address"}),
        decimals=frozenset({"total_amount"}),
    ),
    EntityKind.ORDER_ITEM: FieldSpec(
        decimals=frozenset({"unit_price", "total_price"}),
    ),
    EntityKind.ANALYTICS_EVENT: FieldSpec(
        json_objects=frozenset({"filter_data"}),
    ),
    EntityKind.ANALYTICS_SUMMARY: FieldSpec(
        decimals=frozenset({"conversion_rate", "revenue", "price", "sale_price"}),
        timestamps=frozenset({"last_event_at", "last_searched_at", "last_viewed_at"}),
    ),
    EntityKind.GENERIC: FieldSpec(),
}

_TIMESTAMP_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f")


def _decode_json(value: Any, empty: Any, field_name: str, row: Mapping[str, Any]) -> Any:
    if value is None:
        return type(empty)()
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            value = json.loads(value) if value.strip() else type(empty)()
        except ValueError as e:
            logger.warning(
                "Malformed JSON field, using empty value",
                field=field_name,
                record_id=row.get("id"),
                error=str(e),
            )
            return type(empty)()
    if not isinstance(value, type(empty)):
        logger.warning(
            "Unexpected JSON field shape, using empty value",
            field=field_name,
            record_id=row.get("id"),
            actual=type(value).__name__,
        )
        return type(empty)()
    return value


def _to_bool(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "t", "yes")
    return bool(value)


def _to_float(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


def _to_datetime(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return value


def normalize(row: Mapping[str, Any], kind: EntityKind = EntityKind.GENERIC) -> Dict[str, Any]:
    """
    Canonical copy of a raw backend row.

    Args:
        row: Row as returned by an adapter
        kind: Entity the row belongs to

    Returns:
        New dict; the input row is not modified
    """
    spec = _SPECS[kind]
    record = dict(row)
    for key in spec.json_lists.intersection(record):
        record[key] = _decode_json(record[key], [], key, row)
    for key in spec.json_objects.intersection(record):
        if record[key] is None and kind is not EntityKind.PRODUCT:
            # Optional snapshots stay absent
            continue
        record[key] = _decode_json(record[key], {}, key, row)
    for key in spec.booleans.intersection(record):
        record[key] = _to_bool(record[key])
    for key in spec.decimals.intersection(record):
        record[key] = _to_float(record[key])
    for key in spec.timestamps.intersection(record):
        record[key] = _to_datetime(record[key])
    return record


def normalize_all(rows: Iterable[Mapping[str, Any]], kind: EntityKind = EntityKind.GENERIC) -> List[Dict[str, Any]]:
    return [normalize(row, kind) for row in rows]
