"""Converts raw JSON row payloads into typed rows and back."""

import dataclasses
import typing
from typing import Any

from disclosure_worker.extraction.exceptions import ExtractionResponseError
from disclosure_worker.extraction.models import (
    EgressRow,
    IngressRow,
    Row,
    RowKind,
    RowSet,
    ROW_TYPES,
)

_NULL_LITERALS = frozenset({"null"})
_UNREADABLE_ATTRS = ("unreadable_fields", "human_unreadable_fields")


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def json_field_names(row_type: type[IngressRow] | type[EgressRow]) -> list[str]:
    """Stored JSON names of every business field (no page, no unreadable sets)."""
    return [
        to_camel(f.name)
        for f in dataclasses.fields(row_type)
        if f.name != "page_number" and f.name not in _UNREADABLE_ATTRS
    ]


def build_row_set(data: Any) -> RowSet:
    """Validate an ``{ingress: [...], egress: [...]}`` payload and build a RowSet.

    A row keeps the ``pageNumber`` the model reported (its page within the
    unit), or 0; the aggregator turns it into the absolute page.

    Raises:
        ExtractionResponseError: if the top-level shape is wrong.
    """
    if not isinstance(data, dict):
        raise ExtractionResponseError("JSON response must be an object")
    for kind in RowKind:
        if not isinstance(data.get(kind.value), list):
            raise ExtractionResponseError(f"'{kind.value}' must be a list")
    ingress = [_build_from_item(IngressRow, item, i) for i, item in enumerate(data["ingress"])]
    egress = [_build_from_item(EgressRow, item, i) for i, item in enumerate(data["egress"])]
    return RowSet(ingress=ingress, egress=egress)  # type: ignore[arg-type]


def build_row(kind: RowKind, raw: dict[str, Any], page_number: int | None = None) -> Row:
    """Build one typed row from its stored JSON object.

    Unknown keys are dropped. A value of the wrong type becomes ``None``
    instead of rejecting the whole row.
    """
    row_type = ROW_TYPES[kind]
    values: dict[str, Any] = {}
    for f in dataclasses.fields(row_type):
        if f.name == "page_number":
            continue
        values[f.name] = _coerce(row_type, f, raw.get(to_camel(f.name)))
    page = page_number if page_number is not None else raw.get("pageNumber")
    values["page_number"] = page if isinstance(page, int) and not isinstance(page, bool) else 0
    return row_type(**values)


def build_rows(kind: RowKind, raw_rows: Any) -> list[Row]:
    if not isinstance(raw_rows, list):
        return []
    return [build_row(kind, item) for item in raw_rows if isinstance(item, dict)]


def row_to_dict(row: Row) -> dict[str, Any]:
    """Serialize a row to its stored camelCase JSON object."""
    result: dict[str, Any] = {}
    for f in dataclasses.fields(row):
        value = getattr(row, f.name)
        if f.name in _UNREADABLE_ATTRS:
            if value is None:
                continue
            value = list(value)
        result[to_camel(f.name)] = value
    return result


def rows_to_dicts(rows: list[Row]) -> list[dict[str, Any]]:
    return [row_to_dict(row) for row in rows]


def _build_from_item(
    row_type: type[IngressRow] | type[EgressRow], item: Any, index: int
) -> Row:
    if not isinstance(item, dict):
        raise ExtractionResponseError(
            f"{row_type.KIND.value} row at index {index} must be an object"
        )
    return build_row(row_type.KIND, item)


def _coerce(
    row_type: type[IngressRow] | type[EgressRow],
    f: dataclasses.Field[Any],
    value: Any,
) -> Any:
    if value is None:
        return None
    if f.name in _UNREADABLE_ATTRS:
        if not isinstance(value, list):
            return None
        return tuple(v for v in value if isinstance(v, str))
    allowed = typing.get_args(f.type)
    if float in allowed:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)
    if not isinstance(value, str):
        return None
    if f.name == "cedula_ruc" and value in _NULL_LITERALS:
        return None
    choices = row_type.CHOICES.get(f.name)
    if choices is not None and value not in choices:
        return None
    return value


def strip_ai_unreadable(rows: list[Row]) -> list[Row]:
    """Drop the AI-declared unreadable set; validated rows only keep the human one."""
    return [
        row if row.unreadable_fields is None else dataclasses.replace(row, unreadable_fields=None)
        for row in rows
    ]
