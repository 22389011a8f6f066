"""Row identity, cross-run union and field-level diffs between extraction runs.

Nothing in here raises on malformed rows: rows without a usable natural key
get a synthetic identity for the union and are left out of diffs.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from disclosure_worker.database.models import ExtractionRunRecord, ValidatedDatasetRecord
from disclosure_worker.extraction.models import ROW_TYPES, Row, RowKind, RowSet
from disclosure_worker.extraction.validator import json_field_names, row_to_dict

KEY_SEPARATOR = "::"
_MEANINGLESS_KEYS = frozenset({"", "null", "undefined"})
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

Diffs = dict[str, set[str]]


@dataclass(frozen=True)
class MergedRow:
    row: Row
    stable_key: str
    source_model: str


@dataclass
class ReviewView:
    """What a reviewer sees for one document."""

    document_id: int | None
    source: str
    model_order: list[str]
    ingress: list[MergedRow] = field(default_factory=list)
    egress: list[MergedRow] = field(default_factory=list)
    ingress_diffs: Diffs = field(default_factory=dict)
    egress_diffs: Diffs = field(default_factory=dict)
    diff_pair: tuple[str, str] | None = None

    @property
    def pages_with_diffs(self) -> list[int]:
        return sorted(
            set(pages_with_diffs(self.ingress, self.ingress_diffs))
            | set(pages_with_diffs(self.egress, self.egress_diffs))
        )

    @property
    def pages_with_unreadables(self) -> list[int]:
        return pages_with_unreadables([m.row for m in self.ingress] + [m.row for m in self.egress])


def is_meaningful_key_value(value: Any) -> bool:
    if value is None:
        return False
    return str(value).strip() not in _MEANINGLESS_KEYS


def stable_row_key(row: Row, key_field: str | None = None) -> str | None:
    """``"<page>::<natural key>"``, or None when the natural key is meaningless."""
    value = row_to_dict(row).get(key_field or row.KEY_FIELD)
    if not is_meaningful_key_value(value):
        return None
    return f"{row.page_number}{KEY_SEPARATOR}{_format_key(value)}"


def fallback_row_key(row: Row, model_identity: str, index: int) -> str:
    return f"{row.page_number}{KEY_SEPARATOR}__{model_identity}__{index}"


def merge_rows_from_all_models(
    kind: RowKind,
    model_order: Sequence[str],
    rows_by_model: Mapping[str, RowSet],
) -> list[MergedRow]:
    """Union rows of every run, keeping the first copy seen per stable key.

    Models are visited in ``model_order``, so the preferred model wins
    whenever two runs report the same row.
    """
    merged: list[MergedRow] = []
    seen: set[str] = set()
    key_field = ROW_TYPES[kind].KEY_FIELD
    for model in model_order:
        row_set = rows_by_model.get(model)
        if row_set is None:
            continue
        for index, row in enumerate(row_set.rows(kind)):
            key = stable_row_key(row, key_field) or fallback_row_key(row, model, index)
            if key in seen:
                continue
            seen.add(key)
            merged.append(MergedRow(row=row, stable_key=key, source_model=model))
    return merged


def normalize_for_comparison(field_name: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if field_name == "cedulaRuc":
        return value.replace("-", ".")
    if field_name == "fecha":
        return value.replace(".", "-")
    return value


def compute_diffs(rows_a: Sequence[Row], rows_b: Sequence[Row], key_field: str) -> Diffs:
    """Map each stable key present in both row lists to its differing fields.

    Rows without a meaningful natural key cannot be matched and are skipped.
    Only business fields are compared.
    """
    lookup_a = _index_by_stable_key(rows_a, key_field)
    lookup_b = _index_by_stable_key(rows_b, key_field)
    diffs: Diffs = {}
    for key, row_a in lookup_a.items():
        row_b = lookup_b.get(key)
        if row_b is None:
            continue
        values_a = row_to_dict(row_a)
        values_b = row_to_dict(row_b)
        differing = {
            name
            for name in _business_fields(row_a, row_b)
            if normalize_for_comparison(name, values_a.get(name))
            != normalize_for_comparison(name, values_b.get(name))
        }
        if differing:
            diffs[key] = differing
    return diffs


def models_for_stable_key(
    kind: RowKind,
    stable_key: str,
    model_order: Sequence[str],
    rows_by_model: Mapping[str, RowSet],
) -> list[str]:
    """Models whose run contains a row with ``stable_key``, in preference order."""
    key_field = ROW_TYPES[kind].KEY_FIELD
    found = []
    for model in model_order:
        row_set = rows_by_model.get(model)
        if row_set is None:
            continue
        if any(stable_row_key(row, key_field) == stable_key for row in row_set.rows(kind)):
            found.append(model)
    return found


def order_models_by_recency(runs: Iterable[ExtractionRunRecord]) -> list[str]:
    """Model identities, newest completed run first. Each model appears once."""
    ordered = sorted(runs, key=lambda run: (run.completed_at or _EPOCH, run.id), reverse=True)
    models: list[str] = []
    for run in ordered:
        if run.model_identity not in models:
            models.append(run.model_identity)
    return models


def pages_with_diffs(rows: Iterable[MergedRow], diffs: Mapping[str, set[str]]) -> list[int]:
    return sorted({m.row.page_number for m in rows if m.stable_key in diffs})


def pages_with_unreadables(rows: Iterable[Row]) -> list[int]:
    return sorted(
        {
            row.page_number
            for row in rows
            if row.unreadable_fields or row.human_unreadable_fields
        }
    )


def build_review_view(
    runs: Sequence[ExtractionRunRecord],
    validated: ValidatedDatasetRecord | None = None,
    diff_pair: tuple[str, str] | None = None,
) -> ReviewView:
    """Assemble the reviewer's view of a document.

    The validated dataset, when there is one, is shown as is; otherwise the
    union of every run is. Diffs are computed between ``diff_pair`` (default:
    the two most recent models) and are empty with fewer than two runs.
    """
    model_order = order_models_by_recency(runs)
    rows_by_model = _latest_rows_by_model(runs)
    document_id = validated.document_id if validated else (runs[0].document_id if runs else None)

    if validated is not None:
        source = "validated"
        ingress = _as_merged(RowKind.INGRESS, validated.rows, "validated")
        egress = _as_merged(RowKind.EGRESS, validated.rows, "validated")
    else:
        source = "merged"
        ingress = merge_rows_from_all_models(RowKind.INGRESS, model_order, rows_by_model)
        egress = merge_rows_from_all_models(RowKind.EGRESS, model_order, rows_by_model)

    pair = diff_pair if diff_pair is not None else _default_pair(model_order)
    view = ReviewView(
        document_id=document_id,
        source=source,
        model_order=model_order,
        ingress=ingress,
        egress=egress,
    )
    if pair is None or pair[0] not in rows_by_model or pair[1] not in rows_by_model:
        return view

    first, second = rows_by_model[pair[0]], rows_by_model[pair[1]]
    view.diff_pair = pair
    view.ingress_diffs = compute_diffs(
        first.ingress, second.ingress, ROW_TYPES[RowKind.INGRESS].KEY_FIELD
    )
    view.egress_diffs = compute_diffs(
        first.egress, second.egress, ROW_TYPES[RowKind.EGRESS].KEY_FIELD
    )
    return view


def _format_key(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _index_by_stable_key(rows: Sequence[Row], key_field: str) -> dict[str, Row]:
    lookup: dict[str, Row] = {}
    for row in rows:
        key = stable_row_key(row, key_field)
        if key is not None:
            lookup[key] = row
    return lookup


def _business_fields(row_a: Row, row_b: Row) -> list[str]:
    names = json_field_names(type(row_a))
    for name in json_field_names(type(row_b)):
        if name not in names:
            names.append(name)
    return names


def _latest_rows_by_model(runs: Sequence[ExtractionRunRecord]) -> dict[str, RowSet]:
    ordered = sorted(runs, key=lambda run: (run.completed_at or _EPOCH, run.id), reverse=True)
    rows: dict[str, RowSet] = {}
    for run in ordered:
        rows.setdefault(run.model_identity, run.rows)
    return rows


def _as_merged(kind: RowKind, row_set: RowSet, source: str) -> list[MergedRow]:
    key_field = ROW_TYPES[kind].KEY_FIELD
    return [
        MergedRow(
            row=row,
            stable_key=stable_row_key(row, key_field) or fallback_row_key(row, source, index),
            source_model=source,
        )
        for index, row in enumerate(row_set.rows(kind))
    ]


def _default_pair(model_order: Sequence[str]) -> tuple[str, str] | None:
    if len(model_order) < 2:
        return None
    return model_order[0], model_order[1]
