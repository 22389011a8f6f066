"""Reassembles per-unit extraction results into one document row set."""

import dataclasses
from collections import Counter
from collections.abc import Iterable

from disclosure_worker.extraction.models import Row, RowSet, UnitResult


def aggregate(results: Iterable[UnitResult]) -> RowSet:
    """Merge unit results into a single page-ordered RowSet.

    Pure function of its input: units are ordered by ``(page_number, ordinal)``
    regardless of the order they arrive in, rows keep their within-unit order,
    and every row is stamped with the absolute page it was read from.
    """
    ordered = sorted(results, key=lambda r: (r.page_number, r.ordinal))
    ingress = [_place(row, result) for result in ordered for row in result.ingress]
    egress = [_place(row, result) for result in ordered for row in result.egress]
    return RowSet(ingress=ingress, egress=egress)  # type: ignore[arg-type]


def _place(row: Row, result: UnitResult) -> Row:
    # Rows of a multi-page unit carry their page within the unit; anything
    # missing or out of range falls back to the unit's first page.
    offset = 0
    if result.page_count > 1 and 1 <= row.page_number <= result.page_count:
        offset = row.page_number - 1
    return dataclasses.replace(row, page_number=result.page_number + offset)


def count_rows_by_page(row_set: RowSet) -> dict[int, tuple[int, int]]:
    """Return ``{page: (ingress_count, egress_count)}`` sorted by page."""
    ingress = Counter(row.page_number for row in row_set.ingress)
    egress = Counter(row.page_number for row in row_set.egress)
    return {page: (ingress[page], egress[page]) for page in sorted(set(ingress) | set(egress))}
