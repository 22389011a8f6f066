"""Parses a downloaded batch result manifest back into per-group unit results."""

import dataclasses
import json
from collections.abc import Mapping
from typing import Any

from disclosure_worker.batch.exceptions import InvalidKeyFormatError
from disclosure_worker.batch.keys import parse_request_key
from disclosure_worker.extraction.exceptions import ExtractionError
from disclosure_worker.extraction.extractor import Extractor
from disclosure_worker.extraction.models import UnitResult
from disclosure_worker.extraction.validator import build_row_set
from disclosure_worker.logging.logger import Log


def chunk_first_page(ordinal: int, pages_per_request: int) -> int:
    return ordinal * pages_per_request + 1


def parse_result_lines(
    content: str,
    pages_per_request: int = 1,
    page_counts: Mapping[str, int] | None = None,
) -> dict[str, list[UnitResult]]:
    """Group result lines by group id, each group ordered by ordinal.

    ``page_counts`` (group id to document page count) sizes the last chunk of
    each group; without it every chunk is assumed to be full.

    Lines may arrive in any order. A line carrying an error, or a payload that
    is not a row set, yields empty rows for its ordinal. Lines whose key cannot
    be parsed are skipped. Both cases are logged.
    """
    grouped: dict[str, dict[int, UnitResult]] = {}
    for line_number, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            Log.error(f"Skipping unparseable batch result line {line_number}: {exc}")
            continue
        if not isinstance(record, dict):
            Log.error(f"Skipping batch result line {line_number}: not an object")
            continue

        key = str(record.get("key", ""))
        try:
            group_id, ordinal = parse_request_key(key)
        except InvalidKeyFormatError as exc:
            Log.error(f"Skipping batch result line {line_number}: {exc}")
            continue

        results = grouped.setdefault(group_id, {})
        if ordinal in results:
            Log.warning(f"Duplicate batch result for {key}, keeping the first")
            continue
        total_pages = (page_counts or {}).get(group_id)
        results[ordinal] = _to_unit_result(record, ordinal, pages_per_request, total_pages)

    return {
        group_id: [results[ordinal] for ordinal in sorted(results)]
        for group_id, results in grouped.items()
    }


def chunk_page_count(ordinal: int, pages_per_request: int, total_pages: int | None) -> int:
    if total_pages is None:
        return pages_per_request
    remaining = total_pages - chunk_first_page(ordinal, pages_per_request) + 1
    return max(1, min(pages_per_request, remaining))


def _to_unit_result(
    record: dict[str, Any], ordinal: int, pages_per_request: int, total_pages: int | None
) -> UnitResult:
    key = record["key"]
    page_number = chunk_first_page(ordinal, pages_per_request)
    page_count = chunk_page_count(ordinal, pages_per_request, total_pages)
    empty = UnitResult(ordinal=ordinal, page_number=page_number, page_count=page_count)
    error = record.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        Log.error(f"Error for {key}: {message}")
        return dataclasses.replace(empty, error=str(message))

    text = _response_text(record.get("response"))
    if not text:
        Log.error(f"No text in response for {key}")
        return dataclasses.replace(empty, error="No text in response")

    try:
        row_set = build_row_set(Extractor.parse_json(text))
    except ExtractionError as exc:
        Log.error(f"Failed to parse response for {key}: {exc}")
        return dataclasses.replace(empty, error=str(exc))

    return dataclasses.replace(empty, ingress=list(row_set.ingress), egress=list(row_set.egress))


def _response_text(response: Any) -> str | None:
    try:
        text = response["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None
