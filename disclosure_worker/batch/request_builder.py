"""Builds the keyed request manifest for a batch extraction job."""

import base64
import json
from collections.abc import Iterable
from typing import Any

from disclosure_worker.batch.keys import format_request_key
from disclosure_worker.batch.models import BatchGroup, BatchRequest
from disclosure_worker.logging.logger import Log
from disclosure_worker.pdf.base import BasePageSegmenter


def build_request_body(prompt: str, pdf_bytes: bytes, json_schema: dict[str, Any]) -> dict[str, Any]:
    """A generateContent body holding the prompt and one PDF chunk inline."""
    return {
        "contents": [
            {
                "parts": [
                    {"text": prompt},
                    {
                        "inline_data": {
                            "mime_type": "application/pdf",
                            "data": base64.b64encode(pdf_bytes).decode("ascii"),
                        }
                    },
                ]
            }
        ],
        "generationConfig": {
            "mediaResolution": "MEDIA_RESOLUTION_HIGH",
            "responseMimeType": "application/json",
            "responseJsonSchema": json_schema,
        },
    }


def build_batch_requests(
    groups: Iterable[BatchGroup],
    segmenter: BasePageSegmenter,
    pages_per_request: int,
    prompt: str,
    json_schema: dict[str, Any],
) -> list[BatchRequest]:
    """Segment every group and wrap each chunk in a keyed request.

    Keys carry the 0-based chunk index, so chunk ``n`` starts on page
    ``n * pages_per_request + 1``.

    Raises:
        MalformedDocumentError: if any group's PDF cannot be segmented.
    """
    requests: list[BatchRequest] = []
    for group in groups:
        units = segmenter.segment(group.pdf_bytes, pages_per_unit=pages_per_request)
        for unit in units:
            requests.append(
                BatchRequest(
                    key=format_request_key(group.group_id, unit.ordinal - 1),
                    request=build_request_body(prompt, unit.data, json_schema),
                )
            )
        Log.info(f"Group {group.group_id}: {len(units)} batch request(s)")
    return requests


def to_jsonl(requests: Iterable[BatchRequest]) -> str:
    return "\n".join(
        json.dumps({"key": r.key, "request": r.request}, separators=(",", ":")) for r in requests
    )
