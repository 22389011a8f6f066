"""Reads the "Resumen de Ingresos y Gastos" form of a disclosure report."""

import dataclasses
import json
import typing
from pathlib import Path
from typing import Any

from disclosure_worker.extraction.client_base import BaseCompletionClient
from disclosure_worker.extraction.exceptions import ExtractionResponseError
from disclosure_worker.extraction.extractor import Extractor
from disclosure_worker.extraction.models import DisclosureSummary
from disclosure_worker.extraction.prompt_loader import (
    SUMMARY_PROMPT_PATH,
    SUMMARY_SCHEMA_PATH,
    load_json_schema,
    load_prompt_template,
)
from disclosure_worker.extraction.validator import to_camel
from disclosure_worker.logging.logger import Log


def build_summary(data: Any) -> DisclosureSummary:
    """Build a DisclosureSummary from the model's JSON object.

    Unknown keys are dropped and wrong-typed values become ``None``.

    Raises:
        ExtractionResponseError: if the payload is not an object.
    """
    if not isinstance(data, dict):
        raise ExtractionResponseError("Summary response must be an object")
    values = {
        f.name: _coerce(f, data.get(to_camel(f.name)))
        for f in dataclasses.fields(DisclosureSummary)
    }
    return DisclosureSummary(**values)


def summary_to_dict(summary: DisclosureSummary) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for f in dataclasses.fields(summary):
        value = getattr(summary, f.name)
        if isinstance(value, tuple):
            value = list(value)
        result[to_camel(f.name)] = value
    return result


def _coerce(f: dataclasses.Field[Any], value: Any) -> Any:
    if value is None:
        return None
    if f.name == "unreadable_fields":
        if not isinstance(value, list):
            return None
        return tuple(v for v in value if isinstance(v, str))
    if f.name == "page_number":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value != int(value):
            return None
        return int(value)
    if float in typing.get_args(f.type):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)
    return value if isinstance(value, str) else None


class SummaryExtractor:
    """Asks an AI provider for the summary form among a report's first pages."""

    def __init__(
        self,
        *,
        client: BaseCompletionClient,
        model: str,
        model_identity: str | None = None,
        prompt_path: Path | None = None,
        json_schema_path: Path | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self.model_identity = model_identity or model
        self._prompt = load_prompt_template(prompt_path or SUMMARY_PROMPT_PATH)
        self._json_schema_dict = json.loads(
            load_json_schema(json_schema_path or SUMMARY_SCHEMA_PATH)
        )

    def ensure_ready(self) -> None:
        self._client.ensure_ready()

    def extract(self, pdf_bytes: bytes) -> DisclosureSummary:
        raw_response = self._client.create_document_completion(
            model=self._model,
            prompt=self._prompt,
            pdf_bytes=pdf_bytes,
            json_schema=self._json_schema_dict,
        )
        Log.debug(f"[{self.model_identity}] AI raw summary response:\n{raw_response}")
        return build_summary(Extractor.parse_json(raw_response))
