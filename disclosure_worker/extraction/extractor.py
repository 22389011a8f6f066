"""AI-powered table row extractor for financial disclosure pages."""

import json
from pathlib import Path

from disclosure_worker.extraction.base import BaseExtractionClient
from disclosure_worker.extraction.client_base import BaseCompletionClient
from disclosure_worker.extraction.exceptions import ExtractionResponseError
from disclosure_worker.extraction.models import RowSet
from disclosure_worker.extraction.prompt_loader import load_json_schema, load_prompt_template
from disclosure_worker.extraction.validator import build_row_set
from disclosure_worker.logging.logger import Log


class Extractor(BaseExtractionClient):
    """Reads ingress/egress rows off a PDF unit using an AI provider."""

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
        self._prompt = load_prompt_template(prompt_path)
        self._json_schema_dict = json.loads(load_json_schema(json_schema_path))

    def ensure_ready(self) -> None:
        self._client.ensure_ready()

    def extract(self, unit_bytes: bytes) -> RowSet:
        raw_response = self._client.create_document_completion(
            model=self._model,
            prompt=self._prompt,
            pdf_bytes=unit_bytes,
            json_schema=self._json_schema_dict,
        )
        Log.debug(f"[{self.model_identity}] AI raw response:\n{raw_response}")
        return build_row_set(self.parse_json(raw_response))

    @staticmethod
    def parse_json(raw: str) -> object:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ExtractionResponseError(f"Invalid JSON response: {exc}") from exc
