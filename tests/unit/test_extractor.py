"""Tests for the Extractor (AI-powered row extraction)."""

import json
from unittest.mock import MagicMock

import pytest

from disclosure_worker.extraction.exceptions import (
    ExtractionClientUnavailableError,
    ExtractionNetworkError,
    ExtractionResponseError,
)
from disclosure_worker.extraction.extractor import Extractor
from disclosure_worker.extraction.models import IngressRow


def _make_extractor(client: MagicMock) -> Extractor:
    return Extractor(client=client, model="google/gemini-3-flash-preview", model_identity="gemini-3-flash")


def _response(ingress: list[dict[str, object]] | None = None) -> str:
    return json.dumps({"ingress": ingress or [], "egress": []})


class TestExtractSuccess:
    def test_returns_row_set(self) -> None:
        client = MagicMock()
        client.create_document_completion.return_value = _response(
            [{"reciboNumero": "R-001", "total": 100}]
        )
        row_set = _make_extractor(client).extract(b"%PDF")
        assert row_set.ingress == [IngressRow(page_number=0, recibo_numero="R-001", total=100.0)]
        assert row_set.egress == []

    def test_calls_client_with_model_and_bytes(self) -> None:
        client = MagicMock()
        client.create_document_completion.return_value = _response()
        _make_extractor(client).extract(b"%PDF-page")
        kwargs = client.create_document_completion.call_args.kwargs
        assert kwargs["model"] == "google/gemini-3-flash-preview"
        assert kwargs["pdf_bytes"] == b"%PDF-page"
        assert "ingress" in kwargs["json_schema"]["properties"]

    def test_strips_code_fences(self) -> None:
        client = MagicMock()
        client.create_document_completion.return_value = f"```json\n{_response()}\n```"
        assert len(_make_extractor(client).extract(b"%PDF")) == 0

    def test_model_identity_defaults_to_model(self) -> None:
        extractor = Extractor(client=MagicMock(), model="m-1")
        assert extractor.model_identity == "m-1"


class TestExtractErrors:
    def test_invalid_json_raises_response_error(self) -> None:
        client = MagicMock()
        client.create_document_completion.return_value = "not json"
        with pytest.raises(ExtractionResponseError, match="Invalid JSON"):
            _make_extractor(client).extract(b"%PDF")

    def test_wrong_shape_raises_response_error(self) -> None:
        client = MagicMock()
        client.create_document_completion.return_value = json.dumps({"rows": []})
        with pytest.raises(ExtractionResponseError):
            _make_extractor(client).extract(b"%PDF")

    def test_client_errors_propagate(self) -> None:
        client = MagicMock()
        client.create_document_completion.side_effect = ExtractionNetworkError("down")
        with pytest.raises(ExtractionNetworkError):
            _make_extractor(client).extract(b"%PDF")

    def test_ensure_ready_delegates_to_client(self) -> None:
        client = MagicMock()
        client.ensure_ready.side_effect = ExtractionClientUnavailableError("no key")
        with pytest.raises(ExtractionClientUnavailableError):
            _make_extractor(client).ensure_ready()
