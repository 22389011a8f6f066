import base64
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from disclosure_worker.extraction.exceptions import (
    ExtractionClientUnavailableError,
    ExtractionNetworkError,
    ExtractionResponseError,
)
from disclosure_worker.extraction.openai_client_adapter import OpenAIClientAdapter

_OPENAI_PATH = "disclosure_worker.extraction.openai_client_adapter.openai.OpenAI"


def _make_mock_response(content: str | None) -> MagicMock:
    choice = MagicMock()
    choice.message.content = content
    response = MagicMock()
    response.choices = [choice]
    return response


def _complete(adapter: OpenAIClientAdapter) -> str:
    return adapter.create_document_completion(
        model="m",
        prompt="read the table",
        pdf_bytes=b"%PDF-unit",
        json_schema={"type": "object"},
    )


class TestOpenAIClientAdapter:
    def test_returns_content(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response('{"ingress": []}')
        with patch(_OPENAI_PATH, return_value=mock_client):
            adapter = OpenAIClientAdapter(api_key="k", timeout_seconds=30)
            assert _complete(adapter) == '{"ingress": []}'

    def test_sends_prompt_and_pdf_as_file_part(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response("{}")
        with patch(_OPENAI_PATH, return_value=mock_client):
            adapter = OpenAIClientAdapter(
                api_key="k", timeout_seconds=30, extra_body={"provider": {"order": ["x"]}}
            )
            _complete(adapter)

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        text_part, file_part = kwargs["messages"][0]["content"]
        assert text_part == {"type": "text", "text": "read the table"}
        encoded = base64.b64encode(b"%PDF-unit").decode("ascii")
        assert file_part["file"]["file_data"] == f"data:application/pdf;base64,{encoded}"
        assert kwargs["response_format"]["json_schema"]["strict"] is True
        assert kwargs["extra_body"] == {"provider": {"order": ["x"]}}
        assert kwargs["temperature"] == 0.0

    def test_raises_error_for_empty_content(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = _make_mock_response(None)
        with patch(_OPENAI_PATH, return_value=mock_client):
            adapter = OpenAIClientAdapter(api_key="k", timeout_seconds=30)
            with pytest.raises(ExtractionResponseError, match="empty response"):
                _complete(adapter)

    def test_raises_error_for_no_choices(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = MagicMock(choices=[])
        with patch(_OPENAI_PATH, return_value=mock_client):
            adapter = OpenAIClientAdapter(api_key="k", timeout_seconds=30)
            with pytest.raises(ExtractionResponseError, match="no choices"):
                _complete(adapter)

    def test_raises_network_error_on_connection_failure(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=MagicMock()
        )
        with patch(_OPENAI_PATH, return_value=mock_client):
            adapter = OpenAIClientAdapter(api_key="k", timeout_seconds=30)
            with pytest.raises(ExtractionNetworkError, match="network error"):
                _complete(adapter)

    def test_raises_network_error_on_timeout(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = httpx.TimeoutException("timeout")
        with patch(_OPENAI_PATH, return_value=mock_client):
            adapter = OpenAIClientAdapter(api_key="k", timeout_seconds=30)
            with pytest.raises(ExtractionNetworkError, match="network error"):
                _complete(adapter)

    def test_raises_network_error_on_api_error(self) -> None:
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = openai.APIError(
            message="server error",
            request=MagicMock(),
            body=None,
        )
        with patch(_OPENAI_PATH, return_value=mock_client):
            adapter = OpenAIClientAdapter(api_key="k", timeout_seconds=30)
            with pytest.raises(ExtractionNetworkError, match="API error"):
                _complete(adapter)


class TestEnsureReady:
    def test_blank_key_is_unavailable(self) -> None:
        with patch(_OPENAI_PATH):
            adapter = OpenAIClientAdapter(api_key="  ", timeout_seconds=30)
            with pytest.raises(ExtractionClientUnavailableError):
                adapter.ensure_ready()

    def test_configured_key_is_ready(self) -> None:
        with patch(_OPENAI_PATH):
            OpenAIClientAdapter(api_key="k", timeout_seconds=30).ensure_ready()
