import base64

import httpx
import openai

from disclosure_worker.extraction.client_base import BaseCompletionClient
from disclosure_worker.extraction.exceptions import (
    ExtractionClientUnavailableError,
    ExtractionNetworkError,
    ExtractionResponseError,
)


class OpenAIClientAdapter(BaseCompletionClient):
    """Document completion client built on the OpenAI-compatible chat API."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
        extra_body: dict[str, object] | None = None,
    ) -> None:
        self._api_key = api_key
        self._extra_body = extra_body
        self._client = openai.OpenAI(
            api_key=api_key or "missing",
            timeout=timeout_seconds,
            base_url=base_url,
        )

    def ensure_ready(self) -> None:
        if not self._api_key.strip():
            raise ExtractionClientUnavailableError("Extraction provider API key is not configured")

    def create_document_completion(
        self,
        *,
        model: str,
        prompt: str,
        pdf_bytes: bytes,
        json_schema: dict[str, object],
    ) -> str:
        encoded = base64.b64encode(pdf_bytes).decode("ascii")
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=0.0,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "extraction_response",
                        "strict": True,
                        "schema": json_schema,
                    },
                },
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "file",
                                "file": {
                                    "filename": "unit.pdf",
                                    "file_data": f"data:application/pdf;base64,{encoded}",
                                },
                            },
                        ],
                    },
                ],
                extra_body=self._extra_body,
            )
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ExtractionNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise ExtractionNetworkError(f"AI provider API error: {exc}") from exc

        if not response.choices:
            raise ExtractionResponseError("AI returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise ExtractionResponseError("AI returned empty response")
        return content
