"""Example completion client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseCompletionClient and register the provider in ExtractorFactory.
"""

import json
from typing import ClassVar

from disclosure_worker.extraction.client_base import BaseCompletionClient


class ExampleClientAdapter(BaseCompletionClient):
    """Example adapter that returns a fixed, empty extraction response.

    No network calls. Useful for local development and tests.
    """

    DEFAULT_RESPONSE: ClassVar[dict[str, object]] = {
        "ingress": [],
        "egress": [],
    }

    def create_document_completion(
        self,
        *,
        model: str,
        prompt: str,
        pdf_bytes: bytes,
        json_schema: dict[str, object],
    ) -> str:
        _ = model, prompt, pdf_bytes, json_schema
        return json.dumps(self.DEFAULT_RESPONSE)
