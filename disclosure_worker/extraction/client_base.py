from abc import ABC, abstractmethod


class BaseCompletionClient(ABC):
    """Contract for provider-specific document completion clients."""

    def ensure_ready(self) -> None:
        """Raise ExtractionClientUnavailableError if the provider is unusable."""

    @abstractmethod
    def create_document_completion(
        self,
        *,
        model: str,
        prompt: str,
        pdf_bytes: bytes,
        json_schema: dict[str, object],
    ) -> str:
        """Send the prompt plus the PDF unit and return the response text."""
