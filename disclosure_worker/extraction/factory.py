from typing import ClassVar

from disclosure_worker.config.settings import Settings
from disclosure_worker.extraction.base import BaseExtractionClient
from disclosure_worker.extraction.client_base import BaseCompletionClient
from disclosure_worker.extraction.example_client_adapter import ExampleClientAdapter
from disclosure_worker.extraction.extractor import Extractor
from disclosure_worker.extraction.openai_client_adapter import OpenAIClientAdapter
from disclosure_worker.extraction.summary import SummaryExtractor


class ExtractorFactory:
    """Creates the configured extraction client."""

    OPENAI_COMPATIBLE_BASE_URLS: ClassVar[dict[str, str]] = {
        "openrouter": "https://openrouter.ai/api/v1",
    }

    # Routes Gemini requests through Google AI Studio first, as OpenRouter allows.
    OPENROUTER_PROVIDER_PREFS: ClassVar[dict[str, object]] = {
        "provider": {"order": ["google-ai-studio"], "allow_fallbacks": True},
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseExtractionClient:
        """Create a configured extractor from application settings."""
        client, model = cls._create_completion_client(settings)
        return Extractor(
            client=client,
            model=model,
            model_identity=settings.extraction_model_identity,
        )

    @classmethod
    def create_summary_extractor(cls, settings: Settings) -> SummaryExtractor:
        """Create a summary-form extractor on the same provider and model."""
        client, model = cls._create_completion_client(settings)
        return SummaryExtractor(
            client=client,
            model=model,
            model_identity=settings.extraction_model_identity,
        )

    @classmethod
    def _create_completion_client(cls, settings: Settings) -> tuple[BaseCompletionClient, str]:
        provider = settings.extraction_provider.lower()
        if provider == "example":
            return ExampleClientAdapter(), "example"
        client = OpenAIClientAdapter(
            api_key=cls._resolve_api_key(provider, settings),
            timeout_seconds=settings.extraction_timeout_seconds,
            base_url=cls._resolve_base_url(provider, settings),
            extra_body=cls.OPENROUTER_PROVIDER_PREFS if provider == "openrouter" else None,
        )
        return client, settings.extraction_model_name

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        if provider == "openai":
            return None
        if provider == "openai_compatible":
            url = settings.extraction_openai_compatible_base_url.strip()
            if not url:
                raise ValueError(
                    "extraction_openai_compatible_base_url is required for "
                    "extraction_provider=openai_compatible"
                )
            return url
        default_base_url = cls.OPENAI_COMPATIBLE_BASE_URLS.get(provider)
        if default_base_url is not None:
            return default_base_url
        supported = ["example", "openai", "openai_compatible", *sorted(cls.OPENAI_COMPATIBLE_BASE_URLS)]
        raise ValueError(
            f"Unknown extraction provider '{provider}'. Choose from: {supported}"
        )

    @classmethod
    def _resolve_api_key(cls, provider: str, settings: Settings) -> str:
        key_map = {
            "openai": settings.extraction_openai_api_key,
            "openai_compatible": settings.extraction_openai_compatible_api_key,
            "openrouter": settings.extraction_openrouter_api_key,
        }
        return key_map.get(provider, "") or ""
