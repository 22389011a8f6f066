from unittest.mock import patch

import pytest

from disclosure_worker.config.settings import Settings
from disclosure_worker.extraction.example_client_adapter import ExampleClientAdapter
from disclosure_worker.extraction.extractor import Extractor
from disclosure_worker.extraction.factory import ExtractorFactory
from disclosure_worker.extraction.summary import SummaryExtractor

_ADAPTER_PATH = "disclosure_worker.extraction.factory.OpenAIClientAdapter"


class TestExtractorFactory:
    def test_example_provider_needs_no_network(self) -> None:
        extractor = ExtractorFactory.create(Settings(extraction_provider="example"))
        assert isinstance(extractor, Extractor)
        assert isinstance(extractor._client, ExampleClientAdapter)
        assert extractor.model_identity == "gemini-3-flash"

    def test_openrouter_uses_default_base_url_and_provider_order(self) -> None:
        settings = Settings(extraction_provider="openrouter", extraction_openrouter_api_key="or-key")
        with patch(_ADAPTER_PATH) as adapter_cls:
            ExtractorFactory.create(settings)
        kwargs = adapter_cls.call_args.kwargs
        assert kwargs["base_url"] == "https://openrouter.ai/api/v1"
        assert kwargs["api_key"] == "or-key"
        assert kwargs["extra_body"]["provider"]["order"] == ["google-ai-studio"]

    def test_openai_uses_sdk_default_url(self) -> None:
        settings = Settings(extraction_provider="openai", extraction_openai_api_key="sk")
        with patch(_ADAPTER_PATH) as adapter_cls:
            ExtractorFactory.create(settings)
        assert adapter_cls.call_args.kwargs["base_url"] is None
        assert adapter_cls.call_args.kwargs["extra_body"] is None

    def test_openai_compatible_requires_base_url(self) -> None:
        settings = Settings(extraction_provider="openai_compatible")
        with pytest.raises(ValueError, match="base_url is required"):
            ExtractorFactory.create(settings)

    def test_openai_compatible_passes_base_url(self) -> None:
        settings = Settings(
            extraction_provider="openai_compatible",
            extraction_openai_compatible_base_url="http://llm.local/v1",
        )
        with patch(_ADAPTER_PATH) as adapter_cls:
            ExtractorFactory.create(settings)
        assert adapter_cls.call_args.kwargs["base_url"] == "http://llm.local/v1"

    def test_summary_extractor_shares_provider_and_model(self) -> None:
        settings = Settings(extraction_provider="openrouter", extraction_openrouter_api_key="or-key")
        with patch(_ADAPTER_PATH) as adapter_cls:
            extractor = ExtractorFactory.create_summary_extractor(settings)
        assert isinstance(extractor, SummaryExtractor)
        assert extractor._model == settings.extraction_model_name
        assert extractor.model_identity == settings.extraction_model_identity
        assert adapter_cls.call_args.kwargs["base_url"] == "https://openrouter.ai/api/v1"

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown extraction provider"):
            ExtractorFactory.create(Settings(extraction_provider="carrier-pigeon"))
