from disclosure_worker.config.settings import Settings
from disclosure_worker.pdf.base import BasePageSegmenter
from disclosure_worker.pdf.pymupdf_segmenter import PyMuPdfSegmenter


class PageSegmenterFactory:
    """Creates the correct page segmenter based on settings."""

    ADAPTERS: dict[str, type[BasePageSegmenter]] = {
        "pymupdf": PyMuPdfSegmenter,
    }

    @classmethod
    def create(cls, settings: Settings) -> BasePageSegmenter:
        engine = settings.pdf_engine.lower()
        adapter_cls = cls.ADAPTERS.get(engine)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown PDF engine '{engine}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls()
