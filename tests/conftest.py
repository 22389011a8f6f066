import io
from collections.abc import Callable

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas


def build_pdf(page_count: int) -> bytes:
    """Generate a PDF with ``page_count`` pages, each labelled with its number."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for page in range(1, page_count + 1):
        c.drawString(72, 720, f"Informe de Ingresos - pagina {page}")
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def pdf_factory() -> Callable[[int], bytes]:
    return build_pdf


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """A single-page PDF."""
    return build_pdf(1)


@pytest.fixture()
def three_page_pdf_bytes() -> bytes:
    return build_pdf(3)


@pytest.fixture()
def five_page_pdf_bytes() -> bytes:
    return build_pdf(5)
