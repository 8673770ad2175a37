"""Tests for PDF page rendering."""

import io

import pytest
from PIL import Image

from docx_builders import make_pdf
from report_merger.pdf_renderer import PdfPageRenderer
from report_merger.utils.exceptions import PdfConversionError


class TestPdfPageRenderer:
    """Test cases for PdfPageRenderer."""

    def test_renders_each_page_as_jpeg(self):
        pages = PdfPageRenderer(dpi=72).render(make_pdf(3))

        assert len(pages) == 3
        for page in pages:
            with Image.open(io.BytesIO(page)) as image:
                assert image.format == "JPEG"
                assert image.size == (200, 300)

    def test_wide_pages_are_shrunk(self):
        pages = PdfPageRenderer(dpi=144, max_width_px=100).render(make_pdf(1))

        with Image.open(io.BytesIO(pages[0])) as image:
            assert image.size == (100, 150)

    @pytest.mark.parametrize("data", [b"", b"definitely not a pdf"])
    def test_invalid_input(self, data):
        with pytest.raises(PdfConversionError):
            PdfPageRenderer().render(data)
