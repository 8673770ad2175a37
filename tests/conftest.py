"""Shared pytest fixtures."""

import pytest

from docx_builders import make_pdf, make_png


@pytest.fixture
def png_bytes():
    """A small PNG image."""
    return make_png()


@pytest.fixture
def pdf_bytes():
    """A two page PDF document."""
    return make_pdf(2)


@pytest.fixture
def default_config():
    """Default merge configuration."""
    return {
        "version": "1.0",
        "global_settings": {
            "docx": {
                "max_image_width_inches": 6.5,
                "image_dpi": 96,
                "figure_style": "Caption",
                "highlight_replaced_fields": False,
                "missing_value_color": "FF0000",
            },
            "pdf_rendering": {"dpi": 72, "max_width_px": 400, "jpeg_quality": 80},
        },
    }
