"""PDF page rendering for paged-image placeholders."""

import io
import logging
from typing import List

import fitz  # PyMuPDF
from PIL import Image as PILImage

from .utils.exceptions import PdfConversionError

logger = logging.getLogger(__name__)


class PdfPageRenderer:
    """Renders every page of a PDF document into a JPEG image.

    Pages are rasterized at ``dpi``, shrunk to at most ``max_width_px`` wide
    (never enlarged) and encoded as JPEG to keep the merged document small.
    """

    def __init__(
        self, dpi: int = 300, max_width_px: int = 2200, jpeg_quality: int = 80
    ) -> None:
        self.dpi = dpi
        self.max_width_px = max_width_px
        self.jpeg_quality = jpeg_quality

    def render(self, pdf_bytes: bytes) -> List[bytes]:
        """Render PDF bytes to a list of encoded page images, in page order."""
        if not pdf_bytes:
            raise PdfConversionError("No PDF content supplied")

        pages = []
        try:
            with fitz.open(stream=pdf_bytes, filetype="pdf") as pdf_doc:
                if pdf_doc.page_count == 0:
                    raise PdfConversionError("PDF document has no pages")
                logger.debug(f"Rendering {pdf_doc.page_count} PDF pages at {self.dpi} DPI")
                for page in pdf_doc:
                    pixmap = page.get_pixmap(dpi=self.dpi, alpha=False)
                    image = PILImage.frombytes(
                        "RGB", (pixmap.width, pixmap.height), pixmap.samples
                    )
                    pages.append(self._encode_page(image))
        except PdfConversionError:
            raise
        except Exception as e:
            raise PdfConversionError(f"Failed to render PDF pages: {e}")

        logger.info(f"Rendered {len(pages)} PDF pages to images")
        return pages

    def _encode_page(self, image: PILImage.Image) -> bytes:
        """Resize a rendered page and encode it as JPEG."""
        if image.width > self.max_width_px:
            ratio = self.max_width_px / image.width
            new_size = (self.max_width_px, max(1, int(image.height * ratio)))
            image = image.resize(new_size, PILImage.Resampling.LANCZOS)

        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.jpeg_quality)
        return buffer.getvalue()
