"""Embedding of raster images into Word document parts."""

import io
import logging
from typing import Tuple

from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Emu
from PIL import Image as PILImage

from .utils.exceptions import ImageProcessingError

logger = logging.getLogger(__name__)

EMU_PER_INCH = 914400

# Formats python-docx can register as image parts without conversion
NATIVE_FORMATS = {"PNG", "JPEG", "GIF", "BMP", "TIFF"}


class ImageEmbedder:
    """Sizes images to the printable width and attaches them as inline drawings."""

    def __init__(self, max_width_inches: float = 6.5, dpi: int = 96) -> None:
        self.max_width_emu = int(max_width_inches * EMU_PER_INCH)
        self.dpi = dpi

    def measure(self, data: bytes) -> Tuple[int, int, str]:
        """Return ``(width_emu, height_emu, format)`` for encoded image bytes.

        Width is capped at the maximum printable width with height scaled by
        the same ratio. Images are never enlarged.
        """
        if not data:
            raise ImageProcessingError("Image data is empty")

        try:
            with PILImage.open(io.BytesIO(data)) as image:
                image.load()
                width_px, height_px = image.size
                image_format = image.format or ""
        except Exception as e:
            raise ImageProcessingError(f"Failed to decode image: {e}")

        if width_px <= 0 or height_px <= 0:
            raise ImageProcessingError(f"Image has invalid dimensions {width_px}x{height_px}")

        width_emu = width_px * EMU_PER_INCH // self.dpi
        height_emu = height_px * EMU_PER_INCH // self.dpi

        if width_emu > self.max_width_emu:
            height_emu = height_emu * self.max_width_emu // width_emu
            width_emu = self.max_width_emu

        return width_emu, max(1, height_emu), image_format

    def _to_native_format(self, data: bytes, image_format: str) -> bytes:
        if image_format.upper() in NATIVE_FORMATS:
            return data

        logger.debug(f"Re-encoding {image_format or 'unknown'} image as PNG")
        try:
            with PILImage.open(io.BytesIO(data)) as image:
                if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                    image = image.convert("RGBA")
                buffer = io.BytesIO()
                image.save(buffer, format="PNG")
                return buffer.getvalue()
        except Exception as e:
            raise ImageProcessingError(f"Failed to convert image to PNG: {e}")

    def embed(self, part, paragraph, name: str, data: bytes):
        """Append a run carrying ``data`` as an inline drawing to ``paragraph``.

        ``part`` is the story part (document, header or footer) that owns the
        paragraph; the image part is related from it so the drawing's
        relationship id resolves in the right part.
        """
        width_emu, height_emu, image_format = self.measure(data)
        image_bytes = self._to_native_format(data, image_format)

        try:
            inline = part.new_pic_inline(
                io.BytesIO(image_bytes), Emu(width_emu), Emu(height_emu)
            )
        except Exception as e:
            raise ImageProcessingError(f"Failed to embed image '{name}': {e}")

        run = OxmlElement("w:r")
        run.add_drawing(inline)
        paragraph.append(run)

        doc_pr = inline.find(qn("wp:docPr"))
        if doc_pr is not None:
            doc_pr.set("descr", name)

        logger.debug(f"Embedded image '{name}' at {width_emu}x{height_emu} EMU")
        return run
