"""Raw text replacement over every XML part of a packaged document."""

import io
import logging
import re
import zipfile
from typing import Dict, Mapping
from xml.sax.saxutils import escape

from .utils.exceptions import DocumentProcessingError
from .utils.validation import PLACEHOLDER_PATTERN

logger = logging.getLogger(__name__)

TOKEN_BYTES_PATTERN = re.compile(PLACEHOLDER_PATTERN.pattern.encode("ascii"))


def _replace_in_part(content: bytes, scalars: Dict[str, bytes]) -> bytes:
    def replace_token(match: "re.Match[bytes]") -> bytes:
        replacement = scalars.get(match.group(1).decode("ascii").casefold())
        return match.group(0) if replacement is None else replacement

    return TOKEN_BYTES_PATTERN.sub(replace_token, content)


def replace_tokens_in_package(docx_bytes: bytes, scalars: Mapping[str, str]) -> bytes:
    """Replace leftover ``{{name}}`` tokens for scalar names in ``.xml`` entries.

    Replacement text is XML-escaped. Entries that are not XML, or XML entries
    without a matching token, are written back unchanged with their original
    zip metadata. Running the pass twice gives the same result as once.
    """
    encoded = {
        name.casefold(): escape(value or "", {'"': "&quot;"}).encode("utf-8")
        for name, value in scalars.items()
    }
    if not encoded:
        return docx_bytes

    replaced_parts = 0
    output = io.BytesIO()

    try:
        with zipfile.ZipFile(io.BytesIO(docx_bytes)) as source, zipfile.ZipFile(
            output, "w", zipfile.ZIP_DEFLATED
        ) as target:
            for info in source.infolist():
                content = source.read(info.filename)

                if info.filename.lower().endswith(".xml"):
                    updated = _replace_in_part(content, encoded)
                    if updated != content:
                        replaced_parts += 1
                        content = updated

                target.writestr(info, content)
    except zipfile.BadZipFile as e:
        raise DocumentProcessingError(f"Merged document is not a valid package: {e}")

    if replaced_parts:
        logger.info(f"Replaced leftover scalar placeholders in {replaced_parts} package parts")

    return output.getvalue()
