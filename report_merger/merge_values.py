"""Merge value model and placeholder classification.

Raw caller values are resolved exactly once, before any document mutation,
into one of four closed variants: :class:`TextValue`, :class:`ImageValue`,
:class:`PagedImageValue` and :class:`BulletListValue`. Broken external
resources degrade to marker text instead of failing the merge.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .pdf_renderer import PdfPageRenderer
from .utils.exceptions import PdfConversionError
from .utils.validation import is_blank_value

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp")
PDF_EXTENSION = ".pdf"


def image_not_found_marker(name: str) -> str:
    return f"[[IMAGE_NOT_FOUND::{name}]]"


def pdf_not_found_marker(name: str) -> str:
    return f"[[PDF_NOT_FOUND::{name}]]"


def pdf_conversion_failed_marker(name: str) -> str:
    return f"[[PDF_CONVERSION_FAILED::{name}]]"


@dataclass(frozen=True)
class TextValue:
    """Scalar text substitution; ``None`` or blank text means missing."""

    text: Optional[str] = None

    @property
    def is_missing(self) -> bool:
        return is_blank_value(self.text)


@dataclass(frozen=True)
class ImageValue:
    """Raw image bytes placed once, in a paragraph of their own."""

    data: bytes


@dataclass(frozen=True)
class PagedImageValue:
    """Ordered page images, one per page of a rendered source document."""

    pages: Tuple[bytes, ...]


@dataclass(frozen=True)
class BulletListValue:
    """Ordered list items, blank entries already removed."""

    items: Tuple[str, ...]


MergeValue = Union[TextValue, ImageValue, PagedImageValue, BulletListValue]


@dataclass
class MergeDiagnostics:
    """Non-fatal problems found while merging, for logging and API responses."""

    missing_fields: List[str] = field(default_factory=list)
    resource_failures: Dict[str, str] = field(default_factory=dict)
    unplaced_images: List[str] = field(default_factory=list)
    discarded_tokens: List[str] = field(default_factory=list)

    def record_missing(self, name: str) -> None:
        if name not in self.missing_fields:
            self.missing_fields.append(name)

    def record_resource_failure(self, name: str, marker: str) -> None:
        self.resource_failures[name] = marker

    def record_unplaced_image(self, name: str) -> None:
        if name not in self.unplaced_images:
            self.unplaced_images.append(name)

    def record_discarded(self, name: str) -> None:
        self.discarded_tokens.append(name)

    @property
    def has_issues(self) -> bool:
        return bool(
            self.missing_fields
            or self.resource_failures
            or self.unplaced_images
            or self.discarded_tokens
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "missing_fields": list(self.missing_fields),
            "resource_failures": dict(self.resource_failures),
            "unplaced_images": list(self.unplaced_images),
            "discarded_tokens": list(self.discarded_tokens),
        }


class MergeValues:
    """Case-insensitive map of field names to classified merge values."""

    def __init__(self, values: Optional[Mapping[str, MergeValue]] = None) -> None:
        self._values: Dict[str, Tuple[str, MergeValue]] = {}
        for name, value in (values or {}).items():
            self.add(name, value)

    def add(self, name: str, value: MergeValue) -> None:
        """Register a classified value; a later spelling of the same name wins."""
        key = name.casefold()
        if key in self._values and self._values[key][0] != name:
            logger.warning(
                f"Field '{name}' overrides '{self._values[key][0]}' (names are case-insensitive)"
            )
        self._values[key] = (name, value)

    def classify(self, name: str) -> MergeValue:
        """Return the substitution kind for a token name.

        Names absent from the map classify as a missing scalar.
        """
        entry = self._values.get(name.casefold())
        if entry is None:
            return TextValue(None)
        return entry[1]

    def get(self, name: str) -> Optional[MergeValue]:
        entry = self._values.get(name.casefold())
        return entry[1] if entry else None

    def is_structural(self, name: str) -> bool:
        """True for names that replace their whole paragraph (lists, paged images)."""
        return isinstance(self.get(name), (BulletListValue, PagedImageValue))

    def scalar_values(self) -> Dict[str, str]:
        """Scalar names mapped to their replacement text, missing values as ''."""
        return {
            name: value.text if value.text is not None else ""
            for name, value in self._values.values()
            if isinstance(value, TextValue)
        }

    def image_values(self) -> Dict[str, bytes]:
        """Inline image names mapped to their bytes, in insertion order."""
        return {
            name: value.data
            for name, value in self._values.values()
            if isinstance(value, ImageValue)
        }

    def __contains__(self, name: str) -> bool:
        return name.casefold() in self._values

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._values.values())

    def __len__(self) -> int:
        return len(self._values)


def _is_list_like(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray, memoryview, dict)):
        return False
    return hasattr(value, "__iter__")


def _read_file(path: str) -> Optional[bytes]:
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        logger.warning(f"Failed to read file {path}: {e}")
        return None


def classify_value(
    name: str,
    value: Any,
    pdf_renderer: Optional[PdfPageRenderer] = None,
    diagnostics: Optional[MergeDiagnostics] = None,
) -> MergeValue:
    """Resolve one raw value into its merge variant.

    Resolution order: raw bytes, image path, PDF path, list of strings,
    then anything else as text.
    """
    if isinstance(value, (TextValue, ImageValue, PagedImageValue, BulletListValue)):
        return value

    if isinstance(value, (bytes, bytearray, memoryview)):
        return ImageValue(bytes(value))

    if isinstance(value, str):
        lowered = value.lower()

        if lowered.endswith(IMAGE_EXTENSIONS):
            data = _read_file(value)
            if data is not None:
                return ImageValue(data)
            marker = image_not_found_marker(name)
            logger.warning(f"Image for field '{name}' not found: {value}")
            if diagnostics is not None:
                diagnostics.record_resource_failure(name, marker)
            return TextValue(marker)

        if lowered.endswith(PDF_EXTENSION):
            return _classify_pdf(name, value, pdf_renderer, diagnostics)

        return TextValue(value)

    if value is None:
        return TextValue(None)

    if _is_list_like(value):
        items = tuple(
            str(item) for item in value if not is_blank_value(item)
        )
        return BulletListValue(items)

    return TextValue(str(value))


def _classify_pdf(
    name: str,
    path: str,
    pdf_renderer: Optional[PdfPageRenderer],
    diagnostics: Optional[MergeDiagnostics],
) -> MergeValue:
    pdf_bytes = _read_file(path)
    if pdf_bytes is None:
        marker = pdf_not_found_marker(name)
        logger.warning(f"PDF for field '{name}' not found: {path}")
        if diagnostics is not None:
            diagnostics.record_resource_failure(name, marker)
        return TextValue(marker)

    return classify_pdf_bytes(name, pdf_bytes, pdf_renderer, diagnostics)


def classify_pdf_bytes(
    name: str,
    pdf_bytes: bytes,
    pdf_renderer: Optional[PdfPageRenderer] = None,
    diagnostics: Optional[MergeDiagnostics] = None,
) -> MergeValue:
    """Render PDF bytes into a paged image, or a conversion-failed marker."""
    renderer = pdf_renderer or PdfPageRenderer()
    try:
        pages = renderer.render(pdf_bytes)
    except PdfConversionError as e:
        logger.warning(f"PDF conversion failed for field '{name}': {e}")
        pages = []

    if not pages:
        marker = pdf_conversion_failed_marker(name)
        if diagnostics is not None:
            diagnostics.record_resource_failure(name, marker)
        return TextValue(marker)

    return PagedImageValue(tuple(pages))


def resolve_merge_values(
    raw_values: Mapping[str, Any],
    pdf_renderer: Optional[PdfPageRenderer] = None,
    diagnostics: Optional[MergeDiagnostics] = None,
) -> MergeValues:
    """Classify every raw value once, before substitution begins."""
    if isinstance(raw_values, MergeValues):
        return raw_values

    resolved = MergeValues()
    for name, value in raw_values.items():
        resolved.add(name, classify_value(name, value, pdf_renderer, diagnostics))

    logger.debug(f"Classified {len(resolved)} merge values")
    return resolved
