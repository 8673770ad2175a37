"""Word report template merging with Excel extraction and SharePoint storage."""

__version__ = "0.1.0"

from .docx_processor import (  # noqa: E402
    MergeResult,
    WordTemplateProcessor,
    get_placeholders,
    replace_placeholders,
)
from .merge_values import MergeDiagnostics, resolve_merge_values  # noqa: E402

__all__ = [
    "MergeDiagnostics",
    "MergeResult",
    "WordTemplateProcessor",
    "get_placeholders",
    "replace_placeholders",
    "resolve_merge_values",
]
