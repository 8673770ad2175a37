"""Input validation and placeholder scanning utilities for the report merger."""

import re
from typing import Any, Dict, Iterable, List, NamedTuple
from jsonschema import validate, ValidationError as JsonSchemaValidationError

from .exceptions import ValidationError


PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")


class PlaceholderMatch(NamedTuple):
    """A single ``{{name}}`` occurrence inside a block of text."""

    name: str
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


def scan_placeholders(text: str) -> List[PlaceholderMatch]:
    """Find ``{{name}}`` tokens left-to-right.

    Matches never overlap and the name grammar is fixed to letters, digits
    and underscore. There is no escaping: a literal ``{{`` followed by a valid
    name and ``}}`` is always a token.
    """
    if not text:
        return []

    return [
        PlaceholderMatch(match.group(1), match.start(), match.end() - match.start())
        for match in PLACEHOLDER_PATTERN.finditer(text)
    ]


def extract_placeholder_names(texts: Iterable[str]) -> List[str]:
    """Return distinct placeholder names, de-duplicated case-insensitively.

    The first spelling encountered is kept and document order is preserved.
    """
    seen = set()
    names = []
    for text in texts:
        for match in scan_placeholders(text):
            key = match.name.casefold()
            if key not in seen:
                seen.add(key)
                names.append(match.name)
    return names


def format_placeholder(name: str) -> str:
    """Render a field name back into its ``{{name}}`` token form."""
    return f"{{{{{name}}}}}"


def validate_json_schema(data: Dict[str, Any], schema: Dict[str, Any]) -> None:
    """Validate data against JSON schema."""
    try:
        validate(instance=data, schema=schema)
    except JsonSchemaValidationError as e:
        raise ValidationError(f"Schema validation failed: {e.message}")


def validate_config_structure(config: Dict[str, Any]) -> None:
    """Validate merge configuration structure."""
    schema = {
        "type": "object",
        "properties": {
            "version": {"type": "string"},
            "global_settings": {
                "type": "object",
                "properties": {
                    "docx": {
                        "type": "object",
                        "properties": {
                            "max_image_width_inches": {
                                "type": "number",
                                "exclusiveMinimum": 0,
                            },
                            "image_dpi": {"type": "number", "exclusiveMinimum": 0},
                            "figure_style": {"type": "string"},
                            "highlight_replaced_fields": {"type": "boolean"},
                            "missing_value_color": {
                                "type": "string",
                                "pattern": "^[0-9A-Fa-f]{6}$",
                            },
                        },
                    },
                    "pdf_rendering": {
                        "type": "object",
                        "properties": {
                            "dpi": {"type": "integer", "minimum": 1},
                            "max_width_px": {"type": "integer", "minimum": 1},
                            "jpeg_quality": {
                                "type": "integer",
                                "minimum": 1,
                                "maximum": 100,
                            },
                        },
                    },
                    "sharepoint": {
                        "type": "object",
                        "properties": {
                            "site_url": {"type": "string"},
                            "reports_base_path": {"type": "string"},
                            "master_template_path": {"type": "string"},
                            "drafts_folder_name": {"type": "string"},
                            "image_folders": {
                                "type": "array",
                                "items": {"type": "string"},
                            },
                            "max_concurrent_downloads": {
                                "type": "integer",
                                "minimum": 1,
                            },
                        },
                    },
                },
            },
        },
        "required": ["version"],
    }

    validate_json_schema(config, schema)


def normalize_field_name(field_name: str) -> str:
    """Normalize a spreadsheet label or file name into a placeholder-safe key."""
    if not field_name or not isinstance(field_name, str):
        return "unnamed_field"

    normalized = field_name.lower().strip()

    # Replace anything outside the placeholder grammar with underscores
    normalized = re.sub(r"[^a-z0-9_]+", "_", normalized)
    normalized = re.sub(r"_+", "_", normalized)
    normalized = normalized.strip("_")

    return normalized or "unnamed_field"


def is_blank_value(value: Any) -> bool:
    """Check if a scalar value should be treated as missing."""
    if value is None:
        return True

    if isinstance(value, str):
        return not value.strip()

    return False


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe file system usage."""
    if not filename:
        return "unnamed_file"

    # Remove or replace dangerous characters
    sanitized = re.sub(r'[<>:"/\\|?*]', "_", filename)

    # Remove control characters
    sanitized = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", sanitized)

    # Limit length
    sanitized = sanitized[:255]

    return sanitized or "unnamed_file"


def validate_merge_request(request_data: Dict[str, Any]) -> None:
    """Validate JSON merge request data structure."""
    if not isinstance(request_data, dict):
        raise ValidationError("Request data must be a JSON object")

    if "template" not in request_data:
        raise ValidationError("A template (base64 encoded .docx) is required")

    values = request_data.get("values", {})
    if not isinstance(values, dict):
        raise ValidationError("Values must be a JSON object")

    images = request_data.get("images", {})
    if not isinstance(images, dict):
        raise ValidationError("Images must be a JSON object of base64 strings")
