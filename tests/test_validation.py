"""Tests for validation utilities."""

import pytest

from report_merger.utils.exceptions import ValidationError
from report_merger.utils.validation import (
    extract_placeholder_names,
    format_placeholder,
    is_blank_value,
    normalize_field_name,
    sanitize_filename,
    scan_placeholders,
    validate_config_structure,
    validate_merge_request,
)


class TestScanPlaceholders:
    """Test cases for placeholder scanning."""

    def test_positions(self):
        matches = scan_placeholders("Dear {{name}}, see {{ref_2}}.")

        assert [(m.name, m.start, m.length) for m in matches] == [
            ("name", 5, 8),
            ("ref_2", 19, 9),
        ]
        assert matches[0].end == 13

    @pytest.mark.parametrize(
        "text", ["", "no tokens", "{{bad-name}}", "{{ spaced }}", "{{}}", "{single}"]
    )
    def test_no_match(self, text):
        assert scan_placeholders(text) == []

    def test_nested_braces(self):
        matches = scan_placeholders("{{{a}}}")

        assert [(m.name, m.start) for m in matches] == [("a", 1)]

    def test_adjacent_tokens(self):
        assert [m.name for m in scan_placeholders("{{a}}{{b}}")] == ["a", "b"]

    def test_extract_names_deduplicates_case_insensitively(self):
        names = extract_placeholder_names(["{{Client}} {{date}}", "{{client}} {{x}}"])

        assert names == ["Client", "date", "x"]

    def test_format_placeholder(self):
        assert format_placeholder("client") == "{{client}}"


class TestConfigValidation:
    """Test cases for configuration schema validation."""

    def test_valid_config(self):
        validate_config_structure(
            {
                "version": "1.0",
                "global_settings": {
                    "docx": {"max_image_width_inches": 6.0, "missing_value_color": "00FF00"},
                    "pdf_rendering": {"dpi": 150},
                    "sharepoint": {"image_folders": ["Photos/Raw"]},
                },
            }
        )

    def test_missing_version(self):
        with pytest.raises(ValidationError):
            validate_config_structure({"global_settings": {}})

    @pytest.mark.parametrize(
        "settings",
        [
            {"docx": {"max_image_width_inches": 0}},
            {"docx": {"missing_value_color": "red"}},
            {"pdf_rendering": {"jpeg_quality": 101}},
            {"sharepoint": {"image_folders": "Photos"}},
        ],
    )
    def test_invalid_settings(self, settings):
        with pytest.raises(ValidationError):
            validate_config_structure({"version": "1.0", "global_settings": settings})


class TestFieldHelpers:
    """Test cases for field name and value helpers."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Structure Description", "structure_description"),
            ("  Length (ft) ", "length_ft"),
            ("H/D Ratio - 25yr", "h_d_ratio_25yr"),
            ("", "unnamed_field"),
            ("***", "unnamed_field"),
        ],
    )
    def test_normalize_field_name(self, raw, expected):
        assert normalize_field_name(raw) == expected

    @pytest.mark.parametrize("value", [None, "", "   ", "\n"])
    def test_blank_values(self, value):
        assert is_blank_value(value)

    @pytest.mark.parametrize("value", ["x", 0, False, []])
    def test_non_blank_values(self, value):
        assert not is_blank_value(value)

    def test_sanitize_filename(self):
        assert sanitize_filename('a<b>:c"d/e.docx') == "a_b__c_d_e.docx"
        assert sanitize_filename("") == "unnamed_file"


class TestMergeRequestValidation:
    """Test cases for JSON merge request validation."""

    def test_valid_request(self):
        validate_merge_request({"template": "UEs=", "values": {"a": "b"}, "images": {}})

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            {"values": {}},
            {"template": "UEs=", "values": []},
            {"template": "UEs=", "images": ["x"]},
        ],
    )
    def test_invalid_request(self, payload):
        with pytest.raises(ValidationError):
            validate_merge_request(payload)
