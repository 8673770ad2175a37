"""Tests for the package-level token replacement pass."""

import io
import zipfile

import pytest

from report_merger.package_text_pass import replace_tokens_in_package
from report_merger.utils.exceptions import DocumentProcessingError


def build_package(entries):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as package:
        for name, content in entries.items():
            package.writestr(name, content)
    return buffer.getvalue()


def read_entries(content):
    with zipfile.ZipFile(io.BytesIO(content)) as package:
        return {name: package.read(name) for name in package.namelist()}


class TestReplaceTokensInPackage:
    """Test cases for replace_tokens_in_package."""

    @pytest.fixture
    def package(self):
        return build_package(
            {
                "[Content_Types].xml": b"<Types/>",
                "word/document.xml": b"<w:t>Client {{client}} {{other}}</w:t>",
                "word/header1.xml": b"<w:t>{{CLIENT}}</w:t>",
                "word/media/image1.png": b"binary {{client}} bytes",
            }
        )

    def test_replaces_scalars_in_xml_parts(self, package):
        entries = read_entries(replace_tokens_in_package(package, {"Client": "Acme"}))

        assert entries["word/document.xml"] == b"<w:t>Client Acme {{other}}</w:t>"
        assert entries["word/header1.xml"] == b"<w:t>Acme</w:t>"

    def test_non_xml_entries_untouched(self, package):
        entries = read_entries(replace_tokens_in_package(package, {"client": "Acme"}))

        assert entries["word/media/image1.png"] == b"binary {{client}} bytes"

    def test_values_are_xml_escaped(self, package):
        entries = read_entries(
            replace_tokens_in_package(package, {"client": "R&D <\"Lab\"> 'x'"})
        )

        assert b"R&amp;D &lt;&quot;Lab&quot;&gt; 'x'" in entries["word/document.xml"]

    def test_missing_scalar_becomes_empty(self, package):
        entries = read_entries(replace_tokens_in_package(package, {"client": None}))

        assert entries["word/header1.xml"] == b"<w:t></w:t>"

    def test_no_scalars_returns_input(self, package):
        assert replace_tokens_in_package(package, {}) is package

    def test_second_pass_changes_nothing(self, package):
        once = replace_tokens_in_package(package, {"client": "Acme"})
        twice = replace_tokens_in_package(once, {"client": "Acme"})

        assert read_entries(once) == read_entries(twice)

    def test_entry_order_preserved(self, package):
        result = replace_tokens_in_package(package, {"client": "Acme"})

        with zipfile.ZipFile(io.BytesIO(result)) as merged, zipfile.ZipFile(io.BytesIO(package)) as original:
            assert merged.namelist() == original.namelist()

    def test_invalid_package(self):
        with pytest.raises(DocumentProcessingError):
            replace_tokens_in_package(b"not a zip", {"client": "Acme"})
