"""Tests for Excel processor module."""

import io
from decimal import Decimal

import pytest
from openpyxl import Workbook

from report_merger.excel_processor import (
    STRUCTURE_BOX_CULVERT,
    STRUCTURE_BRIDGE,
    STRUCTURE_PIPE_CULVERT,
    STRUCTURE_UNKNOWN,
    SUMMARY_ROWS,
    ExcelProcessor,
    StructureData,
    detect_structure_type,
    normalize_dimensions,
    parse_measurement,
)
from report_merger.graph_api_config import GraphAPIConfig, get_graph_api_credentials
from report_merger.utils.exceptions import ExcelProcessingError

SUMMARY_COLUMNS = {
    "B": {
        "structure_description": "Existing 3-span concrete bridge",
        "length_feet": "120 ft",
        "dimensions": "40'",
        "number_of_spans_or_culverts": 3,
        "low_chord_elevation": "1,250.5",
        "channel_invert_elevation": 1240,
        "water_surface_elevation_25yr": 1245.2,
        "water_surface_elevation_100yr": 1247.0,
        "water_surface_elevation_200yr": 1248.25,
        "headwater_to_diameter_ratio_25yr": 0.85,
    },
    "C": {"structure_description": "Precast box culvert", "dimensions": "9' x 8'", "number_of_spans_or_culverts": 2},
    "D": {"structure_description": "Corrugated pipe", "dimensions": '48"'},
    "E": {"structure_description": "12' x 10'", "dimensions": "12' x 10'"},
}


def build_workbook() -> bytes:
    workbook = Workbook()
    info = workbook.active
    info.title = "Project Info"
    info["A1"] = "Project Name"
    info["B1"] = "Mill Creek Crossing"
    info["A2"] = "Project Number"
    info["B2"] = "P-1001"
    info["A4"] = "Project name"
    info["B4"] = "Duplicate"
    info["C1"] = "Alternate Name"

    summary = workbook.create_sheet("Hydraulics Summary")
    for column, rows in SUMMARY_COLUMNS.items():
        for key, value in rows.items():
            summary[f"{column}{SUMMARY_ROWS[key]}"] = value

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestParsing:
    """Test cases for cell parsing helpers."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("120 ft", Decimal("120")),
            ("1,250.5", Decimal("1250.5")),
            ("40'", Decimal("40")),
            ('48"', Decimal("48")),
            (3, Decimal("3")),
            (0.85, Decimal("0.85")),
            (None, None),
            ("", None),
            ("n/a", None),
            (True, None),
        ],
    )
    def test_parse_measurement(self, raw, expected):
        assert parse_measurement(raw) == expected

    @pytest.mark.parametrize(
        "description,expected",
        [
            ("Existing 3-span concrete bridge", STRUCTURE_BRIDGE),
            ("Steel girder", STRUCTURE_BRIDGE),
            ("Precast box culvert", STRUCTURE_BOX_CULVERT),
            ("Corrugated pipe", STRUCTURE_PIPE_CULVERT),
            ("9' x 8'", STRUCTURE_BOX_CULVERT),
            ("Ford", STRUCTURE_UNKNOWN),
            (None, STRUCTURE_UNKNOWN),
            ("   ", STRUCTURE_UNKNOWN),
        ],
    )
    def test_detect_structure_type(self, description, expected):
        assert detect_structure_type(description) == expected

    def test_normalize_box_dimensions(self):
        structure = StructureData(label="Alt", structure_type=STRUCTURE_BOX_CULVERT)

        normalize_dimensions("10 ft x 6 ft", structure)

        assert structure.box_span == Decimal("10")
        assert structure.box_rise == Decimal("6")

    def test_normalize_malformed_box_dimensions(self):
        structure = StructureData(label="Alt", structure_type=STRUCTURE_BOX_CULVERT)

        normalize_dimensions("10 by 6", structure)

        assert structure.box_span is None
        assert not structure.has_dimensions

    def test_normalize_unknown_type_leaves_dimensions(self):
        structure = StructureData(label="Alt")

        normalize_dimensions("12", structure)

        assert not structure.has_dimensions


class TestExcelProcessor:
    """Test cases for ExcelProcessor class."""

    def setup_method(self):
        self.processor = ExcelProcessor(build_workbook())

    def teardown_method(self):
        self.processor.close()

    def test_sheet_names(self):
        assert self.processor.get_sheet_names() == ["Project Info", "Hydraulics Summary"]

    def test_missing_file_raises(self):
        with pytest.raises(ExcelProcessingError):
            ExcelProcessor("/nonexistent/workbook.xlsx")

    def test_invalid_content_raises(self):
        with pytest.raises(ExcelProcessingError):
            ExcelProcessor(b"not a workbook")

    def test_accepts_file_like_and_path(self, tmp_path):
        content = build_workbook()
        path = tmp_path / "summary.xlsx"
        path.write_bytes(content)

        from_stream = ExcelProcessor(io.BytesIO(content))
        from_path = ExcelProcessor(str(path))

        assert from_stream.get_sheet_names() == from_path.get_sheet_names()
        from_stream.close()
        from_path.close()

    def test_missing_sheet_raises(self):
        with pytest.raises(ExcelProcessingError):
            self.processor.extract_fields("Nope")

    def test_extract_fields(self):
        fields = self.processor.extract_fields("Project Info")

        assert fields == {
            "project_name": "Mill Creek Crossing",
            "project_number": "P-1001",
        }

    def test_extract_fields_row_limit(self):
        fields = self.processor.extract_fields("Project Info", max_rows=1)

        assert list(fields) == ["project_name"]

    def test_extract_column_values(self):
        columns = self.processor.extract_column_values(
            "Project Info", label_column="A", value_columns=["B", "C"], max_rows=1
        )

        assert columns[0] == {"project_name": "Mill Creek Crossing"}
        assert columns[1] == {"project_name": "Alternate Name"}

    def test_extract_bridge_data_defaults_to_last_sheet(self):
        data = self.processor.extract_bridge_data()
        existing = data["existing"]

        assert existing.structure_type == STRUCTURE_BRIDGE
        assert existing.length_feet == Decimal("120")
        assert existing.span_length == Decimal("40")
        assert existing.number_of_spans_or_culverts == 3
        assert existing.low_chord_elevation == Decimal("1250.5")
        assert existing.water_surface_elevations["200yr"] == Decimal("1248.25")
        assert existing.headwater_ratios["25yr"] == Decimal("0.85")
        assert existing.headwater_ratios["100yr"] is None

    def test_extract_alternatives(self):
        alternatives = self.processor.extract_bridge_data()["alternatives"]

        assert [alt.label for alt in alternatives] == [
            "Alternative 1",
            "Alternative 2",
            "Alternative 3",
            "Alternative 4",
        ]
        assert (alternatives[0].box_span, alternatives[0].box_rise) == (Decimal("9"), Decimal("8"))
        assert alternatives[1].structure_type == STRUCTURE_PIPE_CULVERT
        assert alternatives[1].pipe_diameter == Decimal("48")
        assert alternatives[2].structure_type == STRUCTURE_BOX_CULVERT
        assert alternatives[3].structure_type == STRUCTURE_UNKNOWN
        assert not alternatives[3].has_dimensions

    def test_to_merge_values(self):
        values = self.processor.to_merge_values()

        assert values["existing_structure_type"] == "Bridge"
        assert values["existing_low_chord_elevation"] == "1250.5"
        assert values["existing_channel_invert_elevation"] == "1240"
        assert values["existing_water_surface_elevations_25yr"] == "1245.2"
        assert values["alt1_box_span"] == "9"
        assert values["alt2_pipe_diameter"] == "48"
        assert values["alt4_structure_description"] is None
        assert "alt5_structure_type" not in values


class TestGraphAPIConfig:
    """Test cases for Graph API configuration loading."""

    @pytest.fixture(autouse=True)
    def isolated_environment(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for key in ("GRAPH_CLIENT_ID", "GRAPH_CLIENT_SECRET", "GRAPH_TENANT_ID", "GRAPH_API_TIMEOUT"):
            # Registered first so values loaded from env files are removed afterwards
            monkeypatch.setenv(key, "")
            monkeypatch.delenv(key)

    def test_unconfigured(self):
        config = GraphAPIConfig()
        is_valid, errors = config.validate_config()

        assert not config.is_configured()
        assert not is_valid
        assert len(errors) == 3
        assert get_graph_api_credentials() is None

    def test_loads_from_file(self, tmp_path):
        env_file = tmp_path / "graph_api.env"
        env_file.write_text(
            "GRAPH_CLIENT_ID=client\nGRAPH_CLIENT_SECRET=secret\nGRAPH_TENANT_ID=tenant\n",
            encoding="utf-8",
        )

        config = GraphAPIConfig(str(env_file))

        assert config.is_configured()
        assert config.get_credentials()["client_id"] == "client"
        assert config.get_settings()["timeout"] == 60

    def test_tenant_override(self, monkeypatch):
        monkeypatch.setenv("GRAPH_CLIENT_ID", "client")
        monkeypatch.setenv("GRAPH_CLIENT_SECRET", "secret")
        monkeypatch.setenv("GRAPH_TENANT_ID", "tenant")

        credentials = get_graph_api_credentials(tenant_id="other-tenant")

        assert credentials["tenant_id"] == "other-tenant"

    def test_invalid_timeout(self, monkeypatch):
        monkeypatch.setenv("GRAPH_API_TIMEOUT", "0")

        _, errors = GraphAPIConfig().validate_config()

        assert "Timeout must be positive" in errors
