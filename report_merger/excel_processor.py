"""Excel data extraction for report merge fields."""

import io
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, BinaryIO, Dict, List, Optional, Union

from openpyxl import load_workbook
from openpyxl.utils import column_index_from_string
from openpyxl.worksheet.worksheet import Worksheet

from .utils.exceptions import ExcelProcessingError
from .utils.validation import is_blank_value, normalize_field_name

logger = logging.getLogger(__name__)

STRUCTURE_BRIDGE = "Bridge"
STRUCTURE_BOX_CULVERT = "Box Culvert"
STRUCTURE_PIPE_CULVERT = "Pipe Culvert"
STRUCTURE_UNKNOWN = "Unknown"

BRIDGE_KEYWORDS = ("bridge", "trestle", "girder", "span", "slab", "beam")

# Row numbers of the hydraulics summary sheet (1-based)
SUMMARY_ROWS = {
    "structure_description": 4,
    "length_feet": 5,
    "dimensions": 6,
    "number_of_spans_or_culverts": 7,
    "low_chord_elevation": 10,
    "channel_invert_elevation": 11,
    "water_surface_elevation_25yr": 14,
    "headwater_to_diameter_ratio_25yr": 17,
    "water_surface_elevation_100yr": 23,
    "headwater_to_diameter_ratio_100yr": 26,
    "water_surface_elevation_200yr": 32,
    "headwater_to_diameter_ratio_200yr": 35,
}

EXISTING_COLUMN = 2
FIRST_ALTERNATIVE_COLUMN = 3
ALTERNATIVE_COUNT = 4


@dataclass
class StructureData:
    """Hydraulic and geometric data for one existing or proposed structure."""

    label: str
    structure_description: Optional[str] = None
    structure_type: str = STRUCTURE_UNKNOWN
    length_feet: Optional[Decimal] = None
    span_length: Optional[Decimal] = None
    box_span: Optional[Decimal] = None
    box_rise: Optional[Decimal] = None
    pipe_diameter: Optional[Decimal] = None
    number_of_spans_or_culverts: Optional[int] = None
    low_chord_elevation: Optional[Decimal] = None
    channel_invert_elevation: Optional[Decimal] = None
    water_surface_elevations: Dict[str, Optional[Decimal]] = field(default_factory=dict)
    headwater_ratios: Dict[str, Optional[Decimal]] = field(default_factory=dict)

    @property
    def has_dimensions(self) -> bool:
        return any(
            value is not None
            for value in (self.span_length, self.box_span, self.pipe_diameter)
        )

    def to_merge_values(self, prefix: str) -> Dict[str, Any]:
        """Flatten into ``<prefix>_<field>`` merge values, formatting numbers as text."""
        values = {}
        for key, value in asdict(self).items():
            if key == "label":
                continue
            if isinstance(value, dict):
                for storm, nested in value.items():
                    values[f"{prefix}_{key}_{storm}"] = _format_number(nested)
            else:
                values[f"{prefix}_{key}"] = _format_number(value)
        return values


def _format_number(value: Any) -> Any:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return value


def parse_measurement(raw: Any) -> Optional[Decimal]:
    """Parse a measurement cell such as ``"1,250.5 ft"`` or ``12'`` into a Decimal."""
    if raw is None:
        return None
    if isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
        return Decimal(str(raw))

    text = re.sub(r"ft", "", str(raw), flags=re.IGNORECASE)
    text = text.replace('"', "").replace("'", "").replace(",", "").strip()
    if not text:
        return None

    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def _digits(text: str) -> str:
    return "".join(ch for ch in text if ch.isdigit())


def detect_structure_type(description: Optional[str]) -> str:
    """Classify a free-text structure description."""
    if is_blank_value(description):
        return STRUCTURE_UNKNOWN

    text = description.lower()

    if any(keyword in text for keyword in BRIDGE_KEYWORDS):
        return STRUCTURE_BRIDGE

    if "box" in text:
        return STRUCTURE_BOX_CULVERT

    if "pipe" in text:
        return STRUCTURE_PIPE_CULVERT

    # Dimension-only descriptions such as 9' x 8'
    if "x" in text:
        return STRUCTURE_BOX_CULVERT

    return STRUCTURE_UNKNOWN


def normalize_dimensions(raw: Optional[str], structure: StructureData) -> None:
    """Fill span, box or pipe dimensions from the dimension cell text."""
    if is_blank_value(raw):
        logger.warning(f"{structure.label}: dimension cell is empty, user input required")
        return

    text = raw.lower().replace("ft", "").replace('"', "").replace("'", "").strip()

    if structure.structure_type == STRUCTURE_BRIDGE:
        structure.span_length = parse_measurement(text)
        if structure.span_length is None:
            logger.warning(f"{structure.label}: unable to parse bridge span from '{text}'")

    elif structure.structure_type == STRUCTURE_BOX_CULVERT:
        parts = [part.strip() for part in text.split("x")]
        if len(parts) != 2:
            logger.warning(f"{structure.label}: unexpected box culvert format '{text}'")
            return
        span_digits, rise_digits = _digits(parts[0]), _digits(parts[1])
        structure.box_span = Decimal(span_digits) if span_digits else None
        structure.box_rise = Decimal(rise_digits) if rise_digits else None
        if structure.box_span is None or structure.box_rise is None:
            logger.warning(f"{structure.label}: could not parse box span/rise from '{text}'")

    elif structure.structure_type == STRUCTURE_PIPE_CULVERT:
        digits = _digits(text)
        structure.pipe_diameter = Decimal(digits) if digits else None
        if structure.pipe_diameter is None:
            logger.warning(f"{structure.label}: unable to parse pipe diameter from '{text}'")

    else:
        logger.warning(
            f"{structure.label}: unknown structure type, cannot parse dimensions '{text}'"
        )


class ExcelProcessor:
    """Processes Excel workbooks and extracts merge field values."""

    def __init__(self, file_input: Union[str, bytes, BinaryIO]) -> None:
        """Initialize Excel processor with a file path, raw bytes or a file-like object."""
        self.file_input = file_input
        self.workbook = None

        if isinstance(file_input, str):
            if not os.path.exists(file_input):
                raise ExcelProcessingError(f"Excel file not found: {file_input}")
            source = file_input
        elif isinstance(file_input, (bytes, bytearray)):
            source = io.BytesIO(file_input)
        else:
            if hasattr(file_input, "seek"):
                file_input.seek(0)
            source = io.BytesIO(file_input.read())

        try:
            self.workbook = load_workbook(source, data_only=True)
            logger.info("Successfully loaded Excel workbook")
        except Exception as e:
            raise ExcelProcessingError(f"Invalid Excel file format: {e}")

    def get_sheet_names(self) -> List[str]:
        """Get list of sheet names in the workbook."""
        return self.workbook.sheetnames

    def _get_sheet(self, sheet_name: Optional[str] = None) -> Worksheet:
        """Return the named sheet, or the last sheet when no name is given."""
        if sheet_name is None:
            return self.workbook.worksheets[-1]
        if sheet_name not in self.workbook.sheetnames:
            raise ExcelProcessingError(f"Sheet '{sheet_name}' not found in workbook")
        return self.workbook[sheet_name]

    @staticmethod
    def _cell_text(sheet: Worksheet, row: int, column: int) -> Optional[str]:
        value = sheet.cell(row=row, column=column).value
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def extract_fields(
        self,
        sheet_name: Optional[str] = None,
        label_column: str = "A",
        value_column: str = "B",
        start_row: int = 1,
        max_rows: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Extract label/value pairs from two columns into normalized field names."""
        sheet = self._get_sheet(sheet_name)
        label_idx = column_index_from_string(label_column)
        value_idx = column_index_from_string(value_column)

        last_row = sheet.max_row
        if max_rows is not None:
            last_row = min(last_row, start_row + max_rows - 1)

        fields = {}
        for row in range(start_row, last_row + 1):
            label = self._cell_text(sheet, row, label_idx)
            if label is None:
                continue

            key = normalize_field_name(label)
            if key in fields:
                logger.debug(f"Duplicate label '{label}' on row {row}, keeping first value")
                continue

            fields[key] = sheet.cell(row=row, column=value_idx).value

        logger.info(f"Extracted {len(fields)} fields from sheet '{sheet.title}'")
        return fields

    def extract_column_values(
        self,
        sheet_name: Optional[str] = None,
        label_column: str = "A",
        value_columns: Optional[List[str]] = None,
        start_row: int = 1,
        max_rows: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Extract one field dictionary per value column (side-by-side layouts)."""
        value_columns = value_columns or ["B"]
        return [
            self.extract_fields(sheet_name, label_column, column, start_row, max_rows)
            for column in value_columns
        ]

    def _extract_structure(self, sheet: Worksheet, column: int, label: str) -> StructureData:
        description = self._cell_text(sheet, SUMMARY_ROWS["structure_description"], column)

        def measure(row_key: str) -> Optional[Decimal]:
            return parse_measurement(sheet.cell(row=SUMMARY_ROWS[row_key], column=column).value)

        spans = measure("number_of_spans_or_culverts")
        structure = StructureData(
            label=label,
            structure_description=description,
            structure_type=detect_structure_type(description),
            length_feet=measure("length_feet"),
            number_of_spans_or_culverts=int(spans) if spans is not None else None,
            low_chord_elevation=measure("low_chord_elevation"),
            channel_invert_elevation=measure("channel_invert_elevation"),
            water_surface_elevations={
                storm: measure(f"water_surface_elevation_{storm}")
                for storm in ("25yr", "100yr", "200yr")
            },
            headwater_ratios={
                storm: measure(f"headwater_to_diameter_ratio_{storm}")
                for storm in ("25yr", "100yr", "200yr")
            },
        )

        if structure.structure_type == STRUCTURE_UNKNOWN:
            logger.warning(f"{label}: unable to detect structure type from '{description}'")

        normalize_dimensions(
            self._cell_text(sheet, SUMMARY_ROWS["dimensions"], column), structure
        )
        return structure

    def extract_bridge_data(self, sheet_name: Optional[str] = None) -> Dict[str, Any]:
        """Extract the existing structure and the proposed alternatives.

        The existing structure sits in column B, alternatives 1-4 in columns
        C-F of the hydraulics summary sheet.
        """
        sheet = self._get_sheet(sheet_name)
        logger.info(f"Extracting bridge data from worksheet '{sheet.title}'")

        existing = self._extract_structure(sheet, EXISTING_COLUMN, "Existing")
        alternatives = []
        for number in range(1, ALTERNATIVE_COUNT + 1):
            column = FIRST_ALTERNATIVE_COLUMN + number - 1
            alternative = self._extract_structure(sheet, column, f"Alternative {number}")
            if not alternative.has_dimensions:
                logger.warning(f"Alternative {number}: missing dimensions, manual input required")
            alternatives.append(alternative)

        return {"existing": existing, "alternatives": alternatives}

    def to_merge_values(self, sheet_name: Optional[str] = None) -> Dict[str, Any]:
        """Flatten extracted bridge data into merge values keyed by placeholder name."""
        data = self.extract_bridge_data(sheet_name)
        values = data["existing"].to_merge_values("existing")
        for number, alternative in enumerate(data["alternatives"], start=1):
            values.update(alternative.to_merge_values(f"alt{number}"))
        return values

    def close(self) -> None:
        """Close the workbook."""
        if self.workbook is not None:
            self.workbook.close()
            self.workbook = None
