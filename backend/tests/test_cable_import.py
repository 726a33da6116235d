"""
test_cable_import.py — Unit tests for the Excel cable schedule import.

Tests cover:
  - parse_number: numeric cells, currency text, blanks and garbage
  - parse_cable_row: header / filler rows skipped, required from / to,
    lengths, notes and costs
  - pick_schedule_sheet: sheet selection by name
  - parse_cable_workbook: full round trip through an in-memory .xlsx

Workbooks are written with xlsxwriter into memory; no files or services needed.
"""

import io
import math
import pytest
import xlsxwriter

from voltline.services.cable_import import (
    parse_cable_row,
    parse_cable_workbook,
    parse_number,
    pick_schedule_sheet,
)


def _row(**cells):
    """22-column worksheet row with the given {index: value} cells set."""
    row = [None] * 22
    for key, value in cells.items():
        row[int(key.lstrip("c"))] = value
    return row


def _workbook(sheets):
    """{sheet name: [rows]} → .xlsx bytes."""
    buf = io.BytesIO()
    wb = xlsxwriter.Workbook(buf, {"in_memory": True})
    for name, rows in sheets.items():
        ws = wb.add_worksheet(name)
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                if value is not None:
                    ws.write(r, c, value)
    wb.close()
    return buf.getvalue()


DATA_ROW = _row(
    c0="MAIN DB-Shop 3", c3="MAIN DB", c4="Shop 3", c5=400, c6=63, c7="16mm²", c8=1.38,
    c9=1, c10=5, c11=45, c12=2.1, c13="Agreed on site", c14="Route via ceiling",
    c19="R2,340.00", c20=1890, c21="R4 230.00",
)


# ===========================================================================
# Class 1: Numbers
# ===========================================================================

class TestParseNumber:
    """Cells are numeric, currency text or blank."""

    @pytest.mark.parametrize("value, expected", [
        (12, 12.0),
        (1.5, 1.5),
        ("R848.10", 848.10),
        ("1,250", 1250.0),
        ("R 1 250.50", 1250.50),
        ("  42 ", 42.0),
        ("12m", 12.0),
        ("45.5 m", 45.5),
        ("-3.5 V", -3.5),
    ])
    def test_numbers(self, value, expected):
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   ", float("nan"), "TBC", True])
    def test_not_numbers(self, value):
        assert parse_number(value) is None


# ===========================================================================
# Class 2: Rows
# ===========================================================================

class TestParseCableRow:
    """Fixed-column rows of the cable schedule layout."""

    def test_data_row(self):
        entry = parse_cable_row(DATA_ROW)
        assert entry["cable_tag"] == "MAIN DB-Shop 3"
        assert entry["from_location"] == "MAIN DB"
        assert entry["to_location"] == "Shop 3"
        assert entry["voltage"] == 400.0
        assert entry["load_amps"] == 63.0
        assert entry["cable_size"] == "16mm²"
        assert entry["ohm_per_km"] == 1.38
        assert entry["cable_number"] == 1
        assert entry["volt_drop"] == 2.1

    def test_lengths(self):
        entry = parse_cable_row(DATA_ROW)
        assert entry["extra_length"] == 5.0
        assert entry["measured_length"] == 45.0
        assert entry["total_length"] == 50.0

    def test_costs(self):
        entry = parse_cable_row(DATA_ROW)
        assert entry["supply_cost"] == 2340.0
        assert entry["install_cost"] == 1890.0
        assert entry["total_cost"] == 4230.0

    def test_notes_joined(self):
        assert parse_cable_row(DATA_ROW)["notes"] == "Agreed on site | Route via ceiling"
        only_second = _row(c0="X", c3="A", c4="B", c14="Note two")
        assert parse_cable_row(only_second)["notes"] == "Note two"

    def test_sparse_row_defaults(self):
        entry = parse_cable_row(_row(c0="X", c3="A", c4="B", c10=5))
        assert entry["cable_number"] == 1
        assert entry["measured_length"] is None
        assert entry["total_length"] is None
        assert entry["notes"] is None
        assert entry["cable_size"] is None

    @pytest.mark.parametrize("tag", [
        "", None, "CABLE TAG:", "Cable Schedule - Block A", "INSERT LOGO HERE",
        "Layout: Ground floor", "Note: all sizes copper", "DATE: 2024-01-01",
    ])
    def test_header_rows_skipped(self, tag):
        assert parse_cable_row(_row(c0=tag, c3="A", c4="B")) is None

    def test_from_and_to_required(self):
        assert parse_cable_row(_row(c0="X", c3="A")) is None
        assert parse_cable_row(_row(c0="X", c4="B")) is None

    def test_short_row(self):
        """Rows shorter than the layout (trailing blank columns) still parse."""
        entry = parse_cable_row(["X", None, None, "A", "B", 230])
        assert entry["voltage"] == 230.0
        assert entry["supply_cost"] is None

    def test_nan_cells_are_blank(self):
        entry = parse_cable_row(_row(c0="X", c3="A", c4="B", c6=float("nan"), c13=float("nan")))
        assert entry["load_amps"] is None
        assert entry["notes"] is None

    def test_whole_number_cells_read_as_text(self):
        """Numeric cells in text columns lose the trailing .0 pandas gives them."""
        entry = parse_cable_row(_row(c0=101.0, c3="A", c4="B", c7=95.0))
        assert entry["cable_tag"] == "101"
        assert entry["cable_size"] == "95"


# ===========================================================================
# Class 3: Workbooks
# ===========================================================================

class TestParseWorkbook:
    """Whole-workbook import through pandas.read_excel."""

    def test_pick_sheet_by_name(self):
        assert pick_schedule_sheet(["Cover", "LV Cable Schedule", "Notes"]) == "LV Cable Schedule"
        assert pick_schedule_sheet(["Sheet1", "Sheet2"]) == "Sheet1"

    def test_pick_sheet_empty(self):
        with pytest.raises(ValueError):
            pick_schedule_sheet([])

    def test_parses_schedule_sheet(self):
        contents = _workbook({
            "Cover": [["Project cover page"]],
            "Cables": [
                ["CABLE SCHEDULE"],
                ["CABLE TAG:", None, None, "FROM", "TO", "VOLTAGE"],
                DATA_ROW,
                _row(c0="MAIN DB-Shop 7", c3="MAIN DB", c4="Shop 7", c5=230, c6=40, c9=2, c11=30),
                [],
            ],
        })
        entries = parse_cable_workbook(contents)
        assert [e["cable_tag"] for e in entries] == ["MAIN DB-Shop 3", "MAIN DB-Shop 7"]
        assert entries[0]["total_length"] == 50.0
        assert entries[1]["cable_number"] == 2
        assert entries[1]["notes"] is None
        assert not math.isnan(entries[1]["total_length"])

    def test_no_valid_rows(self):
        contents = _workbook({"Schedule": [["CABLE SCHEDULE"], ["CABLE TAG:"]]})
        with pytest.raises(ValueError, match="No valid cable entries"):
            parse_cable_workbook(contents)

    def test_not_a_workbook(self):
        with pytest.raises(ValueError, match="Could not read Excel file"):
            parse_cable_workbook(b"this is not an excel file")
