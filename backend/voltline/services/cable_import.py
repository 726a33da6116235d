"""
Excel cable schedule import.

Reads the contractor's cable schedule workbook layout (header=None, fixed
column positions) into plain dicts ready for ``cable_entries`` inserts.

  Col 0   CABLE TAG            Col 8   Ohm/km
  Col 3   FROM                 Col 9   CABLE NO
  Col 4   TO                   Col 10  EXTRA length
  Col 5   VOLTAGE              Col 11  LENGTH (measured)
  Col 6   LOAD (A)             Col 12  VOLT DROP
  Col 7   TYPE / SIZE          Col 13-14  SITE AGREE / NOTES
  Col 19-21  SUPPLY / INSTALL / TOTAL (R)
"""
import io
import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

logger = logging.getLogger("voltline-cable-import")

_NUMBER_STRIP_RE = re.compile(r"[R,\s]")
_LEADING_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_SKIP_MARKERS = ("CABLE SCHEDULE", "INSERT LOGO", "LAYOUT:", "NOTE:", "DATE:")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def _cell(row: Sequence[Any], idx: int) -> Any:
    return row[idx] if idx < len(row) else None


def _text(row: Sequence[Any], idx: int) -> str:
    value = _cell(row, idx)
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def parse_number(value: Any) -> Optional[float]:
    """
    Numeric cell or currency text ('R848.10', '1,250', '12m') → float; blank/garbage → None.

    Text is read up to the first character that cannot continue the number.
    """
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(_NUMBER_STRIP_RE.sub("", str(value)))
    return float(match.group(0)) if match else None


def parse_cable_row(row: Sequence[Any]) -> Optional[Dict[str, Any]]:
    """One worksheet row → cable entry dict, or None for header / filler rows."""
    cable_tag = _text(row, 0)
    upper = cable_tag.upper()
    if not cable_tag or upper == "CABLE TAG:" or any(m in upper for m in _SKIP_MARKERS):
        return None

    from_location = _text(row, 3)
    to_location = _text(row, 4)
    if not from_location or not to_location:
        return None

    extra_length = parse_number(_cell(row, 10))
    measured_length = parse_number(_cell(row, 11))
    total_length = None
    if measured_length is not None:
        total_length = measured_length + (extra_length or 0)

    notes = " | ".join(n for n in (_text(row, 13), _text(row, 14)) if n) or None
    cable_number = parse_number(_cell(row, 9))

    return {
        "cable_tag": cable_tag,
        "from_location": from_location,
        "to_location": to_location,
        "voltage": parse_number(_cell(row, 5)),
        "load_amps": parse_number(_cell(row, 6)),
        "cable_size": _text(row, 7) or None,
        "ohm_per_km": parse_number(_cell(row, 8)),
        "cable_number": int(cable_number) if cable_number else 1,
        "extra_length": extra_length,
        "measured_length": measured_length,
        "total_length": total_length,
        "volt_drop": parse_number(_cell(row, 12)),
        "notes": notes,
        "supply_cost": parse_number(_cell(row, 19)),
        "install_cost": parse_number(_cell(row, 20)),
        "total_cost": parse_number(_cell(row, 21)),
    }


def pick_schedule_sheet(sheet_names: List[str]) -> str:
    """First sheet named like 'cable' / 'schedule', else the first sheet."""
    if not sheet_names:
        raise ValueError("Workbook has no sheets")
    for name in sheet_names:
        lower = name.lower()
        if "cable" in lower or "schedule" in lower:
            return name
    return sheet_names[0]


def parse_cable_workbook(contents: bytes) -> List[Dict[str, Any]]:
    """
    Parse an uploaded .xlsx into cable entry dicts.

    Raises ValueError when the workbook cannot be read or holds no valid
    cable rows, so the route can answer 400 with the message.
    """
    try:
        sheets = pd.read_excel(io.BytesIO(contents), sheet_name=None, header=None)
    except Exception as e:
        raise ValueError(f"Could not read Excel file: {e}") from e

    sheet_name = pick_schedule_sheet(list(sheets.keys()))
    df = sheets[sheet_name]

    entries = []
    for row in df.itertuples(index=False, name=None):
        entry = parse_cable_row(row)
        if entry:
            entries.append(entry)

    if not entries:
        raise ValueError(
            "No valid cable entries found in the Excel file. "
            "Please ensure the file follows the expected format."
        )

    logger.info("Parsed %d cable entries from sheet '%s'", len(entries), sheet_name)
    return entries
