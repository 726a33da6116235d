"""
Cable schedule helpers — tag generation, tenant lookup, parallel-cable
expansion and schedule totals. Pure functions over plain dicts so the
routes can feed them ORM rows converted with ``row_to_dict``.
"""
import logging
import re
import uuid
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from voltline.services.cable_sizing_engine import CableCalculationResult

logger = logging.getLogger("voltline-cable-schedule")

_AMPS_RE = re.compile(r"(\d+)\s*A")
_DIGITS_RE = re.compile(r"\d+")

# Conservative grouping derating applied when sizing new schedule entries
DEFAULT_ENTRY_DERATING = 0.8


def generate_cable_tag(
    from_location: Optional[str],
    to_location: Optional[str],
    voltage: Any = None,
    cable_number: Any = None,
) -> str:
    """Join the non-blank parts with '-', e.g. 'MAIN DB-Shop 12-400-1'."""
    parts = []
    for part in (from_location, to_location, voltage, cable_number):
        if part is None:
            continue
        if isinstance(part, (float, Decimal)) and part == int(part):
            part = int(part)
        text = str(part).strip()
        if text:
            parts.append(text)
    return "-".join(parts)


def calculate_total_length(measured_length: Optional[float], extra_length: Optional[float]) -> float:
    return float(measured_length or 0) + float(extra_length or 0)


def parse_db_allowance_amps(db_size_allowance: Optional[str]) -> Optional[float]:
    """'63A TPN DB' → 63.0; None when no amperage is present."""
    if not db_size_allowance:
        return None
    match = _AMPS_RE.search(db_size_allowance)
    return float(match.group(1)) if match else None


def tenant_identifier(tenant: Dict[str, Any]) -> str:
    return f"{tenant.get('shop_number', '')} - {tenant.get('shop_name', '')}"


def shop_number_sort_key(shop_number: Optional[str]) -> int:
    """First run of digits in the shop number ('Shop 12A' → 12), 0 if none."""
    match = _DIGITS_RE.search(shop_number or "")
    return int(match.group(0)) if match else 0


def sort_tenants_by_shop_number(tenants: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(tenants, key=lambda t: shop_number_sort_key(t.get("shop_number")))


def available_tenants(tenants: Iterable[Dict[str, Any]], existing_to_locations: Set[str]) -> List[Dict[str, Any]]:
    """Tenants not yet fed by a cable in the schedule, by shop number."""
    free = [t for t in tenants if tenant_identifier(t) not in existing_to_locations]
    return sort_tenants_by_shop_number(free)


def build_parallel_entries(base: Dict[str, Any], sizing: Optional[CableCalculationResult]) -> List[Dict[str, Any]]:
    """
    Expand one requested cable into ``cables_in_parallel`` schedule rows.

    ``base`` holds the user's fields (schedule_id, from/to, voltage,
    load_amps, cable_type, lengths, notes ...). Sized values overwrite the
    manual ones when ``sizing`` is given; costs on each row are per cable.
    """
    entry = dict(base)
    entry["total_length"] = calculate_total_length(entry.get("measured_length"), entry.get("extra_length"))
    count = 1

    if sizing is not None:
        count = max(1, sizing.cables_in_parallel)
        entry["cable_size"] = sizing.recommended_size
        entry["ohm_per_km"] = sizing.ohm_per_km
        entry["volt_drop"] = sizing.volt_drop if entry["total_length"] else 0.0
        entry["load_amps"] = sizing.load_per_cable
        entry["supply_cost"] = round(sizing.supply_cost / count, 2)
        entry["install_cost"] = round(sizing.install_cost / count, 2)

    entry["total_cost"] = float(entry.get("supply_cost") or 0) + float(entry.get("install_cost") or 0)

    base_tag = entry.get("cable_tag") or generate_cable_tag(
        entry.get("from_location"), entry.get("to_location"), entry.get("voltage"), entry.get("cable_number"),
    )
    if not base_tag:
        raise ValueError("Cable entry needs a tag or from/to locations")

    if count == 1:
        entry["cable_tag"] = base_tag
        entry["cable_number"] = entry.get("cable_number") or 1
        return [entry]

    group_id = str(uuid.uuid4())
    notes = (entry.get("notes") or "").strip()
    rows = []
    for i in range(1, count + 1):
        row = dict(entry)
        row["cable_tag"] = f"{base_tag}-{i}"
        row["base_cable_tag"] = base_tag
        row["cable_number"] = i
        row["parallel_group_id"] = group_id
        row["parallel_total_count"] = count
        row["notes"] = f"Cable {i} of {count} in parallel. {notes}".strip()
        rows.append(row)
    logger.info("Expanded %s into %d parallel cables", base_tag, count)
    return rows


def group_entries_by_cable(entries: Iterable[Dict[str, Any]]) -> "OrderedDict[str, List[Dict[str, Any]]]":
    """Bucket rows by parallel group (or base tag / tag), keeping first-seen order."""
    groups: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for entry in entries:
        key = entry.get("parallel_group_id") or entry.get("base_cable_tag") or entry.get("cable_tag") or ""
        groups.setdefault(key, []).append(entry)
    return groups


def summarize_schedule(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
    total_length = sum(float(e.get("total_length") or 0) for e in entries)
    supply = sum(float(e.get("supply_cost") or 0) for e in entries)
    install = sum(float(e.get("install_cost") or 0) for e in entries)
    total = sum(float(e.get("total_cost") or 0) for e in entries)
    groups = group_entries_by_cable(entries)
    parallel_groups = sum(1 for rows in groups.values() if len(rows) > 1)
    return {
        "entry_count": len(entries),
        "cable_count": len(groups),
        "parallel_groups": parallel_groups,
        "total_length": round(total_length, 2),
        "total_supply_cost": round(supply, 2),
        "total_install_cost": round(install, 2),
        "total_cost": round(total, 2),
    }
