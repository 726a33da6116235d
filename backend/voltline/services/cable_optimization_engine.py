"""
Cable optimisation — re-sizes existing schedule entries and looks for
cheaper compliant configurations (fewer / more parallel cables, different
conductor size) priced from the project's cable rates.

Compliance checks per SANS 10142-1:
  1. Derated capacity per cable ≥ design current per cable × safety margin
  2. In ≤ Iz and I2 ≤ 1.45 × Iz (only when the protection device is local)
  3. Voltage drop within the configured limit
  4. Conductor not smaller than the minimum for the protection rating
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from voltline.services.cable_sizing_engine import (
    CableCalculationParams,
    calculate_cable_size,
    find_cable,
    get_current_rating,
    parse_cable_size_mm2,
)

logger = logging.getLogger("voltline-cable-optimizer")

# Breakers above this multiple of the design load are treated as upstream mains
LOCAL_PROTECTION_MAX_RATIO = 3.0
MIN_AMPS_PER_CABLE = 50.0
MAX_PRACTICAL_PARALLEL = 6

# Existing rows are re-sized without grouping derating
RESIZE_DERATING = 1.0

# (protection rating above, minimum conductor mm²), checked top-down
_MIN_SIZE_FOR_PROTECTION = [
    (800, 185.0),
    (630, 150.0),
    (500, 120.0),
    (400, 95.0),
    (315, 70.0),
    (250, 50.0),
    (200, 35.0),
    (160, 25.0),
    (125, 16.0),
    (100, 10.0),
    (63, 6.0),
    (32, 4.0),
    (20, 2.5),
]


@dataclass
class CalculationSettings:
    """Project-wide cable calculation settings (``cable_calculation_settings`` row)."""
    voltage_drop_limit_400v: float = 5.0
    voltage_drop_limit_230v: float = 3.0
    power_factor_power: float = 0.85
    power_factor_lighting: float = 0.95
    power_factor_motor: float = 0.80
    power_factor_hvac: float = 0.85
    ambient_temp_baseline: int = 30
    grouping_factor_2_circuits: float = 0.80
    grouping_factor_3_circuits: float = 0.70
    grouping_factor_4plus_circuits: float = 0.65
    cable_safety_margin: float = 1.15
    max_amps_per_cable: float = 400.0
    preferred_amps_per_cable: float = 300.0
    k_factor_copper: float = 115.0
    k_factor_aluminium: float = 76.0
    default_installation_method: str = "air"
    default_cable_material: str = "Aluminium"
    default_insulation_type: str = "PVC"

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "CalculationSettings":
        """Build settings from a DB row / dict, ignoring unknown and null keys."""
        if not data:
            return cls()
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    def volt_drop_limit_for(self, voltage: float) -> float:
        return self.voltage_drop_limit_400v if voltage >= 380 else self.voltage_drop_limit_230v

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CostBreakdown:
    total: float = 0.0
    supply: float = 0.0
    install: float = 0.0
    termination: float = 0.0


@dataclass
class OptimizationAlternative:
    size: str
    parallel_count: int
    total_cost: float
    supply_cost: float
    install_cost: float
    termination_cost: float
    savings: float
    savings_percent: float
    volt_drop: float
    is_current_config: bool = False
    compliance_report: str = ""


@dataclass
class OptimizationResult:
    cable_id: str
    cable_tag: str
    from_location: str
    to_location: str
    total_length: float
    current_config: Dict[str, Any]
    alternatives: List[OptimizationAlternative] = field(default_factory=list)
    compliance_notes: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_grouping_factor(parallel_count: int, settings: CalculationSettings) -> float:
    if parallel_count <= 1:
        return 1.0
    if parallel_count == 2:
        return settings.grouping_factor_2_circuits
    if parallel_count == 3:
        return settings.grouping_factor_3_circuits
    return settings.grouping_factor_4plus_circuits


def normalize_cable_type(cable_type: str) -> str:
    """'Al/PVC' → 'aluminium', 'Cu/XLPE' → 'copper', anything else lower-cased."""
    lower = (cable_type or "").lower()
    if "al" in lower:
        return "aluminium"
    if "cu" in lower or "copper" in lower:
        return "copper"
    return lower


def material_for_entry(cable_type: Optional[str], settings: CalculationSettings) -> str:
    if cable_type:
        if "Cu" in cable_type or "copper" in cable_type.lower():
            return "copper"
        if "Al" in cable_type or "aluminium" in cable_type.lower():
            return "aluminium"
    return settings.default_cable_material.lower()


def resize_entry(entry: Dict[str, Any], settings: CalculationSettings) -> Optional[Dict[str, Any]]:
    """
    Re-size an existing schedule row from its load, voltage and total length.

    Returns the sized columns to write back, or None when the row has no
    load or voltage or nothing in the table can carry it. A parallel row
    holds its per-cable load, so it re-sizes as one cable of its group.
    """
    load = entry.get("load_amps")
    voltage = entry.get("voltage")
    if not load or not voltage:
        return None

    voltage = float(voltage)
    result = calculate_cable_size(CableCalculationParams(
        load_amps=float(load),
        voltage=voltage,
        total_length=float(entry.get("total_length") or 0),
        material=material_for_entry(entry.get("cable_type"), settings),
        derating_factor=RESIZE_DERATING,
        installation_method=entry.get("installation_method") or settings.default_installation_method,
        safety_margin=settings.cable_safety_margin,
        max_amps_per_cable=settings.max_amps_per_cable,
        preferred_amps_per_cable=settings.preferred_amps_per_cable,
        voltage_drop_limit=settings.volt_drop_limit_for(voltage),
    ))
    if result is None:
        return None

    return {
        "cable_size": result.recommended_size,
        "ohm_per_km": result.ohm_per_km,
        "volt_drop": result.volt_drop,
        "supply_cost": result.supply_cost,
        "install_cost": result.install_cost,
        "total_cost": round(result.supply_cost + result.install_cost, 2),
    }


def _find_rate(cable_size: str, cable_type: str, cable_rates: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for rate in cable_rates:
        if rate.get("cable_size") == cable_size and rate.get("cable_type") == cable_type:
            return rate
    normalized = normalize_cable_type(cable_type)
    for rate in cable_rates:
        if rate.get("cable_size") == cable_size and normalize_cable_type(rate.get("cable_type", "")) == normalized:
            return rate
    return None


def calculate_cost_breakdown(
    cable_size: str,
    cable_type: str,
    length_m: float,
    parallel_count: int,
    cable_rates: List[Dict[str, Any]],
) -> CostBreakdown:
    """Price a configuration from rates; unknown size/type prices at zero."""
    rate = _find_rate(cable_size, cable_type, cable_rates)
    if not rate:
        return CostBreakdown()

    supply = float(rate.get("supply_rate_per_meter") or 0) * length_m * parallel_count
    install = float(rate.get("install_rate_per_meter") or 0) * length_m * parallel_count
    termination = float(rate.get("termination_cost_per_end") or 0) * 2 * parallel_count
    return CostBreakdown(
        total=supply + install + termination,
        supply=supply,
        install=install,
        termination=termination,
    )


def minimum_cable_size_for_protection(protection_rating_a: Optional[float]) -> float:
    if not protection_rating_a:
        return 1.5
    for threshold, size in _MIN_SIZE_FOR_PROTECTION:
        if protection_rating_a > threshold:
            return size
    return 1.5


def _group_key(entry: Dict[str, Any]) -> str:
    return entry.get("parallel_group_id") or entry.get("base_cable_tag") or entry.get("cable_tag")


def _passes_compliance(
    result,
    material: str,
    install_method: str,
    grouping: float,
    parallel_count: int,
    ampacity_per_cable: float,
    target_ampacity: float,
    protection_rating: Optional[float],
    volt_drop_limit: float,
    settings: CalculationSettings,
) -> Optional[float]:
    """Derated capacity per cable when every check passes, else None."""
    cable = find_cable(material, result.recommended_size)
    if cable is None:
        logger.warning("Cable data not found for %s (%s)", result.recommended_size, material)
        return None

    derated_per_cable = get_current_rating(cable, install_method) * grouping
    total_derated = derated_per_cable * parallel_count

    if derated_per_cable < ampacity_per_cable * settings.cable_safety_margin:
        logger.debug("Capacity fail: %s derated %.1fA", cable.size, derated_per_cable)
        return None

    is_local = bool(protection_rating) and protection_rating <= target_ampacity * LOCAL_PROTECTION_MAX_RATIO
    # I2 = 1.45 × In for MCBs, so I2 ≤ 1.45 × Iz reduces to In ≤ Iz
    if is_local and protection_rating > total_derated:
        logger.debug("In ≤ Iz fail: %.0fA > %.1fA", protection_rating, total_derated)
        return None

    if result.volt_drop_percentage > volt_drop_limit:
        return None

    size_mm2 = parse_cable_size_mm2(result.recommended_size) or 0.0
    if protection_rating and size_mm2 < minimum_cable_size_for_protection(protection_rating):
        logger.debug("Minimum size fail: %s for %.0fA breaker", result.recommended_size, protection_rating)
        return None

    return derated_per_cable


def analyze_cable_optimizations(
    cable_entries: List[Dict[str, Any]],
    cable_rates: List[Dict[str, Any]],
    settings: Optional[CalculationSettings] = None,
) -> List[OptimizationResult]:
    """
    Find compliant, cheaper alternatives for each cable (or parallel group)
    in a schedule. Entries without voltage, length or a design current are
    skipped.
    """
    settings = settings or CalculationSettings()
    optimizations: List[OptimizationResult] = []

    groups: Dict[str, Dict[str, Any]] = {}
    for entry in cable_entries:
        groups.setdefault(_group_key(entry), entry)

    for entry in groups.values():
        voltage = entry.get("voltage")
        length = entry.get("total_length")
        if not voltage or not length:
            continue

        current_parallel = entry.get("parallel_total_count") or 1
        protection = entry.get("protection_device_rating")
        load = entry.get("load_amps")
        # Rows of a parallel group carry the per-cable share of the circuit load
        if load and entry.get("parallel_group_id"):
            load = load * current_parallel
        target = load if load and load > 0 else protection
        if not target:
            continue

        material = material_for_entry(entry.get("cable_type"), settings)
        install_method = entry.get("installation_method") or settings.default_installation_method
        vd_limit = settings.volt_drop_limit_for(voltage)
        current_cost = calculate_cost_breakdown(
            entry.get("cable_size") or "", entry.get("cable_type") or "",
            length, current_parallel, cable_rates,
        )

        if current_parallel > 1:
            lo, hi = max(1, current_parallel - 2), min(MAX_PRACTICAL_PARALLEL, current_parallel + 1)
        else:
            lo, hi = 1, MAX_PRACTICAL_PARALLEL

        alternatives: List[OptimizationAlternative] = []
        for count in range(lo, hi + 1):
            per_cable = target / count
            if per_cable < MIN_AMPS_PER_CABLE or per_cable > settings.max_amps_per_cable:
                continue

            grouping = calculate_grouping_factor(count, settings)
            result = calculate_cable_size(CableCalculationParams(
                load_amps=per_cable,
                voltage=voltage,
                total_length=length,
                material=material,
                derating_factor=grouping,
                installation_method=install_method,
                safety_margin=settings.cable_safety_margin,
                max_amps_per_cable=settings.max_amps_per_cable,
                preferred_amps_per_cable=settings.preferred_amps_per_cable,
                voltage_drop_limit=vd_limit,
            ))
            if result is None or not result.capacity_sufficient:
                continue

            derated = _passes_compliance(
                result, material, install_method, grouping, count,
                per_cable, target, protection, vd_limit, settings,
            )
            if derated is None:
                continue

            rate_type = entry.get("cable_type") or ("Copper" if material == "copper" else "Aluminium")
            cost = calculate_cost_breakdown(result.recommended_size, rate_type, length, count, cable_rates)
            savings = current_cost.total - cost.total
            is_current = result.recommended_size == entry.get("cable_size") and count == current_parallel

            report = (
                f"Design: {target:.0f}A | "
                f"CB: {f'{protection:.0f}A' if protection else 'N/A'} | "
                f"Cable: {derated * count:.0f}A ({derated:.0f}A × {count}) | "
                f"Grouping: {grouping * 100:.0f}% | "
                f"Margin: {(derated / per_cable - 1) * 100:.0f}%"
            )

            if is_current or savings > 0:
                alternatives.append(OptimizationAlternative(
                    size=result.recommended_size,
                    parallel_count=count,
                    total_cost=cost.total,
                    supply_cost=cost.supply,
                    install_cost=cost.install,
                    termination_cost=cost.termination,
                    savings=savings,
                    savings_percent=(savings / current_cost.total * 100) if current_cost.total > 0 else 0.0,
                    volt_drop=result.volt_drop_percentage,
                    is_current_config=is_current,
                    compliance_report=report,
                ))

        if not alternatives:
            continue

        alternatives.sort(key=lambda a: a.total_cost)
        if load:
            notes = (
                f"Circuit load: {target:.0f}A. Protection: {protection or 'N/A'}A. "
                "All alternatives meet SANS 10142-1 requirements: In ≤ Iz, I2 ≤ 1.45×Iz, "
                "voltage drop limits, and minimum cable sizing."
            )
        else:
            notes = (
                f"Design based on protection device: {protection}A (load data unavailable). "
                "All alternatives meet SANS 10142-1 compliance checks."
            )

        optimizations.append(OptimizationResult(
            cable_id=str(entry.get("id", "")),
            cable_tag=entry.get("base_cable_tag") or entry.get("cable_tag", ""),
            from_location=entry.get("from_location", ""),
            to_location=entry.get("to_location", ""),
            total_length=length,
            current_config={
                "size": entry.get("cable_size") or "",
                "parallel_count": current_parallel,
                "total_cost": current_cost.total,
                "supply_cost": current_cost.supply,
                "install_cost": current_cost.install,
                "termination_cost": current_cost.termination,
                "voltage": voltage,
                "load_amps": target,
            },
            alternatives=alternatives,
            compliance_notes=notes,
        ))

    logger.info("Cable optimisation: %d of %d cable groups have alternatives", len(optimizations), len(groups))
    return optimizations
