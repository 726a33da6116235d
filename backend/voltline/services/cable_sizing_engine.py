"""
cable_sizing_engine.py — Conductor sizing, voltage drop and cable cost.

Standards referenced:
  - SANS 10142-1 (Wiring of premises, low-voltage installations)
  - SANS 1507-3 Table 6.2 (copper) / Table 6.3 (aluminium), PVC insulated,
    600/1000 V armoured cables

The reference tables below have not been signed off by a registered
electrical engineer; every calculation that approaches a limit is flagged
with ``requires_engineer_verification``.

Selection rules:
  - Single cable when the load is within ``max_amps_per_cable``: smallest
    conductor whose rating (for the installation method) covers
    load × safety margin / derating, then upsized until voltage drop passes.
  - Parallel runs above that: every practical cable count is evaluated and
    the cheapest compliant configuration is recommended.
"""

import math
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Tuple, Union

logger = logging.getLogger("voltline-cable-sizing")


# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

DEFAULT_MAX_AMPS_PER_CABLE: float = 400.0
DEFAULT_PREFERRED_AMPS_PER_CABLE: float = 300.0
MAX_PARALLEL_CABLES: int = 8

# Voltage drop limits (% of nominal supply voltage)
VOLT_DROP_LIMIT_THREE_PHASE_PCT: float = 5.0
VOLT_DROP_LIMIT_SINGLE_PHASE_PCT: float = 3.0

# Supplies at or above this line voltage use 3φ volt-drop values (380/400/415 V)
THREE_PHASE_MIN_VOLTAGE: float = 380.0

# Share of a limit at which a "close to limit" warning is raised
VOLT_DROP_WARNING_RATIO: float = 0.8
CURRENT_WARNING_RATIO: float = 0.9

# Derating factors below this are unusual enough to need a second look
MIN_PLAUSIBLE_DERATING: float = 0.5

INSTALLATION_METHODS = ("air", "ducts", "ground")
MATERIALS = ("copper", "aluminium")

_SIZE_RE = re.compile(r"(\d+\.?\d*)")


def _round2(value: float) -> float:
    return round(value, 2)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CableData:
    """One row of a SANS 1507-3 conductor table."""
    size: str
    current_rating_ground: float    # A
    current_rating_ducts: float     # A
    current_rating_air: float       # A
    impedance: float                # Ω/km at 20 °C
    volt_drop_3phase: float         # mV/A/m
    volt_drop_1phase: float         # mV/A/m
    d1_3c: float                    # nominal diameter D1, 3 core (mm)
    d1_4c: float
    d_3c: float                     # armour wire diameter d (mm)
    d_4c: float
    d2_3c: float                    # overall diameter D2 (mm)
    d2_4c: float
    mass_3c: float                  # kg/km
    mass_4c: float
    supply_cost: float              # R/m
    install_cost: float             # R/m

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ValidationWarning:
    type: str                       # "error" | "warning" | "info"
    message: str
    field: Optional[str] = None


@dataclass
class CableAlternative:
    cable_size: str
    cables_in_parallel: int
    load_per_cable: float
    volt_drop_percentage: float
    total_cost: float
    supply_cost: float
    install_cost: float
    is_recommended: bool = False


@dataclass
class CableCalculationParams:
    load_amps: float
    voltage: float
    total_length: float = 0.0                       # m
    cable_type: Optional[str] = None                # "3C" / "4C", informational
    derating_factor: float = 1.0
    material: str = "copper"
    max_amps_per_cable: float = DEFAULT_MAX_AMPS_PER_CABLE
    preferred_amps_per_cable: float = DEFAULT_PREFERRED_AMPS_PER_CABLE
    installation_method: str = "air"
    safety_margin: float = 1.0
    voltage_drop_limit: Optional[float] = None      # %


@dataclass
class CableCalculationResult:
    recommended_size: str
    ohm_per_km: float
    volt_drop: float
    volt_drop_percentage: float
    supply_cost: float
    install_cost: float
    total_cost: float
    cables_in_parallel: int = 1
    load_per_cable: float = 0.0
    recommended_quantity: int = 1
    validation_warnings: List[ValidationWarning] = field(default_factory=list)
    requires_engineer_verification: bool = False
    alternatives: List[CableAlternative] = field(default_factory=list)
    cost_savings: float = 0.0
    capacity_sufficient: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# SANS 1507-3 Table 6.2: copper conductors
#   size, I ground, I ducts, I air, Ω/km, 3φ mV/A/m, 1φ mV/A/m,
#   D1 3c/4c, d 3c/4c, D2 3c/4c, mass 3c/4c, supply R/m, install R/m
# ---------------------------------------------------------------------------
COPPER_CABLE_TABLE: List[CableData] = [
    CableData("1.5mm²", 24, 20, 19, 14.48, 25.080, 28.956, 8.51, 9.33, 1.25, 1.25, 14.13, 14.95, 448, 501, 8.5, 15),
    CableData("2.5mm²", 32, 26, 26, 8.87, 15.363, 17.734, 9.61, 10.56, 1.25, 1.25, 15.23, 16.18, 522, 597, 12, 18),
    CableData("4mm²", 42, 34, 35, 5.52, 9.561, 11.034, 11.40, 12.57, 1.25, 1.25, 17.02, 18.39, 667, 762, 18, 22),
    CableData("6mm²", 53, 43, 45, 3.69, 6.391, 7.374, 12.58, 13.90, 1.25, 1.25, 18.40, 19.72, 790, 910, 25, 28),
    CableData("10mm²", 70, 58, 62, 2.19, 3.793, 4.384, 14.59, 16.14, 1.25, 1.25, 20.41, 21.96, 996, 1169, 38, 35),
    CableData("16mm²", 91, 75, 83, 1.38, 2.390, 2.759, 16.55, 19.18, 1.25, 1.60, 22.37, 25.92, 1295, 1768, 52, 42),
    CableData("25mm²", 119, 96, 110, 0.8749, 1.515, 1.749, 19.46, 21.34, 1.60, 1.60, 26.46, 28.34, 1838, 2196, 75, 55),
    CableData("35mm²", 143, 116, 135, 0.6335, 1.097, 1.267, 20.89, 23.97, 1.60, 1.60, 27.89, 31.17, 2215, 2732, 95, 65),
    CableData("50mm²", 169, 138, 163, 0.4718, 0.817, 0.944, 24.26, 28.14, 1.60, 2.00, 31.46, 36.54, 2871, 3893, 125, 78),
    CableData("70mm²", 210, 171, 207, 0.3325, 0.576, 0.665, 27.07, 31.29, 2.00, 2.00, 35.47, 40.09, 3617, 4837, 165, 95),
    CableData("95mm²", 251, 205, 251, 0.2460, 0.427, 0.492, 31.19, 35.82, 2.00, 2.00, 39.99, 44.62, 4901, 6115, 210, 115),
    CableData("120mm²", 285, 234, 290, 0.2012, 0.348, 0.402, 33.38, 38.10, 2.00, 2.00, 42.18, 47.40, 5720, 7269, 255, 135),
    CableData("150mm²", 320, 263, 332, 0.1698, 0.294, 0.339, 36.68, 42.05, 2.00, 2.50, 45.98, 52.65, 6908, 9250, 310, 155),
    CableData("185mm²", 361, 298, 378, 0.1445, 0.250, 0.289, 40.82, 46.75, 2.50, 2.50, 51.12, 57.45, 8690, 11039, 375, 180),
    CableData("240mm²", 416, 344, 445, 0.1220, 0.211, 0.244, 46.43, 53.06, 2.50, 2.50, 57.13, 64.16, 10767, 13726, 475, 215),
    CableData("300mm²", 465, 385, 510, 0.1090, 0.189, 0.218, 51.10, 58.53, 2.50, 2.50, 62.20, 70.13, 12950, 16544, 580, 250),
]

# ---------------------------------------------------------------------------
# SANS 1507-3 Table 6.3: aluminium conductors (same column order)
# ---------------------------------------------------------------------------
ALUMINIUM_CABLE_TABLE: List[CableData] = [
    CableData("25mm²", 90, 73, 80, 1.4446, 2.502, 2.889, 17.76, 20.65, 1.60, 1.60, 24.76, 27.65, 1301, 1554, 45, 55),
    CableData("35mm²", 108, 87, 99, 1.0465, 1.813, 2.093, 19.33, 21.93, 1.60, 1.60, 26.33, 29.13, 1477, 1757, 58, 65),
    CableData("50mm²", 129, 104, 119, 0.7749, 1.342, 1.549, 21.87, 25.05, 1.60, 1.60, 29.07, 32.25, 1782, 2150, 75, 78),
    CableData("70mm²", 158, 130, 151, 0.5388, 0.933, 1.078, 24.76, 29.27, 1.60, 1.60, 31.96, 37.67, 2132, 2930, 98, 95),
    CableData("95mm²", 192, 157, 186, 0.3934, 0.681, 0.787, 28.68, 33.73, 2.00, 2.00, 37.08, 42.53, 2908, 3647, 125, 115),
    CableData("120mm²", 219, 179, 216, 0.3148, 0.545, 0.629, 31.09, 35.44, 2.00, 2.00, 39.89, 44.24, 3328, 4023, 152, 135),
    CableData("150mm²", 245, 201, 250, 0.2607, 0.452, 0.521, 33.99, 39.39, 2.00, 2.50, 42.79, 49.69, 3837, 5276, 185, 155),
    CableData("185mm²", 278, 229, 287, 0.2133, 0.369, 0.427, 37.80, 44.51, 2.00, 2.50, 47.10, 54.81, 4557, 6231, 222, 180),
    CableData("240mm²", 324, 268, 342, 0.1708, 0.296, 0.342, 42.60, 50.04, 2.50, 2.50, 52.90, 61.14, 5977, 7550, 280, 215),
]

# Copper remains the default table
CABLE_SIZING_TABLE = COPPER_CABLE_TABLE


# ---------------------------------------------------------------------------
# Table helpers
# ---------------------------------------------------------------------------

def normalize_material(material: Optional[str]) -> str:
    """Map free-text material ("Aluminium", "Al/PVC", "Cu") to a table key."""
    if not material:
        return "copper"
    lower = material.strip().lower()
    if lower.startswith("al"):
        return "aluminium"
    return "copper"


def get_cable_table(material: Optional[str] = "copper") -> List[CableData]:
    return ALUMINIUM_CABLE_TABLE if normalize_material(material) == "aluminium" else COPPER_CABLE_TABLE


def get_current_rating(cable: CableData, installation_method: str = "air") -> float:
    """Current rating of ``cable`` for the given installation method (unknown → ducts)."""
    if installation_method == "air":
        return cable.current_rating_air
    if installation_method == "ground":
        return cable.current_rating_ground
    return cable.current_rating_ducts


def find_cable(material: Optional[str], size: str) -> Optional[CableData]:
    for cable in get_cable_table(material):
        if cable.size == size:
            return cable
    return None


def parse_cable_size_mm2(label: Optional[str]) -> Optional[float]:
    """'95mm²' → 95.0, '2.5' → 2.5, garbage → None."""
    if not label:
        return None
    match = _SIZE_RE.search(str(label))
    return float(match.group(1)) if match else None


def is_three_phase(voltage: float) -> bool:
    return voltage >= THREE_PHASE_MIN_VOLTAGE


def default_volt_drop_limit(voltage: float) -> float:
    if is_three_phase(voltage):
        return VOLT_DROP_LIMIT_THREE_PHASE_PCT
    return VOLT_DROP_LIMIT_SINGLE_PHASE_PCT


# ---------------------------------------------------------------------------
# Voltage drop
# ---------------------------------------------------------------------------

def calculate_volt_drop(
    load_amps: float,
    voltage: float,
    total_length: float,
    cable: Union[CableData, float],
) -> float:
    """
    Voltage drop in volts.

    With a ``CableData`` row the SANS mV/A/m value is used:
        Vd = mV/A/m × I × L / 1000   (rounded to 2 dp)
    With a bare impedance (Ω/km):
        Vd = √3 × I × Z × L / 1000   (three-phase)
        Vd = 2 × I × Z × L / 1000    (single-phase)
    """
    if not total_length:
        return 0.0

    if isinstance(cable, CableData):
        mv_per_a_m = cable.volt_drop_3phase if is_three_phase(voltage) else cable.volt_drop_1phase
        return _round2(mv_per_a_m * load_amps * total_length / 1000.0)

    impedance = float(cable)
    if is_three_phase(voltage):
        return math.sqrt(3) * load_amps * impedance * total_length / 1000.0
    return 2.0 * load_amps * impedance * total_length / 1000.0


def volt_drop_percentage(volt_drop: float, voltage: float) -> float:
    return _round2(volt_drop / voltage * 100.0)


def find_cable_with_acceptable_volt_drop(
    cable_table: List[CableData],
    start_cable: CableData,
    load_amps: float,
    voltage: float,
    total_length: float,
    max_volt_drop_pct: Optional[float] = None,
) -> CableData:
    """
    Walk up ``cable_table`` from ``start_cable`` until the voltage drop is
    within ``max_volt_drop_pct``. Returns the largest cable when nothing passes.
    """
    limit = max_volt_drop_pct if max_volt_drop_pct else default_volt_drop_limit(voltage)
    index = next(
        (i for i, c in enumerate(cable_table) if c.size == start_cable.size), 0
    )

    for test_cable in cable_table[index:]:
        vd = calculate_volt_drop(load_amps, voltage, total_length, test_cable)
        if volt_drop_percentage(vd, voltage) <= limit:
            return test_cable

    logger.debug(
        "No cable meets %.2f%% volt drop for %.1fA over %.1fm, using largest",
        limit, load_amps, total_length,
    )
    return cable_table[-1]


def _smallest_adequate(
    cable_table: List[CableData], required_rating: float, installation_method: str
) -> Optional[CableData]:
    for cable in cable_table:
        if get_current_rating(cable, installation_method) >= required_rating:
            return cable
    return None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_cable_calculation(
    cable: CableData,
    load_amps: float,
    voltage: float,
    total_length: float,
    volt_drop_pct: float,
    installation_method: str = "air",
    derating_factor: float = 1.0,
    volt_drop_limit: Optional[float] = None,
) -> Tuple[List[ValidationWarning], bool]:
    """
    Check a selected cable against SANS 10142-1 limits.

    Returns (warnings, requires_engineer_verification). Verification is
    required whenever an error or warning is raised.
    """
    warnings: List[ValidationWarning] = []
    limit = volt_drop_limit or default_volt_drop_limit(voltage)

    # Current carrying capacity (derated)
    derated = get_current_rating(cable, installation_method) * derating_factor
    if load_amps > derated:
        warnings.append(ValidationWarning(
            "error",
            f"Load current {load_amps:.1f}A exceeds derated rating {derated:.1f}A of {cable.size}",
            "cable_size",
        ))
    elif load_amps > derated * CURRENT_WARNING_RATIO:
        warnings.append(ValidationWarning(
            "warning",
            f"Load current {load_amps:.1f}A is close to derated rating {derated:.1f}A of {cable.size}",
            "cable_size",
        ))

    # Voltage drop
    if total_length > 0:
        if volt_drop_pct > limit:
            warnings.append(ValidationWarning(
                "error",
                f"Voltage drop of {volt_drop_pct:.2f}% exceeds {limit}% limit",
                "volt_drop",
            ))
        elif volt_drop_pct > limit * VOLT_DROP_WARNING_RATIO:
            warnings.append(ValidationWarning(
                "warning",
                f"Voltage drop of {volt_drop_pct:.2f}% is close to {limit}% limit",
                "volt_drop",
            ))
    else:
        warnings.append(ValidationWarning(
            "info",
            "No cable length provided, voltage drop not verified",
            "total_length",
        ))

    if derating_factor < MIN_PLAUSIBLE_DERATING:
        warnings.append(ValidationWarning(
            "warning",
            f"Derating factor {derating_factor:.2f} is unusually low, confirm grouping and ambient conditions",
            "derating_factor",
        ))

    requires_verification = any(w.type in ("error", "warning") for w in warnings)
    return warnings, requires_verification


# ---------------------------------------------------------------------------
# Sizing
# ---------------------------------------------------------------------------

def _single_cable_result(
    cable: CableData, load_amps: float, voltage: float, total_length: float
) -> CableCalculationResult:
    vd = calculate_volt_drop(load_amps, voltage, total_length, cable)
    vd_pct = volt_drop_percentage(vd, voltage) if total_length > 0 else 0.0
    length = total_length or 0.0
    supply = _round2(cable.supply_cost * length)
    install = _round2(cable.install_cost * length)
    return CableCalculationResult(
        recommended_size=cable.size,
        ohm_per_km=cable.impedance,
        volt_drop=_round2(vd),
        volt_drop_percentage=vd_pct,
        supply_cost=supply,
        install_cost=install,
        total_cost=_round2(supply + install),
        cables_in_parallel=1,
        load_per_cable=load_amps,
    )


def _check_cable_limits(max_amps_per_cable: float, preferred_amps_per_cable: float, safety_margin: float) -> None:
    for name, value in (
        ("max_amps_per_cable", max_amps_per_cable),
        ("preferred_amps_per_cable", preferred_amps_per_cable),
        ("safety_margin", safety_margin),
    ):
        if value is None or value <= 0:
            raise ValueError(f"{name} must be positive")


def evaluate_parallel_options(
    total_load: float,
    voltage: float,
    total_length: float,
    derating_factor: float,
    max_amps_per_cable: float,
    preferred_amps_per_cable: float,
    cable_table: List[CableData],
    installation_method: str = "air",
    safety_margin: float = 1.15,
    max_volt_drop_pct: float = VOLT_DROP_LIMIT_THREE_PHASE_PCT,
) -> List[CableAlternative]:
    """Every viable parallel configuration from the minimum cable count upwards."""
    _check_cable_limits(max_amps_per_cable, preferred_amps_per_cable, safety_margin)
    alternatives: List[CableAlternative] = []
    length = total_length or 0.0

    min_cables = math.ceil(total_load / max_amps_per_cable)
    max_cables = min(math.ceil(total_load / preferred_amps_per_cable) + 2, MAX_PARALLEL_CABLES)

    for num_cables in range(min_cables, max_cables + 1):
        load_per_cable = total_load / num_cables
        if load_per_cable > max_amps_per_cable:
            continue

        required = load_per_cable / derating_factor * safety_margin
        cable = _smallest_adequate(cable_table, required, installation_method)
        if cable is None:
            continue

        vd_pct = 0.0
        if length > 0:
            cable = find_cable_with_acceptable_volt_drop(
                cable_table, cable, load_per_cable, voltage, length, max_volt_drop_pct
            )
            vd = calculate_volt_drop(load_per_cable, voltage, length, cable)
            vd_pct = volt_drop_percentage(vd, voltage)
            if vd_pct > max_volt_drop_pct:
                continue

        supply_per_cable = _round2(cable.supply_cost * length)
        install_per_cable = _round2(cable.install_cost * length)
        supply_total = _round2(supply_per_cable * num_cables)
        install_total = _round2(install_per_cable * num_cables)

        alternatives.append(CableAlternative(
            cable_size=cable.size,
            cables_in_parallel=num_cables,
            load_per_cable=load_per_cable,
            volt_drop_percentage=vd_pct,
            total_cost=_round2(supply_total + install_total),
            supply_cost=supply_total,
            install_cost=install_total,
        ))

    return alternatives


def calculate_cable_size(params: CableCalculationParams) -> Optional[CableCalculationResult]:
    """
    Recommend a conductor size (and parallel count) for a circuit.

    Returns None when load or voltage is missing, or when no parallel
    configuration can satisfy a high load.
    Raises ValueError for a non-positive per-cable limit or safety margin.
    """
    _check_cable_limits(params.max_amps_per_cable, params.preferred_amps_per_cable, params.safety_margin)
    load = params.load_amps
    voltage = params.voltage
    if not load or load <= 0 or not voltage or voltage <= 0:
        return None

    length = params.total_length or 0.0
    derating = params.derating_factor or 1.0
    method = params.installation_method or "air"
    max_vd_pct = params.voltage_drop_limit or default_volt_drop_limit(voltage)
    table = get_cable_table(params.material)

    logger.debug(
        "Cable sizing: material=%s load=%.1fA voltage=%.0fV length=%.1fm method=%s",
        normalize_material(params.material), load, voltage, length, method,
    )

    if load <= params.max_amps_per_cable:
        required = _round2(load * params.safety_margin / derating)
        cable = _smallest_adequate(table, required, method)
        capacity_sufficient = True

        if cable is None:
            cable = table[-1]
            if get_current_rating(cable, method) < required:
                capacity_sufficient = False
                logger.info(
                    "Largest cable %s cannot carry required %.2fA", cable.size, required
                )

        if length > 0:
            cable = find_cable_with_acceptable_volt_drop(table, cable, load, voltage, length, max_vd_pct)

        result = _single_cable_result(cable, load, voltage, length)
        warnings, needs_verification = validate_cable_calculation(
            cable, load, voltage, length, result.volt_drop_percentage,
            method, derating, max_vd_pct,
        )
        if not capacity_sufficient:
            warnings.insert(0, ValidationWarning(
                "error",
                f"Cable capacity insufficient: {cable.size} cannot safely handle {load}A. "
                "Consider parallel cables or alternative material.",
                "cable_size",
            ))

        result.validation_warnings = warnings
        result.requires_engineer_verification = needs_verification or not capacity_sufficient
        result.capacity_sufficient = capacity_sufficient
        return result

    alternatives = evaluate_parallel_options(
        load, voltage, length, derating,
        params.max_amps_per_cable, params.preferred_amps_per_cable,
        table, method, params.safety_margin, max_vd_pct,
    )
    if not alternatives:
        logger.info("No parallel configuration found for %.1fA at %.0fV", load, voltage)
        return None

    recommended = alternatives[0]
    most_expensive = alternatives[0]
    for alt in alternatives[1:]:
        if alt.total_cost < recommended.total_cost:
            recommended = alt
        if alt.total_cost > most_expensive.total_cost:
            most_expensive = alt
    recommended.is_recommended = True

    cable = find_cable(params.material, recommended.cable_size)
    warnings, needs_verification = validate_cable_calculation(
        cable, recommended.load_per_cable, voltage, length,
        recommended.volt_drop_percentage, method, derating, max_vd_pct,
    )

    return CableCalculationResult(
        recommended_size=recommended.cable_size,
        ohm_per_km=cable.impedance,
        volt_drop=calculate_volt_drop(recommended.load_per_cable, voltage, length, cable),
        volt_drop_percentage=recommended.volt_drop_percentage,
        supply_cost=recommended.supply_cost,
        install_cost=recommended.install_cost,
        total_cost=recommended.total_cost,
        cables_in_parallel=recommended.cables_in_parallel,
        load_per_cable=recommended.load_per_cable,
        recommended_quantity=recommended.cables_in_parallel,
        validation_warnings=warnings,
        requires_engineer_verification=needs_verification,
        alternatives=alternatives,
        cost_savings=_round2(most_expensive.total_cost - recommended.total_cost),
        capacity_sufficient=True,
    )
