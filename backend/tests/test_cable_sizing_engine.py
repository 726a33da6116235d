"""
test_cable_sizing_engine.py — Unit tests for the SANS 10142-1 cable sizing engine.

Tests cover:
  - Reference tables: SANS 1507-3 copper / aluminium ordering and lookups
  - Helpers: material normalisation, current rating by method, size parsing
  - calculate_volt_drop: mV/A/m (table row) and impedance (Ω/km) forms
  - find_cable_with_acceptable_volt_drop: upsizing until the limit passes
  - validate_cable_calculation: errors, warnings and the verification flag
  - calculate_cable_size: single cable selection, derating, safety margin,
    installation method, custom volt-drop limit, parallel cables

All tests are pure unit tests; no database or external services required.
"""

import math
import pytest

from voltline.services.cable_sizing_engine import (
    ALUMINIUM_CABLE_TABLE,
    COPPER_CABLE_TABLE,
    CableCalculationParams,
    calculate_cable_size,
    calculate_volt_drop,
    default_volt_drop_limit,
    evaluate_parallel_options,
    find_cable,
    find_cable_with_acceptable_volt_drop,
    get_cable_table,
    get_current_rating,
    is_three_phase,
    normalize_material,
    parse_cable_size_mm2,
    validate_cable_calculation,
    volt_drop_percentage,
)


# ===========================================================================
# Class 1: Reference tables
# ===========================================================================

class TestReferenceTables:
    """SANS 1507-3 tables are ordered smallest to largest conductor."""

    def test_copper_sizes_ascending(self):
        sizes = [parse_cable_size_mm2(c.size) for c in COPPER_CABLE_TABLE]
        assert sizes == sorted(sizes)
        assert COPPER_CABLE_TABLE[0].size == "1.5mm²"
        assert COPPER_CABLE_TABLE[-1].size == "300mm²"

    def test_aluminium_starts_at_25mm(self):
        """Aluminium armoured cable is not manufactured below 25 mm²."""
        assert ALUMINIUM_CABLE_TABLE[0].size == "25mm²"
        assert ALUMINIUM_CABLE_TABLE[-1].size == "240mm²"

    def test_ratings_increase_with_size(self):
        for table in (COPPER_CABLE_TABLE, ALUMINIUM_CABLE_TABLE):
            air = [c.current_rating_air for c in table]
            assert air == sorted(air)

    def test_get_cable_table_by_material(self):
        assert get_cable_table("Aluminium") is ALUMINIUM_CABLE_TABLE
        assert get_cable_table("copper") is COPPER_CABLE_TABLE
        assert get_cable_table(None) is COPPER_CABLE_TABLE

    def test_find_cable(self):
        cable = find_cable("copper", "16mm²")
        assert cable is not None
        assert cable.current_rating_air == 83
        assert find_cable("aluminium", "16mm²") is None

    def test_cable_data_to_dict(self):
        data = find_cable("aluminium", "95mm²").to_dict()
        assert data["size"] == "95mm²"
        assert data["current_rating_ground"] == 192


# ===========================================================================
# Class 2: Helpers
# ===========================================================================

class TestHelpers:
    """Material, rating, size and phase helpers."""

    @pytest.mark.parametrize("raw, expected", [
        ("Aluminium", "aluminium"),
        ("Al/PVC", "aluminium"),
        ("ALUMINUM", "aluminium"),
        ("Cu", "copper"),
        ("Copper", "copper"),
        ("", "copper"),
        (None, "copper"),
    ])
    def test_normalize_material(self, raw, expected):
        assert normalize_material(raw) == expected

    def test_current_rating_by_method(self):
        cable = find_cable("copper", "25mm²")
        assert get_current_rating(cable, "air") == 110
        assert get_current_rating(cable, "ground") == 119
        assert get_current_rating(cable, "ducts") == 96

    def test_unknown_method_uses_ducts(self):
        """Ducts is the most conservative column, used for anything unknown."""
        cable = find_cable("copper", "25mm²")
        assert get_current_rating(cable, "tray") == cable.current_rating_ducts

    @pytest.mark.parametrize("label, expected", [
        ("95mm²", 95.0),
        ("2.5mm²", 2.5),
        ("2.5", 2.5),
        ("4C x 185", 4.0),
        ("n/a", None),
        (None, None),
    ])
    def test_parse_cable_size(self, label, expected):
        assert parse_cable_size_mm2(label) == expected

    def test_three_phase_threshold(self):
        assert is_three_phase(400)
        assert is_three_phase(380)
        assert not is_three_phase(230)

    def test_default_volt_drop_limits(self):
        assert default_volt_drop_limit(400) == 5.0
        assert default_volt_drop_limit(230) == 3.0

    def test_415v_supply_sized_as_three_phase(self):
        """380-415 V line voltages all take the 3φ column and the 5% limit."""
        cable = find_cable("copper", "16mm²")
        assert default_volt_drop_limit(415) == 5.0
        assert calculate_volt_drop(10, 415, 100, cable) == 2.39


# ===========================================================================
# Class 3: Voltage drop
# ===========================================================================

class TestVoltDrop:
    """Vd = mV/A/m × I × L / 1000, or from impedance with √3 / 2 multipliers."""

    def test_three_phase_from_table(self):
        """16 mm² Cu, 3φ 2.390 mV/A/m × 10 A × 100 m = 2.39 V."""
        cable = find_cable("copper", "16mm²")
        assert calculate_volt_drop(10, 400, 100, cable) == 2.39

    def test_single_phase_from_table(self):
        """16 mm² Cu, 1φ 2.759 mV/A/m × 10 A × 100 m = 2.759 V → 2.76 V."""
        cable = find_cable("copper", "16mm²")
        assert calculate_volt_drop(10, 230, 100, cable) == 2.76

    def test_zero_length_has_no_drop(self):
        cable = find_cable("copper", "16mm²")
        assert calculate_volt_drop(100, 400, 0, cable) == 0.0

    def test_impedance_three_phase(self):
        expected = math.sqrt(3) * 100 * 0.5 * 200 / 1000
        assert abs(calculate_volt_drop(100, 400, 200, 0.5) - expected) < 0.001

    def test_impedance_single_phase(self):
        assert abs(calculate_volt_drop(100, 230, 200, 0.5) - 20.0) < 0.001

    def test_percentage(self):
        assert volt_drop_percentage(8.0, 400) == 2.0
        assert volt_drop_percentage(6.9, 230) == 3.0

    def test_upsizes_until_limit_passes(self):
        """50 A at 230 V over 100 m needs 35 mm² Cu to stay within 3%."""
        start = find_cable("copper", "10mm²")
        cable = find_cable_with_acceptable_volt_drop(COPPER_CABLE_TABLE, start, 50, 230, 100)
        assert cable.size == "35mm²"

    def test_custom_limit_is_honoured(self):
        """With a 5% limit 25 mm² (≈3.8%) is enough for the same circuit."""
        start = find_cable("copper", "10mm²")
        cable = find_cable_with_acceptable_volt_drop(COPPER_CABLE_TABLE, start, 50, 230, 100, 5.0)
        assert cable.size == "25mm²"

    def test_largest_cable_when_nothing_passes(self):
        start = COPPER_CABLE_TABLE[0]
        cable = find_cable_with_acceptable_volt_drop(COPPER_CABLE_TABLE, start, 300, 230, 1000)
        assert cable.size == COPPER_CABLE_TABLE[-1].size


# ===========================================================================
# Class 4: Validation
# ===========================================================================

class TestValidation:
    """validate_cable_calculation flags overloads, volt drop and odd derating."""

    def test_clean_result_needs_no_verification(self):
        cable = find_cable("copper", "10mm²")
        warnings, verify = validate_cable_calculation(cable, 50, 400, 20, 0.95)
        assert warnings == []
        assert verify is False

    def test_overload_is_an_error(self):
        cable = find_cable("copper", "10mm²")
        warnings, verify = validate_cable_calculation(cable, 70, 400, 20, 1.0)
        assert warnings[0].type == "error"
        assert warnings[0].field == "cable_size"
        assert verify is True

    def test_close_to_rating_is_a_warning(self):
        """60 A on a 62 A cable is above the 90% warning threshold."""
        cable = find_cable("copper", "10mm²")
        warnings, verify = validate_cable_calculation(cable, 60, 400, 20, 1.0)
        assert [w.type for w in warnings] == ["warning"]
        assert verify is True

    def test_derating_reduces_capacity(self):
        cable = find_cable("copper", "10mm²")
        warnings, _ = validate_cable_calculation(cable, 50, 400, 20, 1.0, derating_factor=0.7)
        assert warnings[0].type == "error"

    def test_volt_drop_over_limit(self):
        cable = find_cable("copper", "10mm²")
        warnings, verify = validate_cable_calculation(cable, 20, 230, 100, 3.5)
        assert any(w.type == "error" and w.field == "volt_drop" for w in warnings)
        assert verify is True

    def test_volt_drop_close_to_limit(self):
        """2.5% against a 3% limit is above the 80% warning threshold."""
        cable = find_cable("copper", "10mm²")
        warnings, _ = validate_cable_calculation(cable, 20, 230, 100, 2.5)
        assert any(w.type == "warning" and w.field == "volt_drop" for w in warnings)

    def test_missing_length_is_info_only(self):
        cable = find_cable("copper", "10mm²")
        warnings, verify = validate_cable_calculation(cable, 20, 400, 0, 0.0)
        assert [w.type for w in warnings] == ["info"]
        assert warnings[0].field == "total_length"
        assert verify is False

    def test_low_derating_warning(self):
        cable = find_cable("copper", "95mm²")
        warnings, verify = validate_cable_calculation(cable, 20, 400, 10, 0.1, derating_factor=0.4)
        assert any(w.field == "derating_factor" for w in warnings)
        assert verify is True


# ===========================================================================
# Class 5: Single cable sizing
# ===========================================================================

class TestSingleCableSizing:
    """calculate_cable_size for loads within max_amps_per_cable."""

    def test_basic_copper_selection(self):
        """50 A, 400 V, 20 m in air → 10 mm² Cu (62 A), well within volt drop."""
        result = calculate_cable_size(CableCalculationParams(load_amps=50, voltage=400, total_length=20))
        assert result.recommended_size == "10mm²"
        assert result.cables_in_parallel == 1
        assert result.ohm_per_km == 2.19
        assert result.volt_drop_percentage <= 1.0
        assert result.capacity_sufficient is True
        assert result.requires_engineer_verification is False

    def test_costs_from_table_rates(self):
        """10 mm² Cu: supply R38/m, install R35/m over 20 m."""
        result = calculate_cable_size(CableCalculationParams(load_amps=50, voltage=400, total_length=20))
        assert result.supply_cost == 760.0
        assert result.install_cost == 700.0
        assert result.total_cost == 1460.0

    def test_safety_margin_upsizes(self):
        """50 A × 1.3 = 65 A exceeds the 62 A of 10 mm², so 16 mm² is chosen."""
        result = calculate_cable_size(CableCalculationParams(
            load_amps=50, voltage=400, total_length=20, safety_margin=1.3,
        ))
        assert result.recommended_size == "16mm²"

    def test_derating_upsizes(self):
        """50 A / 0.8 = 62.5 A exceeds 62 A."""
        result = calculate_cable_size(CableCalculationParams(
            load_amps=50, voltage=400, total_length=20, derating_factor=0.8,
        ))
        assert result.recommended_size == "16mm²"

    def test_installation_method_changes_rating(self):
        """45 A fits 6 mm² in air (45 A) and ground (53 A) but not ducts (43 A)."""
        sizes = {
            method: calculate_cable_size(CableCalculationParams(
                load_amps=45, voltage=400, installation_method=method,
            )).recommended_size
            for method in ("air", "ground", "ducts")
        }
        assert sizes == {"air": "6mm²", "ground": "6mm²", "ducts": "10mm²"}

    def test_volt_drop_upsizes_long_run(self):
        result = calculate_cable_size(CableCalculationParams(load_amps=50, voltage=230, total_length=100))
        assert result.recommended_size == "35mm²"
        assert result.volt_drop_percentage <= 3.0

    def test_custom_volt_drop_limit(self):
        result = calculate_cable_size(CableCalculationParams(
            load_amps=50, voltage=230, total_length=100, voltage_drop_limit=5.0,
        ))
        assert result.recommended_size == "25mm²"

    def test_aluminium_selection(self):
        """100 A in air on aluminium → 35 mm² (99 A) is short, 50 mm² (119 A) fits."""
        result = calculate_cable_size(CableCalculationParams(
            load_amps=100, voltage=400, material="Aluminium",
        ))
        assert result.recommended_size == "50mm²"

    def test_no_length_gives_zero_costs_and_info(self):
        result = calculate_cable_size(CableCalculationParams(load_amps=50, voltage=400))
        assert result.volt_drop == 0.0
        assert result.total_cost == 0.0
        assert any(w.type == "info" for w in result.validation_warnings)

    def test_capacity_insufficient(self):
        """390 A on aluminium exceeds the 342 A of the largest (240 mm²) cable."""
        result = calculate_cable_size(CableCalculationParams(
            load_amps=390, voltage=400, material="aluminium",
        ))
        assert result.recommended_size == "240mm²"
        assert result.capacity_sufficient is False
        assert result.requires_engineer_verification is True
        assert result.validation_warnings[0].type == "error"
        assert "insufficient" in result.validation_warnings[0].message

    @pytest.mark.parametrize("load, voltage", [(0, 400), (-5, 400), (50, 0), (None, 400)])
    def test_missing_inputs_return_none(self, load, voltage):
        assert calculate_cable_size(CableCalculationParams(load_amps=load, voltage=voltage)) is None

    def test_to_dict_serialises_warnings(self):
        result = calculate_cable_size(CableCalculationParams(load_amps=60, voltage=400, total_length=20))
        data = result.to_dict()
        assert isinstance(data["validation_warnings"], list)
        assert set(data["validation_warnings"][0]) == {"type", "message", "field"}


# ===========================================================================
# Class 6: Parallel cables
# ===========================================================================

class TestParallelCables:
    """
    600 A copper, 400 V, 100 m in air, max 400 A / preferred 300 A per cable.

      2 × 150 mm²: (310 + 155) × 100 × 2 = R93 000
      3 × 70 mm²:  (165 +  95) × 100 × 3 = R78 000   ← cheapest
      4 × 50 mm²:  (125 +  78) × 100 × 4 = R81 200
    """

    @pytest.fixture
    def result(self):
        return calculate_cable_size(CableCalculationParams(load_amps=600, voltage=400, total_length=100))

    def test_cheapest_configuration_recommended(self, result):
        assert result.cables_in_parallel == 3
        assert result.recommended_quantity == 3
        assert result.recommended_size == "70mm²"
        assert result.total_cost == 78000.0

    def test_load_shared_equally(self, result):
        assert result.load_per_cable == 200.0

    def test_every_option_listed(self, result):
        options = [(a.cables_in_parallel, a.cable_size, a.total_cost) for a in result.alternatives]
        assert options == [
            (2, "150mm²", 93000.0),
            (3, "70mm²", 78000.0),
            (4, "50mm²", 81200.0),
        ]
        assert [a.is_recommended for a in result.alternatives] == [False, True, False]

    def test_savings_against_most_expensive(self, result):
        assert result.cost_savings == 15000.0

    def test_parallel_result_is_validated(self, result):
        """200 A per cable on a 207 A conductor is close to its rating."""
        assert any(w.type == "warning" for w in result.validation_warnings)
        assert result.requires_engineer_verification is True

    def test_unachievable_load_returns_none(self):
        """10 000 A would need more than the 8-cable practical maximum."""
        assert calculate_cable_size(CableCalculationParams(load_amps=10000, voltage=400)) is None

    @pytest.mark.parametrize("field", ["max_amps_per_cable", "preferred_amps_per_cable", "safety_margin"])
    def test_non_positive_limits_rejected(self, field):
        params = CableCalculationParams(load_amps=600, voltage=400, total_length=100)
        setattr(params, field, 0)
        with pytest.raises(ValueError, match=field):
            calculate_cable_size(params)

    def test_parallel_options_reject_zero_max(self):
        with pytest.raises(ValueError, match="max_amps_per_cable"):
            evaluate_parallel_options(600, 400, 100, 1.0, 0, 300, COPPER_CABLE_TABLE)
