import pytest

from vn_core.bonuses import conditions as c
from vn_core.bonuses.errors import ConfigurationError


def test_parse_keeps_order_and_types():
    parsed = c.parse_conditions(
        [
            {"pattern": "has_24h_support_system"},
            {"pattern": "monthly_visit_limit", "value": 1},
            {"pattern": "field_not_empty", "field": "emergency_visit_reason"},
        ]
    )
    assert parsed == (
        c.FlagCondition(pattern="has_24h_support_system"),
        c.MonthlyVisitLimit(limit=1),
        c.FieldNotEmpty(field="emergency_visit_reason"),
    )


def test_legacy_type_key_is_accepted():
    assert c.parse_condition({"type": "is_discharge_date"}) == c.FlagCondition(pattern="is_discharge_date")


def test_none_and_empty_mean_no_conditions():
    assert c.parse_conditions(None) == ()
    assert c.parse_conditions([]) == ()


def test_unknown_pattern_is_configuration_error():
    with pytest.raises(ConfigurationError) as ei:
        c.parse_conditions([{"pattern": "has_24h_suport_system"}])
    assert "Unknown condition pattern" in ei.value.message
    assert ei.value.details["pattern"] == "has_24h_suport_system"


def test_unknown_key_is_configuration_error():
    with pytest.raises(ConfigurationError) as ei:
        c.parse_condition({"pattern": "monthly_visit_limit", "value": 1, "limt": 2})
    assert ei.value.details["unknown_keys"] == ["limt"]


@pytest.mark.parametrize("value", [0, -1, "1", True, None])
def test_monthly_limit_needs_positive_int(value):
    with pytest.raises(ConfigurationError):
        c.parse_condition({"pattern": "monthly_visit_limit", "value": value})


def test_operator_equals_sets_expectation():
    cond = c.parse_condition({"pattern": "has_24h_support_system", "operator": "equals", "value": False})
    assert cond == c.FlagCondition(pattern="has_24h_support_system", expected=False)


def test_operator_requires_boolean_value():
    with pytest.raises(ConfigurationError):
        c.parse_condition({"pattern": "is_discharge_date", "operator": "equals"})
    with pytest.raises(ConfigurationError):
        c.parse_condition({"pattern": "is_discharge_date", "operator": "equals", "value": "yes"})
    with pytest.raises(ConfigurationError):
        c.parse_condition({"pattern": "is_discharge_date", "operator": "gte", "value": True})


def test_field_not_empty_rejects_unknown_field():
    with pytest.raises(ConfigurationError):
        c.parse_condition({"pattern": "field_not_empty", "field": "emergency_reason"})


def test_time_band_aliases_and_validation():
    assert c.parse_condition({"pattern": "care_night_time"}) == c.VisitTimeBand(band="night")
    assert c.parse_condition({"pattern": "medical_late_night_time"}) == c.VisitTimeBand(band="late_night")
    with pytest.raises(ConfigurationError):
        c.parse_condition({"pattern": "visit_time_band", "value": "midnight"})


def test_duration_90plus_alias():
    assert c.parse_condition({"pattern": "care_visit_duration_90plus"}) == c.VisitDurationAtLeast(minutes=90)


def test_terminal_care_defaults_and_window_limit():
    cond = c.parse_condition({"pattern": "terminal_care_requirement", "death_place_codes": ["01"]})
    assert cond == c.TerminalCareRequirement(death_place_codes=("01",), min_visits=2, window_days=14)

    with pytest.raises(ConfigurationError):
        c.parse_condition(
            {"pattern": "terminal_care_requirement", "death_place_codes": ["01"], "window_days": 60}
        )
    with pytest.raises(ConfigurationError):
        c.parse_condition({"pattern": "terminal_care_requirement"})


def test_conflicting_pattern_and_type():
    with pytest.raises(ConfigurationError):
        c.parse_condition({"pattern": "is_discharge_date", "type": "is_second_visit"})


def test_non_list_conditions_rejected():
    with pytest.raises(ConfigurationError):
        c.parse_conditions({"pattern": "is_discharge_date"})


def test_second_phase_detection():
    assert c.is_second_phase(c.parse_conditions([{"pattern": "bonus_applied_in_same_visit", "value": "x"}]))
    assert not c.is_second_phase(c.parse_conditions([{"pattern": "is_discharge_date"}]))
