# backend/vn_core/bonuses/conditions.py
"""
Typed condition kinds for BonusRule.predefined_conditions.

Rule JSON is parsed once into frozen dataclasses. Anything the parser does not
recognise (pattern, key, value shape) is a ConfigurationError instead of a
condition that silently never fires.

Stored shape:
    [
      {"pattern": "has_24h_support_system"},
      {"pattern": "has_24h_support_system", "operator": "equals", "value": false},
      {"pattern": "monthly_visit_limit", "value": 1},
      {"pattern": "field_not_empty", "field": "emergency_visit_reason"},
      {"pattern": "visit_time_band", "value": "night"},
      {"pattern": "terminal_care_requirement", "death_place_codes": ["01", "16"]},
    ]
"type" is accepted in place of "pattern" (older master rows).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping

from vn_core.bonuses.errors import ConfigurationError

# Boolean attributes of the evaluation context a flag condition may read.
FLAG_PATTERNS = frozenset(
    {
        "is_discharge_date",
        "is_first_visit_of_plan",
        "has_collaboration_record",
        "is_terminal_care",
        "is_second_visit",
        "is_first_visit_of_month",
        "has_building",
        "has_24h_support_system",
        "has_24h_support_system_enhanced",
        "has_emergency_support_system",
        "has_emergency_support_system_enhanced",
    }
)

# Free-text visit fields field_not_empty / field_equals may inspect.
TEXT_FIELDS = frozenset(
    {
        "emergency_visit_reason",
        "multiple_visit_reason",
        "long_visit_reason",
        "specialist_care_type",
    }
)

TIME_BANDS = ("early_morning", "daytime", "night", "late_night")

# Legacy per-insurance time band patterns map onto visit_time_band.
_TIME_BAND_ALIASES = {
    "care_early_morning_time": "early_morning",
    "care_night_time": "night",
    "care_late_night_time": "late_night",
    "medical_early_morning_time": "early_morning",
    "medical_night_time": "night",
    "medical_late_night_time": "late_night",
}


@dataclass(frozen=True)
class FlagCondition:
    pattern: str
    expected: bool | None = None


@dataclass(frozen=True)
class MonthlyVisitLimit:
    limit: int
    pattern: str = "monthly_visit_limit"


@dataclass(frozen=True)
class FieldNotEmpty:
    field: str
    pattern: str = "field_not_empty"


@dataclass(frozen=True)
class FieldEquals:
    field: str
    value: str
    pattern: str = "field_equals"


@dataclass(frozen=True)
class VisitDurationAtLeast:
    minutes: int
    pattern: str = "visit_duration_gte"


@dataclass(frozen=True)
class VisitDurationBelow:
    minutes: int
    pattern: str = "visit_duration_lt"


@dataclass(frozen=True)
class AgeBelow:
    years: int
    pattern: str = "age_lt"


@dataclass(frozen=True)
class AgeAtLeast:
    years: int
    pattern: str = "age_gte"


@dataclass(frozen=True)
class DailyVisitCountAtLeast:
    count: int
    pattern: str = "daily_visit_count_gte"


@dataclass(frozen=True)
class VisitTimeBand:
    band: str
    pattern: str = "visit_time_band"


@dataclass(frozen=True)
class PatientHasSpecialManagement:
    expected: bool | None = None
    pattern: str = "patient_has_special_management"


@dataclass(frozen=True)
class RequiresSpecializedNurse:
    expected: bool | None = None
    pattern: str = "requires_specialized_nurse"


@dataclass(frozen=True)
class SpecialtiesMatch:
    specialties: tuple[str, ...]
    pattern: str = "specialties_match"


@dataclass(frozen=True)
class TerminalCareRequirement:
    death_place_codes: tuple[str, ...]
    min_visits: int = 2
    window_days: int = 14
    pattern: str = "terminal_care_requirement"


@dataclass(frozen=True)
class BonusAppliedInSameVisit:
    bonus_code: str
    pattern: str = "bonus_applied_in_same_visit"


Condition = (
    FlagCondition
    | MonthlyVisitLimit
    | FieldNotEmpty
    | FieldEquals
    | VisitDurationAtLeast
    | VisitDurationBelow
    | AgeBelow
    | AgeAtLeast
    | DailyVisitCountAtLeast
    | VisitTimeBand
    | PatientHasSpecialManagement
    | RequiresSpecializedNurse
    | SpecialtiesMatch
    | TerminalCareRequirement
    | BonusAppliedInSameVisit
)

CONDITION_KINDS: tuple[type, ...] = (
    FlagCondition,
    MonthlyVisitLimit,
    FieldNotEmpty,
    FieldEquals,
    VisitDurationAtLeast,
    VisitDurationBelow,
    AgeBelow,
    AgeAtLeast,
    DailyVisitCountAtLeast,
    VisitTimeBand,
    PatientHasSpecialManagement,
    RequiresSpecializedNurse,
    SpecialtiesMatch,
    TerminalCareRequirement,
    BonusAppliedInSameVisit,
)

# Longest window the context builder loads terminal-care visits for.
MAX_TERMINAL_WINDOW_DAYS = 31


# -----------------------
# Value helpers
# -----------------------
def _invalid(pattern: str, message: str, **details: Any) -> ConfigurationError:
    return ConfigurationError(
        f"Condition '{pattern}': {message}",
        details={"pattern": pattern, **details},
    )


def _check_keys(pattern: str, data: Mapping[str, Any], *, allowed: Iterable[str] = ()) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise _invalid(pattern, f"unknown key(s) {unknown}", unknown_keys=unknown)


def _require(pattern: str, data: Mapping[str, Any], key: str) -> Any:
    if key not in data or data[key] is None:
        raise _invalid(pattern, f"'{key}' is required")
    return data[key]


def _int(pattern: str, value: Any, *, minimum: int = 0, name: str = "value") -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise _invalid(pattern, f"'{name}' must be an integer, got {value!r}")
    if value < minimum:
        raise _invalid(pattern, f"'{name}' must be >= {minimum}, got {value}")
    return value


def _str_list(pattern: str, value: Any, *, name: str) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)) or not value:
        raise _invalid(pattern, f"'{name}' must be a non-empty list")
    if not all(isinstance(v, str) and v for v in value):
        raise _invalid(pattern, f"'{name}' must contain only non-empty strings")
    return tuple(value)


def _expectation(pattern: str, data: Mapping[str, Any]) -> bool | None:
    """
    Optional {"operator": "equals", "value": <bool>} asserting the predicate
    outcome against an explicit boolean.
    """
    operator = data.get("operator")
    if operator is not None and operator != "equals":
        raise _invalid(pattern, f"unsupported operator {operator!r} (only 'equals')")

    if "value" not in data:
        if operator is not None:
            raise _invalid(pattern, "operator 'equals' requires a boolean 'value'")
        return None

    value = data["value"]
    if not isinstance(value, bool):
        raise _invalid(pattern, f"'value' must be a boolean, got {value!r}")
    return value


# -----------------------
# Per-pattern parsers
# -----------------------
def _parse_flag(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("operator", "value"))
    return FlagCondition(pattern=pattern, expected=_expectation(pattern, data))


def _parse_monthly_limit(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    return MonthlyVisitLimit(limit=_int(pattern, _require(pattern, data, "value"), minimum=1))


def _parse_text_field(pattern: str, data: Mapping[str, Any]) -> str:
    field = _require(pattern, data, "field")
    if field not in TEXT_FIELDS:
        raise _invalid(pattern, f"field {field!r} is not one of {sorted(TEXT_FIELDS)}")
    return field


def _parse_field_not_empty(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("field",))
    return FieldNotEmpty(field=_parse_text_field(pattern, data))


def _parse_field_equals(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("field", "value", "operator"))
    if data.get("operator") not in (None, "equals"):
        raise _invalid(pattern, f"unsupported operator {data['operator']!r} (only 'equals')")
    value = _require(pattern, data, "value")
    if not isinstance(value, str):
        raise _invalid(pattern, f"'value' must be a string, got {value!r}")
    return FieldEquals(field=_parse_text_field(pattern, data), value=value)


def _parse_duration_gte(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    return VisitDurationAtLeast(minutes=_int(pattern, _require(pattern, data, "value")))


def _parse_duration_lt(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    return VisitDurationBelow(minutes=_int(pattern, _require(pattern, data, "value"), minimum=1))


def _parse_duration_90plus(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data)
    return VisitDurationAtLeast(minutes=90)


def _parse_age_lt(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    return AgeBelow(years=_int(pattern, _require(pattern, data, "value"), minimum=1))


def _parse_age_gte(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    return AgeAtLeast(years=_int(pattern, _require(pattern, data, "value")))


def _parse_daily_count(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    return DailyVisitCountAtLeast(count=_int(pattern, _require(pattern, data, "value"), minimum=1))


def _parse_time_band(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    band = _require(pattern, data, "value")
    if band not in TIME_BANDS:
        raise _invalid(pattern, f"time band {band!r} is not one of {list(TIME_BANDS)}")
    return VisitTimeBand(band=band)


def _parse_time_band_alias(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data)
    return VisitTimeBand(band=_TIME_BAND_ALIASES[pattern])


def _parse_special_management(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("operator", "value"))
    return PatientHasSpecialManagement(expected=_expectation(pattern, data))


def _parse_specialized_nurse(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("operator", "value"))
    return RequiresSpecializedNurse(expected=_expectation(pattern, data))


def _parse_specialties(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    return SpecialtiesMatch(specialties=_str_list(pattern, _require(pattern, data, "value"), name="value"))


def _parse_terminal_care(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("death_place_codes", "min_visits", "window_days"))
    window_days = _int(pattern, data.get("window_days", 14), minimum=0, name="window_days")
    if window_days > MAX_TERMINAL_WINDOW_DAYS:
        raise _invalid(pattern, f"'window_days' must be <= {MAX_TERMINAL_WINDOW_DAYS}")
    return TerminalCareRequirement(
        death_place_codes=_str_list(
            pattern, _require(pattern, data, "death_place_codes"), name="death_place_codes"
        ),
        min_visits=_int(pattern, data.get("min_visits", 2), minimum=1, name="min_visits"),
        window_days=window_days,
    )


def _parse_applied_in_same_visit(pattern: str, data: Mapping[str, Any]) -> Condition:
    _check_keys(pattern, data, allowed=("value",))
    code = _require(pattern, data, "value")
    if not isinstance(code, str) or not code:
        raise _invalid(pattern, "'value' must be a bonus code")
    return BonusAppliedInSameVisit(bonus_code=code)


_PARSERS: Dict[str, Callable[[str, Mapping[str, Any]], Condition]] = {
    **{p: _parse_flag for p in FLAG_PATTERNS},
    **{p: _parse_time_band_alias for p in _TIME_BAND_ALIASES},
    "monthly_visit_limit": _parse_monthly_limit,
    "field_not_empty": _parse_field_not_empty,
    "field_equals": _parse_field_equals,
    "visit_duration_gte": _parse_duration_gte,
    "visit_duration_lt": _parse_duration_lt,
    "care_visit_duration_90plus": _parse_duration_90plus,
    "age_lt": _parse_age_lt,
    "age_gte": _parse_age_gte,
    "daily_visit_count_gte": _parse_daily_count,
    "visit_time_band": _parse_time_band,
    "patient_has_special_management": _parse_special_management,
    "requires_specialized_nurse": _parse_specialized_nurse,
    "specialties_match": _parse_specialties,
    "terminal_care_requirement": _parse_terminal_care,
    "bonus_applied_in_same_visit": _parse_applied_in_same_visit,
}

KNOWN_PATTERNS = frozenset(_PARSERS)


def parse_condition(raw: Any, *, index: int = 0) -> Condition:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(
            f"Condition #{index} must be an object, got {type(raw).__name__}",
            details={"index": index},
        )

    data = dict(raw)
    pattern = data.pop("pattern", None)
    legacy = data.pop("type", None)
    if pattern and legacy and pattern != legacy:
        raise ConfigurationError(
            f"Condition #{index} has conflicting pattern {pattern!r} and type {legacy!r}",
            details={"index": index},
        )
    pattern = pattern or legacy
    if not pattern:
        raise ConfigurationError(f"Condition #{index} has no pattern", details={"index": index})

    parser = _PARSERS.get(pattern)
    if parser is None:
        raise ConfigurationError(
            f"Unknown condition pattern: {pattern!r}",
            details={"pattern": pattern, "index": index},
        )
    return parser(pattern, data)


def parse_conditions(raw: Any) -> tuple[Condition, ...]:
    """
    BonusRule.predefined_conditions -> typed conditions, order preserved.
    None / [] means "no conditions".
    """
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError(
            f"predefined_conditions must be a list, got {type(raw).__name__}",
        )
    return tuple(parse_condition(item, index=i) for i, item in enumerate(raw))


def is_second_phase(conditions: Iterable[Condition]) -> bool:
    """Rules that look at codes applied to the same visit run after the others."""
    return any(isinstance(c, BonusAppliedInSameVisit) for c in conditions)
