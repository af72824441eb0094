# backend/vn_core/bonuses/branches.py
"""
Branch specs: how a matched rule derives its branch key.

The same key drives service code selection (BonusRule.service_codes) and
conditional points (BonusRule.points_config), so both always agree.

    {"kind": "duration", "threshold_minutes": 90}     -> short | long
    {"kind": "time_band"}                             -> early_morning | daytime | night | late_night
    {"kind": "flag", "field": "is_discharge_date"}    -> true | false
    {"kind": "age", "bands": [[0, 6], [6, 18], [18, null]]} -> age_0_6 | age_6_18 | age_18_plus
    {"kind": "daily_visit_count"}                     -> visit_1 | visit_2 | visit_3_plus
    {"kind": "monthly_emergency_threshold", "threshold": 14} -> up_to_14 | after_14
    {"kind": "building_occupancy"}                    -> occupancy_1_2 | occupancy_3_plus
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from vn_core.bonuses.conditions import FLAG_PATTERNS
from vn_core.bonuses.conf import engine_setting
from vn_core.bonuses.context import EvaluationContext
from vn_core.bonuses.errors import ConfigurationError, MissingDataError


@dataclass(frozen=True)
class DurationBranch:
    threshold_minutes: int
    kind: str = "duration"


@dataclass(frozen=True)
class TimeBandBranch:
    kind: str = "time_band"


@dataclass(frozen=True)
class FlagBranch:
    field: str
    kind: str = "flag"


@dataclass(frozen=True)
class AgeBranch:
    # (min inclusive, max exclusive | None)
    bands: tuple[tuple[int, int | None], ...]
    kind: str = "age"


@dataclass(frozen=True)
class DailyVisitCountBranch:
    kind: str = "daily_visit_count"


@dataclass(frozen=True)
class MonthlyEmergencyThresholdBranch:
    threshold: int = 14
    kind: str = "monthly_emergency_threshold"


@dataclass(frozen=True)
class BuildingOccupancyBranch:
    kind: str = "building_occupancy"


Branch = (
    DurationBranch
    | TimeBandBranch
    | FlagBranch
    | AgeBranch
    | DailyVisitCountBranch
    | MonthlyEmergencyThresholdBranch
    | BuildingOccupancyBranch
)


def _invalid(kind: str, message: str) -> ConfigurationError:
    return ConfigurationError(f"Branch '{kind}': {message}", details={"branch_kind": kind})


def _check_keys(kind: str, data: Mapping[str, Any], allowed: tuple[str, ...] = ()) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise _invalid(kind, f"unknown key(s) {unknown}")


def _positive(kind: str, value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise _invalid(kind, f"'{name}' must be a positive integer, got {value!r}")
    return value


def _parse_duration(kind: str, data: Mapping[str, Any]) -> Branch:
    _check_keys(kind, data, ("threshold_minutes",))
    threshold = data.get("threshold_minutes")
    if threshold is None:
        threshold = engine_setting("DEFAULT_DURATION_THRESHOLD_MINUTES")
    return DurationBranch(threshold_minutes=_positive(kind, threshold, "threshold_minutes"))


def _parse_flag(kind: str, data: Mapping[str, Any]) -> Branch:
    _check_keys(kind, data, ("field",))
    field = data.get("field")
    if field not in FLAG_PATTERNS:
        raise _invalid(kind, f"field {field!r} is not a known flag")
    return FlagBranch(field=field)


def _parse_age(kind: str, data: Mapping[str, Any]) -> Branch:
    _check_keys(kind, data, ("bands",))
    raw = data.get("bands")
    if not isinstance(raw, (list, tuple)) or not raw:
        raise _invalid(kind, "'bands' must be a non-empty list of [min, max|null]")

    bands: list[tuple[int, int | None]] = []
    for band in raw:
        if not isinstance(band, (list, tuple)) or len(band) != 2:
            raise _invalid(kind, f"band {band!r} must be [min, max|null]")
        low, high = band
        if isinstance(low, bool) or not isinstance(low, int) or low < 0:
            raise _invalid(kind, f"band {band!r} has an invalid min")
        if high is not None and (isinstance(high, bool) or not isinstance(high, int) or high <= low):
            raise _invalid(kind, f"band {band!r} has an invalid max")
        bands.append((low, high))
    return AgeBranch(bands=tuple(bands))


def _parse_emergency_threshold(kind: str, data: Mapping[str, Any]) -> Branch:
    _check_keys(kind, data, ("threshold",))
    return MonthlyEmergencyThresholdBranch(threshold=_positive(kind, data.get("threshold", 14), "threshold"))


def _parse_plain(cls) -> Callable[[str, Mapping[str, Any]], Branch]:
    def _parse(kind: str, data: Mapping[str, Any]) -> Branch:
        _check_keys(kind, data)
        return cls()
    return _parse


_PARSERS: Dict[str, Callable[[str, Mapping[str, Any]], Branch]] = {
    "duration": _parse_duration,
    "time_band": _parse_plain(TimeBandBranch),
    "flag": _parse_flag,
    "age": _parse_age,
    "daily_visit_count": _parse_plain(DailyVisitCountBranch),
    "monthly_emergency_threshold": _parse_emergency_threshold,
    "building_occupancy": _parse_plain(BuildingOccupancyBranch),
}


def parse_branch(raw: Any) -> Branch | None:
    """BonusRule.branch -> Branch, or None for rules without a branch."""
    if not raw:
        return None
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"branch must be an object, got {type(raw).__name__}")

    data = dict(raw)
    kind = data.pop("kind", None)
    parser = _PARSERS.get(kind)
    if parser is None:
        raise ConfigurationError(f"Unknown branch kind: {kind!r}", details={"branch_kind": kind})
    return parser(kind, data)


def branch_key(branch: Branch, ctx: EvaluationContext) -> str:
    """
    Derive the branch key for a visit. Raises MissingDataError when the visit
    lacks the data the branch needs (never guesses a branch).
    """
    if isinstance(branch, DurationBranch):
        minutes = ctx.duration_minutes
        if minutes is None:
            raise MissingDataError("visit start/end time not recorded; cannot pick duration branch")
        # boundary belongs to the short branch
        return "short" if minutes <= branch.threshold_minutes else "long"

    if isinstance(branch, TimeBandBranch):
        band = ctx.time_band
        if band is None:
            raise MissingDataError("visit start time not recorded; cannot pick time band")
        return band

    if isinstance(branch, FlagBranch):
        return "true" if getattr(ctx, branch.field) else "false"

    if isinstance(branch, AgeBranch):
        age = ctx.patient_age
        if age is None:
            raise MissingDataError("patient date of birth not recorded; cannot pick age band")
        for low, high in branch.bands:
            if age >= low and (high is None or age < high):
                return f"age_{low}_plus" if high is None else f"age_{low}_{high}"
        raise ConfigurationError(f"age bands do not cover age {age}", details={"branch_kind": branch.kind})

    if isinstance(branch, DailyVisitCountBranch):
        ordinal = ctx.daily_visit_ordinal
        if ordinal <= 1:
            return "visit_1"
        return "visit_2" if ordinal == 2 else "visit_3_plus"

    if isinstance(branch, MonthlyEmergencyThresholdBranch):
        if ctx.monthly_emergency_ordinal <= branch.threshold:
            return f"up_to_{branch.threshold}"
        return f"after_{branch.threshold}"

    if isinstance(branch, BuildingOccupancyBranch):
        # no building recorded counts as the small-occupancy case
        return "occupancy_1_2" if ctx.same_building_patient_count <= 2 else "occupancy_3_plus"

    raise ConfigurationError(f"Unhandled branch kind: {type(branch).__name__}")
