# backend/vn_core/bonuses/evaluator.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Sequence

from vn_core.bonuses import conditions as c
from vn_core.bonuses.context import EvaluationContext
from vn_core.bonuses.ledger import MonthlyLedger

logger = logging.getLogger(__name__)

NO_CONDITIONS_REASON = "no conditions configured (rule applies unconditionally)"

# 24h support system (enhanced) also needs this many burden-reduction measures
ENHANCED_MIN_BURDEN_MEASURES = 2

# Specialty name on the nurse's certification -> specialist_care_type on the visit
SPECIALTY_CARE_TYPES = {
    "緩和ケア": "palliative_care",
    "褥瘡ケア": "pressure_ulcer",
    "人工肛門・人工膀胱ケア": "stoma_care",
    "特定行為研修": "specific_procedures",
}


@dataclass(frozen=True)
class EvaluationEnv:
    """What a condition may see besides the visit context."""
    bonus_code: str
    ledger: MonthlyLedger
    applied_codes: frozenset[str] = frozenset()


@dataclass(frozen=True)
class ConditionOutcome:
    pattern: str
    passed: bool
    reason: str

    def as_trace(self) -> Dict[str, Any]:
        return {"pattern": self.pattern, "passed": self.passed, "reason": self.reason}


@dataclass(frozen=True)
class EvaluationResult:
    passed: bool
    outcomes: tuple[ConditionOutcome, ...] = field(default_factory=tuple)
    reasons: tuple[str, ...] = field(default_factory=tuple)

    def as_trace(self) -> list[Dict[str, Any]]:
        return [o.as_trace() for o in self.outcomes]


Check = tuple[bool, str]
_EVALUATORS: Dict[type, Callable[[Any, EvaluationContext, EvaluationEnv], Check]] = {}


def evaluates(kind: type):
    """
    Register the evaluator for one condition kind.
    Usage:
        @evaluates(c.MonthlyVisitLimit)
        def _monthly_limit(cond, ctx, env): ...
    """
    def _decorator(fn):
        _EVALUATORS[kind] = fn
        return fn
    return _decorator


# -----------------------
# Flags
# -----------------------
def _flag_value(pattern: str, ctx: EvaluationContext) -> Check:
    if pattern == "has_24h_support_system_enhanced":
        measures = len(ctx.burden_reduction_measures)
        if not ctx.has_24h_support_system_enhanced:
            return False, "facility has no enhanced 24h support system registration"
        if measures < ENHANCED_MIN_BURDEN_MEASURES:
            return False, (
                f"enhanced 24h support system needs {ENHANCED_MIN_BURDEN_MEASURES}+ "
                f"burden-reduction measures, facility has {measures}"
            )
        return True, f"enhanced 24h support system with {measures} burden-reduction measures"

    value = bool(getattr(ctx, pattern))
    return value, f"{pattern} is {'set' if value else 'not set'}"


def _with_expectation(check: Check, expected: bool | None) -> Check:
    passed, reason = check
    if expected is None:
        return check
    if passed != expected:
        return False, f"expected {expected}, got {passed} ({reason})"
    return True, f"{reason} (expected {expected})"


@evaluates(c.FlagCondition)
def _flag(cond: c.FlagCondition, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    return _with_expectation(_flag_value(cond.pattern, ctx), cond.expected)


# -----------------------
# Counters / limits
# -----------------------
@evaluates(c.MonthlyVisitLimit)
def _monthly_limit(cond: c.MonthlyVisitLimit, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    used = env.ledger.visits_holding(env.bonus_code, exclude_visit_id=ctx.visit_id)
    if used < cond.limit:
        return True, f"{env.bonus_code} applied to {used} other visit(s) this month (limit {cond.limit})"
    return False, f"monthly limit reached: {env.bonus_code} already applied to {used} visit(s) (limit {cond.limit})"


@evaluates(c.DailyVisitCountAtLeast)
def _daily_count(cond: c.DailyVisitCountAtLeast, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    n = ctx.daily_visit_ordinal
    if n >= cond.count:
        return True, f"visit #{n} of the day >= {cond.count}"
    return False, f"visit #{n} of the day < {cond.count}"


# -----------------------
# Visit fields
# -----------------------
@evaluates(c.FieldNotEmpty)
def _field_not_empty(cond: c.FieldNotEmpty, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    value = (getattr(ctx, cond.field) or "").strip()
    return (True, f"{cond.field} is not empty") if value else (False, f"{cond.field} is empty")


@evaluates(c.FieldEquals)
def _field_equals(cond: c.FieldEquals, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    value = getattr(ctx, cond.field)
    if value == cond.value:
        return True, f"{cond.field} equals {cond.value!r}"
    return False, f"{cond.field} ({value!r}) does not equal {cond.value!r}"


@evaluates(c.VisitDurationAtLeast)
def _duration_gte(cond: c.VisitDurationAtLeast, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    minutes = ctx.duration_minutes
    if minutes is None:
        return False, "visit start/end time not recorded"
    if minutes >= cond.minutes:
        return True, f"visit duration {minutes}min >= {cond.minutes}min"
    return False, f"visit duration {minutes}min < {cond.minutes}min"


@evaluates(c.VisitDurationBelow)
def _duration_lt(cond: c.VisitDurationBelow, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    minutes = ctx.duration_minutes
    if minutes is None:
        return False, "visit start/end time not recorded"
    if minutes < cond.minutes:
        return True, f"visit duration {minutes}min < {cond.minutes}min"
    return False, f"visit duration {minutes}min >= {cond.minutes}min"


@evaluates(c.VisitTimeBand)
def _time_band(cond: c.VisitTimeBand, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    band = ctx.time_band
    if band is None:
        return False, "visit start time not recorded"
    if band == cond.band:
        return True, f"visit starts at {ctx.local_start_hour}h ({band})"
    return False, f"visit starts at {ctx.local_start_hour}h ({band}), not {cond.band}"


# -----------------------
# Patient
# -----------------------
@evaluates(c.AgeBelow)
def _age_lt(cond: c.AgeBelow, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    if ctx.patient_age is None:
        return False, "patient date of birth not recorded"
    if ctx.patient_age < cond.years:
        return True, f"age {ctx.patient_age} < {cond.years}"
    return False, f"age {ctx.patient_age} >= {cond.years}"


@evaluates(c.AgeAtLeast)
def _age_gte(cond: c.AgeAtLeast, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    if ctx.patient_age is None:
        return False, "patient date of birth not recorded"
    if ctx.patient_age >= cond.years:
        return True, f"age {ctx.patient_age} >= {cond.years}"
    return False, f"age {ctx.patient_age} < {cond.years}"


@evaluates(c.PatientHasSpecialManagement)
def _special_management(
    cond: c.PatientHasSpecialManagement, ctx: EvaluationContext, env: EvaluationEnv
) -> Check:
    if not ctx.special_management_types:
        check: Check = (False, "patient has no special-management items")
    elif not ctx.special_management_active:
        check = (False, f"special management not in effect on {ctx.visit_date}")
    else:
        check = (True, f"special management: {', '.join(ctx.special_management_types)}")
    return _with_expectation(check, cond.expected)


@evaluates(c.TerminalCareRequirement)
def _terminal_care(cond: c.TerminalCareRequirement, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    if ctx.death_date is None:
        return False, "patient death date not recorded"
    if ctx.death_date != ctx.visit_date:
        return False, "terminal care bonus only applies to the visit on the date of death"
    if ctx.death_place_code not in cond.death_place_codes:
        return False, (
            f"death place {ctx.death_place_code or '(none)'} not in {list(cond.death_place_codes)}"
        )
    count = ctx.terminal_care_visit_count(cond.window_days)
    if count < cond.min_visits:
        return False, (
            f"{count} terminal-care visit(s) within {cond.window_days} days of death "
            f"({cond.min_visits} required)"
        )
    return True, f"{count} terminal-care visit(s) within {cond.window_days} days of death"


# -----------------------
# Nurse
# -----------------------
@evaluates(c.RequiresSpecializedNurse)
def _specialized_nurse(
    cond: c.RequiresSpecializedNurse, ctx: EvaluationContext, env: EvaluationEnv
) -> Check:
    if ctx.nurse_id is None:
        check: Check = (False, "no nurse recorded on the visit")
    elif ctx.nurse_certifications:
        check = (True, f"nurse certifications: {', '.join(ctx.nurse_certifications)}")
    else:
        check = (False, "nurse has no specialist certification")
    return _with_expectation(check, cond.expected)


@evaluates(c.SpecialtiesMatch)
def _specialties(cond: c.SpecialtiesMatch, ctx: EvaluationContext, env: EvaluationEnv) -> Check:
    if not ctx.specialist_care_type:
        return False, "no specialist care recorded on the visit"
    if ctx.nurse_id is None:
        return False, "no nurse recorded on the visit"
    if not ctx.nurse_certifications:
        return False, "nurse has no specialist certification"

    for specialty in cond.specialties:
        if (
            SPECIALTY_CARE_TYPES.get(specialty) == ctx.specialist_care_type
            and specialty in ctx.nurse_certifications
        ):
            return True, f"specialty match: {specialty}"
    return False, (
        f"specialty mismatch (care: {ctx.specialist_care_type}, "
        f"certifications: {', '.join(ctx.nurse_certifications)})"
    )


# -----------------------
# Same-visit combination
# -----------------------
@evaluates(c.BonusAppliedInSameVisit)
def _applied_same_visit(
    cond: c.BonusAppliedInSameVisit, ctx: EvaluationContext, env: EvaluationEnv
) -> Check:
    if cond.bonus_code in env.applied_codes:
        return True, f"{cond.bonus_code} applied to this visit"
    return False, f"{cond.bonus_code} not applied to this visit"


_unhandled = [k.__name__ for k in c.CONDITION_KINDS if k not in _EVALUATORS]
if _unhandled:
    raise RuntimeError(f"condition kinds without an evaluator: {_unhandled}")


def evaluate(
    conditions: Sequence[c.Condition],
    ctx: EvaluationContext,
    *,
    bonus_code: str,
    ledger: MonthlyLedger,
    applied_codes: frozenset[str] = frozenset(),
) -> EvaluationResult:
    """
    AND of all conditions. Every condition is evaluated and its reason kept,
    even after one has failed.
    """
    if not conditions:
        logger.warning(
            "bonus %s has no conditions and applies unconditionally (visit %s)",
            bonus_code,
            ctx.visit_id,
        )
        return EvaluationResult(passed=True, reasons=(NO_CONDITIONS_REASON,))

    env = EvaluationEnv(bonus_code=bonus_code, ledger=ledger, applied_codes=frozenset(applied_codes))
    outcomes = []
    for cond in conditions:
        passed, reason = _EVALUATORS[type(cond)](cond, ctx, env)
        outcomes.append(ConditionOutcome(pattern=cond.pattern, passed=passed, reason=reason))

    return EvaluationResult(
        passed=all(o.passed for o in outcomes),
        outcomes=tuple(outcomes),
        reasons=tuple(o.reason for o in outcomes),
    )
