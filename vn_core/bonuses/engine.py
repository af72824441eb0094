# backend/vn_core/bonuses/engine.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Sequence
from uuid import UUID

from vn_core.bonuses import catalog
from vn_core.bonuses.catalog import CompiledRule, compile_rule
from vn_core.bonuses.code_selector import select_code
from vn_core.bonuses.context import EvaluationContext
from vn_core.bonuses.errors import BonusEngineError
from vn_core.bonuses.evaluator import evaluate
from vn_core.bonuses.history import DecisionDraft
from vn_core.bonuses.ledger import MonthlyLedger
from vn_core.bonuses.models import BonusRule
from vn_core.bonuses.points import points_for

logger = logging.getLogger(__name__)

# 特別管理加算 I / II: only the code matching the patient's tier applies
SPECIAL_MANAGEMENT_TIER_CODES = {
    "special_management_1": 1,
    "special_management_2": 2,
}


class TraceStatus:
    APPLIED = "applied"
    TIER_MISMATCH = "tier_mismatch"
    NOT_COMBINABLE = "not_combinable"
    CONDITIONS_FAILED = "conditions_failed"
    MISSING_DATA = "missing_data"
    NO_SERVICE_CODE = "no_service_code"
    ZERO_POINTS = "zero_points"


@dataclass(frozen=True)
class RuleTrace:
    bonus_code: str
    rule_id: UUID
    phase: int
    status: str
    reasons: tuple[str, ...]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "bonus_code": self.bonus_code,
            "rule_id": str(self.rule_id),
            "phase": self.phase,
            "status": self.status,
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class VisitEvaluation:
    visit_id: UUID
    decisions: tuple[DecisionDraft, ...]
    trace: tuple[RuleTrace, ...]

    @property
    def applied_codes(self) -> list[str]:
        return [d.bonus_code for d in self.decisions]

    @property
    def total_points(self) -> int:
        return sum(d.calculated_points for d in self.decisions)


def _combination_block(compiled: CompiledRule, applied: Sequence[str]) -> str | None:
    rule = compiled.rule
    allowed = list(rule.can_combine_with or [])
    if allowed and any(code not in allowed for code in applied):
        return f"{rule.bonus_code} can only be combined with: {', '.join(allowed)}"
    blocked = list(rule.cannot_combine_with or [])
    conflicts = [code for code in applied if code in blocked]
    if conflicts:
        return f"{rule.bonus_code} cannot be combined with: {', '.join(conflicts)}"
    return None


class BonusEngine:
    """
    Per-visit pipeline: catalog -> conditions -> service code -> points.

    Rules run in two phases, each in catalogue order:
      1) rules without a bonus_applied_in_same_visit condition
      2) rules that depend on codes applied in phase 1
    Nothing is persisted here; callers hand the decisions to BonusHistory.
    """

    @staticmethod
    def evaluate_visit(
        *,
        ctx: EvaluationContext,
        ledger: MonthlyLedger,
        rules: Sequence[BonusRule] | None = None,
    ) -> VisitEvaluation:
        if rules is None:
            rules = catalog.rules_applicable_to(
                facility_id=ctx.facility_id,
                insurance_type=ctx.insurance_type,
                visit_date=ctx.visit_date,
            )

        compiled_rules: list[CompiledRule] = []
        for rule in rules:
            try:
                compiled_rules.append(compile_rule(rule))
            except BonusEngineError as exc:
                raise exc.attach(visit_id=ctx.visit_id)

        ordered = [r for r in compiled_rules if r.phase == 1] + [r for r in compiled_rules if r.phase == 2]

        decisions: list[DecisionDraft] = []
        trace: list[RuleTrace] = []
        for compiled in ordered:
            applied = [d.bonus_code for d in decisions]
            try:
                entry, decision = BonusEngine._evaluate_rule(compiled, ctx=ctx, ledger=ledger, applied=applied)
            except BonusEngineError as exc:
                raise exc.attach(visit_id=ctx.visit_id, bonus_code=compiled.bonus_code)
            trace.append(entry)
            if decision is not None:
                decisions.append(decision)

        logger.debug(
            "visit %s: %d rule(s) evaluated, applied %s",
            ctx.visit_id,
            len(ordered),
            [d.bonus_code for d in decisions],
        )
        return VisitEvaluation(visit_id=ctx.visit_id, decisions=tuple(decisions), trace=tuple(trace))

    @staticmethod
    def _evaluate_rule(
        compiled: CompiledRule,
        *,
        ctx: EvaluationContext,
        ledger: MonthlyLedger,
        applied: Sequence[str],
    ) -> tuple[RuleTrace, DecisionDraft | None]:
        rule = compiled.rule

        def _trace(status: str, *reasons: str) -> RuleTrace:
            return RuleTrace(
                bonus_code=rule.bonus_code,
                rule_id=rule.id,
                phase=compiled.phase,
                status=status,
                reasons=tuple(reasons),
            )

        tier = SPECIAL_MANAGEMENT_TIER_CODES.get(rule.bonus_code)
        if tier is not None and ctx.special_management_tier != tier:
            return _trace(
                TraceStatus.TIER_MISMATCH,
                f"patient special-management tier is {ctx.special_management_tier}, rule is tier {tier}",
            ), None

        blocked = _combination_block(compiled, applied)
        if blocked:
            return _trace(TraceStatus.NOT_COMBINABLE, blocked), None

        result = evaluate(
            compiled.conditions,
            ctx,
            bonus_code=rule.bonus_code,
            ledger=ledger,
            applied_codes=frozenset(applied),
        )
        if not result.passed:
            return _trace(TraceStatus.CONDITIONS_FAILED, *result.reasons), None

        selection = select_code(compiled, ctx)
        if not selection.selected:
            status = TraceStatus.MISSING_DATA if selection.missing_data else TraceStatus.NO_SERVICE_CODE
            return _trace(status, *result.reasons, selection.reason), None

        points = points_for(compiled, selection)
        if points == 0:
            return _trace(TraceStatus.ZERO_POINTS, *result.reasons, selection.reason, "zero points"), None

        details = {
            "rule_id": str(rule.id),
            "rule_version": rule.version,
            "bonus_name": rule.bonus_name,
            "phase": compiled.phase,
            "branch": selection.branch,
            "conditions": result.as_trace() or [{"pattern": None, "passed": True, "reason": result.reasons[0]}],
            "service_code": selection.as_trace(),
            "points": {"type": rule.points_type, "value": points},
            "is_receipt_recalculation": ctx.is_receipt_recalculation,
        }
        decision = DecisionDraft(
            rule_id=rule.id,
            bonus_code=rule.bonus_code,
            bonus_name=rule.bonus_name,
            calculated_points=points,
            selected_service_code=selection.code or "",
            selection_reason="; ".join([*result.reasons, selection.reason]),
            calculation_details=details,
        )
        return _trace(TraceStatus.APPLIED, *result.reasons, selection.reason), decision
