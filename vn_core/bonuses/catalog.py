# backend/vn_core/bonuses/catalog.py
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable
from uuid import UUID

from django.db.models import Q

from vn_core.bonuses.branches import Branch, parse_branch
from vn_core.bonuses.conditions import Condition, is_second_phase, parse_conditions
from vn_core.bonuses.errors import ConfigurationError
from vn_core.bonuses.models import BonusRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRule:
    """A BonusRule with its JSON parsed into typed conditions and branch."""
    rule: BonusRule
    conditions: tuple[Condition, ...]
    branch: Branch | None

    @property
    def bonus_code(self) -> str:
        return self.rule.bonus_code

    @property
    def phase(self) -> int:
        return 2 if is_second_phase(self.conditions) else 1


def compile_rule(rule: BonusRule) -> CompiledRule:
    try:
        return CompiledRule(
            rule=rule,
            conditions=parse_conditions(rule.predefined_conditions),
            branch=parse_branch(rule.branch),
        )
    except ConfigurationError as exc:
        exc.details.setdefault("rule_id", str(rule.id))
        raise exc.attach(bonus_code=rule.bonus_code)


def _single(code: str, rows: list[BonusRule], scope: str, visit_date: date) -> BonusRule:
    if len(rows) > 1:
        raise ConfigurationError(
            f"{len(rows)} {scope} rules for '{code}' overlap on {visit_date}",
            bonus_code=code,
            details={"rule_ids": [str(r.id) for r in rows]},
        )
    return rows[0]


def _check_shadow(override: BonusRule, shadowed: Iterable[BonusRule]) -> None:
    """
    A facility override must keep the shape of the active global rule it
    replaces: same insurance type, points type and branch kind.
    """
    for base in shadowed:
        if not base.is_active:
            continue
        mismatched = [
            name
            for name, a, b in (
                ("insurance_type", override.insurance_type, base.insurance_type),
                ("points_type", override.points_type, base.points_type),
                ("branch.kind", (override.branch or {}).get("kind"), (base.branch or {}).get("kind")),
            )
            if a != b
        ]
        if mismatched:
            raise ConfigurationError(
                f"facility rule for '{override.bonus_code}' is structurally incompatible "
                f"with the global rule it shadows ({', '.join(mismatched)})",
                bonus_code=override.bonus_code,
                details={
                    "rule_id": str(override.id),
                    "global_rule_id": str(base.id),
                    "fields": mismatched,
                },
            )


def rules_applicable_to(
    *,
    facility_id: UUID,
    insurance_type: str,
    visit_date: date,
    candidate_codes: Iterable[str] | None = None,
) -> list[BonusRule]:
    """
    Effective rules for a visit, ordered by (display_order, bonus_code).

    Scope resolution per bonus_code:
      - any facility row covering the date shadows the global row;
      - the winner is returned only if active. An inactive facility override
        disables the code at that facility (no fallback to global).
    Inactive rows are loaded on purpose so facility overrides can shadow;
    inactive global rows are ignored.
    """
    qs = BonusRule.objects.filter(
        Q(facility_id=facility_id) | Q(facility__isnull=True),
        valid_from__lte=visit_date,
    ).filter(Q(valid_to__isnull=True) | Q(valid_to__gte=visit_date))

    if candidate_codes is not None:
        qs = qs.filter(bonus_code__in=list(candidate_codes))

    scoped: dict[str, dict[str, list[BonusRule]]] = defaultdict(lambda: {"facility": [], "global": []})
    for rule in qs.order_by("bonus_code", "valid_from", "id"):
        scoped[rule.bonus_code]["global" if rule.is_global else "facility"].append(rule)

    resolved: list[BonusRule] = []
    for code, rows in scoped.items():
        # other insurance's codes are none of our business
        if not any(r.insurance_type == insurance_type for r in rows["facility"] + rows["global"]):
            continue

        if rows["facility"]:
            winner = _single(code, rows["facility"], "facility", visit_date)
            _check_shadow(winner, rows["global"])
            if not winner.is_active and any(r.is_active for r in rows["global"]):
                logger.info(
                    "bonus %s disabled at facility %s by inactive override %s",
                    code,
                    facility_id,
                    winner.id,
                )
        else:
            # a retired global version shadows nothing
            active_global = [r for r in rows["global"] if r.is_active]
            if not active_global:
                continue
            winner = _single(code, active_global, "global", visit_date)

        if winner.is_active and winner.insurance_type == insurance_type:
            resolved.append(winner)

    resolved.sort(key=lambda r: (r.display_order, r.bonus_code))
    return resolved
