# backend/vn_core/bonuses/ledger.py
from __future__ import annotations

from collections import defaultdict
from typing import Iterable
from uuid import UUID

from vn_core.bonuses.models import BonusDecision


class MonthlyLedger:
    """
    Bonus codes applied per visit so far in one patient-month.

    monthly_visit_limit counts against this ledger, never against a live
    query of bonuses_bonus_decision. During a recalculation the ledger starts
    empty and only grows with visits already processed in billing order, so
    stale rows of later visits cannot count.
    """

    def __init__(self) -> None:
        self._codes_by_visit: dict[UUID, frozenset[str]] = {}
        self._visits_by_code: dict[str, set[UUID]] = defaultdict(set)

    @classmethod
    def from_history(cls, *, visit_ids: Iterable[UUID]) -> "MonthlyLedger":
        """
        Seed from persisted decisions (single-visit calculation). Pass the
        other eligible visits of the month, not the visit being calculated.
        """
        ledger = cls()
        codes: dict[UUID, set[str]] = defaultdict(set)
        rows = BonusDecision.objects.filter(visit_id__in=list(visit_ids)).values_list("visit_id", "bonus_code")
        for visit_id, bonus_code in rows:
            codes[visit_id].add(bonus_code)
        for visit_id, visit_codes in codes.items():
            ledger.record(visit_id, visit_codes)
        return ledger

    def record(self, visit_id: UUID, codes: Iterable[str]) -> None:
        """Replace the codes held by visit_id."""
        for code in self._codes_by_visit.get(visit_id, frozenset()):
            self._visits_by_code[code].discard(visit_id)
        new_codes = frozenset(codes)
        self._codes_by_visit[visit_id] = new_codes
        for code in new_codes:
            self._visits_by_code[code].add(visit_id)

    def visits_holding(self, bonus_code: str, *, exclude_visit_id: UUID | None = None) -> int:
        visits = self._visits_by_code.get(bonus_code, set())
        if exclude_visit_id is not None and exclude_visit_id in visits:
            return len(visits) - 1
        return len(visits)
