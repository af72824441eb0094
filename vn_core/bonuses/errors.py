# backend/vn_core/bonuses/errors.py
from __future__ import annotations

from typing import Any, Dict
from uuid import UUID


class BonusEngineError(Exception):
    """
    Base for every failure the bonus engine reports.

    visit_id / bonus_code are filled in as the error travels up through the
    pipeline so the caller can tell which visit and rule triggered it.
    """

    default_code = "bonus_engine_error"

    def __init__(
        self,
        message: str,
        *,
        visit_id: UUID | str | None = None,
        bonus_code: str | None = None,
        details: Dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.visit_id = visit_id
        self.bonus_code = bonus_code
        self.details = dict(details or {})

    def attach(self, *, visit_id=None, bonus_code=None) -> "BonusEngineError":
        if self.visit_id is None and visit_id is not None:
            self.visit_id = visit_id
        if self.bonus_code is None and bonus_code is not None:
            self.bonus_code = bonus_code
        return self

    def as_dict(self) -> Dict[str, Any]:
        return {
            "visit_id": str(self.visit_id) if self.visit_id else None,
            "bonus_code": self.bonus_code,
            **self.details,
        }

    def __str__(self) -> str:
        where = []
        if self.visit_id:
            where.append(f"visit={self.visit_id}")
        if self.bonus_code:
            where.append(f"bonus={self.bonus_code}")
        return f"{self.message} ({', '.join(where)})" if where else self.message


class ConfigurationError(BonusEngineError):
    """Rule master data is unusable. Fatal, never retried."""

    default_code = "bonus_configuration_error"


class MissingDataError(BonusEngineError):
    """Visit lacks data needed to pick a branch. Skips one rule, not the batch."""

    default_code = "bonus_missing_data"


class ConcurrencyError(BonusEngineError):
    """The patient-month lock is held by another recalculation."""

    default_code = "recalculation_locked"


class IntegrityViolation(BonusEngineError):
    """Duplicate (visit, bonus_code) survived delete-then-insert. Logic bug."""

    default_code = "bonus_integrity_violation"
