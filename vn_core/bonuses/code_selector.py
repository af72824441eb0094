# backend/vn_core/bonuses/code_selector.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from vn_core.bonuses.branches import branch_key
from vn_core.bonuses.catalog import CompiledRule
from vn_core.bonuses.context import EvaluationContext
from vn_core.bonuses.errors import ConfigurationError, MissingDataError

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"


@dataclass(frozen=True)
class CodeSelection:
    """
    code:
      - "<service code>" when one was picked
      - ""               when the rule maps no service codes (points only)
      - None             when no code could be picked (decision is skipped)
    """
    code: str | None
    branch: str | None
    reason: str
    missing_data: bool = False

    @property
    def selected(self) -> bool:
        return self.code is not None

    def as_trace(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "branch": self.branch,
            "reason": self.reason,
            "missing_data": self.missing_data,
        }


def _service_codes(compiled: CompiledRule) -> Dict[str, str]:
    codes = compiled.rule.service_codes or {}
    if not isinstance(codes, dict) or not all(
        isinstance(k, str) and isinstance(v, str) and v for k, v in codes.items()
    ):
        raise ConfigurationError(
            "service_codes must map branch keys to non-empty service code strings",
            bonus_code=compiled.bonus_code,
        )
    return codes


def select_code(compiled: CompiledRule, ctx: EvaluationContext) -> CodeSelection:
    """
    Pick the concrete service code for a rule whose conditions passed.
    Pure function of rule + context. Missing visit data is reported as its own
    reason (missing_data=True), distinct from a condition failing.
    """
    key: str | None = None
    if compiled.branch is not None:
        try:
            key = branch_key(compiled.branch, ctx)
        except MissingDataError as exc:
            logger.info(
                "bonus %s skipped for visit %s: %s",
                compiled.bonus_code,
                ctx.visit_id,
                exc.message,
            )
            return CodeSelection(code=None, branch=None, reason=exc.message, missing_data=True)

    codes = _service_codes(compiled)
    if not codes:
        return CodeSelection(code="", branch=key, reason="no service code mapped for this bonus")

    if key is not None and key in codes:
        return CodeSelection(code=codes[key], branch=key, reason=f"branch '{key}' -> {codes[key]}")

    if DEFAULT_KEY in codes:
        label = f"branch '{key}' not mapped" if key is not None else "no branch"
        return CodeSelection(
            code=codes[DEFAULT_KEY],
            branch=key,
            reason=f"{label}; default -> {codes[DEFAULT_KEY]}",
        )

    return CodeSelection(code=None, branch=key, reason=f"no service code for branch {key}")
