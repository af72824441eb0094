# backend/vn_core/bonuses/points.py
from __future__ import annotations

from vn_core.bonuses.catalog import CompiledRule
from vn_core.bonuses.code_selector import CodeSelection
from vn_core.bonuses.errors import ConfigurationError
from vn_core.bonuses.models import PointsType


def _as_points(value, *, compiled: CompiledRule, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            f"{where} must be an integer number of points, got {value!r}",
            bonus_code=compiled.bonus_code,
        )
    return value


def points_for(compiled: CompiledRule, selection: CodeSelection) -> int:
    """
    fixed       -> rule.fixed_points
    conditional -> rule.points_config[selection.branch]

    A missing table entry is a ConfigurationError, never 0: silently
    under-billing is worse than failing the recalculation.
    """
    rule = compiled.rule

    if rule.points_type == PointsType.FIXED:
        if rule.fixed_points is None:
            raise ConfigurationError("fixed rule has no fixed_points", bonus_code=rule.bonus_code)
        return _as_points(rule.fixed_points, compiled=compiled, where="fixed_points")

    if rule.points_type == PointsType.CONDITIONAL:
        if selection.branch is None:
            raise ConfigurationError(
                "conditional rule has no branch to look up in points_config",
                bonus_code=rule.bonus_code,
            )
        table = rule.points_config or {}
        if not isinstance(table, dict) or selection.branch not in table:
            raise ConfigurationError(
                f"points_config has no entry for branch '{selection.branch}'",
                bonus_code=rule.bonus_code,
                details={"branch": selection.branch},
            )
        return _as_points(table[selection.branch], compiled=compiled, where=f"points_config['{selection.branch}']")

    raise ConfigurationError(f"Unknown points_type: {rule.points_type!r}", bonus_code=rule.bonus_code)
