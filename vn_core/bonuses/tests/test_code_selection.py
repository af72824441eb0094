from dataclasses import replace
from datetime import date, timedelta

import pytest

from vn_core.bonuses.branches import parse_branch
from vn_core.bonuses.catalog import compile_rule
from vn_core.bonuses.code_selector import select_code
from vn_core.bonuses.errors import ConfigurationError
from vn_core.bonuses.models import BonusRule
from vn_core.bonuses.points import points_for
from vn_core.bonuses.tests.helpers import make_ctx


def _rule(**fields) -> BonusRule:
    defaults = {
        "bonus_code": "discharge_support_guidance",
        "bonus_name": "退院支援指導加算",
        "insurance_type": "medical",
        "valid_from": date(2024, 1, 1),
        "points_type": "fixed",
        "fixed_points": 6000,
    }
    defaults.update(fields)
    return BonusRule(**defaults)


DURATION_CODES = {"short": "550001170", "long": "550001270"}


@pytest.mark.parametrize(
    "minutes, branch, code",
    [
        (90, "short", "550001170"),
        (91, "long", "550001270"),
        (30, "short", "550001170"),
    ],
)
def test_duration_branch_boundary_is_inclusive_on_short(minutes, branch, code):
    rule = compile_rule(_rule(branch={"kind": "duration"}, service_codes=DURATION_CODES))
    selection = select_code(rule, make_ctx(minutes=minutes))

    assert selection.branch == branch
    assert selection.code == code


def test_duration_seconds_are_floored():
    # 90m59s is still 90 minutes
    ctx = make_ctx(minutes=90)
    ctx = replace(ctx, end_time=ctx.end_time + timedelta(seconds=59))
    rule = compile_rule(_rule(branch={"kind": "duration"}, service_codes=DURATION_CODES))
    assert select_code(rule, ctx).branch == "short"


def test_missing_timestamps_is_its_own_reason():
    rule = compile_rule(_rule(branch={"kind": "duration"}, service_codes=DURATION_CODES))
    selection = select_code(rule, make_ctx(start=None))

    assert not selection.selected
    assert selection.missing_data
    assert "start/end time not recorded" in selection.reason


def test_default_mapping_and_unmapped_branch():
    rule = compile_rule(
        _rule(branch={"kind": "time_band"}, service_codes={"night": "510003970", "default": "510000000"})
    )
    assert select_code(rule, make_ctx(start=(19, 0))).code == "510003970"
    assert select_code(rule, make_ctx(start=(10, 0))).code == "510000000"

    no_default = compile_rule(_rule(branch={"kind": "time_band"}, service_codes={"night": "510003970"}))
    selection = select_code(no_default, make_ctx(start=(10, 0)))
    assert selection.code is None
    assert selection.reason == "no service code for branch daytime"


def test_rule_without_service_codes_records_empty_code():
    selection = select_code(compile_rule(_rule()), make_ctx())
    assert selection.selected
    assert selection.code == ""


def test_emergency_threshold_and_occupancy_keys():
    emergency = compile_rule(
        _rule(
            branch={"kind": "monthly_emergency_threshold"},
            service_codes={"up_to_14": "510002470", "after_14": "510004570"},
        )
    )
    assert select_code(emergency, make_ctx(monthly_emergency_ordinal=14)).code == "510002470"
    assert select_code(emergency, make_ctx(monthly_emergency_ordinal=15)).code == "510004570"

    occupancy = compile_rule(_rule(branch={"kind": "building_occupancy"}))
    assert select_code(occupancy, make_ctx(same_building_patient_count=0)).branch == "occupancy_1_2"
    assert select_code(occupancy, make_ctx(same_building_patient_count=3)).branch == "occupancy_3_plus"


def test_age_and_daily_count_branches():
    age = compile_rule(_rule(branch={"kind": "age", "bands": [[0, 6], [6, None]]}))
    assert select_code(age, make_ctx(patient_age=5)).branch == "age_0_6"
    assert select_code(age, make_ctx(patient_age=80)).branch == "age_6_plus"
    assert select_code(age, make_ctx(patient_age=None)).missing_data

    daily = compile_rule(_rule(branch={"kind": "daily_visit_count"}))
    assert select_code(daily, make_ctx(daily_visit_ordinal=1)).branch == "visit_1"
    assert select_code(daily, make_ctx(daily_visit_ordinal=2)).branch == "visit_2"
    assert select_code(daily, make_ctx(daily_visit_ordinal=4)).branch == "visit_3_plus"


def test_unknown_branch_kind_is_configuration_error():
    with pytest.raises(ConfigurationError):
        parse_branch({"kind": "weekday"})
    with pytest.raises(ConfigurationError):
        parse_branch({"kind": "duration", "threshold": 90})


def test_conditional_points_use_the_same_branch_key():
    rule = compile_rule(
        _rule(
            points_type="conditional",
            fixed_points=None,
            branch={"kind": "time_band"},
            points_config={"night": 2100, "late_night": 4200},
        )
    )
    selection = select_code(rule, make_ctx(start=(23, 0)))
    assert points_for(rule, selection) == 4200


def test_conditional_points_missing_branch_is_hard_error():
    rule = compile_rule(
        _rule(
            points_type="conditional",
            fixed_points=None,
            branch={"kind": "time_band"},
            points_config={"night": 2100},
        )
    )
    selection = select_code(rule, make_ctx(start=(10, 0)))
    with pytest.raises(ConfigurationError) as ei:
        points_for(rule, selection)
    assert ei.value.bonus_code == "discharge_support_guidance"
    assert "daytime" in ei.value.message


def test_fixed_rule_without_points_is_configuration_error():
    rule = compile_rule(_rule(fixed_points=None))
    with pytest.raises(ConfigurationError):
        points_for(rule, select_code(rule, make_ctx()))
