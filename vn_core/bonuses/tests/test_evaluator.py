import logging
import uuid
from datetime import date, timedelta

from vn_core.bonuses.conditions import parse_conditions
from vn_core.bonuses.evaluator import NO_CONDITIONS_REASON, evaluate
from vn_core.bonuses.ledger import MonthlyLedger
from vn_core.bonuses.tests.helpers import make_ctx


def _eval(conditions, ctx, *, ledger=None, applied=(), bonus_code="bonus_x"):
    return evaluate(
        parse_conditions(conditions),
        ctx,
        bonus_code=bonus_code,
        ledger=ledger or MonthlyLedger(),
        applied_codes=frozenset(applied),
    )


def test_empty_conditions_pass_loudly(caplog):
    ctx = make_ctx()
    with caplog.at_level(logging.WARNING, logger="vn_core.bonuses.evaluator"):
        result = _eval([], ctx)

    assert result.passed
    assert result.reasons == (NO_CONDITIONS_REASON,)
    assert "applies unconditionally" in caplog.text


def test_every_condition_is_evaluated_after_a_failure():
    ctx = make_ctx(is_discharge_date=False, has_24h_support_system=True)
    result = _eval(
        [{"pattern": "is_discharge_date"}, {"pattern": "has_24h_support_system"}],
        ctx,
    )

    assert not result.passed
    assert [o.passed for o in result.outcomes] == [False, True]
    assert len(result.reasons) == 2


def test_operator_equals_false_inverts_flag():
    assert _eval(
        [{"pattern": "has_24h_support_system", "operator": "equals", "value": False}],
        make_ctx(has_24h_support_system=False),
    ).passed
    assert not _eval(
        [{"pattern": "has_24h_support_system", "operator": "equals", "value": False}],
        make_ctx(has_24h_support_system=True),
    ).passed


def test_monthly_limit_counts_other_visits_in_ledger():
    ctx = make_ctx()
    ledger = MonthlyLedger()
    cond = [{"pattern": "monthly_visit_limit", "value": 1}]

    assert _eval(cond, ctx, ledger=ledger, bonus_code="b").passed

    # this visit's own earlier row does not count
    ledger.record(ctx.visit_id, ["b"])
    assert _eval(cond, ctx, ledger=ledger, bonus_code="b").passed

    other = make_ctx()
    ledger.record(other.visit_id, ["b"])
    result = _eval(cond, ctx, ledger=ledger, bonus_code="b")
    assert not result.passed
    assert "monthly limit reached" in result.reasons[0]


def test_24h_enhanced_needs_two_burden_measures():
    cond = [{"pattern": "has_24h_support_system_enhanced"}]
    assert not _eval(cond, make_ctx(has_24h_support_system_enhanced=True, burden_reduction_measures=("a",))).passed
    assert _eval(cond, make_ctx(has_24h_support_system_enhanced=True, burden_reduction_measures=("a", "b"))).passed
    assert not _eval(cond, make_ctx(has_24h_support_system_enhanced=False, burden_reduction_measures=("a", "b"))).passed


def test_duration_conditions_and_missing_timestamps():
    assert _eval([{"pattern": "visit_duration_gte", "value": 90}], make_ctx(minutes=90)).passed
    assert not _eval([{"pattern": "visit_duration_gte", "value": 90}], make_ctx(minutes=89)).passed
    assert _eval([{"pattern": "visit_duration_lt", "value": 90}], make_ctx(minutes=89)).passed

    result = _eval([{"pattern": "visit_duration_gte", "value": 90}], make_ctx(start=None))
    assert not result.passed
    assert result.reasons == ("visit start/end time not recorded",)


def test_time_band_uses_facility_local_hour():
    assert _eval([{"pattern": "visit_time_band", "value": "early_morning"}], make_ctx(start=(6, 30))).passed
    assert _eval([{"pattern": "visit_time_band", "value": "daytime"}], make_ctx(start=(8, 0))).passed
    assert _eval([{"pattern": "visit_time_band", "value": "night"}], make_ctx(start=(21, 59))).passed
    assert _eval([{"pattern": "visit_time_band", "value": "late_night"}], make_ctx(start=(22, 0))).passed
    assert _eval([{"pattern": "visit_time_band", "value": "late_night"}], make_ctx(start=(5, 0))).passed
    assert not _eval([{"pattern": "visit_time_band", "value": "night"}], make_ctx(start=(17, 0))).passed


def test_field_not_empty_and_age():
    assert _eval(
        [{"pattern": "field_not_empty", "field": "emergency_visit_reason"}],
        make_ctx(emergency_visit_reason="発熱"),
    ).passed
    assert not _eval(
        [{"pattern": "field_not_empty", "field": "emergency_visit_reason"}],
        make_ctx(emergency_visit_reason="  "),
    ).passed

    assert _eval([{"pattern": "age_lt", "value": 6}], make_ctx(patient_age=5)).passed
    assert not _eval([{"pattern": "age_lt", "value": 6}], make_ctx(patient_age=6)).passed
    assert not _eval([{"pattern": "age_gte", "value": 6}], make_ctx(patient_age=None)).passed


def test_special_management_window():
    day = date(2024, 6, 10)
    cond = [{"pattern": "patient_has_special_management"}]
    assert _eval(cond, make_ctx(visit_date=day, special_management_types=("tracheostomy",))).passed
    assert not _eval(cond, make_ctx(visit_date=day)).passed
    assert not _eval(
        cond,
        make_ctx(
            visit_date=day,
            special_management_types=("tracheostomy",),
            special_management_end=day - timedelta(days=1),
        ),
    ).passed


def test_specialties_match_needs_certified_nurse_and_matching_care():
    cond = [{"pattern": "specialties_match", "value": ["緩和ケア", "褥瘡ケア"]}]
    nurse_id = uuid.uuid4()
    assert _eval(
        cond,
        make_ctx(nurse_id=nurse_id, nurse_certifications=("緩和ケア",), specialist_care_type="palliative_care"),
    ).passed
    assert not _eval(
        cond,
        make_ctx(nurse_id=nurse_id, nurse_certifications=("緩和ケア",), specialist_care_type="pressure_ulcer"),
    ).passed
    assert not _eval(cond, make_ctx(nurse_id=nurse_id, specialist_care_type="palliative_care")).passed


def test_terminal_care_requirement():
    death = date(2024, 6, 20)
    cond = [{"pattern": "terminal_care_requirement", "death_place_codes": ["01", "16"]}]
    ok = make_ctx(
        visit_date=death,
        death_date=death,
        death_place_code="01",
        terminal_care_visit_dates=(death - timedelta(days=20), death - timedelta(days=3), death),
    )
    assert _eval(cond, ok).passed

    # the visit 20 days before death is outside the 14-day window
    too_few = make_ctx(
        visit_date=death,
        death_date=death,
        death_place_code="01",
        terminal_care_visit_dates=(death - timedelta(days=20), death),
    )
    assert not _eval(cond, too_few).passed

    wrong_place = make_ctx(
        visit_date=death,
        death_date=death,
        death_place_code="02",
        terminal_care_visit_dates=(death, death),
    )
    assert not _eval(cond, wrong_place).passed

    not_death_day = make_ctx(visit_date=death - timedelta(days=1), death_date=death, death_place_code="01")
    assert not _eval(cond, not_death_day).passed


def test_bonus_applied_in_same_visit():
    cond = [{"pattern": "bonus_applied_in_same_visit", "value": "discharge_joint_guidance"}]
    assert _eval(cond, make_ctx(), applied=["discharge_joint_guidance"]).passed
    assert not _eval(cond, make_ctx(), applied=["other"]).passed


def test_daily_visit_count():
    cond = [{"pattern": "daily_visit_count_gte", "value": 2}]
    assert not _eval(cond, make_ctx(daily_visit_ordinal=1)).passed
    assert _eval(cond, make_ctx(daily_visit_ordinal=2)).passed
