# backend/vn_core/conftest.py
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from django.contrib.auth import get_user_model
from django.db.models import QuerySet
from rest_framework.test import APIClient

from vn_core.bonuses.models import BonusDecision, BonusRule
from vn_core.facilities.models import Facility, Nurse
from vn_core.patients.models import Patient
from vn_core.visits.models import NursingVisit, VisitStatus

JST = ZoneInfo("Asia/Tokyo")


def jst(day: date, hour: int, minute: int = 0) -> datetime:
    """Facility-local (JST) aware datetime on the given day."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=JST)


@pytest.fixture
def facility(db):
    return Facility.objects.create(code="main", name="Main Station")


@pytest.fixture
def other_facility(db):
    return Facility.objects.create(code="other", name="Other Station")


@pytest.fixture
def nurse(db, facility):
    return Nurse.objects.create(facility=facility, full_name="看護 花子")


@pytest.fixture
def patient(db, facility):
    return Patient.objects.create(
        facility=facility,
        patient_number="P-0001",
        last_name="山田",
        first_name="太郎",
        date_of_birth=date(1940, 4, 1),
        insurance_type="medical",
    )


@pytest.fixture
def user(db):
    User = get_user_model()
    return User.objects.create_user(username="testuser", password="testpass", is_active=True)


@pytest.fixture
def api_client(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def make_visit(db, facility, patient, nurse):
    """
    make_visit(date(2024, 6, 1), start=(10, 0), minutes=30, **fields)
    start=None leaves both timestamps empty.
    """
    def _make(visit_date, *, start=(10, 0), minutes=30, **fields):
        start_time = end_time = None
        if start is not None:
            start_time = jst(visit_date, *start)
            end_time = start_time + timedelta(minutes=minutes)
        defaults = {
            "facility": facility,
            "patient": patient,
            "nurse": nurse,
            "status": VisitStatus.COMPLETED,
            "visit_date": visit_date,
            "start_time": start_time,
            "end_time": end_time,
        }
        defaults.update(fields)
        return NursingVisit.objects.create(**defaults)

    return _make


@pytest.fixture
def make_rule(db):
    """
    make_rule("24h_response_system_basic", fixed_points=652, predefined_conditions=[...])
    Global, medical, fixed-points rule valid from 2024-01-01 unless overridden.
    """
    def _make(bonus_code, **fields):
        defaults = {
            "bonus_code": bonus_code,
            "bonus_name": bonus_code,
            "insurance_type": "medical",
            "valid_from": date(2024, 1, 1),
            "points_type": "fixed",
            "fixed_points": 100,
            "predefined_conditions": [],
            "is_active": True,
        }
        defaults.update(fields)
        return BonusRule.objects.create(**defaults)

    return _make


@pytest.fixture
def decisions_survive_delete(monkeypatch):
    """Turn BonusDecision deletes into no-ops so the unique constraint has to catch the clash."""
    original = QuerySet.delete

    def _delete(self):
        if self.model is BonusDecision:
            return 0, {}
        return original(self)

    monkeypatch.setattr(QuerySet, "delete", _delete)
