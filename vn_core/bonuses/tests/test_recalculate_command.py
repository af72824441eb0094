from datetime import date
from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from vn_core.bonuses.models import BonusDecision
from vn_core.patients.models import Patient

pytestmark = pytest.mark.django_db


def _run(*args):
    out = StringIO()
    call_command("recalculate_bonuses", *args, stdout=out)
    return out.getvalue()


def test_recalculates_every_patient_of_the_facility(facility, patient, make_visit, make_rule):
    make_rule("always", fixed_points=100)
    other = Patient.objects.create(
        facility=facility,
        patient_number="P-0002",
        last_name="佐藤",
        first_name="花子",
        date_of_birth=date(1950, 1, 1),
        insurance_type="medical",
    )
    make_visit(date(2024, 6, 3))
    make_visit(date(2024, 6, 4), patient=other)
    make_visit(date(2024, 7, 1))

    output = _run("--facility-id", str(facility.id), "--year", "2024", "--month", "6")

    assert "Patients recalculated: 2, decisions: 2, points: 200" in output
    assert BonusDecision.objects.count() == 2


def test_single_patient_dry_run(facility, patient, make_visit, make_rule):
    make_rule("always", fixed_points=100)
    make_visit(date(2024, 6, 3))

    output = _run(
        "--facility-id", str(facility.id),
        "--year", "2024",
        "--month", "6",
        "--patient-id", str(patient.id),
        "--dry-run",
    )

    assert f"{patient.id} 2024-06: visits=1 decisions=1 points=100" in output
    assert "DRY RUN: Patients recalculated: 1" in output
    assert not BonusDecision.objects.exists()


def test_engine_failure_becomes_command_error(facility, patient, make_visit, make_rule):
    make_rule("broken", points_type="fixed", fixed_points=None)
    make_visit(date(2024, 6, 3))

    with pytest.raises(CommandError, match="Recalculation failed"):
        _run("--facility-id", str(facility.id), "--year", "2024", "--month", "6")


def test_rejects_bad_arguments(facility):
    with pytest.raises(CommandError):
        _run("--facility-id", "not-a-uuid", "--year", "2024", "--month", "6")
    with pytest.raises(CommandError):
        _run("--facility-id", str(facility.id), "--year", "2024", "--month", "13")
