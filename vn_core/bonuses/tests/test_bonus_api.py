from datetime import date

import pytest
from rest_framework.test import APIClient

from vn_core.bonuses.models import BonusDecision

pytestmark = pytest.mark.django_db


def _month_params(patient, facility, **extra):
    return {"patient": str(patient.id), "facility": str(facility.id), "year": 2024, "month": 6, **extra}


def test_calculate_visit_endpoint(api_client, make_visit, make_rule):
    make_rule("always", fixed_points=300, service_codes={"default": "550000010"})
    visit = make_visit(date(2024, 6, 3))

    resp = api_client.post(f"/api/v1/visits/{visit.id}/bonuses/calculate/", {}, format="json")

    assert resp.status_code == 200
    assert len(resp.data) == 1
    row = resp.data[0]
    assert row["bonus_code"] == "always"
    assert row["calculated_points"] == 300
    assert row["selected_service_code"] == "550000010"
    assert row["visit_date"] == "2024-06-03"


def test_calculate_unknown_visit_is_404(api_client):
    resp = api_client.post(
        "/api/v1/visits/00000000-0000-0000-0000-000000000999/bonuses/calculate/", {}, format="json"
    )

    assert resp.status_code == 404
    assert resp.data["error"]["code"] == "not_found"
    assert resp.data["error"]["request_id"]


def test_recalculate_month_endpoint(api_client, facility, patient, make_visit, make_rule):
    make_rule("limited_bonus", fixed_points=652, predefined_conditions=[{"pattern": "monthly_visit_limit", "value": 1}])
    v1 = make_visit(date(2024, 6, 3))
    v2 = make_visit(date(2024, 6, 10))

    resp = api_client.post("/api/v1/bonuses/recalculate-month/", _month_params(patient, facility), format="json")

    assert resp.status_code == 200
    assert resp.data["decision_count"] == 1
    assert resp.data["total_points"] == 652
    assert resp.data["dry_run"] is False
    assert [v["visit_id"] for v in resp.data["visits"]] == [str(v1.id), str(v2.id)]
    assert resp.data["visits"][0]["bonus_codes"] == ["limited_bonus"]
    assert resp.data["visits"][1]["bonus_codes"] == []


def test_recalculate_month_dry_run(api_client, facility, patient, make_visit, make_rule):
    make_rule("always")
    make_visit(date(2024, 6, 3))

    resp = api_client.post(
        "/api/v1/bonuses/recalculate-month/",
        _month_params(patient, facility, dry_run=True),
        format="json",
    )

    assert resp.status_code == 200
    assert resp.data["dry_run"] is True
    assert resp.data["decision_count"] == 1
    assert not BonusDecision.objects.exists()


def test_configuration_error_maps_to_422(api_client, facility, patient, make_visit, make_rule):
    make_rule(
        "time_bonus",
        points_type="conditional",
        fixed_points=None,
        branch={"kind": "time_band"},
        points_config={"daytime": 100},
    )
    visit = make_visit(date(2024, 6, 3), start=(20, 0))

    resp = api_client.post("/api/v1/bonuses/recalculate-month/", _month_params(patient, facility), format="json")

    assert resp.status_code == 422
    err = resp.data["error"]
    assert err["code"] == "bonus_configuration_error"
    assert err["details"]["visit_id"] == str(visit.id)
    assert err["details"]["bonus_code"] == "time_bonus"
    assert err["details"]["branch"] == "night"


def test_recalculate_month_validates_input(api_client, facility, patient):
    resp = api_client.post(
        "/api/v1/bonuses/recalculate-month/",
        _month_params(patient, facility, month=13),
        format="json",
    )

    assert resp.status_code == 400
    assert resp.data["error"]["code"] == "validation_error"
    assert "month" in resp.data["error"]["details"]


def test_decision_list_by_month_and_visit(api_client, facility, patient, make_visit, make_rule):
    make_rule("a", display_order=1)
    make_rule("b", display_order=2)
    v1 = make_visit(date(2024, 6, 3))
    make_visit(date(2024, 6, 4))
    api_client.post("/api/v1/bonuses/recalculate-month/", _month_params(patient, facility), format="json")

    resp = api_client.get("/api/v1/bonuses/decisions/", _month_params(patient, facility))
    assert resp.status_code == 200
    assert resp.data["count"] == 4
    assert [r["bonus_code"] for r in resp.data["results"]] == ["a", "b", "a", "b"]
    assert resp.data["total_points"] == 400

    resp = api_client.get("/api/v1/bonuses/decisions/", _month_params(patient, facility, bonus_code="b"))
    assert resp.data["count"] == 2
    assert resp.data["total_points"] == 200

    resp = api_client.get("/api/v1/bonuses/decisions/", {"visit": str(v1.id)})
    assert resp.data["count"] == 2
    assert {r["visit"] for r in resp.data["results"]} == {v1.id}


def test_decision_list_total_spans_all_pages(api_client, facility, patient, make_visit, make_rule):
    make_rule("a", fixed_points=120)
    for day in (3, 4, 5):
        make_visit(date(2024, 6, day))
    api_client.post("/api/v1/bonuses/recalculate-month/", _month_params(patient, facility), format="json")

    resp = api_client.get("/api/v1/bonuses/decisions/", {**_month_params(patient, facility), "page_size": 2})

    assert resp.status_code == 200
    assert len(resp.data["results"]) == 2
    assert resp.data["next"] is not None
    assert resp.data["total_points"] == 360


def test_decision_list_requires_visit_or_month(api_client, patient):
    resp = api_client.get("/api/v1/bonuses/decisions/", {"patient": str(patient.id)})

    assert resp.status_code == 400
    assert set(resp.data["error"]["details"]) == {"facility", "year", "month"}


def test_monthly_summary(api_client, facility, patient, make_visit, make_rule):
    make_rule(
        "long_visit",
        points_type="conditional",
        fixed_points=None,
        branch={"kind": "duration"},
        points_config={"short": 0, "long": 5200},
        service_codes={"long": "510000170"},
    )
    make_rule("always", fixed_points=100)
    make_visit(date(2024, 6, 3), minutes=120)
    make_visit(date(2024, 6, 5), minutes=100)
    make_visit(date(2024, 6, 7), minutes=30)
    api_client.post("/api/v1/bonuses/recalculate-month/", _month_params(patient, facility), format="json")

    resp = api_client.get("/api/v1/bonuses/monthly-summary/", _month_params(patient, facility))

    assert resp.status_code == 200
    assert resp.data["total_points"] == 2 * 5200 + 3 * 100
    assert [dict(i) for i in resp.data["items"]] == [
        {"bonus_code": "always", "service_code": "", "count": 3, "total_points": 300},
        {"bonus_code": "long_visit", "service_code": "510000170", "count": 2, "total_points": 10400},
    ]


def test_endpoints_require_authentication(facility, patient):
    resp = APIClient().get("/api/v1/bonuses/monthly-summary/", _month_params(patient, facility))

    assert resp.status_code == 403
    assert resp.data["error"]["code"] == "not_authenticated"
