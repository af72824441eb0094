# backend/vn_core/api/urls.py
from __future__ import annotations

from django.urls import path

from vn_core.bonuses.api.views import (
    BonusDecisionListView,
    MonthlySummaryView,
    RecalculateMonthView,
    VisitBonusCalculateView,
)

urlpatterns = [
    # Bonus (加算) engine
    path(
        "visits/<uuid:visit_id>/bonuses/calculate/",
        VisitBonusCalculateView.as_view(),
        name="visit-bonus-calculate",
    ),
    path("bonuses/recalculate-month/", RecalculateMonthView.as_view(), name="bonus-recalculate-month"),
    path("bonuses/decisions/", BonusDecisionListView.as_view(), name="bonus-decisions"),
    path("bonuses/monthly-summary/", MonthlySummaryView.as_view(), name="bonus-monthly-summary"),
]
