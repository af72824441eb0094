# backend/vn_core/bonuses/locks.py
from __future__ import annotations

from uuid import UUID

from django.db import DatabaseError, transaction

from vn_core.bonuses.errors import ConcurrencyError
from vn_core.bonuses.models import RecalculationLock


def acquire_month_lock(*, patient_id: UUID, facility_id: UUID, year: int, month: int) -> RecalculationLock:
    """
    Lock the (patient, facility, year, month) row with FOR UPDATE NOWAIT.
    Held until the surrounding transaction ends; must run inside one.
    """
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError("acquire_month_lock() must be called inside transaction.atomic()")

    key = {"patient_id": patient_id, "facility_id": facility_id, "year": year, "month": month}
    try:
        RecalculationLock.objects.get_or_create(**key)
        return RecalculationLock.objects.select_for_update(nowait=True).get(**key)
    except DatabaseError as exc:
        raise ConcurrencyError(
            f"recalculation of {year}-{month:02d} is already running for this patient",
            details={"patient_id": str(patient_id), "facility_id": str(facility_id), "year": year, "month": month},
        ) from exc
