# backend/vn_core/audit/services.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from django.db import transaction

from vn_core.audit.models import AuditEvent


@dataclass(frozen=True)
class AuditRecord:
    event_code: str
    entity_type: str
    entity_id: UUID
    facility_id: UUID
    metadata: Dict[str, Any]


class AuditService:
    """
    Central audit writer. Persists into AuditEvent (immutable).
    """

    @staticmethod
    @transaction.atomic
    def log(
        *,
        event_code: str,
        entity_type: str,
        entity_id: UUID,
        facility_id: UUID,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        metadata = metadata or {}

        AuditEvent.objects.create(
            facility_id=facility_id,
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata,
        )

        return AuditRecord(
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            facility_id=facility_id,
            metadata=metadata,
        )
