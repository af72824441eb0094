# backend/vn_core/bonuses/management/commands/recalculate_bonuses.py
from __future__ import annotations

from uuid import UUID

from django.core.management.base import BaseCommand, CommandError

from vn_core.bonuses.conf import eligible_statuses
from vn_core.bonuses.errors import BonusEngineError
from vn_core.bonuses.services import BonusCalculationService
from vn_core.visits.selectors import eligible_visits_qs, month_bounds


def _uuid(value: str, name: str) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise CommandError(f"{name} is not a valid UUID: {value}")


class Command(BaseCommand):
    help = (
        "Re-derive all bonus decisions of a patient-month (receipt recalculation). "
        "Without --patient-id every patient with eligible visits at the facility is recalculated, "
        "one transaction per patient."
    )

    def add_arguments(self, parser):
        parser.add_argument("--facility-id", type=str, required=True, help="Facility UUID.")
        parser.add_argument("--year", type=int, required=True)
        parser.add_argument("--month", type=int, required=True)
        parser.add_argument("--patient-id", type=str, default=None, help="Optional patient UUID.")
        parser.add_argument("--dry-run", action="store_true", help="Compute and print; do not write.")

    def handle(self, *args, **opts):
        facility_id = _uuid(opts["facility_id"], "--facility-id")
        year, month = opts["year"], opts["month"]
        if not 1 <= month <= 12:
            raise CommandError("--month must be between 1 and 12")
        dry = opts["dry_run"]

        if opts["patient_id"]:
            patient_ids = [_uuid(opts["patient_id"], "--patient-id")]
        else:
            first, last = month_bounds(year, month)
            patient_ids = list(
                eligible_visits_qs(statuses=eligible_statuses())
                .filter(facility_id=facility_id, visit_date__gte=first, visit_date__lte=last)
                .order_by("patient_id")
                .values_list("patient_id", flat=True)
                .distinct()
            )

        total_points = 0
        total_decisions = 0
        for patient_id in patient_ids:
            try:
                result = BonusCalculationService.recalculate_month(
                    patient_id=patient_id,
                    facility_id=facility_id,
                    year=year,
                    month=month,
                    dry_run=dry,
                )
            except BonusEngineError as exc:
                raise CommandError(f"Recalculation failed for patient {patient_id}: {exc}") from exc

            total_points += result.total_points
            total_decisions += result.decision_count
            self.stdout.write(
                f"{patient_id} {year}-{month:02d}: visits={len(result.visits)} "
                f"decisions={result.decision_count} points={result.total_points}"
            )
            for v in result.visits:
                codes = ", ".join(v.bonus_codes) or "-"
                self.stdout.write(f"  {v.visit_date} {v.visit_id}: {codes} ({v.total_points})")

        prefix = "DRY RUN: " if dry else ""
        self.stdout.write(
            f"{prefix}Patients recalculated: {len(patient_ids)}, decisions: {total_decisions}, points: {total_points}"
        )
