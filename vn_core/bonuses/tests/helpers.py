import uuid
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from vn_core.bonuses.context import EvaluationContext

JST = ZoneInfo("Asia/Tokyo")


def make_ctx(*, visit_date=date(2024, 6, 10), start=(10, 0), minutes=30, **fields) -> EvaluationContext:
    start_time = end_time = None
    if start is not None:
        start_time = datetime(visit_date.year, visit_date.month, visit_date.day, *start, tzinfo=JST)
        end_time = start_time + timedelta(minutes=minutes)
    defaults = {
        "visit_id": uuid.uuid4(),
        "patient_id": uuid.uuid4(),
        "facility_id": uuid.uuid4(),
        "visit_date": visit_date,
        "start_time": start_time,
        "end_time": end_time,
        "insurance_type": "medical",
    }
    defaults.update(fields)
    return EvaluationContext(**defaults)
