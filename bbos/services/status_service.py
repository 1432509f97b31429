"""
Schedule status badges and deadline alerts

Pure functions over schedule dicts (or any object exposing id, name, status
and end_date); nothing here touches the database.
"""
import math
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional, Union
from bbos.models.schedule import STATUS_OPEN, STATUS_COLLECTION, STATUS_PUBLISHED, STATUS_CANCELLED

MS_PER_DAY = 1000 * 3600 * 24
DEFAULT_WARNING_DAYS = 7

STATUS_BADGES: Dict[str, Dict[str, str]] = {
    STATUS_OPEN: {"label": "Open", "style": "bg-green-500", "icon": "play"},
    STATUS_COLLECTION: {"label": "Collection", "style": "bg-yellow-500", "icon": "clock"},
    STATUS_PUBLISHED: {"label": "Published", "style": "bg-blue-500", "icon": "check-circle"},
    STATUS_CANCELLED: {"label": "Cancelled", "style": "bg-gray-500", "icon": "ban"},
}
UNKNOWN_BADGE = {"label": "Unknown", "style": "bg-gray-500", "icon": "play"}


def _get(schedule: Any, attr: str) -> Any:
    if isinstance(schedule, dict):
        return schedule.get(attr)
    return getattr(schedule, attr, None)


def _as_date(value: Union[str, date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def days_until_end(end_date: Union[str, date, datetime], today: Union[date, datetime]) -> int:
    """
    Whole days from today until the schedule's end date

    The end date counts from its midnight. The millisecond difference is
    divided by MS_PER_DAY and rounded up, so any part of a remaining day
    counts as a day. An aware today is converted to UTC first; naive values
    are taken as UTC.
    """
    end = datetime.combine(_as_date(end_date), time.min)
    if isinstance(today, datetime):
        if today.tzinfo is not None:
            today = today.astimezone(timezone.utc)
        now = today.replace(tzinfo=None)
    else:
        now = datetime.combine(today, time.min)
    delta_ms = (end - now).total_seconds() * 1000
    return int(math.ceil(delta_ms / MS_PER_DAY))


def derive_schedule_status_badge(status: Optional[str]) -> Dict[str, str]:
    """Badge for a schedule status; depends on the status alone"""
    badge = STATUS_BADGES.get(status or "", UNKNOWN_BADGE)
    return {"status": status, **badge}


def derive_alerts(
    schedules: Iterable[Any],
    today: Union[date, datetime],
    warning_days: int = DEFAULT_WARNING_DAYS
) -> List[Dict[str, Any]]:
    """
    Dashboard alerts for the given schedules

    Collection schedules ending within warning_days produce a warning; those
    past their end date produce an error. One info alert is added when no
    schedule is open for setup.
    """
    schedules = list(schedules)
    alerts: List[Dict[str, Any]] = []

    for schedule in schedules:
        if _get(schedule, "status") != STATUS_COLLECTION:
            continue
        name = _get(schedule, "name")
        schedule_id = _get(schedule, "id")
        remaining = days_until_end(_get(schedule, "end_date"), today)

        if 0 < remaining <= warning_days:
            alerts.append({
                "id": f"deadline-{schedule_id}",
                "type": "warning",
                "message": f'Schedule "{name}" ends in {remaining} days',
                "schedule_name": name,
                "days_until_end": remaining,
            })
        elif remaining <= 0:
            alerts.append({
                "id": f"overdue-{schedule_id}",
                "type": "error",
                "message": f'Schedule "{name}" is overdue',
                "schedule_name": name,
                "days_until_end": remaining,
            })

    if not any(_get(s, "status") == STATUS_OPEN for s in schedules):
        alerts.append({
            "id": "no-open-schedules",
            "type": "info",
            "message": "No schedules are currently open for setup",
        })

    return alerts
