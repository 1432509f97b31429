"""
Dashboard figures: progress, counts, alerts and badges
"""
from datetime import date
from typing import Dict, List, Any, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from bbos.models.department import Department
from bbos.models.form import Form
from bbos.models.profile import Profile
from bbos.models.schedule import ScheduleForm, ScheduleFormCompletion, SCHEDULE_STATUSES, STATUS_COLLECTION
from bbos.models.submission import FormSubmission
from bbos.core.config import settings
from bbos.services.schedule_service import ScheduleService
from bbos.services.status_service import derive_alerts
import logging

logger = logging.getLogger(__name__)


def calculate_progress(current: Optional[float], baseline: Optional[float], reverse: bool = False) -> float:
    """
    Indicator progress as a percentage clamped to 0-100

    For indicators where lower is better (poverty rate, mortality) pass
    reverse=True: progress is the share of the baseline eliminated.
    A missing or zero baseline yields 0.
    """
    if current is None or not baseline:
        return 0.0
    if reverse:
        progress = (baseline - current) / baseline * 100
    else:
        progress = current / baseline * 100
    return max(0.0, min(100.0, progress))


class DashboardService:
    """Read-only aggregates for the dashboard"""

    def __init__(self, db: Session):
        self.db = db

    def schedule_progress(self, schedule_id: int, profile: Profile) -> Dict[str, Any]:
        """
        "N of M forms completed" for a schedule

        Admins count forms complete per completion_status; other users count
        their department's attached forms that they marked complete.
        """
        schedules = ScheduleService(self.db)
        schedule = schedules.get_visible_schedule(schedule_id, profile)

        if profile.is_admin:
            form_statuses = schedules.completion_status(schedule_id)["form_statuses"]
            total = len(form_statuses)
            completed = sum(1 for status in form_statuses if status["is_completed"])
        else:
            query = (
                self.db.query(ScheduleForm.id)
                .join(Form, Form.id == ScheduleForm.form_id)
                .filter(ScheduleForm.schedule_id == schedule_id)
            )
            if profile.department_id is None:
                visible_ids = []
            else:
                visible_ids = [row.id for row in query.filter(Form.department_id == profile.department_id)]
            total = len(visible_ids)
            completed = 0
            if visible_ids:
                completed = (
                    self.db.query(ScheduleFormCompletion)
                    .filter(
                        ScheduleFormCompletion.schedule_form_id.in_(visible_ids),
                        ScheduleFormCompletion.user_id == profile.id
                    )
                    .count()
                )

        return {
            "schedule_id": schedule.id,
            "schedule_name": schedule.name,
            "completed": completed,
            "total": total,
            "percent": round(calculate_progress(completed, total), 1),
            "summary": f"{completed} of {total} forms completed",
        }

    def alerts(self, profile: Profile, today: Optional[date] = None) -> List[Dict[str, Any]]:
        schedules = ScheduleService(self.db).list_schedules(profile)
        return derive_alerts(schedules, today or date.today(), settings.ALERT_WARNING_DAYS)

    def overview(self, profile: Profile, today: Optional[date] = None) -> Dict[str, Any]:
        """Stats, alerts and badged schedules for the signed-in user"""
        schedules = ScheduleService(self.db).list_schedules(profile)
        by_status = {status: 0 for status in SCHEDULE_STATUSES}
        for schedule in schedules:
            by_status[schedule["status"]] = by_status.get(schedule["status"], 0) + 1

        submissions = self.db.query(func.count(FormSubmission.id))
        forms = self.db.query(func.count(Form.id)).filter(Form.is_active.is_(True))
        if not profile.is_admin:
            submissions = submissions.filter(FormSubmission.submitted_by == profile.id)
            forms = forms.filter(Form.department_id == profile.department_id)

        stats = {
            "total_schedules": len(schedules),
            "schedules_by_status": by_status,
            "departments": self.db.query(func.count(Department.id)).filter(Department.is_active.is_(True)).scalar(),
            "forms": forms.scalar() if profile.is_admin or profile.department_id is not None else 0,
            "submissions": submissions.scalar(),
        }
        active = [
            {"id": s["id"], "name": s["name"], "end_date": s["end_date"], "badge": s["badge"]}
            for s in schedules
            if s["status"] == STATUS_COLLECTION
        ]
        return {
            "stats": stats,
            "alerts": derive_alerts(schedules, today or date.today(), settings.ALERT_WARNING_DAYS),
            "schedules": [
                {"id": s["id"], "name": s["name"], "status": s["status"], "badge": s["badge"]}
                for s in schedules
            ],
            "active_collections": active,
        }
