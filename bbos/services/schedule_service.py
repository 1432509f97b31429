"""
Schedule service: collection windows, attached forms and completions
"""
from datetime import date
from typing import Dict, List, Any, Optional, Union
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError
from bbos.models.schedule import (
    Schedule,
    ScheduleForm,
    ScheduleFormCompletion,
    STATUS_OPEN,
    STATUS_COLLECTION,
    STATUS_PUBLISHED,
    STATUS_CANCELLED,
)
from bbos.models.form import Form
from bbos.models.profile import Profile
from bbos.models.submission import FormSubmission
from bbos.core.config import settings
from bbos.core.exceptions import (
    ValidationError,
    DuplicateKeyError,
    DuplicateAttachmentError,
    NotFoundError,
    StatePreconditionError,
)
from bbos.services.status_service import derive_schedule_status_badge
from bbos.utils.serialization import iso
import logging

logger = logging.getLogger(__name__)

# Allowed lifecycle moves; published and cancelled are terminal
STATUS_TRANSITIONS = {
    STATUS_OPEN: (STATUS_COLLECTION, STATUS_CANCELLED),
    STATUS_COLLECTION: (STATUS_PUBLISHED, STATUS_CANCELLED),
    STATUS_PUBLISHED: (),
    STATUS_CANCELLED: (),
}


def submission_gate(status: str) -> Dict[str, bool]:
    """
    What data-entry users may do with a schedule in the given status

    open: visible for setup, not yet submittable
    collection: submittable
    published: read-only
    cancelled: hidden
    """
    return {
        "visible": status != STATUS_CANCELLED,
        "submittable": status == STATUS_COLLECTION,
        "read_only": status == STATUS_PUBLISHED,
    }


def _to_date(value: Union[str, date, None], label: str) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{label} must be a date (YYYY-MM-DD)")


class ScheduleService:
    """Service for managing schedules"""

    def __init__(self, db: Session):
        self.db = db

    def create_schedule(
        self,
        name: str,
        start_date: Union[str, date],
        end_date: Union[str, date],
        description: Optional[str] = None,
        department_id: Optional[int] = None,
        created_by: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Create a schedule in status open

        Raises:
            ValidationError: empty name or end date not after start date
            DuplicateKeyError: name already taken
        """
        try:
            name = (name or "").strip()
            if not name:
                raise ValidationError("Schedule name cannot be empty")
            start = _to_date(start_date, "Start date")
            end = _to_date(end_date, "End date")
            self._check_dates(start, end)

            if self.db.query(Schedule.id).filter(Schedule.name == name).first():
                raise DuplicateKeyError(f"Schedule '{name}' already exists")

            schedule = Schedule(
                name=name,
                description=description,
                start_date=start,
                end_date=end,
                status=STATUS_OPEN,
                department_id=department_id,
                created_by=created_by,
            )
            self.db.add(schedule)
            self.db.commit()
            self.db.refresh(schedule)

            logger.info(f"Schedule created: {schedule.id} - {name} ({start} to {end})")
            return self._schedule_to_dict(schedule)

        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError(f"Schedule '{name}' already exists")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating schedule: {str(e)}", exc_info=True)
            raise

    def list_schedules(self, profile: Optional[Profile] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Schedules newest first

        Non-admins only see schedules that carry at least one form of their
        department, and never cancelled ones; users without a department see none.
        """
        query = self.db.query(Schedule)
        if profile is not None and not profile.is_admin:
            if profile.department_id is None:
                return []
            query = self._visible_to(query, profile)
        if status:
            query = query.filter(Schedule.status == status)
        schedules = query.order_by(Schedule.created_at.desc(), Schedule.id.desc()).all()
        return [self._schedule_to_dict(s) for s in schedules]

    def get_schedule(self, schedule_id: int, profile: Optional[Profile] = None) -> Dict[str, Any]:
        if profile is not None:
            return self._schedule_to_dict(self.get_visible_schedule(schedule_id, profile))
        return self._schedule_to_dict(self.get_schedule_model(schedule_id))

    def get_visible_schedule(self, schedule_id: int, profile: Profile) -> Schedule:
        """
        Load a schedule the way list_schedules would show it to the profile

        Raises:
            NotFoundError: missing, or hidden from this non-admin user
        """
        if profile.is_admin:
            return self.get_schedule_model(schedule_id)
        schedule = None
        if profile.department_id is not None:
            query = self.db.query(Schedule).filter(Schedule.id == schedule_id)
            schedule = self._visible_to(query, profile).first()
        if not schedule:
            raise NotFoundError("Schedule not found")
        return schedule

    def get_schedule_model(self, schedule_id: int) -> Schedule:
        schedule = self.db.query(Schedule).filter(Schedule.id == schedule_id).first()
        if not schedule:
            raise NotFoundError("Schedule not found")
        return schedule

    def update_schedule(self, schedule_id: int, **changes) -> Dict[str, Any]:
        """Update schedule details; a status change goes through the lifecycle rules"""
        try:
            schedule = self.get_schedule_model(schedule_id)

            if changes.get("name") is not None:
                name = changes["name"].strip()
                if not name:
                    raise ValidationError("Schedule name cannot be empty")
                clash = (
                    self.db.query(Schedule.id)
                    .filter(Schedule.name == name, Schedule.id != schedule_id)
                    .first()
                )
                if clash:
                    raise DuplicateKeyError(f"Schedule '{name}' already exists")
                schedule.name = name
            if "description" in changes:
                schedule.description = changes["description"]
            if "department_id" in changes:
                schedule.department_id = changes["department_id"]

            start = _to_date(changes.get("start_date"), "Start date") or schedule.start_date
            end = _to_date(changes.get("end_date"), "End date") or schedule.end_date
            self._check_dates(start, end)
            schedule.start_date = start
            schedule.end_date = end

            if changes.get("status") is not None and changes["status"] != schedule.status:
                self._apply_transition(schedule, changes["status"])

            self.db.commit()
            self.db.refresh(schedule)
            logger.info(f"Schedule updated: {schedule_id}")
            return self._schedule_to_dict(schedule)

        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError("Schedule name already exists")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating schedule {schedule_id}: {str(e)}", exc_info=True)
            raise

    def transition_status(self, schedule_id: int, new_status: str) -> Dict[str, Any]:
        try:
            schedule = self.get_schedule_model(schedule_id)
            previous = schedule.status
            self._apply_transition(schedule, new_status)
            self.db.commit()
            self.db.refresh(schedule)
            logger.info(f"Schedule {schedule_id} moved from {previous} to {new_status}")
            return self._schedule_to_dict(schedule)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error changing status of schedule {schedule_id}: {str(e)}", exc_info=True)
            raise

    def delete_schedule(self, schedule_id: int) -> None:
        """Hard delete, refused once submissions exist"""
        try:
            schedule = self.get_schedule_model(schedule_id)
            has_data = (
                self.db.query(FormSubmission.id)
                .filter(FormSubmission.schedule_id == schedule_id)
                .first()
            )
            if has_data:
                raise StatePreconditionError("Schedule has submissions and cannot be deleted; cancel it instead")
            self.db.delete(schedule)
            self.db.commit()
            logger.info(f"Schedule deleted: {schedule_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting schedule {schedule_id}: {str(e)}", exc_info=True)
            raise

    # Attached forms

    def attach_form(
        self,
        schedule_id: int,
        form_id: int,
        is_required: bool = True,
        due_date: Union[str, date, None] = None
    ) -> Dict[str, Any]:
        """
        Attach a form to a schedule

        Raises:
            DuplicateAttachmentError: the form is already attached; no second row is created
        """
        try:
            schedule = self.get_schedule_model(schedule_id)
            if schedule.status in (STATUS_PUBLISHED, STATUS_CANCELLED):
                raise StatePreconditionError(f"Cannot attach forms to a {schedule.status} schedule")
            form = self.db.query(Form).filter(Form.id == form_id, Form.is_active.is_(True)).first()
            if not form:
                raise NotFoundError("Form not found")

            existing = (
                self.db.query(ScheduleForm.id)
                .filter(ScheduleForm.schedule_id == schedule_id, ScheduleForm.form_id == form_id)
                .first()
            )
            if existing:
                raise DuplicateAttachmentError("Form is already attached to this schedule")

            schedule_form = ScheduleForm(
                schedule_id=schedule_id,
                form_id=form_id,
                is_required=is_required,
                due_date=_to_date(due_date, "Due date"),
            )
            self.db.add(schedule_form)
            self.db.commit()
            self.db.refresh(schedule_form)

            logger.info(f"Form {form_id} attached to schedule {schedule_id}")
            return self._schedule_form_to_dict(schedule_form)

        except IntegrityError:
            self.db.rollback()
            raise DuplicateAttachmentError("Form is already attached to this schedule")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error attaching form {form_id} to schedule {schedule_id}: {str(e)}", exc_info=True)
            raise

    def list_schedule_forms(self, schedule_id: int) -> List[Dict[str, Any]]:
        self.get_schedule_model(schedule_id)
        rows = (
            self.db.query(ScheduleForm)
            .options(joinedload(ScheduleForm.form))
            .filter(ScheduleForm.schedule_id == schedule_id)
            .order_by(ScheduleForm.created_at, ScheduleForm.id)
            .all()
        )
        return [self._schedule_form_to_dict(sf) for sf in rows]

    def list_all_schedule_forms(self, profile: Optional[Profile] = None) -> List[Dict[str, Any]]:
        query = self.db.query(ScheduleForm).options(joinedload(ScheduleForm.form)).join(Form, Form.id == ScheduleForm.form_id)
        if profile is not None and not profile.is_admin:
            if profile.department_id is None:
                return []
            query = query.filter(Form.department_id == profile.department_id)
        rows = query.order_by(ScheduleForm.schedule_id, ScheduleForm.id).all()
        return [self._schedule_form_to_dict(sf) for sf in rows]

    def get_schedule_form_model(self, schedule_form_id: int) -> ScheduleForm:
        schedule_form = self.db.query(ScheduleForm).filter(ScheduleForm.id == schedule_form_id).first()
        if not schedule_form:
            raise NotFoundError("Schedule form not found")
        return schedule_form

    def update_schedule_form(self, schedule_form_id: int, **changes) -> Dict[str, Any]:
        try:
            schedule_form = self.get_schedule_form_model(schedule_form_id)
            if changes.get("is_required") is not None:
                schedule_form.is_required = changes["is_required"]
            if "due_date" in changes:
                schedule_form.due_date = _to_date(changes["due_date"], "Due date")
            self.db.commit()
            self.db.refresh(schedule_form)
            return self._schedule_form_to_dict(schedule_form)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating schedule form {schedule_form_id}: {str(e)}", exc_info=True)
            raise

    def detach_form(self, schedule_form_id: int) -> None:
        """Remove a form from a schedule, refused once it has submissions"""
        try:
            schedule_form = self.get_schedule_form_model(schedule_form_id)
            has_data = (
                self.db.query(FormSubmission.id)
                .filter(
                    FormSubmission.schedule_id == schedule_form.schedule_id,
                    FormSubmission.form_id == schedule_form.form_id
                )
                .first()
            )
            if has_data:
                raise StatePreconditionError("Form has submissions in this schedule and cannot be removed")
            self.db.delete(schedule_form)
            self.db.commit()
            logger.info(f"Schedule form removed: {schedule_form_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error removing schedule form {schedule_form_id}: {str(e)}", exc_info=True)
            raise

    def list_available_forms(self, schedule_id: int) -> List[Dict[str, Any]]:
        """Active forms not yet attached to the schedule, by name"""
        self.get_schedule_model(schedule_id)
        attached = self.db.query(ScheduleForm.form_id).filter(ScheduleForm.schedule_id == schedule_id)
        forms = (
            self.db.query(Form)
            .filter(Form.is_active.is_(True), ~Form.id.in_(attached))
            .order_by(Form.name, Form.id)
            .all()
        )
        return [self._form_summary(f) for f in forms]

    def is_attached(self, schedule_id: int, form_id: int) -> bool:
        return (
            self.db.query(ScheduleForm.id)
            .filter(ScheduleForm.schedule_id == schedule_id, ScheduleForm.form_id == form_id)
            .first()
        ) is not None

    # Completions

    def mark_complete(self, schedule_form_id: int, user_id: int) -> Dict[str, Any]:
        """Record that a user finished a form; marking twice returns the first record"""
        try:
            schedule_form = self.get_schedule_form_model(schedule_form_id)
            if schedule_form.schedule.status != STATUS_COLLECTION:
                raise StatePreconditionError("Forms can only be marked complete while the schedule is in collection")

            completion = self._find_completion(schedule_form_id, user_id)
            if completion is None:
                completion = ScheduleFormCompletion(schedule_form_id=schedule_form_id, user_id=user_id)
                self.db.add(completion)
                self.db.commit()
                self.db.refresh(completion)
                logger.info(f"Schedule form {schedule_form_id} marked complete by user {user_id}")
            return self._completion_to_dict(completion)

        except IntegrityError:
            # Concurrent double click: the other request stored the completion
            self.db.rollback()
            completion = self._find_completion(schedule_form_id, user_id)
            if completion is None:
                raise
            return self._completion_to_dict(completion)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error marking schedule form {schedule_form_id} complete: {str(e)}", exc_info=True)
            raise

    def list_completions(self, schedule_form_id: int, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        self.get_schedule_form_model(schedule_form_id)
        query = self.db.query(ScheduleFormCompletion).filter(ScheduleFormCompletion.schedule_form_id == schedule_form_id)
        if user_id is not None:
            query = query.filter(ScheduleFormCompletion.user_id == user_id)
        return [self._completion_to_dict(c) for c in query.order_by(ScheduleFormCompletion.completed_at).all()]

    def unmark_complete(self, schedule_form_id: int, user_id: int) -> None:
        try:
            schedule_form = self.get_schedule_form_model(schedule_form_id)
            if schedule_form.schedule.status != STATUS_COLLECTION:
                raise StatePreconditionError("Completions can only be withdrawn while the schedule is in collection")
            completion = self._find_completion(schedule_form_id, user_id)
            if completion is None:
                raise NotFoundError("Completion not found")
            self.db.delete(completion)
            self.db.commit()
            logger.info(f"Schedule form {schedule_form_id} completion withdrawn by user {user_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error withdrawing completion for {schedule_form_id}: {str(e)}", exc_info=True)
            raise

    def completion_status(self, schedule_id: int) -> Dict[str, Any]:
        """
        Whether every attached form is complete

        A form is complete when at least one user submitted data for it and
        every submitter marked it complete.
        """
        schedule_forms = (
            self.db.query(ScheduleForm)
            .options(joinedload(ScheduleForm.form))
            .filter(ScheduleForm.schedule_id == self.get_schedule_model(schedule_id).id)
            .order_by(ScheduleForm.id)
            .all()
        )
        if not schedule_forms:
            return {"can_publish": False, "form_statuses": [], "reason": "No forms in schedule"}

        all_completed = True
        form_statuses = []
        for schedule_form in schedule_forms:
            submitters = {
                row.submitted_by
                for row in self.db.query(FormSubmission.submitted_by).filter(
                    FormSubmission.schedule_id == schedule_id,
                    FormSubmission.form_id == schedule_form.form_id
                ).distinct()
            }
            completed_by = {c.user_id for c in schedule_form.completions}
            is_completed = bool(submitters) and submitters.issubset(completed_by)
            all_completed = all_completed and is_completed
            form_statuses.append({
                "schedule_form_id": schedule_form.id,
                "form_id": schedule_form.form_id,
                "form_name": schedule_form.form.name if schedule_form.form else "Unknown Form",
                "is_completed": is_completed,
                "submitters": len(submitters),
                "completed_by": len(completed_by),
            })

        return {
            "can_publish": all_completed,
            "form_statuses": form_statuses,
            "reason": "All forms completed by all users" if all_completed else "Some forms not completed by all users",
        }

    def _apply_transition(self, schedule: Schedule, new_status: str) -> None:
        allowed = STATUS_TRANSITIONS.get(schedule.status, ())
        if new_status not in allowed:
            raise StatePreconditionError(f"Cannot move schedule from {schedule.status} to {new_status}")
        if new_status == STATUS_PUBLISHED and settings.REQUIRE_COMPLETION_TO_PUBLISH:
            status = self.completion_status(schedule.id)
            if not status["can_publish"]:
                raise StatePreconditionError(f"Schedule cannot be published: {status['reason']}")
        schedule.status = new_status

    def _visible_to(self, query, profile: Profile):
        department_schedules = (
            self.db.query(ScheduleForm.schedule_id)
            .join(Form, Form.id == ScheduleForm.form_id)
            .filter(Form.department_id == profile.department_id)
        )
        return query.filter(
            Schedule.id.in_(department_schedules),
            Schedule.status != STATUS_CANCELLED
        )

    def _check_dates(self, start: Optional[date], end: Optional[date]) -> None:
        if start is None or end is None:
            raise ValidationError("Start date and end date are required")
        if end <= start:
            raise ValidationError("End date must be after start date")

    def _find_completion(self, schedule_form_id: int, user_id: int) -> Optional[ScheduleFormCompletion]:
        return (
            self.db.query(ScheduleFormCompletion)
            .filter(
                ScheduleFormCompletion.schedule_form_id == schedule_form_id,
                ScheduleFormCompletion.user_id == user_id
            )
            .first()
        )

    def _form_summary(self, form: Optional[Form]) -> Optional[Dict[str, Any]]:
        if form is None:
            return None
        return {
            "id": form.id,
            "name": form.name,
            "description": form.description,
            "category": form.category,
            "department_id": form.department_id,
            "is_active": form.is_active,
        }

    def _schedule_form_to_dict(self, schedule_form: ScheduleForm) -> Dict[str, Any]:
        return {
            "id": schedule_form.id,
            "schedule_id": schedule_form.schedule_id,
            "form_id": schedule_form.form_id,
            "is_required": schedule_form.is_required,
            "due_date": iso(schedule_form.due_date),
            "created_at": iso(schedule_form.created_at),
            "form": self._form_summary(schedule_form.form),
        }

    def _completion_to_dict(self, completion: ScheduleFormCompletion) -> Dict[str, Any]:
        return {
            "id": completion.id,
            "schedule_form_id": completion.schedule_form_id,
            "user_id": completion.user_id,
            "completed_at": iso(completion.completed_at),
        }

    def _schedule_to_dict(self, schedule: Schedule) -> Dict[str, Any]:
        return {
            "id": schedule.id,
            "name": schedule.name,
            "description": schedule.description,
            "start_date": iso(schedule.start_date),
            "end_date": iso(schedule.end_date),
            "status": schedule.status,
            "department_id": schedule.department_id,
            "created_by": schedule.created_by,
            "badge": derive_schedule_status_badge(schedule.status),
            "gate": submission_gate(schedule.status),
            "created_at": iso(schedule.created_at),
            "updated_at": iso(schedule.updated_at),
        }
