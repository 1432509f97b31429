"""
Submission service: validated, immutable form payloads collected per schedule
"""
from typing import Dict, List, Any, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from bbos.models.submission import FormSubmission
from bbos.models.schedule import ScheduleForm, STATUS_COLLECTION
from bbos.models.form import Form
from bbos.models.profile import Profile
from bbos.core.config import settings
from bbos.core.exceptions import (
    ValidationError,
    DuplicateKeyError,
    NotFoundError,
    StatePreconditionError,
    PermissionDeniedError,
)
from bbos.services.form_definition import validate_submission_data, primary_row_key, flatten_field_keys
from bbos.services.form_service import FormService
from bbos.services.schedule_service import ScheduleService
from bbos.services.data_bank_service import DataBankService
from bbos.services.format_converter import FormatConverter, MEDIA_TYPES, FILE_EXTENSIONS
from bbos.utils.serialization import iso
import logging

logger = logging.getLogger(__name__)

EXPORT_META_COLUMNS = ["submission_id", "submitted_by", "submitted_at"]


class SubmissionService:
    """Service for collecting and reading form submissions"""

    def __init__(self, db: Session):
        self.db = db

    def submit(
        self,
        schedule_id: int,
        form_id: int,
        submitted_by: int,
        data: Dict[str, Any],
        profile: Optional[Profile] = None
    ) -> Dict[str, Any]:
        """
        Store one submission

        Args:
            schedule_id: Schedule in collection
            form_id: Form attached to the schedule
            submitted_by: Profile ID of the submitter
            data: Values keyed by flattened field key
            profile: Submitter, for the department check (optional)

        Returns:
            Submission information dict with aggregates filled in

        Raises:
            StatePreconditionError: schedule is not in collection
            ValidationError: form not attached, or data does not fit the form
            DuplicateKeyError: the same user already submitted this row
        """
        row_key = ""
        try:
            schedule = ScheduleService(self.db).get_schedule_model(schedule_id)
            if schedule.status != STATUS_COLLECTION:
                raise StatePreconditionError(
                    f"Schedule '{schedule.name}' is {schedule.status}; submissions are only accepted during collection"
                )
            if not ScheduleService(self.db).is_attached(schedule_id, form_id):
                raise ValidationError("Form is not part of this schedule")

            forms = FormService(self.db)
            form = forms.get_form_model(form_id)
            self._check_department(profile, form)

            specs = forms.get_field_specs(form_id)
            if not specs:
                raise ValidationError("Form has no fields defined")

            cleaned = validate_submission_data(specs, data, DataBankService(self.db).option_values)
            row_key = primary_row_key(specs, cleaned)

            if self._find_duplicate(form_id, schedule_id, submitted_by, row_key):
                raise DuplicateKeyError(self._duplicate_message(row_key))

            submission = FormSubmission(
                form_id=form_id,
                schedule_id=schedule_id,
                submitted_by=submitted_by,
                data=cleaned,
                row_key=row_key,
            )
            self.db.add(submission)
            self.db.commit()
            self.db.refresh(submission)

            logger.info(f"Submission {submission.id} stored: form {form_id}, schedule {schedule_id}, user {submitted_by}")
            return self._submission_to_dict(submission)

        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError(self._duplicate_message(row_key))
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error storing submission: {str(e)}", exc_info=True)
            raise

    def list_submissions(
        self,
        profile: Optional[Profile] = None,
        schedule_id: Optional[int] = None,
        form_id: Optional[int] = None,
        user_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Submissions newest first; non-admins only see their department's forms"""
        query = self._scoped_query(profile)
        if query is None:
            return []
        if schedule_id is not None:
            query = query.filter(FormSubmission.schedule_id == schedule_id)
        if form_id is not None:
            query = query.filter(FormSubmission.form_id == form_id)
        if user_id is not None:
            query = query.filter(FormSubmission.submitted_by == user_id)
        submissions = query.order_by(FormSubmission.submitted_at.desc(), FormSubmission.id.desc()).all()
        return [self._submission_to_dict(s) for s in submissions]

    def get_submission(self, submission_id: int, profile: Optional[Profile] = None) -> Dict[str, Any]:
        query = self._scoped_query(profile)
        submission = query.filter(FormSubmission.id == submission_id).first() if query is not None else None
        if not submission:
            raise NotFoundError("Form submission not found")
        return self._submission_to_dict(submission)

    def has_submitted(self, schedule_id: int, form_id: int, user_id: int) -> bool:
        """Advisory check for the data entry screen; the unique constraint is authoritative"""
        return (
            self.db.query(FormSubmission.id)
            .filter(
                FormSubmission.schedule_id == schedule_id,
                FormSubmission.form_id == form_id,
                FormSubmission.submitted_by == user_id
            )
            .first()
        ) is not None

    def submission_counts(self, schedule_id: int) -> List[Dict[str, Any]]:
        """Submission and submitter counts for every form attached to the schedule"""
        counts = {
            row.form_id: (row.submissions, row.submitters)
            for row in self.db.query(
                FormSubmission.form_id,
                func.count(FormSubmission.id).label("submissions"),
                func.count(func.distinct(FormSubmission.submitted_by)).label("submitters"),
            )
            .filter(FormSubmission.schedule_id == schedule_id)
            .group_by(FormSubmission.form_id)
        }
        attached = (
            self.db.query(ScheduleForm.form_id, Form.name)
            .join(Form, Form.id == ScheduleForm.form_id)
            .filter(ScheduleForm.schedule_id == schedule_id)
            .order_by(Form.name)
            .all()
        )
        return [
            {
                "form_id": row.form_id,
                "form_name": row.name,
                "submissions": counts.get(row.form_id, (0, 0))[0],
                "submitters": counts.get(row.form_id, (0, 0))[1],
            }
            for row in attached
        ]

    def export_submissions(
        self,
        schedule_id: int,
        form_id: int,
        fmt: str = "csv",
        profile: Optional[Profile] = None
    ) -> Tuple[Any, str, str]:
        """
        Export one form's submissions for a schedule

        Returns:
            (content, media type, file name); content is str for csv, bytes for excel
        """
        if fmt not in MEDIA_TYPES:
            raise ValidationError(f"Unsupported export format '{fmt}'. Allowed: {', '.join(MEDIA_TYPES)}")

        schedule = ScheduleService(self.db).get_schedule_model(schedule_id)
        forms = FormService(self.db)
        form = forms.get_form_model(form_id)
        self._check_department(profile, form)
        columns = EXPORT_META_COLUMNS + flatten_field_keys(forms.get_field_specs(form_id))

        rows_query = (
            self.db.query(FormSubmission, Profile.email)
            .outerjoin(Profile, Profile.id == FormSubmission.submitted_by)
            .filter(FormSubmission.schedule_id == schedule_id, FormSubmission.form_id == form_id)
            .order_by(FormSubmission.submitted_at, FormSubmission.id)
        )
        total = rows_query.count()
        if total > settings.EXPORT_MAX_ROWS:
            raise ValidationError(f"Export has {total} rows; the limit is {settings.EXPORT_MAX_ROWS}")

        rows = []
        for submission, email in rows_query.all():
            row = {key: value for key, value in (submission.data or {}).items() if key in columns}
            row["submission_id"] = submission.id
            row["submitted_by"] = email or submission.submitted_by
            row["submitted_at"] = iso(submission.submitted_at)
            rows.append(row)

        content = FormatConverter.convert_format(rows, fmt, columns, sheet_name=form.name)
        filename = f"{schedule.name}-{form.name}.{FILE_EXTENSIONS[fmt]}".replace(" ", "_")
        logger.info(f"Exported {len(rows)} submissions of form {form_id} in schedule {schedule_id} as {fmt}")
        return content, MEDIA_TYPES[fmt], filename

    def _scoped_query(self, profile: Optional[Profile]):
        query = self.db.query(FormSubmission)
        if profile is None or profile.is_admin:
            return query
        if profile.department_id is None:
            return None
        return query.join(Form, Form.id == FormSubmission.form_id).filter(Form.department_id == profile.department_id)

    def _check_department(self, profile: Optional[Profile], form: Form) -> None:
        if profile is None or profile.is_admin:
            return
        if profile.department_id is None or profile.department_id != form.department_id:
            raise PermissionDeniedError("This form belongs to another department")

    def _find_duplicate(self, form_id: int, schedule_id: int, submitted_by: int, row_key: str) -> bool:
        return (
            self.db.query(FormSubmission.id)
            .filter(
                FormSubmission.form_id == form_id,
                FormSubmission.schedule_id == schedule_id,
                FormSubmission.submitted_by == submitted_by,
                FormSubmission.row_key == row_key
            )
            .first()
        ) is not None

    def _duplicate_message(self, row_key: str) -> str:
        if row_key:
            return f"A submission for '{row_key.replace('|', ', ')}' already exists for this schedule"
        return "You have already submitted this form for this schedule"

    def _submission_to_dict(self, submission: FormSubmission) -> Dict[str, Any]:
        return {
            "id": submission.id,
            "form_id": submission.form_id,
            "schedule_id": submission.schedule_id,
            "submitted_by": submission.submitted_by,
            "submitted_at": iso(submission.submitted_at),
            "data": submission.data or {},
            "row_key": submission.row_key,
        }
