from bbos.models.department import Department
from bbos.models.profile import Profile
from bbos.models.data_bank import DataBank, DataBankEntry
from bbos.models.form import Form, FieldGroup, FormField
from bbos.models.schedule import Schedule, ScheduleForm, ScheduleFormCompletion
from bbos.models.submission import FormSubmission

__all__ = [
    "Department",
    "Profile",
    "DataBank",
    "DataBankEntry",
    "Form",
    "FieldGroup",
    "FormField",
    "Schedule",
    "ScheduleForm",
    "ScheduleFormCompletion",
    "FormSubmission",
]
