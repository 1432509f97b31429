"""
Form service: forms, their field definitions and field groups
"""
from typing import Dict, List, Any, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from bbos.models.form import Form, FormField, FieldGroup, FORM_CATEGORIES, GROUP_TYPES
from bbos.models.department import Department
from bbos.models.profile import Profile
from bbos.core.config import settings
from bbos.core.exceptions import ValidationError, DuplicateKeyError, NotFoundError, StaleVersionError
from bbos.services.form_definition import FieldSpec, validate_field_tree, flatten_field_keys
from bbos.services.data_bank_service import DataBankService
from bbos.services.format_converter import FormatConverter
from bbos.utils.serialization import iso
import logging

logger = logging.getLogger(__name__)


class FormService:
    """Service for managing forms"""

    def __init__(self, db: Session):
        self.db = db

    def create_form(
        self,
        name: str,
        department_id: Optional[int],
        description: Optional[str] = None,
        category: str = "bbos",
        created_by: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Create a new form without fields

        Args:
            name: Form name
            department_id: Owning department (required)
            description: Form description (optional)
            category: bbos or sdg
            created_by: Profile ID of the author

        Returns:
            Form information dict
        """
        try:
            name = (name or "").strip()
            if not name:
                raise ValidationError("Form name cannot be empty")
            if not department_id:
                raise ValidationError("Please select a department")
            active_department = (
                self.db.query(Department.id)
                .filter(Department.id == department_id, Department.is_active.is_(True))
                .first()
            )
            if not active_department:
                raise ValidationError(f"Department {department_id} does not exist")
            if category not in FORM_CATEGORIES:
                raise ValidationError(f"Unknown form category '{category}'. Allowed: {', '.join(FORM_CATEGORIES)}")

            form = Form(
                name=name,
                description=description,
                category=category,
                department_id=department_id,
                created_by=created_by,
            )
            self.db.add(form)
            self.db.commit()
            self.db.refresh(form)

            logger.info(f"Form created: {form.id} - {name}")
            return self._form_to_dict(form)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating form: {str(e)}", exc_info=True)
            raise

    def list_forms(self, profile: Optional[Profile] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Active forms newest first; non-admins only see their department's forms"""
        query = self.db.query(Form).filter(Form.is_active.is_(True))
        if profile is not None and not profile.is_admin:
            if profile.department_id is None:
                return []
            query = query.filter(Form.department_id == profile.department_id)
        if category:
            query = query.filter(Form.category == category)
        forms = query.order_by(Form.created_at.desc(), Form.id.desc()).all()
        return [self._form_to_dict(f) for f in forms]

    def get_form(self, form_id: int, with_fields: bool = True) -> Dict[str, Any]:
        form = self.get_form_model(form_id)
        result = self._form_to_dict(form)
        if with_fields:
            result["fields"] = self.get_fields(form_id)
        return result

    def get_form_model(self, form_id: int) -> Form:
        form = self.db.query(Form).filter(Form.id == form_id, Form.is_active.is_(True)).first()
        if not form:
            raise NotFoundError("Form not found")
        return form

    def update_form(self, form_id: int, **changes) -> Dict[str, Any]:
        try:
            form = self.get_form_model(form_id)

            if changes.get("name") is not None:
                name = changes["name"].strip()
                if not name:
                    raise ValidationError("Form name cannot be empty")
                form.name = name
            if "description" in changes:
                form.description = changes["description"]
            if changes.get("category") is not None:
                if changes["category"] not in FORM_CATEGORIES:
                    raise ValidationError(f"Unknown form category '{changes['category']}'")
                form.category = changes["category"]
            if "department_id" in changes:
                if not changes["department_id"]:
                    raise ValidationError("Please select a department")
                form.department_id = changes["department_id"]

            self.db.commit()
            self.db.refresh(form)
            logger.info(f"Form updated: {form_id}")
            return self._form_to_dict(form)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating form {form_id}: {str(e)}", exc_info=True)
            raise

    def deactivate_form(self, form_id: int) -> None:
        """Soft delete; submissions already collected keep pointing at the form"""
        try:
            form = self.get_form_model(form_id)
            form.is_active = False
            self.db.commit()
            logger.info(f"Form deactivated: {form_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deactivating form {form_id}: {str(e)}", exc_info=True)
            raise

    # Field definitions

    def define_fields(
        self,
        form_id: int,
        specs: List[FieldSpec],
        expected_version: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Replace the form's field set in a single transaction

        Args:
            form_id: Form ID
            specs: Ordered top-level field specs (sub-headers nest inside)
            expected_version: Version the editor loaded; a mismatch means
                someone else saved first

        Returns:
            {"version": new version, "fields": [...]}
        """
        try:
            form = self.get_form_model(form_id)
            current_version = form.version
            if expected_version is not None and expected_version != current_version:
                raise StaleVersionError(
                    f"Form was changed by someone else (version {current_version}, expected {expected_version}). Reload and retry"
                )

            validate_field_tree(specs, settings.MAX_SUB_HEADER_DEPTH)
            self._check_field_groups(form_id, specs)

            # Claim the version first so a concurrent save loses cleanly
            claimed = (
                self.db.query(Form)
                .filter(Form.id == form_id, Form.version == current_version)
                .update({Form.version: current_version + 1}, synchronize_session=False)
            )
            if not claimed:
                raise StaleVersionError("Form was changed by someone else. Reload and retry")

            self.db.query(FormField).filter(FormField.form_id == form_id).delete(synchronize_session=False)
            self.db.flush()

            for position, spec in enumerate(specs):
                self.db.add(self._spec_to_field(form_id, spec, position))

            self.db.commit()
            self.db.expire_all()

            logger.info(f"Fields defined for form {form_id}: {len(specs)} top-level fields, version {current_version + 1}")
            return {"version": current_version + 1, "fields": self.get_fields(form_id)}

        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity error defining fields for form {form_id}: {str(e)}", exc_info=True)
            raise DuplicateKeyError("Field names must be unique within a form")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error defining fields for form {form_id}: {str(e)}", exc_info=True)
            raise

    def get_fields(self, form_id: int) -> List[Dict[str, Any]]:
        fields = (
            self.db.query(FormField)
            .filter(FormField.form_id == form_id)
            .order_by(FormField.field_order, FormField.id)
            .all()
        )
        return [self._field_to_dict(f) for f in fields]

    def get_field_specs(self, form_id: int) -> List[FieldSpec]:
        """The stored field tree as FieldSpec objects, in field order"""
        return [FieldSpec(**self._spec_payload(f)) for f in self.get_form_model(form_id).fields]

    def render_form(self, form_id: int) -> Dict[str, Any]:
        """
        Form with its field tree ready for data entry

        Select fields carry their live options. When a reference set cannot be
        resolved the field renders with no options and options_available False.
        """
        form = self.get_form_model(form_id)
        data_banks = DataBankService(self.db)
        options_cache: Dict[str, List[Dict[str, str]]] = {}

        def render(spec: FieldSpec, prefix: str) -> Dict[str, Any]:
            key = f"{prefix}_{spec.field_name}" if prefix else spec.field_name
            rendered = spec.model_dump(exclude={"sub_headers"})
            rendered["key"] = key
            if spec.field_type == "select":
                name = spec.reference_data_name or ""
                if name not in options_cache:
                    options_cache[name] = data_banks.resolve_options(name)
                rendered["options"] = options_cache[name]
                rendered["options_available"] = bool(options_cache[name])
            if spec.is_container:
                rendered["sub_headers"] = [
                    {
                        "name": sub_header.name,
                        "label": sub_header.label,
                        "fields": [render(child, f"{key}_{sub_header.name}") for child in sub_header.fields],
                    }
                    for sub_header in spec.sub_headers
                ]
            else:
                rendered["sub_headers"] = []
            return rendered

        specs = [FieldSpec(**self._spec_payload(f)) for f in form.fields]
        result = self._form_to_dict(form)
        result["fields"] = [render(spec, "") for spec in specs]
        result["field_groups"] = self.list_field_groups(form_id)
        return result

    def build_csv_template(self, form_id: int) -> str:
        """CSV header row of every input key; aggregates are computed, so left out"""
        columns = flatten_field_keys(self.get_field_specs(form_id), include_aggregates=False)
        return FormatConverter.convert_to_csv([], columns)

    # Field groups

    def create_field_groups(self, form_id: int, groups: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        try:
            self.get_form_model(form_id)
            created = []
            for position, group in enumerate(groups):
                group_name = (group.get("group_name") or "").strip()
                group_label = (group.get("group_label") or "").strip()
                if not group_name or not group_label:
                    raise ValidationError("Field groups need a name and a label")
                group_type = group.get("group_type") or "section"
                if group_type not in GROUP_TYPES:
                    raise ValidationError(f"Unknown group type '{group_type}'. Allowed: {', '.join(GROUP_TYPES)}")
                parent_id = group.get("parent_group_id")
                if parent_id is not None:
                    self._get_field_group(parent_id, form_id)

                field_group = FieldGroup(
                    form_id=form_id,
                    group_name=group_name,
                    group_label=group_label,
                    parent_group_id=parent_id,
                    group_type=group_type,
                    display_order=group.get("display_order", position),
                    is_repeatable=bool(group.get("is_repeatable", False)),
                )
                self.db.add(field_group)
                created.append(field_group)

            self.db.commit()
            for field_group in created:
                self.db.refresh(field_group)
            logger.info(f"Created {len(created)} field groups for form {form_id}")
            return [self._group_to_dict(g) for g in created]

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating field groups for form {form_id}: {str(e)}", exc_info=True)
            raise

    def list_field_groups(self, form_id: int) -> List[Dict[str, Any]]:
        groups = (
            self.db.query(FieldGroup)
            .filter(FieldGroup.form_id == form_id)
            .order_by(FieldGroup.display_order, FieldGroup.id)
            .all()
        )
        return [self._group_to_dict(g) for g in groups]

    def update_field_group(self, group_id: int, **changes) -> Dict[str, Any]:
        try:
            field_group = self._get_field_group(group_id)
            for attr in ("group_name", "group_label"):
                if changes.get(attr) is not None:
                    if not changes[attr].strip():
                        raise ValidationError(f"{attr.replace('_', ' ').capitalize()} cannot be empty")
                    setattr(field_group, attr, changes[attr].strip())
            if changes.get("group_type") is not None:
                if changes["group_type"] not in GROUP_TYPES:
                    raise ValidationError(f"Unknown group type '{changes['group_type']}'")
                field_group.group_type = changes["group_type"]
            if "parent_group_id" in changes:
                parent_id = changes["parent_group_id"]
                if parent_id is not None:
                    if parent_id == group_id:
                        raise ValidationError("A field group cannot be its own parent")
                    self._get_field_group(parent_id, field_group.form_id)
                    # Walk up from the new parent; reaching this group would close a cycle
                    ancestor_id, seen = parent_id, set()
                    while ancestor_id is not None and ancestor_id not in seen:
                        if ancestor_id == group_id:
                            raise ValidationError("A field group cannot be nested inside its own subgroup")
                        seen.add(ancestor_id)
                        ancestor_id = (
                            self.db.query(FieldGroup.parent_group_id)
                            .filter(FieldGroup.id == ancestor_id)
                            .scalar()
                        )

                field_group.parent_group_id = parent_id
            if changes.get("display_order") is not None:
                field_group.display_order = changes["display_order"]
            if changes.get("is_repeatable") is not None:
                field_group.is_repeatable = changes["is_repeatable"]

            self.db.commit()
            self.db.refresh(field_group)
            return self._group_to_dict(field_group)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating field group {group_id}: {str(e)}", exc_info=True)
            raise

    def delete_field_group(self, group_id: int) -> None:
        """Fields in the group become ungrouped; child groups move up to the parent"""
        try:
            field_group = self._get_field_group(group_id)
            self.db.query(FormField).filter(FormField.field_group_id == group_id).update(
                {FormField.field_group_id: None}, synchronize_session=False
            )
            self.db.query(FieldGroup).filter(FieldGroup.parent_group_id == group_id).update(
                {FieldGroup.parent_group_id: field_group.parent_group_id}, synchronize_session=False
            )
            self.db.delete(field_group)
            self.db.commit()
            logger.info(f"Field group deleted: {group_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting field group {group_id}: {str(e)}", exc_info=True)
            raise

    def _get_field_group(self, group_id: int, form_id: Optional[int] = None) -> FieldGroup:
        query = self.db.query(FieldGroup).filter(FieldGroup.id == group_id)
        if form_id is not None:
            query = query.filter(FieldGroup.form_id == form_id)
        field_group = query.first()
        if not field_group:
            raise NotFoundError("Field group not found")
        return field_group

    def _check_field_groups(self, form_id: int, specs: List[FieldSpec]) -> None:
        group_ids = {spec.field_group_id for spec in specs if spec.field_group_id is not None}
        if not group_ids:
            return
        known = {
            row.id
            for row in self.db.query(FieldGroup.id).filter(FieldGroup.form_id == form_id, FieldGroup.id.in_(group_ids))
        }
        unknown = sorted(group_ids - known)
        if unknown:
            raise ValidationError(f"Field groups not found on this form: {', '.join(str(g) for g in unknown)}")

    def _spec_to_field(self, form_id: int, spec: FieldSpec, position: int) -> FormField:
        sub_headers = [s.model_dump() for s in spec.sub_headers] if spec.has_sub_headers and spec.sub_headers else None
        return FormField(
            form_id=form_id,
            field_group_id=spec.field_group_id,
            field_name=spec.field_name,
            field_label=spec.field_label,
            field_type=spec.field_type,
            is_required=spec.is_required,
            is_primary_column=spec.is_primary_column,
            is_secondary_column=spec.is_secondary_column,
            reference_data_name=spec.reference_data_name,
            placeholder_text=spec.placeholder_text,
            aggregate_fields=spec.aggregate_fields or None,
            has_sub_headers=spec.has_sub_headers,
            sub_headers=sub_headers,
            field_order=spec.field_order if spec.field_order is not None else position,
        )

    def _spec_payload(self, field: FormField) -> Dict[str, Any]:
        return {
            "field_name": field.field_name,
            "field_label": field.field_label,
            "field_type": field.field_type,
            "is_required": field.is_required,
            "is_primary_column": field.is_primary_column,
            "is_secondary_column": field.is_secondary_column,
            "reference_data_name": field.reference_data_name,
            "placeholder_text": field.placeholder_text,
            "aggregate_fields": field.aggregate_fields,
            "has_sub_headers": field.has_sub_headers,
            "sub_headers": field.sub_headers,
            "field_order": field.field_order,
            "field_group_id": field.field_group_id,
        }

    def _field_to_dict(self, field: FormField) -> Dict[str, Any]:
        result = self._spec_payload(field)
        result["id"] = field.id
        result["form_id"] = field.form_id
        result["aggregate_fields"] = field.aggregate_fields or []
        result["sub_headers"] = field.sub_headers or []
        return result

    def _group_to_dict(self, field_group: FieldGroup) -> Dict[str, Any]:
        return {
            "id": field_group.id,
            "form_id": field_group.form_id,
            "group_name": field_group.group_name,
            "group_label": field_group.group_label,
            "parent_group_id": field_group.parent_group_id,
            "group_type": field_group.group_type,
            "display_order": field_group.display_order,
            "is_repeatable": field_group.is_repeatable,
        }

    def _form_to_dict(self, form: Form) -> Dict[str, Any]:
        return {
            "id": form.id,
            "name": form.name,
            "description": form.description,
            "category": form.category,
            "department_id": form.department_id,
            "created_by": form.created_by,
            "is_active": form.is_active,
            "version": form.version,
            "created_at": iso(form.created_at),
            "updated_at": iso(form.updated_at),
        }
