"""
Form definition tree: parsing, validation, flattening and aggregate computation

A form is an ordered list of FieldSpec. A field with has_sub_headers is a
container: it holds no value itself, and each of its sub-headers carries
another ordered list of FieldSpec. Values are keyed by the depth-first path
of names joined with underscores, e.g. ``personnel_doctors_male``.
"""
import logging
import math
import re
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Set, Tuple
from pydantic import BaseModel
from bbos.core.exceptions import ValidationError
from bbos.models.form import FIELD_TYPES

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 4

_FIELD_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


class SubHeaderSpec(BaseModel):
    """A named group of fields nested under a parent field"""
    name: str
    label: str
    fields: List["FieldSpec"] = []


class FieldSpec(BaseModel):
    """Definition of a single form field"""
    field_name: str
    field_label: str
    field_type: str
    is_required: bool = False
    is_primary_column: bool = False
    is_secondary_column: bool = False
    reference_data_name: Optional[str] = None
    placeholder_text: Optional[str] = None
    aggregate_fields: Optional[List[str]] = None
    has_sub_headers: bool = False
    sub_headers: Optional[List[SubHeaderSpec]] = None
    field_order: Optional[int] = None
    field_group_id: Optional[int] = None

    @property
    def is_container(self) -> bool:
        return self.has_sub_headers and bool(self.sub_headers)


SubHeaderSpec.model_rebuild()


class FlatField(NamedTuple):
    """A field located in the tree"""
    key: str
    prefix: str
    depth: int
    spec: FieldSpec


def _join(prefix: str, name: str) -> str:
    return f"{prefix}_{name}" if prefix else name


def iter_sibling_lists(
    specs: List[FieldSpec],
    prefix: str = "",
    depth: int = 0
) -> Iterator[Tuple[str, int, List[FieldSpec]]]:
    """Yield (prefix, depth, siblings) for every field list in the tree, depth-first"""
    yield prefix, depth, specs
    for spec in specs:
        if spec.is_container:
            for sub_header in spec.sub_headers:
                sub_prefix = _join(_join(prefix, spec.field_name), sub_header.name)
                yield from iter_sibling_lists(sub_header.fields, sub_prefix, depth + 1)


def iter_fields(specs: List[FieldSpec], prefix: str = "", depth: int = 0) -> Iterator[FlatField]:
    """Depth-first traversal of every field in document order, containers included"""
    for spec in specs:
        key = _join(prefix, spec.field_name)
        yield FlatField(key=key, prefix=prefix, depth=depth, spec=spec)
        if spec.is_container:
            for sub_header in spec.sub_headers:
                yield from iter_fields(sub_header.fields, _join(key, sub_header.name), depth + 1)


def flatten_field_keys(specs: List[FieldSpec], include_aggregates: bool = True) -> List[str]:
    """Value keys in depth-first order; containers hold no value"""
    keys = []
    for flat in iter_fields(specs):
        if flat.spec.is_container:
            continue
        if flat.spec.field_type == "aggregate" and not include_aggregates:
            continue
        keys.append(flat.key)
    return keys


def validate_field_tree(specs: List[FieldSpec], max_depth: int = DEFAULT_MAX_DEPTH) -> None:
    """
    Check a field tree before it is persisted

    Raises:
        ValidationError: on the first batch of problems found
    """
    errors: List[str] = []

    for prefix, depth, siblings in iter_sibling_lists(specs):
        where = f" under '{prefix}'" if prefix else ""
        if depth > max_depth:
            errors.append(f"Sub-headers nest deeper than {max_depth} levels{where}")
            continue

        names: Set[str] = set()
        number_names: Set[str] = set()
        for spec in siblings:
            if spec.field_type == "number":
                number_names.add(spec.field_name)

        for spec in siblings:
            name = spec.field_name
            if not name or not _FIELD_NAME_RE.match(name):
                errors.append(f"Invalid field name '{name}'{where}: use letters, digits and underscores")
            elif name in names:
                errors.append(f"Duplicate field name '{name}'{where}")
            names.add(name)

            if not spec.field_label or not spec.field_label.strip():
                errors.append(f"Field '{name}'{where} needs a label")

            if spec.field_type not in FIELD_TYPES:
                errors.append(
                    f"Field '{name}'{where} has unknown type '{spec.field_type}'. "
                    f"Allowed: {', '.join(FIELD_TYPES)}"
                )

            if spec.field_type == "select" and not (spec.reference_data_name or "").strip():
                errors.append(f"Select field '{name}'{where} needs a reference data set")

            if spec.field_type == "aggregate":
                sources = spec.aggregate_fields or []
                if not sources:
                    errors.append(f"Aggregate field '{name}'{where} has no fields to sum")
                for source in sources:
                    if source == name:
                        errors.append(f"Aggregate field '{name}'{where} cannot sum itself")
                    elif source not in number_names:
                        errors.append(f"Aggregate field '{name}'{where} refers to '{source}', which is not a sibling number field")

            if spec.has_sub_headers:
                sub_headers = spec.sub_headers or []
                if not sub_headers:
                    errors.append(f"Field '{name}'{where} has sub-headers enabled but none defined")
                header_names: Set[str] = set()
                for sub_header in sub_headers:
                    if not sub_header.name or not _FIELD_NAME_RE.match(sub_header.name):
                        errors.append(f"Invalid sub-header name '{sub_header.name}' in field '{name}'{where}")
                    elif sub_header.name in header_names:
                        errors.append(f"Duplicate sub-header '{sub_header.name}' in field '{name}'{where}")
                    header_names.add(sub_header.name)

    if not errors:
        seen: Set[str] = set()
        for key in flatten_field_keys(specs):
            if key in seen:
                errors.append(f"Field key '{key}' is produced twice by the sub-header layout")
            seen.add(key)

    if errors:
        raise ValidationError("; ".join(errors))


def to_number(value: Any) -> Optional[float]:
    """Parse a user-entered number; None when empty or not numeric"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _normalize_number(number: float):
    return int(number) if number.is_integer() else number


def compute_aggregates(specs: List[FieldSpec], data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of data with every aggregate field recomputed

    The aggregate is the sum of its parseable sibling inputs, or None when
    none of them parses. Entered aggregate values are always overwritten.
    """
    result = dict(data)
    for prefix, _depth, siblings in iter_sibling_lists(specs):
        for spec in siblings:
            if spec.field_type != "aggregate":
                continue
            total = 0.0
            has_valid = False
            for source in spec.aggregate_fields or []:
                number = to_number(result.get(_join(prefix, source)))
                if number is not None:
                    total += number
                    has_valid = True
            result[_join(prefix, spec.field_name)] = _normalize_number(total) if has_valid else None
    return result


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_submission_data(
    specs: List[FieldSpec],
    data: Dict[str, Any],
    resolve_options: Optional[Callable[[str], Optional[Set[str]]]] = None
) -> Dict[str, Any]:
    """
    Validate a submission draft against the field tree

    Args:
        specs: Form field tree
        data: Draft keyed by flattened field key
        resolve_options: Maps a reference data name to the allowed keys and
            values, or None when the set cannot be resolved (no check then)

    Returns:
        Cleaned data with numbers parsed and aggregates recomputed
    """
    if not isinstance(data, dict):
        raise ValidationError("Submission data must be an object keyed by field name")

    flats = [flat for flat in iter_fields(specs) if not flat.spec.is_container]
    known_keys = {flat.key for flat in flats}
    unknown = sorted(key for key in data if key not in known_keys)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}")

    missing: List[str] = []
    invalid: List[str] = []
    cleaned: Dict[str, Any] = {}
    options_cache: Dict[str, Optional[Set[str]]] = {}

    for flat in flats:
        spec = flat.spec
        if spec.field_type == "aggregate":
            continue

        value = data.get(flat.key)
        if _is_empty(value):
            if spec.is_required or spec.is_primary_column:
                missing.append(spec.field_label or flat.key)
            continue

        if spec.field_type == "number":
            number = to_number(value)
            if number is None:
                invalid.append(f"'{spec.field_label}' must be a number")
                continue
            cleaned[flat.key] = _normalize_number(number)
        elif spec.field_type == "date":
            try:
                cleaned[flat.key] = date.fromisoformat(str(value).strip()).isoformat()
            except ValueError:
                invalid.append(f"'{spec.field_label}' must be a date (YYYY-MM-DD)")
        elif spec.field_type == "select":
            text = str(value).strip()
            reference_name = spec.reference_data_name or ""
            if resolve_options is not None:
                if reference_name not in options_cache:
                    options_cache[reference_name] = resolve_options(reference_name)
                allowed = options_cache[reference_name]
                if allowed is not None and text not in allowed:
                    invalid.append(f"'{spec.field_label}' has an unknown option '{text}'")
                    continue
            cleaned[flat.key] = text
        else:
            cleaned[flat.key] = str(value)

    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if invalid:
        raise ValidationError("; ".join(invalid))

    return compute_aggregates(specs, cleaned)


def primary_row_key(specs: List[FieldSpec], data: Dict[str, Any]) -> str:
    """Identity of a row within a multi-row form; "" for forms without primary columns"""
    parts = [
        str(data.get(flat.key, ""))
        for flat in iter_fields(specs)
        if flat.spec.is_primary_column and not flat.spec.is_container
    ]
    return "|".join(parts)
