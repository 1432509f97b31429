"""
Tests for the form field tree: validation, flattening and aggregates
"""
import pytest
from bbos.core.exceptions import ValidationError
from bbos.services.form_definition import (
    FieldSpec,
    flatten_field_keys,
    validate_field_tree,
    compute_aggregates,
    validate_submission_data,
    primary_row_key,
)


def _specs(raw):
    return [FieldSpec(**item) for item in raw]


@pytest.fixture
def staff_tree():
    """Personnel with doctors/nurses sub-headers, each split by sex with a total"""
    def counts():
        return [
            {"field_name": "male", "field_label": "Male", "field_type": "number"},
            {"field_name": "female", "field_label": "Female", "field_type": "number"},
            {"field_name": "total", "field_label": "Total", "field_type": "aggregate", "aggregate_fields": ["male", "female"]},
        ]

    return _specs([
        {"field_name": "district", "field_label": "District", "field_type": "select",
         "reference_data_name": "Districts", "is_primary_column": True},
        {
            "field_name": "personnel",
            "field_label": "Personnel",
            "field_type": "text",
            "has_sub_headers": True,
            "sub_headers": [
                {"name": "doctors", "label": "Doctors", "fields": counts()},
                {"name": "nurses", "label": "Nurses", "fields": counts()},
            ],
        },
        {"field_name": "remarks", "field_label": "Remarks", "field_type": "textarea"},
    ])


def test_flatten_keys_follow_sub_header_paths(staff_tree):
    assert flatten_field_keys(staff_tree) == [
        "district",
        "personnel_doctors_male",
        "personnel_doctors_female",
        "personnel_doctors_total",
        "personnel_nurses_male",
        "personnel_nurses_female",
        "personnel_nurses_total",
        "remarks",
    ]


def test_flatten_keys_can_leave_out_aggregates(staff_tree):
    keys = flatten_field_keys(staff_tree, include_aggregates=False)
    assert "personnel_doctors_total" not in keys
    assert "personnel_nurses_male" in keys


def test_valid_tree_passes(staff_tree):
    validate_field_tree(staff_tree)


def test_duplicate_sibling_names_rejected():
    specs = _specs([
        {"field_name": "age", "field_label": "Age", "field_type": "number"},
        {"field_name": "age", "field_label": "Age again", "field_type": "number"},
    ])
    with pytest.raises(ValidationError, match="Duplicate field name 'age'"):
        validate_field_tree(specs)


def test_unknown_field_type_rejected():
    specs = _specs([{"field_name": "photo", "field_label": "Photo", "field_type": "file"}])
    with pytest.raises(ValidationError, match="unknown type 'file'"):
        validate_field_tree(specs)


def test_select_requires_reference_data():
    specs = _specs([{"field_name": "district", "field_label": "District", "field_type": "select"}])
    with pytest.raises(ValidationError, match="needs a reference data set"):
        validate_field_tree(specs)


def test_aggregate_must_sum_sibling_numbers():
    specs = _specs([
        {"field_name": "name", "field_label": "Name", "field_type": "text"},
        {"field_name": "total", "field_label": "Total", "field_type": "aggregate", "aggregate_fields": ["name"]},
    ])
    with pytest.raises(ValidationError, match="not a sibling number field"):
        validate_field_tree(specs)


def test_aggregate_cannot_sum_itself():
    specs = _specs([
        {"field_name": "total", "field_label": "Total", "field_type": "aggregate", "aggregate_fields": ["total"]},
    ])
    with pytest.raises(ValidationError, match="cannot sum itself"):
        validate_field_tree(specs)


def test_invalid_field_name_rejected():
    specs = _specs([{"field_name": "first name", "field_label": "First name", "field_type": "text"}])
    with pytest.raises(ValidationError, match="Invalid field name"):
        validate_field_tree(specs)


def test_depth_cap_enforced():
    leaf = {"field_name": "value", "field_label": "Value", "field_type": "number"}
    node = leaf
    for level in range(3):
        node = {
            "field_name": f"level{level}",
            "field_label": f"Level {level}",
            "field_type": "text",
            "has_sub_headers": True,
            "sub_headers": [{"name": "part", "label": "Part", "fields": [node]}],
        }
    specs = _specs([node])
    validate_field_tree(specs, max_depth=3)
    with pytest.raises(ValidationError, match="deeper than 2 levels"):
        validate_field_tree(specs, max_depth=2)


def test_sub_headers_enabled_without_definitions_rejected():
    specs = _specs([{"field_name": "staff", "field_label": "Staff", "field_type": "text", "has_sub_headers": True}])
    with pytest.raises(ValidationError, match="none defined"):
        validate_field_tree(specs)


def test_compute_aggregates_sums_within_each_prefix(staff_tree):
    data = {
        "personnel_doctors_male": "3",
        "personnel_doctors_female": 4,
        "personnel_nurses_male": "2.5",
        "personnel_nurses_female": "x",
    }
    result = compute_aggregates(staff_tree, data)
    assert result["personnel_doctors_total"] == 7
    assert result["personnel_nurses_total"] == 2.5


def test_compute_aggregates_none_when_nothing_parses(staff_tree):
    result = compute_aggregates(staff_tree, {"personnel_doctors_male": "", "personnel_doctors_female": "n/a"})
    assert result["personnel_doctors_total"] is None


def test_compute_aggregates_overwrites_entered_total(staff_tree):
    data = {"personnel_doctors_male": 1, "personnel_doctors_female": 1, "personnel_doctors_total": 99}
    assert compute_aggregates(staff_tree, data)["personnel_doctors_total"] == 2


def test_compute_aggregates_does_not_mutate_input(staff_tree):
    data = {"personnel_doctors_male": 1}
    compute_aggregates(staff_tree, data)
    assert data == {"personnel_doctors_male": 1}


def test_submission_rejects_unknown_keys(staff_tree):
    with pytest.raises(ValidationError, match="Unknown fields: bogus"):
        validate_submission_data(staff_tree, {"district": "quetta", "bogus": 1})


def test_submission_requires_primary_and_required_fields(staff_tree):
    with pytest.raises(ValidationError, match="Missing required fields: District"):
        validate_submission_data(staff_tree, {"remarks": "none"})


def test_submission_parses_numbers_and_recomputes(staff_tree):
    cleaned = validate_submission_data(
        staff_tree,
        {"district": "quetta", "personnel_doctors_male": "5", "personnel_doctors_female": " 6 "},
    )
    assert cleaned["personnel_doctors_male"] == 5
    assert cleaned["personnel_doctors_total"] == 11
    assert cleaned["personnel_nurses_total"] is None


def test_submission_rejects_non_numeric_number(staff_tree):
    with pytest.raises(ValidationError, match="'Male' must be a number"):
        validate_submission_data(staff_tree, {"district": "quetta", "personnel_doctors_male": "five"})


def test_submission_checks_select_options_when_set_resolves(staff_tree):
    allowed = {"quetta", "Quetta"}
    validate_submission_data(staff_tree, {"district": "Quetta"}, lambda name: allowed)
    with pytest.raises(ValidationError, match="unknown option 'gwadar'"):
        validate_submission_data(staff_tree, {"district": "gwadar"}, lambda name: allowed)


def test_submission_skips_option_check_for_unresolved_set(staff_tree):
    cleaned = validate_submission_data(staff_tree, {"district": "anything"}, lambda name: None)
    assert cleaned["district"] == "anything"


def test_submission_validates_dates():
    specs = _specs([{"field_name": "visited", "field_label": "Visited", "field_type": "date"}])
    assert validate_submission_data(specs, {"visited": "2025-02-03"}) == {"visited": "2025-02-03"}
    with pytest.raises(ValidationError, match="must be a date"):
        validate_submission_data(specs, {"visited": "03/02/2025"})


def test_primary_row_key(staff_tree):
    assert primary_row_key(staff_tree, {"district": "quetta"}) == "quetta"
    plain = _specs([{"field_name": "note", "field_label": "Note", "field_type": "text"}])
    assert primary_row_key(plain, {"note": "x"}) == ""
