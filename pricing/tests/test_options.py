import pytest
from pricing.options import (
    DUPLICATE_GROUP_CHOICES,
    MISSING_GROUPS,
    UNKNOWN_OPTION_IDS,
    OptionValidationError,
    is_quantity_group,
    normalize_for_pricing,
    parse_options,
    pricing_payload,
    validate_one_per_group,
)
from pricing.tests.fakes import OPTIONS


def test_valid_selection_is_ordered_by_group_name():
    result = validate_one_per_group([11, 22, 31], OPTIONS)
    assert result.option_ids == [22, 31, 11]
    assert result.by_group == {"Paper": 22, "Qty": 31, "Size": 11}
    assert result.required_groups == ["Paper", "Qty", "Size"]


def test_unknown_ids_reported_first_and_sorted():
    with pytest.raises(OptionValidationError) as exc:
        validate_one_per_group(["abc", 999, 11, 12], OPTIONS)
    assert exc.value.code == UNKNOWN_OPTION_IDS
    # numeric ids sort before non-numeric ones
    assert exc.value.details == {"unknown_option_ids": ["999", "abc"]}


def test_duplicate_group_choices():
    with pytest.raises(OptionValidationError) as exc:
        validate_one_per_group([11, 12, 21, 31], OPTIONS)
    assert exc.value.code == DUPLICATE_GROUP_CHOICES
    assert exc.value.details == {"duplicate_groups": {"Size": [11, 12]}}


def test_missing_groups():
    with pytest.raises(OptionValidationError) as exc:
        validate_one_per_group([11], OPTIONS)
    assert exc.value.code == MISSING_GROUPS
    assert exc.value.details == {"missing_groups": ["Paper", "Qty"]}


def test_excluded_groups_are_not_required():
    result = validate_one_per_group([11, 21], OPTIONS, exclude_groups=["Qty"])
    assert result.option_ids == [21, 11]


def test_string_ids_are_accepted():
    result = validate_one_per_group(["11", " 21 ", 31], OPTIONS)
    assert result.option_ids == [21, 31, 11]


def test_normalize_defaults_quantity_group():
    result = normalize_for_pricing([11, 21], OPTIONS)
    assert result.by_group["Qty"] == 31
    assert result.defaulted_groups == ["Qty"]


def test_normalize_keeps_supplied_quantity():
    result = normalize_for_pricing([11, 21, 32], OPTIONS)
    assert result.by_group["Qty"] == 32
    assert result.defaulted_groups == []


def test_normalize_still_reports_other_missing_groups():
    with pytest.raises(OptionValidationError) as exc:
        normalize_for_pricing([11], OPTIONS)
    assert exc.value.details == {"missing_groups": ["Paper"]}


@pytest.mark.parametrize("name", ["Qty", "quantity", " Quantity ", "Q ty"])
def test_quantity_group_names(name):
    assert is_quantity_group(name)


def test_size_is_not_a_quantity_group():
    assert not is_quantity_group("Size")


def test_parse_options_skips_unusable_rows():
    rows = [{"id": "5", "group": "Size"}, {"id": None, "group": "Size"}, {"id": 6, "group": " "}, "junk"]
    parsed = parse_options(rows)
    assert [(opt.id, opt.group) for opt in parsed] == [(5, "Size")]


def test_pricing_payload_maps_group_to_string_id():
    result = validate_one_per_group([12, 21, 31], OPTIONS)
    assert pricing_payload(result) == {"Paper": "21", "Qty": "31", "Size": "12"}


def test_error_as_dict():
    err = OptionValidationError(MISSING_GROUPS, {"missing_groups": ["Size"]})
    assert err.as_dict() == {"code": "missing_groups", "missing_groups": ["Size"]}
