"""Option normalization for vendor products.

A vendor product exposes its configurable choices as option rows
``{"id": 123, "group": "Size", "name": "4x6"}``. A pricing request needs
exactly one chosen option per group. Callers hand us a flat list of ids; we
map it back onto the groups and report precisely what is wrong when it does
not fit.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

UNKNOWN_OPTION_IDS = "unknown_option_ids"
DUPLICATE_GROUP_CHOICES = "duplicate_group_choices"
MISSING_GROUPS = "missing_groups"

_WS = re.compile(r"\s+")


class OptionValidationError(Exception):
    """Raised when supplied option ids do not select one option per group."""

    def __init__(self, code: str, details: dict, message: Optional[str] = None):
        self.code = code
        self.details = details
        super().__init__(message or code)

    def as_dict(self) -> dict:
        return {"code": self.code, **self.details}


@dataclass(frozen=True)
class VendorOption:
    id: int
    group: str
    name: str = ""


@dataclass
class NormalizedOptions:
    option_ids: list[int]
    by_group: dict[str, int]
    groups_used: list[str]
    required_groups: list[str]
    defaulted_groups: list[str] = field(default_factory=list)


def _to_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_options(rows: Iterable) -> list[VendorOption]:
    """Parse vendor option rows, skipping rows without a usable id or group."""
    parsed = []
    for row in rows or []:
        if isinstance(row, VendorOption):
            parsed.append(row)
            continue
        if not isinstance(row, dict):
            continue
        option_id = _to_int(row.get("id"))
        group = str(row.get("group") or "").strip()
        if option_id is None or not group:
            continue
        parsed.append(VendorOption(id=option_id, group=group, name=str(row.get("name") or "")))
    return parsed


def _id_sort_key(raw: str):
    as_int = _to_int(raw)
    return (as_int is None, as_int or 0, raw)


def build_option_index(options: Iterable[VendorOption]) -> dict[int, str]:
    """Map option id to its group name."""
    return {opt.id: opt.group for opt in options}


def is_quantity_group(name: str) -> bool:
    key = _WS.sub("", str(name or "")).lower()
    return key in {"qty", "quantity"}


def validate_one_per_group(
    option_ids: Iterable,
    options: Iterable[VendorOption],
    exclude_groups: Iterable[str] = (),
) -> NormalizedOptions:
    """Check that ``option_ids`` picks exactly one option in every required group.

    Checks run in a fixed order and the first failing check is reported:
    unknown ids, then groups chosen more than once, then groups not chosen.
    """
    options = parse_options(options)
    index = build_option_index(options)
    excluded = set(exclude_groups)
    required = sorted({opt.group for opt in options} - excluded)

    ids = []
    unknown = set()
    for raw in option_ids or []:
        option_id = _to_int(raw)
        if option_id is None or option_id not in index:
            unknown.add(str(raw))
            continue
        ids.append(option_id)

    if unknown:
        raise OptionValidationError(
            UNKNOWN_OPTION_IDS,
            {"unknown_option_ids": sorted(unknown, key=_id_sort_key)},
            "One or more option ids do not belong to this product.",
        )

    chosen: dict[str, list[int]] = {}
    for option_id in ids:
        chosen.setdefault(index[option_id], []).append(option_id)

    duplicates = {group: sorted(set(vals)) for group, vals in chosen.items() if len(vals) > 1}
    if duplicates:
        raise OptionValidationError(
            DUPLICATE_GROUP_CHOICES,
            {"duplicate_groups": dict(sorted(duplicates.items()))},
            "More than one option was chosen for the same group.",
        )

    missing = [group for group in required if group not in chosen]
    if missing:
        raise OptionValidationError(
            MISSING_GROUPS,
            {"missing_groups": missing},
            "Every option group needs a selection.",
        )

    by_group = {group: chosen[group][0] for group in required}
    return NormalizedOptions(
        option_ids=[by_group[group] for group in required],
        by_group=by_group,
        groups_used=sorted(chosen),
        required_groups=required,
    )


def normalize_for_pricing(option_ids: Iterable, options: Iterable) -> NormalizedOptions:
    """Validate options for a price request, defaulting the quantity group.

    When none of the supplied ids belongs to the vendor's quantity group, the
    first option of that group is selected instead of failing.
    """
    options = parse_options(options)
    supplied = list(option_ids or [])
    index = build_option_index(options)

    defaulted = []
    qty_groups = []
    for opt in options:
        if is_quantity_group(opt.group) and opt.group not in qty_groups:
            qty_groups.append(opt.group)
    for group in qty_groups:
        has_choice = any(index.get(_to_int(raw)) == group for raw in supplied)
        if has_choice:
            continue
        first = next(opt for opt in options if opt.group == group)
        supplied.append(first.id)
        defaulted.append(group)

    result = validate_one_per_group(supplied, options)
    result.defaulted_groups = defaulted
    return result


def pricing_payload(normalized: NormalizedOptions) -> dict[str, str]:
    """Vendor ``productOptions`` body: group name to chosen option id."""
    return {group: str(option_id) for group, option_id in normalized.by_group.items()}
