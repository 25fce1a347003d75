# app/services/profile.py
"""
Profile completion rules.

`is_profile_complete` is a pure predicate over a user snapshot (any object with
the User attributes). `apply_profile_update` is the only place that writes the
profile fields, so HR subtype exclusivity and the cached completeness flag
always land together in one persisted write.
"""
from __future__ import annotations

from typing import Any

HR_SUBTYPE_FIELDS = {
    "company": "company_name",
    "agency": "agency_name",
    "freelance": "company_names",
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return not any(isinstance(v, str) and v.strip() for v in value)
    return False


def is_profile_complete(user: Any) -> bool:
    if _is_blank(getattr(user, "name", None)):
        return False

    if getattr(user, "role", None) != "hr":
        return True

    hr_type = getattr(user, "hr_type", None)
    field = HR_SUBTYPE_FIELDS.get(hr_type or "")
    if field is None:
        return False
    return not _is_blank(getattr(user, field, None))


def refresh_profile_completion(user: Any) -> bool:
    """Recompute and cache the completeness flag on the user. Returns the new value."""
    user.is_profile_complete = is_profile_complete(user)
    return user.is_profile_complete


def apply_profile_update(
    user: Any,
    *,
    name: str,
    role: str,
    hr_type: str | None = None,
    company_name: str | None = None,
    agency_name: str | None = None,
    company_names: list[str] | None = None,
) -> Any:
    user.name = (name or "").strip()
    user.role = role

    if hr_type is not None:
        if hr_type not in HR_SUBTYPE_FIELDS:
            raise ValueError(f"Unknown hr_type: {hr_type}")
        user.hr_type = hr_type
        # Setting one subtype field clears the other two.
        user.company_name = company_name if hr_type == "company" else None
        user.agency_name = agency_name if hr_type == "agency" else None
        user.company_names = list(company_names or []) if hr_type == "freelance" else None

    refresh_profile_completion(user)
    return user
