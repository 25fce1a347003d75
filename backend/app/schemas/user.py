from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UserRole = Literal["admin", "hr", "viewer"]
HrType = Literal["company", "agency", "freelance"]


class UserOut(BaseModel):
    """Public view of a user. There is deliberately no password field here."""

    id: int
    email: str
    name: str
    role: str
    provider: str
    avatar_url: str | None = None
    hr_type: str | None = None
    company_name: str | None = None
    agency_name: str | None = None
    company_names: list[str] | None = None
    plan_type: str
    is_email_verified: bool
    is_profile_complete: bool
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    role: UserRole = "hr"
    hr_type: HrType | None = None
    company_name: str | None = Field(default=None, min_length=1, max_length=200)
    agency_name: str | None = Field(default=None, min_length=1, max_length=200)
    company_names: list[str] | None = None

    @field_validator("name", "company_name", "agency_name")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip()

    @field_validator("company_names")
    @classmethod
    def _clean_company_names(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        cleaned = [v.strip()[:200] for v in value if v and v.strip()]
        return cleaned

    @model_validator(mode="after")
    def _check_hr_fields(self) -> "ProfileUpdate":
        if len(self.name) < 2:
            raise ValueError("Name must be at least 2 characters")
        if self.role != "hr":
            return self
        if self.hr_type is None:
            raise ValueError("hr_type is required for the hr role")
        if self.hr_type == "company" and not self.company_name:
            raise ValueError("Company HR requires company_name")
        if self.hr_type == "agency" and not self.agency_name:
            raise ValueError("Agency HR requires agency_name")
        if self.hr_type == "freelance" and not self.company_names:
            raise ValueError("Freelance HR requires at least one entry in company_names")
        return self
