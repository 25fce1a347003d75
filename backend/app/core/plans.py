# app/core/plans.py
from __future__ import annotations

from dataclasses import dataclass, field

UNLIMITED = -1


@dataclass(frozen=True)
class PlanFeatures:
    email_scanning: bool = True
    ai_classification: bool = False
    auto_replies: bool = False
    interview_scheduling: bool = False
    analytics: bool = False


@dataclass(frozen=True)
class PlanConfig:
    name: str
    max_gmail_accounts: int  # -1 = unlimited
    features: PlanFeatures = field(default_factory=PlanFeatures)


DEFAULT_PLAN = "free"

PLANS: dict[str, PlanConfig] = {
    "free": PlanConfig(
        name="Free",
        max_gmail_accounts=1,
        features=PlanFeatures(email_scanning=True),
    ),
    "basic": PlanConfig(
        name="Basic",
        max_gmail_accounts=5,
        features=PlanFeatures(
            email_scanning=True,
            ai_classification=True,
            auto_replies=True,
            interview_scheduling=True,
        ),
    ),
    "pro": PlanConfig(
        name="Pro",
        max_gmail_accounts=UNLIMITED,
        features=PlanFeatures(
            email_scanning=True,
            ai_classification=True,
            auto_replies=True,
            interview_scheduling=True,
            analytics=True,
        ),
    ),
}


def get_plan_config(plan_type: str | None) -> PlanConfig:
    """Unknown or missing plan types fall back to the free plan."""
    return PLANS.get((plan_type or "").strip().lower(), PLANS[DEFAULT_PLAN])


def get_max_gmail_accounts(plan_type: str | None) -> int:
    return get_plan_config(plan_type).max_gmail_accounts


def get_plan_name(plan_type: str | None) -> str:
    return get_plan_config(plan_type).name


def can_add_gmail_account(plan_type: str | None, current_count: int) -> bool:
    limit = get_max_gmail_accounts(plan_type)
    if limit == UNLIMITED:
        return True
    return current_count < limit
