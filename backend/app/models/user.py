# app/models/user.py
from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, func
from sqlalchemy.orm import relationship

from app.core.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (Index("ix_users_provider_id_provider", "provider_id", "provider"),)

    id = Column(Integer, primary_key=True, index=True)

    # Always stored lowercased + trimmed (see app.services.users.normalize_email).
    email = Column(String(255), unique=True, index=True, nullable=False)
    # Only set for provider == "email".
    password_hash = Column(String(255), nullable=True)
    # Empty until the user completes their profile.
    name = Column(String(100), nullable=False, default="", server_default="")
    role = Column(String(20), nullable=False, default="hr", server_default="hr")  # admin | hr | viewer

    provider = Column(String(20), nullable=False, default="email", server_default="email")  # email | google
    provider_id = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)

    # HR subtype: exactly one of company_name / agency_name / company_names is used per hr_type.
    hr_type = Column(String(20), nullable=True)
    company_name = Column(String(200), nullable=True)
    agency_name = Column(String(200), nullable=True)
    company_names = Column(JSON, nullable=True)

    plan_type = Column(String(20), nullable=False, default="free", server_default="free")  # see app.core.plans

    is_email_verified = Column(Boolean, nullable=False, default=False, server_default="false")
    # Derived from the fields above; recomputed server-side on every profile mutation.
    is_profile_complete = Column(Boolean, nullable=False, default=False, server_default="false")

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    gmail_accounts = relationship(
        "GmailAccount",
        back_populates="user",
        cascade="all, delete-orphan",
    )
