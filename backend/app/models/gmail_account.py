# app/models/gmail_account.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from app.core.base import Base


class GmailAccount(Base):
    __tablename__ = "gmail_accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "email", name="uq_gmail_accounts_user_id_email"),
        Index("ix_gmail_accounts_user_id_status", "user_id", "status"),
        Index("ix_gmail_accounts_user_id_is_primary", "user_id", "is_primary"),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    email = Column(String(255), nullable=False, index=True)

    # Fernet ciphertext (app.core.crypto). Never serialized to clients.
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expiry = Column(DateTime(timezone=True), nullable=True)

    # Google account id
    provider_id = Column(String(255), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="active", server_default="active")  # active | inactive | error
    is_primary = Column(Boolean, nullable=False, default=False, server_default="false")

    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user = relationship("User", back_populates="gmail_accounts")
