from app.models.user import User
from app.models.gmail_account import GmailAccount

__all__ = ["User", "GmailAccount"]
