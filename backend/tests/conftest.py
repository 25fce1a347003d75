import os

# Ensure JWT_SECRET exists before importing app.main (it calls require_jwt_secret() at import time).
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ["REDIS_URL"] = ""
os.environ["EMAIL_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from contextlib import contextmanager
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.base import Base
from app.core import config as app_config
from app.core.security import hash_password

# Import models so they register with SQLAlchemy metadata.
from app.models.user import User
from app.models.gmail_account import GmailAccount  # noqa: F401

from app.core.database import get_db
from app.dependencies.services import get_identity_provider, get_kv, get_mailer, get_tokens
from app.services.auth import AuthService
from app.services.gmail_accounts import GmailAccountService
from app.services.google_oauth import GoogleIdentity, GoogleOAuthError, OAuthTokens
from app.services.kv_store import InMemoryKeyValueStore, reset_kv_store
from app.services.otp import OtpEngine
from app.services.rate_limiter import reset_rate_limiter
from app.services.tokens import TokenService

TEST_PASSWORD = "test_password_123"


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMailer:
    """Captures (to, template_id, variables) instead of sending."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.fail_with: Exception | None = None

    def __call__(self, to_email, template_id, variables):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((to_email, template_id, dict(variables)))
        return f"msg-{len(self.sent)}"

    def last_code(self, email: str) -> str:
        for to_email, _, variables in reversed(self.sent):
            if to_email == email:
                return variables["otp"]
        raise AssertionError(f"no OTP sent to {email}")


class FakeIdentityProvider:
    """
    Stand-in for GoogleIdentityProvider. Register identities per token; unknown
    tokens fail the way Google rejections do.
    """

    def __init__(self) -> None:
        self.identities: dict[str, GoogleIdentity] = {}
        self.tokens: dict[str, OAuthTokens] = {}
        self.exchange_calls: list[tuple[str, str]] = []

    def add(
        self,
        token: str,
        *,
        email: str,
        provider_id: str,
        display_name: str | None = None,
        avatar_url: str | None = None,
        access_token: str | None = None,
        refresh_token: str | None = "refresh-token",
    ) -> GoogleIdentity:
        identity = GoogleIdentity(
            provider_id=provider_id,
            email=email,
            display_name=display_name,
            avatar_url=avatar_url,
            email_verified=True,
        )
        self.identities[token] = identity
        self.tokens[token] = OAuthTokens(
            access_token=access_token or f"access-{token}",
            refresh_token=refresh_token,
        )
        return identity

    def resolve_identity(self, token: str) -> GoogleIdentity:
        if token not in self.identities:
            raise GoogleOAuthError("Invalid Google access token")
        return self.identities[token]

    def exchange_credential(self, credential: str, flow: str = "code"):
        self.exchange_calls.append((credential, flow))
        if credential not in self.identities:
            raise GoogleOAuthError("Google rejected the authorization code")
        return self.tokens[credential], self.identities[credential]


@pytest.fixture(scope="session")
def password_hash() -> str:
    # bcrypt at cost 12 is slow; hash once per session.
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # Important: because we use an in-memory SQLite DB with StaticPool, the DB
    # persists across tests. Reset schema per test to avoid cross-test coupling.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _reset_mutable_settings():
    """
    Tests sometimes tweak global settings (app_config.settings.*). Because that object is
    process-global, we must restore values after each test to avoid cross-test coupling.
    """
    keys = [
        "RATE_LIMIT_ENABLED",
        "EMAIL_ENABLED",
        "EMAIL_PROVIDER",
        "RESEND_API_KEY",
        "FROM_EMAIL",
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "GMAIL_OAUTH_FLOW",
    ]
    original = {k: getattr(app_config.settings, k) for k in keys}
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)
        reset_rate_limiter()
        reset_kv_store()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def kv_store(clock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture()
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture()
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture()
def token_service() -> TokenService:
    return TokenService(
        "test_jwt_secret",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
    )


@pytest.fixture()
def otp_engine(kv_store, mailer) -> OtpEngine:
    return OtpEngine(kv_store, send_email=mailer, expiry_seconds=600, max_attempts=5)


@pytest.fixture()
def auth_service(db_session, token_service, otp_engine, identity_provider) -> AuthService:
    return AuthService(
        db_session,
        tokens=token_service,
        otp=otp_engine,
        identity_provider=identity_provider,
    )


@pytest.fixture()
def gmail_service(db_session, identity_provider) -> GmailAccountService:
    return GmailAccountService(db_session, identity_provider=identity_provider, flow="code")


@pytest.fixture()
def make_user(db_session, password_hash):
    def _make_user(email: str = "test@example.com", **fields) -> User:
        values = {
            "email": email,
            "name": "Test User",
            "password_hash": password_hash,
            "provider": "email",
            "role": "hr",
            "plan_type": "free",
            "is_email_verified": True,
        }
        values.update(fields)
        user = User(**values)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def app(db_session, kv_store, mailer, identity_provider, token_service):
    import app.main as main

    fastapi_app = main.app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_kv] = lambda: kv_store
    fastapi_app.dependency_overrides[get_mailer] = lambda: mailer
    fastapi_app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    fastapi_app.dependency_overrides[get_tokens] = lambda: token_service
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def anon_client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def client_for(app, token_service):
    """
    Context manager to create a client authenticated as an arbitrary user.

    Usage:
        with client_for(user) as c:
            ...
    """

    @contextmanager
    def _client_for(user: User):
        tokens = token_service.issue_for_user(user)
        with TestClient(app) as c:
            c.headers.update({"Authorization": f"Bearer {tokens.access_token}"})
            yield c

    return _client_for
