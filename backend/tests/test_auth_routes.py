from __future__ import annotations

from app.models.user import User

TEST_PASSWORD = "test_password_123"


def _send_and_get_code(client, mailer, email: str) -> str:
    res = client.post("/auth/otp/send", json={"email": email})
    assert res.status_code == 200, res.text
    assert res.json() == {"success": True, "expires_in": 600}
    return mailer.last_code(email.strip().lower())


def test_otp_flow_end_to_end(anon_client, mailer):
    code = _send_and_get_code(anon_client, mailer, "flow@example.com")

    res = anon_client.post("/auth/otp/verify", json={"email": "flow@example.com", "otp": code})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "flow@example.com"
    assert body["user"]["is_email_verified"] is True
    assert "password_hash" not in body["user"]

    me = anon_client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "flow@example.com"


def test_otp_verify_wrong_code_reports_remaining(anon_client, mailer):
    code = _send_and_get_code(anon_client, mailer, "wrong@example.com")
    wrong = "000000" if code != "000000" else "111111"

    res = anon_client.post("/auth/otp/verify", json={"email": "wrong@example.com", "otp": wrong})
    assert res.status_code == 400
    assert res.json() == {
        "error": "INVALID_OTP",
        "message": "Invalid OTP. 4 attempts remaining",
        "details": {"remaining_attempts": 4},
    }


def test_otp_verify_lockout_returns_401(anon_client, mailer):
    code = _send_and_get_code(anon_client, mailer, "lock@example.com")
    wrong = "000000" if code != "000000" else "111111"
    for _ in range(5):
        anon_client.post("/auth/otp/verify", json={"email": "lock@example.com", "otp": wrong})

    res = anon_client.post("/auth/otp/verify", json={"email": "lock@example.com", "otp": code})
    assert res.status_code == 401
    assert res.json()["error"] == "OTP_ATTEMPTS_EXCEEDED"
    assert res.json()["details"] == {"remaining_attempts": 0}


def test_otp_verify_without_send(anon_client):
    res = anon_client.post("/auth/otp/verify", json={"email": "none@example.com", "otp": "123456"})
    assert res.status_code == 400
    assert res.json()["error"] == "OTP_EXPIRED"


def test_otp_verify_rejects_malformed_code(anon_client):
    res = anon_client.post("/auth/otp/verify", json={"email": "x@example.com", "otp": "12ab"})
    assert res.status_code == 422
    assert res.json()["error"] == "VALIDATION_ERROR"


def test_otp_resend_cooldown(anon_client, mailer):
    _send_and_get_code(anon_client, mailer, "cool@example.com")

    res = anon_client.post("/auth/otp/send", json={"email": "cool@example.com"})
    assert res.status_code == 429
    assert res.json()["error"] == "RATE_LIMITED"
    assert int(res.headers["Retry-After"]) == 60
    assert len(mailer.sent) == 1


def test_otp_hourly_cap(anon_client, mailer, clock):
    for _ in range(5):
        _send_and_get_code(anon_client, mailer, "cap@example.com")
        clock.advance(61)

    res = anon_client.post("/auth/otp/send", json={"email": "cap@example.com"})
    assert res.status_code == 429
    assert "Too many verification codes" in res.json()["message"]
    assert len(mailer.sent) == 5


def test_otp_send_failure_is_internal_error(anon_client, mailer):
    mailer.fail_with = RuntimeError("provider down")

    res = anon_client.post("/auth/otp/send", json={"email": "fail@example.com"})
    assert res.status_code == 500
    assert res.json() == {"error": "INTERNAL_ERROR", "message": "Unable to send verification code right now."}


def test_password_login_route(anon_client, make_user):
    make_user("pw@example.com")

    ok = anon_client.post("/auth/login", json={"email": "pw@example.com", "password": TEST_PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["user"]["email"] == "pw@example.com"

    bad = anon_client.post("/auth/login", json={"email": "pw@example.com", "password": "nope"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "UNAUTHORIZED", "message": "Invalid email or password"}
    assert bad.headers["WWW-Authenticate"] == "Bearer"


def test_google_login_route(anon_client, identity_provider):
    identity_provider.add("g-token", email="g@example.com", provider_id="g-1", display_name="Gee")

    res = anon_client.post("/auth/google", json={"token": "g-token"})
    assert res.status_code == 200
    assert res.json()["user"]["provider"] == "google"

    bad = anon_client.post("/auth/google", json={"token": "unknown"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "GOOGLE_AUTH_FAILED"


def test_refresh_route_rotates_tokens(anon_client, token_service, make_user, db_session):
    user = make_user("r@example.com", role="hr", is_profile_complete=False)
    pair = token_service.issue_for_user(user)

    user.role = "viewer"
    db_session.commit()

    res = anon_client.post("/auth/refresh", json={"refresh_token": pair.refresh_token})
    assert res.status_code == 200
    claims = token_service.verify(res.json()["access_token"])
    assert claims.role == "viewer"

    wrong_type = anon_client.post("/auth/refresh", json={"refresh_token": pair.access_token})
    assert wrong_type.status_code == 401


def test_refresh_token_cannot_authenticate_requests(anon_client, token_service, make_user):
    user = make_user()
    pair = token_service.issue_for_user(user)

    res = anon_client.get("/auth/me", headers={"Authorization": f"Bearer {pair.refresh_token}"})
    assert res.status_code == 401


def test_me_requires_auth(anon_client):
    res = anon_client.get("/auth/me")
    assert res.status_code == 401
    assert res.json()["error"] == "UNAUTHORIZED"


def test_complete_profile_route(client_for, make_user, token_service, db_session):
    user = make_user("p@example.com", name="", is_profile_complete=False)

    with client_for(user) as c:
        res = c.post(
            "/auth/complete-profile",
            json={"name": "Pat", "role": "hr", "hr_type": "agency", "agency_name": "Talent Co"},
        )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["user"]["is_profile_complete"] is True
    assert body["user"]["agency_name"] == "Talent Co"
    assert token_service.verify(body["access_token"]).is_profile_complete is True

    db_session.expire_all()
    assert db_session.get(User, user.id).is_profile_complete is True


def test_complete_profile_route_validates_subtype(client_for, make_user):
    user = make_user()

    with client_for(user) as c:
        res = c.post("/auth/complete-profile", json={"name": "Pat", "role": "hr", "hr_type": "company"})
    assert res.status_code == 422
    assert res.json()["error"] == "VALIDATION_ERROR"


def test_health(anon_client):
    assert anon_client.get("/health").json() == {"status": "ok"}
