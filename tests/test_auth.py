"""
Account lifecycle: registration, login, two-factor, verification and reset
"""
from datetime import timedelta

from app.db import dynamo
from app.utils.dates import to_iso, utcnow

EMAIL = "alex@mailbox.org"


def test_register_returns_public_profile(client, register, outbox):
    user = register()
    assert user["email"] == EMAIL
    assert user["is_email_verified"] is False
    for hidden in ("password_hash", "email_verification_token", "otp_code", "pending_email"):
        assert hidden not in user
    assert outbox.last("verification")["to"] == EMAIL


def test_register_lowercases_and_rejects_duplicate_email(client, register):
    register(email="Alex@Mailbox.org")
    response = client.post(
        "/api/auth/register",
        json={"name": "Other", "email": "ALEX@mailbox.org", "password": "another1"},
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "User already exists"}


def test_register_keeps_account_when_email_fails(client, outbox):
    outbox.fail = True
    response = client.post("/api/auth/register", json={"name": "Alex", "email": EMAIL, "password": "secret123"})
    assert response.status_code == 201
    assert response.json()["data"]["email_sent"] is False
    assert dynamo.get_user_by_email(EMAIL) is not None


def test_register_validation_errors(client):
    response = client.post("/api/auth/register", json={"name": "A", "email": "nope", "password": "123"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert {error["field"] for error in body["errors"]} == {"name", "email", "password"}


def test_login_and_me(client, register, login):
    register()
    headers = login()
    response = client.get("/api/auth/me", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == EMAIL
    assert response.json()["data"]["user"]["last_login"] is not None


def test_login_rejects_bad_password(client, register):
    register()
    response = client.post("/api/auth/login", json={"email": EMAIL, "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_me_requires_token(client):
    client.cookies.clear()
    assert client.get("/api/auth/me").status_code == 401
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_verify_email_token_is_single_use(client, register, outbox):
    register()
    token = outbox.last("verification")["code"]

    response = client.get("/api/auth/verify-email", params={"token": token})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["is_email_verified"] is True

    replay = client.get("/api/auth/verify-email", params={"token": token})
    assert replay.status_code == 400


def test_resend_verification_replaces_token(client, register, outbox):
    register()
    first = outbox.last("verification")["code"]
    assert client.post("/api/auth/resend-verification", json={"email": EMAIL}).status_code == 200
    second = outbox.last("verification")["code"]
    assert first != second
    assert client.get("/api/auth/verify-email", params={"token": first}).status_code == 400
    assert client.get("/api/auth/verify-email", params={"token": second}).status_code == 200


def test_resend_verification_rolls_back_on_send_failure(client, register, outbox):
    register()
    outbox.fail = True
    response = client.post("/api/auth/resend-verification", json={"email": EMAIL})
    assert response.status_code == 500
    user = dynamo.get_user_by_email(EMAIL)
    assert "email_verification_token" not in user


def test_two_factor_login_flow(client, register, login, outbox):
    register()
    headers = login()
    assert client.post("/api/auth/enable-2fa", json={"password": "secret123"}, headers=headers).status_code == 200

    challenge = client.post("/api/auth/login", json={"email": EMAIL, "password": "secret123"})
    assert challenge.status_code == 200
    assert challenge.json()["data"]["requires_two_factor"] is True
    assert "token" not in challenge.json()["data"]

    otp = outbox.last("otp")["code"]
    wrong = "000000" if otp != "000000" else "111111"
    assert client.post("/api/auth/verify-otp", json={"email": EMAIL, "otp": wrong}).status_code == 400

    verified = client.post("/api/auth/verify-otp", json={"email": EMAIL, "otp": otp})
    assert verified.status_code == 200
    assert verified.json()["data"]["token"]

    replay = client.post("/api/auth/verify-otp", json={"email": EMAIL, "otp": otp})
    assert replay.status_code == 400
    assert replay.json()["message"] == "Invalid or expired OTP"


def test_two_factor_send_failure_clears_otp(client, register, login, outbox):
    register()
    headers = login()
    client.post("/api/auth/enable-2fa", json={"password": "secret123"}, headers=headers)

    outbox.fail = True
    response = client.post("/api/auth/login", json={"email": EMAIL, "password": "secret123"})
    assert response.status_code == 500
    assert "otp_code" not in dynamo.get_user_by_email(EMAIL)


def test_disable_two_factor_requires_password(client, register, login):
    register()
    headers = login()
    client.post("/api/auth/enable-2fa", json={"password": "secret123"}, headers=headers)
    assert client.post("/api/auth/disable-2fa", json={"password": "nope"}, headers=headers).status_code == 400
    response = client.post("/api/auth/disable-2fa", json={"password": "secret123"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["user"]["is_two_factor_enabled"] is False


def test_forgot_password_response_is_uniform(client, register, outbox):
    register()
    known = client.post("/api/auth/forgot-password", json={"email": EMAIL})
    unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@mailbox.org"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert len([m for m in outbox.sent if m["kind"] == "reset"]) == 1


def test_reset_password_once(client, register, login, outbox):
    register()
    client.post("/api/auth/forgot-password", json={"email": EMAIL})
    token = outbox.last("reset")["code"]

    response = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new"})
    assert response.status_code == 200
    assert client.post("/api/auth/reset-password", json={"token": token, "password": "again123"}).status_code == 400

    login(password="brand-new")
    old = client.post("/api/auth/login", json={"email": EMAIL, "password": "secret123"})
    assert old.status_code == 401


def test_change_password(client, register, login):
    register()
    headers = login()
    wrong = client.put(
        "/api/auth/password",
        json={"current_password": "incorrect", "new_password": "changed1"},
        headers=headers,
    )
    assert wrong.status_code == 400

    response = client.put(
        "/api/auth/password",
        json={"current_password": "secret123", "new_password": "changed1"},
        headers=headers,
    )
    assert response.status_code == 200
    login(password="changed1")


def test_sessions_listing_and_revoke(client, register, login):
    register()
    first = login()
    second = login()

    sessions = client.get("/api/auth/sessions", headers=second).json()["data"]["sessions"]
    assert len(sessions) == 2
    assert [s["current"] for s in sessions] == [True, False]

    other = sessions[1]["session_id"]
    response = client.post("/api/auth/sessions/revoke", json={"session_id": other}, headers=second)
    assert response.status_code == 200
    assert len(response.json()["data"]["sessions"]) == 1

    missing = client.post("/api/auth/sessions/revoke", json={"session_id": other}, headers=second)
    assert missing.status_code == 404

    # Revoking only edits the listing; issued tokens keep working
    assert client.get("/api/auth/me", headers=first).status_code == 200


def test_logout_clears_cookie(client, register, login):
    register()
    login()
    response = client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_expired_login_otp_is_rejected(client, register, login, outbox):
    register()
    headers = login()
    client.post("/api/auth/enable-2fa", json={"password": "secret123"}, headers=headers)
    client.post("/api/auth/login", json={"email": EMAIL, "password": "secret123"})
    otp = outbox.last("otp")["code"]

    user = dynamo.get_user_by_email(EMAIL)
    dynamo.update_user(user["user_id"], {"otp_expires": to_iso(utcnow() - timedelta(minutes=1))})

    response = client.post("/api/auth/verify-otp", json={"email": EMAIL, "otp": otp})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid or expired OTP"
    assert "token" not in response.cookies
