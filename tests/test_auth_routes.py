"""Integration tests for the /api/auth endpoints and bearer-protected routes."""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from abcid.core.config import settings
from abcid.core.dependencies import get_otp_store
from abcid.core.security import TokenService
from abcid.main import app
from abcid.services.otp_service import hash_code
from abcid.services.otp_store import MemoryOtpStore, OtpRecord


def _login_with_otp(client, notifier, identifier):
    assert client.post("/api/auth/send-otp", json={"identifier": identifier}).status_code == 200
    return client.post(
        "/api/auth/verify-otp",
        json={"identifier": identifier, "code": notifier.last_code},
    )


def _cleared(response, name):
    return any(
        h.startswith(f"{name}=") and "Max-Age=0" in h
        for h in response.headers.get_list("set-cookie")
    )


class TestSendOtp:
    def test_returns_expiry(self, client, notifier):
        before = datetime.now(timezone.utc)
        response = client.post("/api/auth/send-otp", json={"identifier": "ST0123456789"})

        assert response.status_code == 200
        expires_at = datetime.fromisoformat(response.json()["expiresAt"].replace("Z", "+00:00"))
        assert before + timedelta(seconds=119) <= expires_at <= before + timedelta(seconds=125)
        assert len(notifier.sent) == 1

    def test_unknown_identifier(self, client):
        response = client.post("/api/auth/send-otp", json={"identifier": "nobody@example.edu"})
        assert response.status_code == 404
        assert response.json()["detail"] == "User not found"

    def test_bad_input(self, client):
        assert client.post("/api/auth/send-otp", json={}).status_code == 400
        assert client.post("/api/auth/send-otp", json={"identifier": ""}).status_code == 400

    def test_delivery_failure_is_not_visible(self, client, notifier):
        notifier.fail = True
        response = client.post("/api/auth/send-otp", json={"identifier": "0123456789"})
        assert response.status_code == 200


class TestVerifyOtp:
    def test_student_login(self, client, notifier):
        response = _login_with_otp(client, notifier, "0123456789")

        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "student"
        assert body["identifier"] == "ST0123456789"
        assert body["redirectUrl"] == "/0123456789"
        assert body["accessToken"] and body["refreshToken"]

        assert client.cookies.get("refreshToken") == body["refreshToken"]
        assert client.cookies.get("identifier") == "ST0123456789"
        assert client.cookies.get("role") == "student"

    def test_admin_login(self, client, notifier, admin):
        response = _login_with_otp(client, notifier, admin.email)

        body = response.json()
        assert body["role"] == "admin"
        assert body["identifier"] == "admin-user"
        assert body["redirectUrl"] == "/home"

    def test_invalid_code(self, client, notifier):
        client.post("/api/auth/send-otp", json={"identifier": "0123456789"})
        wrong = "100000" if notifier.last_code != "100000" else "100001"

        response = client.post("/api/auth/verify-otp", json={"identifier": "0123456789", "code": wrong})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid OTP"
        assert client.cookies.get("refreshToken") is None

    def test_expired_code(self, client, overrides, student):
        stale = datetime.now(timezone.utc) - timedelta(minutes=3)
        asyncio.run(overrides.save(OtpRecord(student.email, student.phone, hash_code("424242"), stale)))

        response = client.post("/api/auth/verify-otp", json={"identifier": "0123456789", "code": "424242"})
        assert response.status_code == 400
        assert response.json()["detail"] == "OTP expired"

    def test_unknown_identifier(self, client):
        response = client.post("/api/auth/verify-otp", json={"identifier": "5555555555", "code": "123456"})
        assert response.status_code == 404
        assert response.json()["detail"] == "User not found"

    def test_code_must_be_six_digits(self, client):
        response = client.post("/api/auth/verify-otp", json={"identifier": "0123456789", "code": "12ab"})
        assert response.status_code == 400

    def test_verify_stamps_check_in(self, client, notifier, directory, student):
        _login_with_otp(client, notifier, "0123456789")
        assert ("student", student.id) in directory.checked_in


class TestDobLogin:
    @pytest.mark.parametrize("dob", ["21-04-2004", "2004-04-21"])
    def test_student_login(self, client, dob):
        response = client.post("/api/auth/login", json={"identifier": "0123456789", "dob": dob})

        assert response.status_code == 200
        body = response.json()
        assert body["redirectUrl"] == "/0123456789"
        assert body["role"] == "student"
        assert client.cookies.get("role") == "student"

    def test_uid_is_normalized(self, client):
        response = client.post("/api/auth/login", json={"identifier": "ST-0123456789", "dob": "21-04-2004"})
        assert response.status_code == 200

    @pytest.mark.parametrize("payload", [
        {"identifier": "0123456789", "dob": "22-04-2004"},
        {"identifier": "5555555555", "dob": "21-04-2004"},
        {"identifier": "0123456789", "dob": "99-99-2004"},
    ])
    def test_mismatch(self, client, payload):
        response = client.post("/api/auth/login", json=payload)
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid UID or Date of Birth"

    def test_missing_fields(self, client):
        assert client.post("/api/auth/login", json={"identifier": "0123456789"}).status_code == 400
        assert client.post("/api/auth/login", json={"dob": "21-04-2004"}).status_code == 400


class TestMe:
    def test_returns_fresh_access_token(self, client, notifier, student):
        _login_with_otp(client, notifier, "0123456789")
        response = client.get("/api/auth/me")

        assert response.status_code == 200
        body = response.json()
        assert body["identity"]["kind"] == "student"
        assert body["identity"]["uid"] == student.uid
        payload = TokenService(settings).verify_access(body["accessToken"])
        assert payload.subject_id == student.id

    def test_without_cookie(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401

    def test_invalid_cookie_clears_session(self, client):
        client.cookies.set("refreshToken", "garbage")
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert _cleared(response, "refreshToken")
        assert _cleared(response, "identifier")
        assert _cleared(response, "role")

    def test_access_token_rejected_as_refresh_cookie(self, client, student):
        pair = TokenService(settings).issue(student)
        client.cookies.set("refreshToken", pair.access_token)
        assert client.get("/api/auth/me").status_code == 401

    def test_identity_gone(self, client, notifier, directory):
        _login_with_otp(client, notifier, "0123456789")
        directory._identities.clear()

        response = client.get("/api/auth/me")
        assert response.status_code == 404


class TestRefresh:
    def test_reissues_cookies(self, client, notifier, admin):
        _login_with_otp(client, notifier, admin.email)
        response = client.get("/api/auth/refresh")

        assert response.status_code == 200
        body = response.json()
        assert body["identity"]["kind"] == "admin"
        assert TokenService(settings).verify_access(body["accessToken"]).email == admin.email
        set_cookies = {h.split("=", 1)[0] for h in response.headers.get_list("set-cookie")}
        assert set_cookies == {"refreshToken", "identifier", "role"}

    def test_refresh_does_not_stamp_check_in(self, client, notifier, directory, admin):
        _login_with_otp(client, notifier, admin.email)
        directory.checked_in.clear()
        client.get("/api/auth/refresh")
        assert directory.checked_in == {}

    def test_absent_cookie(self, client):
        assert client.get("/api/auth/refresh").status_code == 401

    def test_invalid_cookie(self, client):
        client.cookies.set("refreshToken", "not-a-token")
        response = client.get("/api/auth/refresh")
        assert response.status_code == 401
        assert _cleared(response, "refreshToken")


class TestLogout:
    def test_logout_is_idempotent(self, client, notifier):
        _login_with_otp(client, notifier, "0123456789")

        first = client.post("/api/auth/logout")
        second = client.post("/api/auth/logout")

        for response in (first, second):
            assert response.status_code == 200
            assert response.json() == {"success": True}
            assert _cleared(response, "refreshToken")
            assert _cleared(response, "identifier")
            assert _cleared(response, "role")
        assert client.cookies.get("refreshToken") is None

    def test_logout_without_session(self):
        response = TestClient(app).post("/api/auth/logout")
        assert response.status_code == 200


class TestBearerRoutes:
    def test_profile_with_bearer(self, client, notifier, student):
        token = _login_with_otp(client, notifier, "0123456789").json()["accessToken"]

        response = client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["identity"]["email"] == student.email

    def test_cookies_alone_are_not_enough(self, client, notifier):
        _login_with_otp(client, notifier, "0123456789")

        response = client.get("/api/profile")
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or missing token"

    def test_refresh_token_is_not_a_bearer(self, client, notifier):
        refresh = _login_with_otp(client, notifier, "0123456789").json()["refreshToken"]
        response = client.get("/api/profile", headers={"Authorization": f"Bearer {refresh}"})
        assert response.status_code == 401

    def test_role_guards(self, client, notifier, admin):
        token = _login_with_otp(client, notifier, admin.email).json()["accessToken"]
        auth = {"Authorization": f"Bearer {token}"}

        assert client.get("/api/admin/me", headers=auth).status_code == 200
        assert client.get("/api/students/me", headers=auth).status_code == 403


class BrokenOtpStore(MemoryOtpStore):
    async def save(self, record):
        raise RuntimeError("db down at 10.0.0.5")


class TestInternalFailure:
    def test_store_failure_is_a_generic_500(self, overrides):
        app.dependency_overrides[get_otp_store] = lambda: BrokenOtpStore(validity=timedelta(minutes=2))
        client = TestClient(app, raise_server_exceptions=False)

        response = client.post("/api/auth/send-otp", json={"identifier": "0123456789"})

        assert response.status_code == 500
        assert response.json() == {"detail": "Something went wrong. Please try again."}
        assert "10.0.0.5" not in response.text
        assert "RuntimeError" not in response.text
