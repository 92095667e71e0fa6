"""
Tests for the signup API client against a mocked transport.
"""

import asyncio

import httpx
import pytest

from signup.client import (
    ApiError,
    AuthSession,
    SessionExpiredError,
    SignupApiClient,
)
from signup.state import VerificationMethod


def _run(coro):
    return asyncio.run(coro)


class TestRequests:
    def test_bearer_header_sent(self, backend, api_client):
        backend.on("POST", "/api/onboard/personalization", json_body={"message": "ok"})
        _run(api_client.save_personalization("user-1", 42, "gardening", None))

        request = backend.requests[0]
        assert request.headers["Authorization"] == "Bearer token-abc"
        # Optional fields omitted rather than sent as null
        assert backend.body() == {"userId": "user-1", "elderlyUserId": 42, "interests": "gardening"}

    def test_registration_is_unauthenticated(self, backend, api_client):
        backend.on("POST", "/api/auth/register/start", json_body={"message": "sent"})
        _run(api_client.start_registration(VerificationMethod.EMAIL, "sam@example.com"))

        assert "Authorization" not in backend.requests[0].headers
        assert backend.body() == {"email": "sam@example.com"}

    def test_verify_otp_returns_user_id(self, backend, api_client):
        backend.on("POST", "/api/auth/register/verify-otp", json_body={"userId": "user-9"})
        assert _run(api_client.verify_otp(VerificationMethod.PHONE, "(555) 123-4567", "123456")) == "user-9"

    def test_set_password_keeps_session(self, backend):
        backend.on("POST", "/api/auth/register/set-password", json_body={
            "session": {"access_token": "fresh", "refresh_token": "r", "expires_at": 123},
        })
        client = SignupApiClient("http://test", transport=httpx.MockTransport(backend.handler))
        session = _run(client.set_password("user-1", "longenough", {"email": "sam@example.com"}))

        assert session == AuthSession(access_token="fresh", refresh_token="r", expires_at=123)
        assert client.session is session
        assert backend.body() == {"userId": "user-1", "password": "longenough", "email": "sam@example.com"}

    def test_checkout_session_status(self, backend, api_client):
        backend.on("GET", "/api/billing/session-status", json_body={
            "id": "cs_1", "status": "complete", "customer_email": "sam@example.com", "subscription_id": "sub_1",
        })
        status = _run(api_client.get_checkout_session_status("cs_1"))
        assert status.status == "complete"
        assert status.subscription_id == "sub_1"
        assert backend.requests[0].url.params["session_id"] == "cs_1"

    def test_empty_body(self, backend, api_client):
        backend.routes[("POST", "/api/facility-contact")] = httpx.Response(204)
        assert _run(api_client.submit_facility_inquiry({"facilityName": "Sunny Acres"})) is None


class TestFailures:
    def test_error_status_raises_with_message(self, backend, api_client):
        backend.on("POST", "/api/onboard/myself/profile", status_code=400, json_body={"message": "Validation failed"})
        with pytest.raises(ApiError) as exc_info:
            _run(api_client.save_myself_profile({"userId": "user-1"}))
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Validation failed"

    def test_detail_used_when_no_message(self, backend, api_client):
        backend.on("POST", "/api/onboard/myself/profile", status_code=403, json_body={"detail": "Forbidden"})
        with pytest.raises(ApiError, match="Forbidden"):
            _run(api_client.save_myself_profile({"userId": "user-2"}))

    def test_network_error(self, backend, api_client):
        backend.on("POST", "/api/coupons/validate", exc=httpx.ConnectError("refused"))
        with pytest.raises(ApiError) as exc_info:
            _run(api_client.validate_coupon("SAVE10"))
        assert exc_info.value.status_code is None

    def test_timeout(self, backend, api_client):
        backend.on("POST", "/api/coupons/validate", exc=httpx.ReadTimeout("slow"))
        with pytest.raises(ApiError, match="timed out"):
            _run(api_client.validate_coupon("SAVE10"))

    def test_missing_client_secret(self, backend, api_client):
        backend.on("POST", "/api/billing/create-signup-checkout-session", json_body={})
        with pytest.raises(ApiError):
            _run(api_client.create_checkout_session())


class TestSessionExpiry:
    def test_401_clears_session_and_notifies(self, backend):
        expired = []
        client = SignupApiClient(
            "http://test",
            session=AuthSession(access_token="stale"),
            transport=httpx.MockTransport(backend.handler),
            on_session_expired=lambda: expired.append(True),
        )
        backend.on("POST", "/api/onboard/call-preferences", status_code=401, json_body={"message": "Unauthorized"})

        with pytest.raises(SessionExpiredError):
            _run(client.save_call_preferences("user-1", 42, ["monday"], "09:00", {}))
        assert client.session is None
        assert expired == [True]

    def test_401_without_session_is_plain_error(self, backend):
        client = SignupApiClient("http://test", transport=httpx.MockTransport(backend.handler))
        backend.on("POST", "/api/auth/register/verify-otp", status_code=401, json_body={"message": "Bad code"})

        with pytest.raises(ApiError) as exc_info:
            _run(client.verify_otp(VerificationMethod.EMAIL, "sam@example.com", "000000"))
        assert not isinstance(exc_info.value, SessionExpiredError)
