"""
Signup API Client.

Thin async wrapper around the ElderVoice backend endpoints the signup steps
call. Every call is a single attempt: no retries, no backoff. Callers decide
what a failure means for the step.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Callable

import httpx

from .state import VerificationMethod

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-success response, network failure, or timeout."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SessionExpiredError(ApiError):
    """The bearer token was rejected. The client has already dropped it."""


@dataclass
class AuthSession:
    """Session returned by set-password, used as the bearer token afterwards."""
    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AuthSession":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=data.get("expires_at"),
        )


@dataclass
class CheckoutSessionStatus:
    id: str | None
    status: str | None  # "open" | "complete" | "expired"
    customer_email: str | None = None
    subscription_id: str | None = None


class SignupApiClient:
    """
    Async client for the signup backend.

    Usage:
        async with SignupApiClient("http://localhost:8000") as api:
            await api.start_registration(VerificationMethod.EMAIL, "a@b.co")
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: AuthSession | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        on_session_expired: Callable[[], None] | None = None,
    ):
        self.session = session
        self.on_session_expired = on_session_expired
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SignupApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def clear_session(self) -> None:
        self.session = None

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        authenticated: bool = True,
    ) -> dict:
        headers = {}
        if authenticated and self.session:
            headers["Authorization"] = f"Bearer {self.session.access_token}"

        try:
            response = await self._http.request(
                method,
                path,
                json=_drop_none(json) if json is not None else None,
                params=params,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise ApiError(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise ApiError(f"{method} {path} failed: {e}") from e

        if response.status_code == 401 and authenticated and self.session:
            logger.info(f"Session rejected on {method} {path}; clearing it")
            self.clear_session()
            if self.on_session_expired:
                self.on_session_expired()
            raise SessionExpiredError("Session expired. Please sign in again.", status_code=401)

        if not response.is_success:
            raise ApiError(_error_message(response), status_code=response.status_code)

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}", status_code=response.status_code) from e
        return body if isinstance(body, dict) else {"data": body}

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    async def start_registration(self, method: VerificationMethod, contact: str) -> None:
        """Send a one-time code to the phone or email."""
        await self._request(
            "POST",
            "/api/auth/register/start",
            json={method.value: contact},
            authenticated=False,
        )

    async def verify_otp(self, method: VerificationMethod, contact: str, otp: str) -> str:
        """Check the code. Returns the new user's id."""
        body = await self._request(
            "POST",
            "/api/auth/register/verify-otp",
            json={method.value: contact, "otp": otp},
            authenticated=False,
        )
        user_id = body.get("userId")
        if not user_id:
            raise ApiError("Verification response missing userId")
        return user_id

    async def set_password(self, user_id: str, password: str, identity: dict[str, str]) -> AuthSession | None:
        """
        Set the account password. `identity` is {"phone": ...} or {"email": ...}.

        Keeps and returns the session from the response, if any.
        """
        body = await self._request(
            "POST",
            "/api/auth/register/set-password",
            json={"userId": user_id, "password": password, **identity},
            authenticated=False,
        )
        session = body.get("session") or {}
        if session.get("access_token"):
            self.session = AuthSession.from_dict(session)
        return self.session

    # -------------------------------------------------------------------------
    # Onboarding profile
    # -------------------------------------------------------------------------

    async def save_caregiver_profile(
        self,
        user_id: str,
        first_name: str,
        last_name: str,
        phone: str | None = None,
        email: str | None = None,
    ) -> None:
        await self._request("POST", "/api/onboard/caregiver/profile", json={
            "userId": user_id,
            "caregiverFirstName": first_name,
            "caregiverLastName": last_name,
            "caregiverPhone": phone,
            "caregiverEmail": email,
        })

    async def save_myself_profile(self, payload: dict[str, Any]) -> int | None:
        body = await self._request("POST", "/api/onboard/myself/profile", json=payload)
        return body.get("elderlyUserId")

    async def save_loved_one_profile(self, payload: dict[str, Any]) -> int | None:
        body = await self._request("POST", "/api/onboard/loved-one/profile", json=payload)
        return body.get("elderlyUserId")

    async def save_personalization(
        self,
        user_id: str,
        elderly_user_id: int,
        interests: str | None,
        about_text: str | None,
    ) -> None:
        await self._request("POST", "/api/onboard/personalization", json={
            "userId": user_id,
            "elderlyUserId": elderly_user_id,
            "interests": interests,
            "aboutText": about_text,
        })

    async def save_call_preferences(
        self,
        user_id: str,
        elderly_user_id: int,
        days: list[str],
        default_time: str,
        custom_times: dict[str, str],
    ) -> int | None:
        body = await self._request("POST", "/api/onboard/call-preferences", json={
            "userId": user_id,
            "elderlyUserId": elderly_user_id,
            "days": days,
            "defaultTime": default_time,
            "customTimes": custom_times,
        })
        return body.get("elderlyUserId")

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    async def validate_coupon(self, code: str) -> dict:
        """Returns {"valid": True, "coupon": {...}} or {"valid": False, "message": ...}."""
        return await self._request("POST", "/api/coupons/validate", json={"code": code})

    async def create_checkout_session(self, coupon_code: str | None = None) -> str:
        """Create the embedded checkout session. Returns its client secret."""
        payload = {"couponCode": coupon_code} if coupon_code else None
        body = await self._request(
            "POST",
            "/api/billing/create-signup-checkout-session",
            json=payload,
        )
        client_secret = body.get("clientSecret")
        if not client_secret:
            raise ApiError("No client secret received from server")
        return client_secret

    async def get_checkout_session_status(self, session_id: str) -> CheckoutSessionStatus:
        body = await self._request(
            "GET",
            "/api/billing/session-status",
            params={"session_id": session_id},
            authenticated=False,
        )
        return CheckoutSessionStatus(
            id=body.get("id"),
            status=body.get("status"),
            customer_email=body.get("customer_email"),
            subscription_id=body.get("subscription_id"),
        )

    # -------------------------------------------------------------------------
    # Facilities
    # -------------------------------------------------------------------------

    async def submit_facility_inquiry(self, inquiry: dict[str, Any]) -> None:
        await self._request("POST", "/api/facility-contact", json=inquiry, authenticated=False)


def _drop_none(payload: dict) -> dict:
    """Optional fields are omitted rather than sent as null."""
    return {k: v for k, v in payload.items() if v is not None}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body.get("error") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"
