"""
Pytest configuration and fixtures for ElderVoice tests.
"""

import json
import os
from unittest.mock import MagicMock

import httpx
import pytest

# Set test environment before importing eldervoice modules
os.environ["ELDERVOICE_ENV"] = "development"

from eldervoice import config
from signup.client import AuthSession, SignupApiClient
from signup.state import SignupData, UserType, VerificationMethod
from signup.store import MemorySignupStore
from signup.wizard import SignupWizard


@pytest.fixture
def mock_supabase():
    """Mock Supabase client for unit tests."""
    mock_client = MagicMock()

    # Mock table operations
    mock_table = MagicMock()
    mock_table.select.return_value = mock_table
    mock_table.insert.return_value = mock_table
    mock_table.update.return_value = mock_table
    mock_table.eq.return_value = mock_table
    mock_table.order.return_value = mock_table
    mock_table.maybe_single.return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=[])

    mock_client.table.return_value = mock_table

    return mock_client


@pytest.fixture
def client_settings(tmp_path, monkeypatch):
    """ClientSettings pointing local state at a temp dir."""
    test_settings = config.ClientSettings(
        _env_file=None,
        eldervoice_env="development",
        signup_store_path=tmp_path / "signup_data.json",
        auth_session_path=tmp_path / "auth_session.json",
    )
    monkeypatch.setattr(config.client_settings, "_instance", test_settings)
    return test_settings


@pytest.fixture
def memory_store():
    return MemorySignupStore()


@pytest.fixture
def wizard(memory_store):
    return SignupWizard(store=memory_store)


class FakeBackend:
    """
    Scripted backend for httpx.MockTransport.

    Register a response per (method, path); every request is recorded.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], httpx.Response | Exception] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, status_code: int = 200, json_body=None, exc: Exception | None = None):
        if exc is not None:
            self.routes[(method, path)] = exc
        else:
            self.routes[(method, path)] = httpx.Response(status_code, json=json_body if json_body is not None else {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": f"No route for {request.url.path}"})
        if isinstance(route, Exception):
            raise route
        return route

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api_client(backend):
    """SignupApiClient wired to the fake backend, already signed in."""
    return SignupApiClient(
        "http://test",
        session=AuthSession(access_token="token-abc"),
        transport=httpx.MockTransport(backend.handler),
    )


@pytest.fixture
def verified_wizard(wizard):
    """Wizard on the myself path, past verification."""
    wizard.update_data(
        user_type=UserType.MYSELF,
        verification_method=VerificationMethod.EMAIL,
        user_id="user-1",
        is_verified=True,
        personal_info={"email": "sam@example.com"},
        current_step=3,
    )
    return wizard


@pytest.fixture
def sample_signup_data():
    return SignupData.from_dict({
        "user_type": "loved-one",
        "verification_method": "phone",
        "user_id": "user-1",
        "elderly_user_id": 42,
        "personal_info": {"first_name": "Rose", "last_name": "Lee", "phone": "(555) 123-4567"},
        "caregiver_info": {"first_name": "Sarah", "last_name": "Lee"},
        "call_preferences": {"days": ["monday", "friday"], "default_time": "09:30"},
        "current_step": 6,
    })
