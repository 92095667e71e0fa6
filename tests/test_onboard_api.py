"""
Tests for the /api/onboard router.

Supabase is replaced by an in-memory stand-in for the storage helpers; auth
is overridden per test.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from eldervoice import config
from eldervoice.db import storage
from eldervoice.web import auth
from eldervoice.web.app import create_app
from eldervoice.web.auth import AuthenticatedUser, get_current_user


class InMemoryStorage:
    """Rows for users and elderly_users, shaped like the table helpers."""

    def __init__(self):
        self.users: dict[str, dict] = {"user-1": {"id": "user-1"}, "user-2": {"id": "user-2"}}
        self.elderly: dict[int, dict] = {}
        self._next_id = 1

    async def update_user(self, user_id, updates):
        self.users.setdefault(user_id, {"id": user_id}).update(updates)
        return self.users[user_id]

    async def get_elderly_users(self, caregiver_id):
        return [e for e in self.elderly.values() if e["caregiver_id"] == caregiver_id]

    async def get_elderly_user(self, elderly_user_id):
        return self.elderly.get(elderly_user_id)

    async def create_elderly_user(self, record):
        row = {"id": self._next_id, **record}
        self.elderly[self._next_id] = row
        self._next_id += 1
        return row

    async def update_elderly_user(self, elderly_user_id, updates):
        self.elderly[elderly_user_id].update(updates)
        return self.elderly[elderly_user_id]


@pytest.fixture
def server_settings(monkeypatch):
    test_settings = config.ServerSettings(
        _env_file=None,
        supabase_url="https://test.supabase.co",
        supabase_anon_key="anon",
        supabase_service_role_key="service",
    )
    monkeypatch.setattr(config.settings, "_instance", test_settings)
    return test_settings


@pytest.fixture
def db(monkeypatch):
    fake = InMemoryStorage()
    for name in ("update_user", "get_elderly_users", "get_elderly_user", "create_elderly_user", "update_elderly_user"):
        monkeypatch.setattr(storage, name, getattr(fake, name))
    return fake


@pytest.fixture
def app(server_settings):
    return create_app()


@pytest.fixture
def client(app, db):
    """Signed in as user-1."""
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(
        id="user-1", email="sarah@example.com", access_token="token"
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


MYSELF_BODY = {
    "userId": "user-1",
    "firstName": "Sam",
    "lastName": "Lee",
    "phone": "(555) 123-4567",
    "dateOfBirth": "1950-03-02",
    "zipCode": "94110",
}


def test_health(app):
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestAuth:
    def test_missing_token(self, app, db):
        response = TestClient(app).post("/api/onboard/myself/profile", json=MYSELF_BODY)
        assert response.status_code == 401

    def test_invalid_token(self, app, db, monkeypatch):
        supabase = MagicMock()
        supabase.auth.get_user.return_value = MagicMock(user=None)
        monkeypatch.setattr(auth, "get_service_client", lambda: supabase)

        response = TestClient(app).post(
            "/api/onboard/myself/profile",
            json=MYSELF_BODY,
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401
        supabase.auth.get_user.assert_called_once_with("nope")

    def test_auth_backend_error(self, app, db, monkeypatch):
        supabase = MagicMock()
        supabase.auth.get_user.side_effect = RuntimeError("down")
        monkeypatch.setattr(auth, "get_service_client", lambda: supabase)

        response = TestClient(app).post(
            "/api/onboard/myself/profile",
            json=MYSELF_BODY,
            headers={"Authorization": "Bearer token"},
        )
        assert response.status_code == 401

    def test_phone_only_account(self, monkeypatch):
        supabase = MagicMock()
        supabase.auth.get_user.return_value = MagicMock(
            user=MagicMock(id="user-7", email="", phone="15551234567")
        )
        monkeypatch.setattr(auth, "get_service_client", lambda: supabase)

        user = asyncio.run(get_current_user("bearer tok-7"))

        assert user.id == "user-7"
        assert user.email is None
        assert user.phone == "15551234567"
        assert user.access_token == "tok-7"

    @pytest.mark.parametrize("header", ["Basic abc", "Bearer   ", "Token"])
    def test_malformed_header(self, header):
        with pytest.raises(HTTPException) as exc:
            auth.bearer_token(header)
        assert exc.value.status_code == 401

    def test_other_users_id_forbidden(self, client, db):
        response = client.post("/api/onboard/myself/profile", json={**MYSELF_BODY, "userId": "user-2"})
        assert response.status_code == 403
        assert db.elderly == {}

    def test_schema_error(self, client):
        response = client.post("/api/onboard/myself/profile", json={"userId": "user-1"})
        assert response.status_code == 422


class TestMyselfProfile:
    def test_creates_patient(self, client, db):
        response = client.post("/api/onboard/myself/profile", json=MYSELF_BODY)
        assert response.status_code == 200
        assert response.json()["elderlyUserId"] == 1

        assert db.users["user-1"]["phone"] == "+15551234567"
        patient = db.elderly[1]
        assert patient["caregiver_id"] == "user-1"
        assert patient["name"] == "Sam Lee"
        assert patient["preferred_name"] == "Sam"
        assert patient["date_of_birth"] == "1950-03-02"
        assert isinstance(patient["age"], int)
        info = patient["conversation_preferences"]["signup_personal_info"]
        assert info["user_type"] == "myself"
        assert info["zip_code"] == "94110"

    def test_same_phone_updates_existing(self, client, db):
        client.post("/api/onboard/myself/profile", json=MYSELF_BODY)
        db.elderly[1]["conversation_preferences"]["other"] = {"keep": True}

        response = client.post(
            "/api/onboard/myself/profile",
            json={**MYSELF_BODY, "phone": "555-123-4567", "preferredName": "Sammy"},
        )
        assert response.json()["elderlyUserId"] == 1
        assert len(db.elderly) == 1
        assert db.elderly[1]["preferred_name"] == "Sammy"
        assert db.elderly[1]["conversation_preferences"]["other"] == {"keep": True}

    def test_storage_failure_is_500(self, client, db, monkeypatch):
        async def broken(*args):
            raise RuntimeError("db down")

        monkeypatch.setattr(storage, "update_user", broken)
        response = client.post("/api/onboard/myself/profile", json=MYSELF_BODY)
        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"


class TestCaregiverProfile:
    def test_saves_user(self, client, db):
        response = client.post("/api/onboard/caregiver/profile", json={
            "userId": "user-1",
            "caregiverFirstName": "Sarah",
            "caregiverLastName": "Lee",
            "caregiverPhone": "(555) 987-6543",
        })
        assert response.status_code == 200
        assert db.users["user-1"] == {
            "id": "user-1",
            "first_name": "Sarah",
            "last_name": "Lee",
            "phone": "+15559876543",
        }

    def test_needs_a_contact(self, client):
        response = client.post("/api/onboard/caregiver/profile", json={
            "userId": "user-1",
            "caregiverFirstName": "Sarah",
            "caregiverLastName": "Lee",
        })
        assert response.status_code == 400


class TestLovedOneProfile:
    def test_creates_linked_patient(self, client, db):
        response = client.post("/api/onboard/loved-one/profile", json={
            "userId": "user-1",
            "firstName": "Rose",
            "lastName": "Lee",
            "phone": "5551234567",
            "zipCode": "94110",
            "relationship": "Parent",
        })
        assert response.status_code == 200
        assert response.json() == {"message": "Loved one profile created", "elderlyUserId": 1}
        patient = db.elderly[1]
        assert patient["caregiver_id"] == "user-1"
        assert patient["phone"] == "+15551234567"
        assert patient["conversation_preferences"]["signup_personal_info"]["relationship"] == "Parent"


class TestCallPreferences:
    def _patient(self, db, caregiver_id="user-1"):
        return db.elderly.setdefault(len(db.elderly) + 1, {
            "id": len(db.elderly) + 1,
            "caregiver_id": caregiver_id,
            "conversation_preferences": {"signup_personal_info": {"user_type": "loved-one"}},
        })

    def test_saves_schedule(self, client, db):
        patient = self._patient(db)
        response = client.post("/api/onboard/call-preferences", json={
            "userId": "user-1",
            "elderlyUserId": patient["id"],
            "days": ["monday"],
            "defaultTime": "09:00",
        })
        assert response.status_code == 200
        assert patient["call_frequency"] == "weekly"
        assert patient["preferred_call_days"] == ["monday"]
        prefs = patient["conversation_preferences"]
        assert prefs["signup_call_preferences"]["custom_times"] == {}
        assert prefs["signup_personal_info"] == {"user_type": "loved-one"}

    def test_defaults_to_first_patient(self, client, db):
        patient = self._patient(db)
        response = client.post("/api/onboard/call-preferences", json={
            "userId": "user-1",
            "days": ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"],
            "defaultTime": "09:00",
        })
        assert response.json()["elderlyUserId"] == patient["id"]
        assert patient["call_frequency"] == "daily"

    def test_no_patient(self, client, db):
        response = client.post("/api/onboard/call-preferences", json={
            "userId": "user-1", "days": ["monday"], "defaultTime": "09:00",
        })
        assert response.status_code == 400

    def test_someone_elses_patient(self, client, db):
        patient = self._patient(db, caregiver_id="user-2")
        response = client.post("/api/onboard/call-preferences", json={
            "userId": "user-1", "elderlyUserId": patient["id"], "days": ["monday"], "defaultTime": "09:00",
        })
        assert response.status_code == 403

    def test_days_required(self, client, db):
        response = client.post("/api/onboard/call-preferences", json={
            "userId": "user-1", "days": [], "defaultTime": "09:00",
        })
        assert response.status_code == 422


class TestPersonalization:
    def test_saves_topics_and_story(self, client, db):
        db.elderly[5] = {"id": 5, "caregiver_id": "user-1", "conversation_preferences": None}
        response = client.post("/api/onboard/personalization", json={
            "userId": "user-1",
            "elderlyUserId": 5,
            "interests": "gardening, jazz ,, chess",
            "aboutText": "Retired nurse",
        })
        assert response.status_code == 200
        patient = db.elderly[5]
        assert patient["topics_of_interest"] == ["gardening", "jazz", "chess"]
        assert patient["life_history"] == "Retired nurse"
        assert patient["conversation_preferences"]["signup_personalization"]["interests"] == "gardening, jazz ,, chess"

    def test_unknown_patient_forbidden(self, client, db):
        response = client.post("/api/onboard/personalization", json={"userId": "user-1", "elderlyUserId": 99})
        assert response.status_code == 403
