"""
Onboarding API Endpoints.

Backend side of the signup wizard. Each step that persists something posts
here once the account exists; every endpoint acts only on the caller's own
account and the patients linked to it.
"""

import logging
from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from eldervoice.db import storage
from eldervoice.web.auth import AuthenticatedUser, get_current_user

from .contact import calculate_age, normalize_phone
from .schedule import call_frequency
from .state import UserType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboard", tags=["onboard"])


# =============================================================================
# Request/Response Models
# =============================================================================


class _CamelModel(BaseModel):
    """Bodies arrive camelCase from the wizard client."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MyselfProfileRequest(_CamelModel):
    user_id: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str = Field(min_length=7)
    date_of_birth: str = Field(min_length=1)
    zip_code: str = Field(min_length=3)
    preferred_name: str | None = None


class CaregiverProfileRequest(_CamelModel):
    user_id: str = Field(min_length=1)
    caregiver_first_name: str = Field(min_length=1)
    caregiver_last_name: str = Field(min_length=1)
    caregiver_phone: str | None = Field(default=None, min_length=7)
    caregiver_email: str | None = None


class LovedOneProfileRequest(_CamelModel):
    user_id: str = Field(min_length=1)  # the caregiver
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str = Field(min_length=7)
    zip_code: str = Field(min_length=3)
    relationship: str = Field(min_length=1)
    preferred_name: str | None = None


class CallPreferencesRequest(_CamelModel):
    user_id: str = Field(min_length=1)
    elderly_user_id: int | None = None
    days: list[str] = Field(min_length=1)
    default_time: str = Field(min_length=1)  # "HH:MM"
    custom_times: dict[str, str] | None = None


class PersonalizationRequest(_CamelModel):
    user_id: str = Field(min_length=1)
    elderly_user_id: int
    interests: str | None = None
    about_text: str | None = None


class OnboardResponse(_CamelModel):
    message: str
    elderly_user_id: int | None = None


# =============================================================================
# Helpers
# =============================================================================


def _require_self(user: AuthenticatedUser, body_user_id: str) -> None:
    if user.id != body_user_id:
        logger.warning(f"User {user.id} tried to act on account {body_user_id}")
        raise HTTPException(status_code=403, detail="Forbidden")


def _merge_preferences(existing: dict | None, key: str, updates: dict) -> dict:
    """
    Merge one signup_* section into conversation_preferences.

    Other top-level keys and fields already in the section are kept.
    """
    merged = dict(existing or {})
    section = dict(merged.get(key) or {})
    section.update(updates)
    section["updated_at"] = datetime.now(timezone.utc).isoformat()
    merged[key] = section
    return merged


async def _owned_patient(user: AuthenticatedUser, elderly_user_id: int) -> dict:
    elderly = await storage.get_elderly_user(elderly_user_id)
    if not elderly or elderly.get("caregiver_id") != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return elderly


def _server_error(action: str, e: Exception) -> HTTPException:
    logger.exception(f"Onboard {action} error: {e}")
    return HTTPException(status_code=500, detail="Internal server error")


# =============================================================================
# Endpoints: Profiles
# =============================================================================


@router.post("/myself/profile", response_model=OnboardResponse)
async def save_myself_profile(
    body: MyselfProfileRequest,
    user: AuthenticatedUser = Depends(get_current_user),
) -> OnboardResponse:
    """
    Myself path: the account holder is also the patient.

    Reuses the caller's patient row with the same phone, otherwise creates one.
    """
    _require_self(user, body.user_id)

    try:
        phone = normalize_phone(body.phone)
        preferred_name = body.preferred_name or body.first_name
        age = calculate_age(body.date_of_birth)

        await storage.update_user(user.id, {
            "first_name": body.first_name,
            "last_name": body.last_name,
            "phone": phone,
        })

        existing = await storage.get_elderly_users(user.id)
        elderly = next(
            (e for e in existing if normalize_phone(e.get("phone") or "") == phone),
            None,
        )

        record = {
            "caregiver_id": user.id,
            "name": f"{body.first_name} {body.last_name}".strip(),
            "preferred_name": preferred_name,
            "phone": phone,
            "conversation_preferences": _merge_preferences(
                elderly.get("conversation_preferences") if elderly else None,
                "signup_personal_info",
                {
                    "user_type": UserType.MYSELF.value,
                    "zip_code": body.zip_code,
                    "date_of_birth": body.date_of_birth,
                    "preferred_name": preferred_name,
                },
            ),
            "call_frequency": "daily",
            "status": "active",
            "consent": True,
        }
        try:
            record["date_of_birth"] = date.fromisoformat(body.date_of_birth).isoformat()
        except ValueError:
            logger.debug(f"Not storing unparseable date_of_birth: {body.date_of_birth}")
        if age is not None:
            record["age"] = age

        if elderly is None:
            elderly = await storage.create_elderly_user(record)
        else:
            elderly = await storage.update_elderly_user(elderly["id"], record)
    except Exception as e:
        raise _server_error("myself profile", e)

    return OnboardResponse(message="Profile saved", elderly_user_id=elderly["id"])


@router.post("/caregiver/profile", response_model=OnboardResponse)
async def save_caregiver_profile(
    body: CaregiverProfileRequest,
    user: AuthenticatedUser = Depends(get_current_user),
) -> OnboardResponse:
    """Loved-one path: the account holder's own details."""
    if not body.caregiver_phone and not body.caregiver_email:
        raise HTTPException(
            status_code=400,
            detail="Either caregiverPhone or caregiverEmail is required",
        )
    _require_self(user, body.user_id)

    updates = {
        "first_name": body.caregiver_first_name,
        "last_name": body.caregiver_last_name,
    }
    if body.caregiver_phone:
        updates["phone"] = normalize_phone(body.caregiver_phone)
    if body.caregiver_email:
        updates["email"] = body.caregiver_email

    try:
        await storage.update_user(user.id, updates)
    except Exception as e:
        raise _server_error("caregiver profile", e)

    return OnboardResponse(message="Caregiver profile saved")


@router.post("/loved-one/profile", response_model=OnboardResponse)
async def save_loved_one_profile(
    body: LovedOneProfileRequest,
    user: AuthenticatedUser = Depends(get_current_user),
) -> OnboardResponse:
    """Loved-one path: create the patient linked to the caregiver."""
    _require_self(user, body.user_id)

    preferred_name = body.preferred_name or body.first_name
    try:
        elderly = await storage.create_elderly_user({
            "caregiver_id": user.id,
            "name": f"{body.first_name} {body.last_name}".strip(),
            "preferred_name": preferred_name,
            "phone": normalize_phone(body.phone),
            "conversation_preferences": _merge_preferences(None, "signup_personal_info", {
                "user_type": UserType.LOVED_ONE.value,
                "zip_code": body.zip_code,
                "relationship": body.relationship,
                "preferred_name": preferred_name,
            }),
            "call_frequency": "daily",
            "status": "active",
            "consent": True,
        })
    except Exception as e:
        raise _server_error("loved one profile", e)

    return OnboardResponse(message="Loved one profile created", elderly_user_id=elderly["id"])


# =============================================================================
# Endpoints: Preferences
# =============================================================================


@router.post("/call-preferences", response_model=OnboardResponse)
async def save_call_preferences(
    body: CallPreferencesRequest,
    user: AuthenticatedUser = Depends(get_current_user),
) -> OnboardResponse:
    """
    Call schedule for a patient.

    Without an elderlyUserId the caller's first patient is used.
    """
    _require_self(user, body.user_id)

    target_id = body.elderly_user_id
    if not target_id:
        existing = await storage.get_elderly_users(user.id)
        if not existing:
            raise HTTPException(status_code=400, detail="No elderly user found for caregiver")
        target_id = existing[0]["id"]

    elderly = await _owned_patient(user, target_id)

    try:
        updated = await storage.update_elderly_user(target_id, {
            "preferred_call_days": body.days,
            "preferred_call_time": body.default_time,
            "call_frequency": call_frequency(body.days),
            "conversation_preferences": _merge_preferences(
                elderly.get("conversation_preferences"),
                "signup_call_preferences",
                {
                    "days": body.days,
                    "default_time": body.default_time,
                    "custom_times": body.custom_times or {},
                },
            ),
        })
    except Exception as e:
        raise _server_error("call preferences", e)

    return OnboardResponse(message="Call preferences saved", elderly_user_id=updated["id"])


@router.post("/personalization", response_model=OnboardResponse)
async def save_personalization(
    body: PersonalizationRequest,
    user: AuthenticatedUser = Depends(get_current_user),
) -> OnboardResponse:
    """Interests become topics_of_interest; the life story becomes life_history."""
    _require_self(user, body.user_id)
    elderly = await _owned_patient(user, body.elderly_user_id)

    topics = None
    if body.interests:
        topics = [t.strip() for t in body.interests.split(",") if t.strip()]

    try:
        updated = await storage.update_elderly_user(body.elderly_user_id, {
            "topics_of_interest": topics,
            "life_history": body.about_text,
            "conversation_preferences": _merge_preferences(
                elderly.get("conversation_preferences"),
                "signup_personalization",
                {"interests": body.interests, "about_text": body.about_text},
            ),
        })
    except Exception as e:
        raise _server_error("personalization", e)

    return OnboardResponse(message="Personalization saved", elderly_user_id=updated["id"])
