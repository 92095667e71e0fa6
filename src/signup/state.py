"""
Signup State.

The SignupData aggregate collected across every step of the signup wizard,
plus the typed partial shapes used to update it.

Updates are structural: nested records are merged field by field, so values
entered on an earlier visit survive unless a patch explicitly overwrites them.
"""

import json
import logging
from dataclasses import dataclass, field, asdict, fields, replace
from enum import Enum
from typing import Any, Mapping, TypedDict

logger = logging.getLogger(__name__)


class UserType(Enum):
    """Who the service is being set up for. Chosen in step 1."""
    MYSELF = "myself"
    LOVED_ONE = "loved-one"
    CARE_FACILITY = "care-facility"


class VerificationMethod(Enum):
    """Channel used to verify the new account."""
    PHONE = "phone"
    EMAIL = "email"


# =============================================================================
# Nested Records
# =============================================================================


@dataclass
class PersonalInfo:
    """The person receiving calls (the user, or their loved one)."""
    first_name: str | None = None
    last_name: str | None = None
    zip_code: str | None = None
    date_of_birth: str | None = None  # ISO date, "myself" flow only
    nickname: str | None = None
    relationship: str | None = None  # "loved-one" flow only
    phone: str | None = None  # human format: (555) 123-4567
    email: str | None = None
    accept_terms: bool | None = None


@dataclass
class CaregiverInfo:
    """The account holder when signing up on behalf of a loved one."""
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    email: str | None = None


@dataclass
class Personalization:
    """Conversation material for the calls."""
    interests: str | None = None
    about_text: str | None = None


@dataclass
class CallPreferences:
    """When calls happen."""
    days: list[str] = field(default_factory=list)  # ["monday", "thursday"]
    time_of_day: str = "afternoon"  # morning | afternoon | evening
    default_time: str | None = "14:00"  # 24h HH:MM
    custom_times: dict[str, str] = field(default_factory=dict)  # day -> HH:MM


# =============================================================================
# Partial Shapes
# =============================================================================
# Every key is optional. Absent keys leave the stored value untouched;
# a key explicitly set to None clears it.


class PersonalInfoPatch(TypedDict, total=False):
    first_name: str | None
    last_name: str | None
    zip_code: str | None
    date_of_birth: str | None
    nickname: str | None
    relationship: str | None
    phone: str | None
    email: str | None
    accept_terms: bool | None


class CaregiverInfoPatch(TypedDict, total=False):
    first_name: str | None
    last_name: str | None
    phone: str | None
    email: str | None


class PersonalizationPatch(TypedDict, total=False):
    interests: str | None
    about_text: str | None


class CallPreferencesPatch(TypedDict, total=False):
    days: list[str]
    time_of_day: str
    default_time: str | None
    custom_times: dict[str, str]


class SignupPatch(TypedDict, total=False):
    user_type: UserType | str | None
    verification_method: VerificationMethod | str | None
    user_id: str | None
    elderly_user_id: int | None
    personal_info: PersonalInfoPatch
    caregiver_info: CaregiverInfoPatch
    personalization: PersonalizationPatch
    call_preferences: CallPreferencesPatch
    current_step: int
    is_verified: bool
    verification_token: str | None
    subscription_id: str | None
    customer_id: str | None


# =============================================================================
# Aggregate
# =============================================================================


@dataclass
class SignupData:
    """
    Full in-progress signup aggregate.

    Created with defaults when the wizard starts (or restored from the store),
    mutated only through SignupWizard, and reset on explicit reset or after
    the success step hands off.
    """
    user_type: UserType | None = None
    verification_method: VerificationMethod | None = None

    # Assigned by the backend after verification / patient creation
    user_id: str | None = None
    elderly_user_id: int | None = None

    personal_info: PersonalInfo = field(default_factory=PersonalInfo)
    caregiver_info: CaregiverInfo = field(default_factory=CaregiverInfo)
    personalization: Personalization = field(default_factory=Personalization)
    call_preferences: CallPreferences = field(default_factory=CallPreferences)

    current_step: int = 1

    # Populated by verification and payment
    is_verified: bool = False
    verification_token: str | None = None
    subscription_id: str | None = None
    customer_id: str | None = None

    def to_dict(self) -> dict:
        """Serialize state to dict for JSON storage."""
        data = asdict(self)
        data["user_type"] = self.user_type.value if self.user_type else None
        data["verification_method"] = (
            self.verification_method.value if self.verification_method else None
        )
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SignupData":
        """
        Deserialize state from dict, overlaying it on the defaults.

        Unknown keys are dropped. Raises ValueError/TypeError when the payload
        is not structurally a SignupData.
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"Expected a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}

        if values.get("user_type") is not None:
            values["user_type"] = UserType(values["user_type"])
        if values.get("verification_method") is not None:
            values["verification_method"] = VerificationMethod(values["verification_method"])

        for key, record_cls in NESTED_RECORDS.items():
            if key in values:
                values[key] = _record_from_dict(record_cls, values[key])

        if "current_step" in values and not isinstance(values["current_step"], int):
            raise TypeError("current_step must be an integer")

        return cls(**values)

    def to_json(self) -> str:
        """Serialize state to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "SignupData":
        """Deserialize state from JSON string."""
        return cls.from_dict(json.loads(json_str))


NESTED_RECORDS: dict[str, type] = {
    "personal_info": PersonalInfo,
    "caregiver_info": CaregiverInfo,
    "personalization": Personalization,
    "call_preferences": CallPreferences,
}

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "user_type": UserType,
    "verification_method": VerificationMethod,
}

# Collection fields; anything else stored there is dropped
_CONTAINER_FIELDS: dict[type, dict[str, type]] = {
    CallPreferences: {"days": list, "custom_times": dict},
}


def _wrong_container(record_cls: type, key: str, value: Any) -> bool:
    expected = _CONTAINER_FIELDS.get(record_cls, {}).get(key)
    return expected is not None and not isinstance(value, expected)


def _record_from_dict(record_cls: type, data: Any):
    if data is None:
        return record_cls()
    if not isinstance(data, Mapping):
        raise TypeError(f"{record_cls.__name__} must be an object")
    known = {f.name for f in fields(record_cls)}
    values = {}
    for key, value in data.items():
        if key not in known:
            continue
        if _wrong_container(record_cls, key, value):
            logger.warning(f"Dropping stored {record_cls.__name__}.{key} of type {type(value).__name__}")
            continue
        values[key] = value
    return record_cls(**values)


# =============================================================================
# Structural Merge
# =============================================================================


def merge_record(record, patch: Mapping[str, Any] | None):
    """
    Merge a partial update into one nested record.

    Keys missing from the patch keep their current value. Unknown keys are
    ignored.
    """
    if not patch:
        return record
    if not isinstance(patch, Mapping):
        logger.warning(f"Ignoring {type(record).__name__} update of type {type(patch).__name__}")
        return record
    known = {f.name for f in fields(record)}
    updates = {}
    for key, value in patch.items():
        if key not in known:
            logger.warning(f"Ignoring unknown {type(record).__name__} field: {key}")
        elif _wrong_container(type(record), key, value):
            logger.warning(f"Ignoring {type(record).__name__}.{key} of type {type(value).__name__}")
        else:
            updates[key] = value
    return replace(record, **updates)


def merge_signup_data(data: SignupData, patch: Mapping[str, Any] | None) -> SignupData:
    """
    Apply a SignupPatch to the aggregate and return the merged copy.

    Top-level fields are replaced; the four nested records are merged at the
    field level. Never raises: unknown keys and invalid enum values are logged
    and skipped.
    """
    if not patch:
        return data
    if not isinstance(patch, Mapping):
        logger.warning(f"Ignoring signup update of type {type(patch).__name__}")
        return data

    known = {f.name for f in fields(SignupData)}
    updates: dict[str, Any] = {}

    for key, value in patch.items():
        if key not in known:
            logger.warning(f"Ignoring unknown signup field: {key}")
            continue

        if key in NESTED_RECORDS:
            current = getattr(data, key)
            if isinstance(value, NESTED_RECORDS[key]):
                updates[key] = value
            elif isinstance(value, Mapping):
                updates[key] = merge_record(current, value)
            else:
                logger.warning(f"Ignoring {key} update of type {type(value).__name__}")
            continue

        if key in _ENUM_FIELDS and value is not None and not isinstance(value, _ENUM_FIELDS[key]):
            try:
                value = _ENUM_FIELDS[key](value)
            except ValueError:
                logger.warning(f"Ignoring invalid {key}: {value!r}")
                continue

        if key == "current_step" and (not isinstance(value, int) or isinstance(value, bool)):
            logger.warning(f"Ignoring non-integer current_step: {value!r}")
            continue

        updates[key] = value

    return replace(data, **updates)
