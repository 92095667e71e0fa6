"""
Signup Forms - step-local input and validation rules.

Each form is a pydantic model that only normalizes input (trimming, casing).
The matching validate_* function applies the step's required-field rules and
returns user-facing messages:

    (is_valid, error_messages)

Messages are shown inline on the step; they never abort the wizard.
"""

import logging
import re
from datetime import date

from pydantic import BaseModel, Field, field_validator

from .contact import (
    calculate_age,
    is_valid_email,
    is_zip_code_valid,
    phone_digits,
)
from .schedule import VALID_DAY_IDS, VALID_TIMES
from .state import PersonalInfo, UserType, VerificationMethod

logger = logging.getLogger(__name__)

MINIMUM_AGE = 18
MIN_PASSWORD_LENGTH = 8
OTP_LENGTH = 6

RELATIONSHIP_OPTIONS = [
    "Spouse/Partner",
    "Adult Child",
    "Parent",
    "Sibling",
    "Other Family Member",
    "Friend",
    "Caregiver",
    "Healthcare Professional",
    "Other",
]


class _StrippedForm(BaseModel):
    """Base form: every string field is trimmed."""

    @field_validator("*", mode="before")
    @classmethod
    def strip_strings(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


# =============================================================================
# Verification
# =============================================================================


def validate_contact(method: VerificationMethod | None, contact: str) -> tuple[bool, list[str]]:
    """Contact entered on the verification step, before sending a code."""
    errors = []
    if method is None:
        errors.append("Please choose how you'd like to verify your account")
    elif not contact.strip():
        errors.append(
            "Please enter your phone number"
            if method == VerificationMethod.PHONE
            else "Please enter your email address"
        )
    elif method == VerificationMethod.PHONE and len(phone_digits(contact)) != 10:
        errors.append("Please enter a valid 10-digit phone number")
    elif method == VerificationMethod.EMAIL and not is_valid_email(contact.strip()):
        errors.append("Please enter a valid email address")
    return (len(errors) == 0, errors)


def validate_otp(code: str) -> tuple[bool, list[str]]:
    code = code.strip()
    if len(code) != OTP_LENGTH or not code.isdigit():
        return (False, [f"Please enter the {OTP_LENGTH}-digit code"])
    return (True, [])


class PasswordForm(BaseModel):
    password: str = ""
    confirm_password: str = ""


def validate_password(form: PasswordForm) -> tuple[bool, list[str]]:
    errors = []
    if len(form.password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    elif form.password != form.confirm_password:
        errors.append("Passwords do not match")
    return (len(errors) == 0, errors)


# =============================================================================
# Caregiver Info (loved-one flow)
# =============================================================================


class CaregiverInfoForm(_StrippedForm):
    """Account holder's details when signing up for someone else."""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""


def caregiver_contacts(
    form: CaregiverInfoForm,
    personal_info: PersonalInfo,
) -> tuple[str | None, str | None]:
    """Phone/email to submit, falling back to what verification captured."""
    phone = form.phone or personal_info.phone or None
    email = form.email or personal_info.email or None
    return phone, email


def validate_caregiver_info(
    form: CaregiverInfoForm,
    verification_method: VerificationMethod | None,
    personal_info: PersonalInfo,
) -> tuple[bool, list[str]]:
    """
    Names always; the contact channel that wasn't verified becomes required.

    Verified by email -> phone required. Verified by phone -> email required.
    Either way at least one contact must exist.
    """
    errors = []

    if not form.first_name or not form.last_name:
        errors.append("Please enter your first and last name.")

    phone, email = caregiver_contacts(form, personal_info)
    if not phone and not email:
        errors.append("Provide at least a phone number or email address.")

    if verification_method == VerificationMethod.EMAIL and not form.phone:
        errors.append("Please add your phone number so we can reach you.")
    if verification_method == VerificationMethod.PHONE and not form.email:
        errors.append("Please add your email address so we can reach you.")

    if form.email and not is_valid_email(form.email):
        errors.append("Please enter a valid email address.")

    return (len(errors) == 0, errors)


# =============================================================================
# Personal Info
# =============================================================================


class PersonalInfoForm(_StrippedForm):
    """The call recipient. Loved-one flow asks relationship instead of birth date."""
    first_name: str = ""
    last_name: str = ""
    zip_code: str = ""
    date_of_birth: str = ""  # ISO YYYY-MM-DD
    nickname: str = ""
    relationship: str = ""
    phone: str = ""
    accept_terms: bool = False


def validate_personal_info(
    form: PersonalInfoForm,
    user_type: UserType | None,
    today: date | None = None,
) -> tuple[bool, list[str]]:
    errors = []
    loved_one = user_type == UserType.LOVED_ONE

    if not form.first_name:
        errors.append("Please enter their first name" if loved_one else "Please enter your first name")
    if not form.last_name:
        errors.append("Please enter their last name" if loved_one else "Please enter your last name")

    if loved_one:
        if not form.relationship:
            errors.append("Please specify your relationship")
    elif not form.date_of_birth:
        errors.append("Please enter your date of birth")
    else:
        age = calculate_age(form.date_of_birth, today=today)
        if age is None:
            errors.append("Please enter a valid date of birth")
        elif age < MINIMUM_AGE:
            errors.append(f"You must be {MINIMUM_AGE} or older to use this service")

    if len(form.zip_code) < 5:
        errors.append("Please enter a valid ZIP code")
    elif not is_zip_code_valid(form.zip_code):
        errors.append("Please enter a valid US ZIP code")

    if len(phone_digits(form.phone)) != 10:
        errors.append(
            "Please enter a valid phone number for your loved one"
            if loved_one
            else "Please enter a valid phone number"
        )

    if not form.accept_terms:
        errors.append("Please accept the Terms of Service and Privacy Policy")

    return (len(errors) == 0, errors)


# =============================================================================
# Personalization
# =============================================================================


class PersonalizationForm(_StrippedForm):
    """Optional conversation material. Both sections may be skipped."""
    interests: str = ""
    about_text: str = ""


# =============================================================================
# Call Preferences
# =============================================================================


class CallPreferencesForm(BaseModel):
    days: list[str] = Field(default_factory=list)
    default_time: str = "14:00"
    custom_times: dict[str, str] = Field(default_factory=dict)

    @field_validator("days", mode="before")
    @classmethod
    def normalize_days(cls, v: list[str]) -> list[str]:
        """Lowercase, dedupe, keep order."""
        if not v:
            return []
        seen: list[str] = []
        for day in v:
            if not day or not day.strip():
                continue
            d = day.lower().strip()
            if d not in seen:
                seen.append(d)
        return seen

    def selected_custom_times(self) -> dict[str, str]:
        """Custom times for selected days only."""
        return {day: t for day, t in self.custom_times.items() if day in self.days}


def validate_call_preferences(
    form: CallPreferencesForm,
    user_type: UserType | None = None,
) -> tuple[bool, list[str]]:
    errors = []

    if not form.days:
        errors.append(
            "Choose when they would like to receive calls"
            if user_type == UserType.LOVED_ONE
            else "Choose when you would like to receive calls"
        )
    elif len(form.days) > 7:
        errors.append("Please select up to 7 days for your call schedule")

    unknown_days = [d for d in form.days if d not in VALID_DAY_IDS]
    if unknown_days:
        errors.append(f"Unknown day: {', '.join(unknown_days)}")

    if form.default_time not in VALID_TIMES:
        errors.append("Please choose a call time between 8:00 AM and 8:30 PM")

    bad_custom = [d for d, t in form.selected_custom_times().items() if t not in VALID_TIMES]
    if bad_custom:
        errors.append(f"Please choose a valid time for {', '.join(bad_custom)}")

    return (len(errors) == 0, errors)


# =============================================================================
# Facility Inquiry
# =============================================================================

_FACILITY_PHONE_RE = re.compile(r"^[\d\s()+-]+$")


class FacilityInquiryForm(_StrippedForm):
    """Care facilities get a sales contact form instead of self-serve signup."""
    facility_name: str = ""
    facility_type: str = ""
    number_of_residents: str = ""
    contact_name: str = ""
    email: str = ""
    phone: str = ""
    timeline: str = ""
    message: str = ""
    agree_to_contact: bool = False


def validate_facility_inquiry(form: FacilityInquiryForm) -> tuple[bool, list[str]]:
    errors = []

    required = {
        "facility_name": "Facility name is required",
        "facility_type": "Please select facility type",
        "number_of_residents": "Number of residents required",
        "contact_name": "Contact name is required",
        "timeline": "Please select timeline",
    }
    for field_name, message in required.items():
        if not getattr(form, field_name):
            errors.append(message)

    if not form.email:
        errors.append("Email is required")
    elif not is_valid_email(form.email):
        errors.append("Please enter a valid email address")

    if len(form.phone) < 10:
        errors.append("Phone number must be at least 10 digits")
    elif len(form.phone) > 20:
        errors.append("Phone number is too long")
    elif not _FACILITY_PHONE_RE.match(form.phone):
        errors.append("Please enter a valid phone number")

    if len(form.message) < 10:
        errors.append("Please tell us about your needs")

    if not form.agree_to_contact:
        errors.append("You must agree to be contacted")

    return (len(errors) == 0, errors)
