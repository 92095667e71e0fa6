"""
Signup Steps.

One handler per wizard screen. A handler validates its own inputs, makes at
most one backend call per submission, and only then merges data into the
wizard and advances.

Outcomes come back as StepResult rather than exceptions:
- validation failure  -> errors, step stays active
- backend failure     -> generic message, step stays active, user may retry
- success             -> advanced=True

The one exception that escapes is SessionExpiredError; the host has to send
the user back to sign in.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from .checkout import (
    ValidatedCoupon,
    format_coupon_expiration,
    format_coupon_savings,
    normalize_coupon_code,
)
from .client import (
    ApiError,
    CheckoutSessionStatus,
    SessionExpiredError,
    SignupApiClient,
)
from .contact import format_phone, normalize_phone, phone_digits
from .forms import (
    CallPreferencesForm,
    CaregiverInfoForm,
    FacilityInquiryForm,
    PasswordForm,
    PersonalInfoForm,
    PersonalizationForm,
    caregiver_contacts,
    validate_call_preferences,
    validate_caregiver_info,
    validate_contact,
    validate_facility_inquiry,
    validate_otp,
    validate_password,
    validate_personal_info,
)
from .schedule import call_schedule_summary, time_of_day
from .state import UserType, VerificationMethod
from .steps import WizardStep, success_step
from .wizard import SignupWizard

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."
FACILITY_CONTACT = "facility-contact"
COUPON_ERROR = "Unable to apply coupon. Please try again."

T = TypeVar("T")


@dataclass
class StepResult:
    """Outcome of a step action."""
    advanced: bool = False
    errors: list[str] = field(default_factory=list)
    message: str | None = None
    redirect: str | None = None

    @property
    def ok(self) -> bool:
        return not self.errors

    @classmethod
    def invalid(cls, errors: list[str]) -> "StepResult":
        logger.debug(f"Step validation failed: {errors}")
        return cls(errors=list(errors))


class BaseStep:
    """Shared plumbing: wizard/client access and the single-flight call guard."""

    step: WizardStep

    def __init__(self, wizard: SignupWizard, client: SignupApiClient):
        self.wizard = wizard
        self.client = client
        self.pending = False

    @property
    def data(self):
        return self.wizard.data

    @property
    def is_loved_one_flow(self) -> bool:
        return self.data.user_type == UserType.LOVED_ONE

    async def _call(
        self,
        action: str,
        call: Callable[[], Awaitable[T]],
        describe: Callable[[ApiError], str] | None = None,
    ) -> tuple[T | None, StepResult | None]:
        """
        Run one backend call for this submission.

        Returns (value, None) on success or (None, failure_result). A second
        submission while one is in flight is refused. `describe` turns the
        error into the message shown; the default is GENERIC_ERROR.
        """
        if self.pending:
            return None, StepResult.invalid(["Please wait, we're still saving."])
        self.pending = True
        try:
            return await call(), None
        except SessionExpiredError:
            raise
        except ApiError as e:
            logger.error(f"Failed to {action}: {e.message} (status={e.status_code})")
            return None, StepResult(errors=[describe(e) if describe else GENERIC_ERROR])
        finally:
            self.pending = False

    def _require_user(self) -> StepResult | None:
        if not self.data.user_id:
            return StepResult.invalid([
                "We could not find your account details. Please complete verification first."
            ])
        return None

    def _require_patient(self) -> StepResult | None:
        if not self.data.user_id or not self.data.elderly_user_id:
            return StepResult.invalid(["Please complete the earlier steps before continuing."])
        return None


# =============================================================================
# Step 1: Who is it for
# =============================================================================


class TypeSelectionStep(BaseStep):
    step = WizardStep.TYPE_SELECTION

    def select(self, user_type: UserType | str) -> StepResult:
        try:
            user_type = UserType(user_type)
        except ValueError:
            return StepResult.invalid([f"Unknown option: {user_type}"])

        if user_type == UserType.CARE_FACILITY:
            # Facilities go through sales, not self-serve signup
            return StepResult(redirect=FACILITY_CONTACT)

        self.wizard.update_data(user_type=user_type)
        self.wizard.next_step()
        return StepResult(advanced=True)

    async def submit_facility_inquiry(self, form: FacilityInquiryForm) -> StepResult:
        is_valid, errors = validate_facility_inquiry(form)
        if not is_valid:
            return StepResult.invalid(errors)

        payload = {
            "facilityName": form.facility_name,
            "facilityType": form.facility_type,
            "numberOfResidents": form.number_of_residents,
            "contactName": form.contact_name,
            "email": form.email,
            "phone": form.phone,
            "timeline": form.timeline,
            "message": form.message,
            "agreeToContact": form.agree_to_contact,
        }
        _, failure = await self._call(
            "submit facility inquiry",
            lambda: self.client.submit_facility_inquiry(payload),
        )
        if failure:
            return failure
        return StepResult(message="Thank you! We'll follow up within 24 business hours.")


# =============================================================================
# Step 2: Verification
# =============================================================================


class VerificationStep(BaseStep):
    """
    Three sub-stages: send code, verify code, set password.

    Only set_password advances the wizard.
    """
    step = WizardStep.VERIFICATION

    def __init__(self, wizard: SignupWizard, client: SignupApiClient):
        super().__init__(wizard, client)
        self.contact = ""
        self.code_sent = False
        self.created_user_id: str | None = None

    @property
    def method(self) -> VerificationMethod | None:
        return self.data.verification_method

    def choose_method(self, method: VerificationMethod | str) -> StepResult:
        try:
            method = VerificationMethod(method)
        except ValueError:
            return StepResult.invalid([f"Unknown verification method: {method}"])
        self.wizard.update_data(verification_method=method)
        return StepResult()

    async def send_code(self, contact: str) -> StepResult:
        is_valid, errors = validate_contact(self.method, contact)
        if not is_valid:
            return StepResult.invalid(errors)

        method = self.method
        contact = format_phone(contact) if method == VerificationMethod.PHONE else contact.strip()

        _, failure = await self._call(
            "send verification",
            lambda: self.client.start_registration(method, contact),
        )
        if failure:
            return failure

        self.contact = contact
        self.code_sent = True
        self.wizard.update_data(personal_info={method.value: contact})
        return StepResult(
            message=(
                "We've sent a 6-digit code to your phone number"
                if method == VerificationMethod.PHONE
                else "We've sent a 6-digit code to your email"
            )
        )

    async def verify_code(self, code: str) -> StepResult:
        if not self.code_sent:
            return StepResult.invalid(["Please request a verification code first"])
        is_valid, errors = validate_otp(code)
        if not is_valid:
            return StepResult.invalid(errors)

        user_id, failure = await self._call(
            "verify code",
            lambda: self.client.verify_otp(self.method, self.contact, code.strip()),
        )
        if failure:
            return StepResult.invalid(["Invalid code. Please check and try again."])

        self.created_user_id = user_id
        self.wizard.update_data(is_verified=True, user_id=user_id)
        return StepResult(message="Code verified. Please set your password.")

    def login_identity(self) -> dict[str, str]:
        if self.method == VerificationMethod.PHONE:
            return {"phone": normalize_phone(self.contact)}
        return {"email": self.contact.strip().lower()}

    async def set_password(self, password: str, confirm_password: str) -> StepResult:
        if not self.created_user_id:
            return StepResult.invalid(["Please verify your code first"])
        is_valid, errors = validate_password(PasswordForm(password=password, confirm_password=confirm_password))
        if not is_valid:
            return StepResult.invalid(errors)

        identity = self.login_identity()
        if not any(identity.values()):
            return StepResult.invalid(["We need your verified contact to sign you in."])

        user_id = self.created_user_id
        _, failure = await self._call(
            "set password",
            lambda: self.client.set_password(user_id, password, identity),
        )
        if failure:
            return StepResult(errors=["Could not set password. Please try again."])

        self.wizard.update_data(user_id=user_id)
        self.wizard.next_step()
        return StepResult(advanced=True, message="Password set")

    def skip_for_development(self) -> StepResult:
        """Bypass the backend entirely. Development environments only."""
        from eldervoice.config import client_settings

        if not client_settings.is_development:
            return StepResult.invalid(["Verification can only be skipped in development"])

        method = self.method or VerificationMethod.EMAIL
        fallback = self.contact or ("(555) 123-4567" if method == VerificationMethod.PHONE else "test@example.com")
        stamp = int(time.time() * 1000)

        self.wizard.update_data(
            verification_method=method,
            is_verified=True,
            verification_token=f"dev-skip-{stamp}",
            user_id=self.data.user_id or f"dev-user-{stamp}",
            personal_info={method.value: fallback},
        )
        self.wizard.next_step()
        return StepResult(advanced=True, message="Development mode - proceeding without verification")


# =============================================================================
# Step 3 (loved-one only): Caregiver
# =============================================================================


class CaregiverInfoStep(BaseStep):
    step = WizardStep.CAREGIVER_INFO

    def initial_form(self) -> CaregiverInfoForm:
        """Prefill from earlier answers, including the verified contact."""
        caregiver, personal = self.data.caregiver_info, self.data.personal_info
        return CaregiverInfoForm(
            first_name=caregiver.first_name or personal.first_name or "",
            last_name=caregiver.last_name or personal.last_name or "",
            phone=caregiver.phone or personal.phone or "",
            email=caregiver.email or personal.email or "",
        )

    async def submit(self, form: CaregiverInfoForm) -> StepResult:
        missing = self._require_user()
        if missing:
            return missing

        is_valid, errors = validate_caregiver_info(
            form, self.data.verification_method, self.data.personal_info
        )
        if not is_valid:
            return StepResult.invalid(errors)

        phone, email = caregiver_contacts(form, self.data.personal_info)
        _, failure = await self._call(
            "save caregiver info",
            lambda: self.client.save_caregiver_profile(
                user_id=self.data.user_id,
                first_name=form.first_name,
                last_name=form.last_name,
                phone=normalize_phone(phone) if phone else None,
                email=email or None,
            ),
        )
        if failure:
            return failure

        self.wizard.update_data(
            caregiver_info={
                "first_name": form.first_name,
                "last_name": form.last_name,
                "phone": phone,
                "email": email,
            },
            personal_info={"phone": phone, "email": email},
        )
        self.wizard.next_step()
        return StepResult(advanced=True)


# =============================================================================
# Personal Info
# =============================================================================


class PersonalInfoStep(BaseStep):
    step = WizardStep.PERSONAL_INFO

    def initial_form(self) -> PersonalInfoForm:
        # Phone starts empty: the verified contact may be the caregiver's
        info = self.data.personal_info
        return PersonalInfoForm(
            first_name=info.first_name or "",
            last_name=info.last_name or "",
            zip_code=info.zip_code or "",
            date_of_birth=info.date_of_birth or "",
            nickname=info.nickname or "",
            relationship=info.relationship or "",
            accept_terms=bool(info.accept_terms),
        )

    async def submit(self, form: PersonalInfoForm) -> StepResult:
        is_valid, errors = validate_personal_info(form, self.data.user_type)
        if not is_valid:
            return StepResult.invalid(errors)

        missing = self._require_user()
        if missing:
            return missing

        loved_one = self.is_loved_one_flow
        payload = {
            "userId": self.data.user_id,
            "firstName": form.first_name,
            "lastName": form.last_name,
            "phone": normalize_phone(form.phone),
            "zipCode": form.zip_code,
            "preferredName": (form.nickname or form.first_name) or None,
        }
        if loved_one:
            payload["relationship"] = form.relationship
            save = self.client.save_loved_one_profile
        else:
            payload["dateOfBirth"] = form.date_of_birth
            save = self.client.save_myself_profile

        elderly_user_id, failure = await self._call("save personal info", lambda: save(payload))
        if failure:
            return failure

        self.wizard.update_data(
            elderly_user_id=elderly_user_id,
            personal_info={
                "first_name": form.first_name,
                "last_name": form.last_name,
                "zip_code": form.zip_code,
                "date_of_birth": form.date_of_birth or None,
                "nickname": form.nickname or None,
                "relationship": form.relationship if loved_one else None,
                "phone": format_phone(phone_digits(form.phone)),
                "accept_terms": form.accept_terms,
            },
        )
        self.wizard.next_step()
        return StepResult(advanced=True)


# =============================================================================
# Personalization
# =============================================================================


class PersonalizationStep(BaseStep):
    step = WizardStep.PERSONALIZATION

    def initial_form(self) -> PersonalizationForm:
        p = self.data.personalization
        return PersonalizationForm(interests=p.interests or "", about_text=p.about_text or "")

    async def submit(self, form: PersonalizationForm) -> StepResult:
        # Keep what was typed even if the save below fails
        self.wizard.update_data(personalization={
            "interests": form.interests,
            "about_text": form.about_text,
        })

        missing = self._require_patient()
        if missing:
            return missing

        _, failure = await self._call(
            "save personalization",
            lambda: self.client.save_personalization(
                user_id=self.data.user_id,
                elderly_user_id=self.data.elderly_user_id,
                interests=form.interests or None,
                about_text=form.about_text or None,
            ),
        )
        if failure:
            return failure

        self.wizard.next_step()
        return StepResult(advanced=True)


# =============================================================================
# Call Preferences
# =============================================================================


class CallPreferencesStep(BaseStep):
    step = WizardStep.CALL_PREFERENCES

    def initial_form(self) -> CallPreferencesForm:
        prefs = self.data.call_preferences
        return CallPreferencesForm(
            days=list(prefs.days),
            default_time=prefs.default_time or "14:00",
            custom_times=dict(prefs.custom_times),
        )

    async def submit(self, form: CallPreferencesForm) -> StepResult:
        is_valid, errors = validate_call_preferences(form, self.data.user_type)
        if not is_valid:
            return StepResult.invalid(errors)

        missing = self._require_user()
        if missing:
            return missing
        if not self.data.elderly_user_id:
            return StepResult.invalid([
                "Finish the personal information step to create a loved one profile."
            ])

        custom_times = form.selected_custom_times()
        target_id = self.data.elderly_user_id
        returned_id, failure = await self._call(
            "save call preferences",
            lambda: self.client.save_call_preferences(
                user_id=self.data.user_id,
                elderly_user_id=target_id,
                days=form.days,
                default_time=form.default_time,
                custom_times=custom_times,
            ),
        )
        if failure:
            return failure

        self.wizard.update_data(
            elderly_user_id=returned_id or target_id,
            call_preferences={
                "days": form.days,
                "default_time": form.default_time,
                "custom_times": custom_times,
                "time_of_day": time_of_day(form.default_time),
            },
        )
        self.wizard.next_step()
        return StepResult(advanced=True)


# =============================================================================
# Checkout
# =============================================================================


class CheckoutStep(BaseStep):
    """
    Hands payment to the provider's embedded checkout.

    The wizard doesn't advance from here; the provider redirects back with a
    session_id and handle_checkout_return() jumps to the success step.
    """
    step = WizardStep.CHECKOUT

    def __init__(self, wizard: SignupWizard, client: SignupApiClient):
        super().__init__(wizard, client)
        self.applied_coupon: ValidatedCoupon | None = None

    def call_schedule_summary(self) -> str:
        prefs = self.data.call_preferences
        return call_schedule_summary(len(prefs.days), prefs.time_of_day)

    def coupon_summary(self) -> tuple[str, str | None] | None:
        """(savings, expiration) for the applied coupon."""
        if not self.applied_coupon:
            return None
        return format_coupon_savings(self.applied_coupon), format_coupon_expiration(self.applied_coupon)

    async def apply_coupon(self, code: str) -> StepResult:
        code = normalize_coupon_code(code)
        if not code:
            return StepResult.invalid(["Enter a coupon code to apply."])
        if self.applied_coupon and self.applied_coupon.code == code:
            return StepResult.invalid(["This coupon is already applied."])

        result, failure = await self._call(
            "validate coupon",
            lambda: self.client.validate_coupon(code),
            describe=_coupon_error,
        )
        if failure:
            return failure
        if not result.get("valid"):
            return StepResult.invalid([result.get("message") or COUPON_ERROR])

        coupon = result.get("coupon")
        coupon = dict(coupon) if isinstance(coupon, dict) else {}
        coupon["code"] = coupon.get("code") or code
        self.applied_coupon = ValidatedCoupon.from_api(coupon)
        return StepResult(message=format_coupon_savings(self.applied_coupon))

    def remove_coupon(self) -> None:
        self.applied_coupon = None

    async def start(self) -> tuple[str | None, StepResult]:
        """Create the checkout session. Returns (client_secret, result)."""
        coupon_code = self.applied_coupon.code if self.applied_coupon else None
        client_secret, failure = await self._call(
            "create checkout session",
            lambda: self.client.create_checkout_session(coupon_code),
        )
        if failure:
            return None, StepResult(errors=["Failed to load payment form"])
        return client_secret, StepResult()


def _coupon_error(e: ApiError) -> str:
    # A rejected code comes back as 4xx with the reason in the body
    if e.status_code and 400 <= e.status_code < 500 and e.message:
        return e.message
    return COUPON_ERROR


# =============================================================================
# Success
# =============================================================================


class SuccessStep(BaseStep):
    step = WizardStep.SUCCESS

    def __init__(self, wizard: SignupWizard, client: SignupApiClient):
        super().__init__(wizard, client)
        self.session_status: CheckoutSessionStatus | None = None

    async def check_session(self, session_id: str) -> StepResult:
        status, failure = await self._call(
            "check checkout session",
            lambda: self.client.get_checkout_session_status(session_id),
        )
        if failure:
            return failure

        self.session_status = status
        if status.status == "complete":
            self.wizard.update_data(
                subscription_id=status.subscription_id,
                customer_id=status.customer_email,
            )
            return StepResult(message="Your subscription has been activated and your free trial has begun.")
        if status.status == "open":
            return StepResult.invalid(["Payment incomplete. Please complete your payment to activate your subscription."])
        return StepResult(message=f"Checkout session is {status.status}")

    def finish(self) -> None:
        """Signup handed off to the account; drop the wizard state."""
        self.wizard.reset_flow()


# =============================================================================
# Resolver -> Handler
# =============================================================================


STEP_HANDLERS: dict[WizardStep, type[BaseStep]] = {
    WizardStep.TYPE_SELECTION: TypeSelectionStep,
    WizardStep.VERIFICATION: VerificationStep,
    WizardStep.CAREGIVER_INFO: CaregiverInfoStep,
    WizardStep.PERSONAL_INFO: PersonalInfoStep,
    WizardStep.PERSONALIZATION: PersonalizationStep,
    WizardStep.CALL_PREFERENCES: CallPreferencesStep,
    WizardStep.CHECKOUT: CheckoutStep,
    WizardStep.SUCCESS: SuccessStep,
}


def handle_checkout_return(wizard: SignupWizard, session_id: str | None) -> bool:
    """
    A session_id coming back from checkout jumps to the success step.

    Returns True if the wizard moved.
    """
    if not session_id:
        return False
    target = success_step(wizard.data.user_type)
    if wizard.data.current_step == target:
        return False
    wizard.go_to_step(target)
    return True


class SignupFlow:
    """
    Wizard + client + the handler for whichever step is active.

    Handlers are cached per step so sub-stage state (e.g. code sent) survives
    between calls.
    """

    def __init__(self, wizard: SignupWizard, client: SignupApiClient):
        self.wizard = wizard
        self.client = client
        self._handlers: dict[WizardStep, BaseStep] = {}

    @property
    def active_step(self) -> WizardStep:
        return self.wizard.active_step

    def step(self) -> BaseStep:
        active = self.wizard.active_step
        if active not in self._handlers:
            self._handlers[active] = STEP_HANDLERS[active](self.wizard, self.client)
        return self._handlers[active]

    def handle_checkout_return(self, session_id: str | None) -> bool:
        return handle_checkout_return(self.wizard, session_id)

    def reset(self) -> None:
        self.wizard.reset_flow()
        self._handlers.clear()
