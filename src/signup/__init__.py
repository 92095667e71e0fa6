"""
ElderVoice Signup Wizard.

Multi-step signup as a library any front end can drive. The wizard owns one
SignupData aggregate, mirrors it into a durable slot, and resolves which step
is active from (user_type, current_step).

Paths:
- myself:    type -> verify -> personal info -> personalization -> calls -> checkout -> success
- loved-one: same, with a caregiver step after verification
- care-facility: leaves the wizard for the facility inquiry form

The backend routes these steps post to live in signup.api.
"""

from .state import SignupData, UserType, VerificationMethod
from .steps import WizardStep, resolve_step
from .store import FileSignupStore, MemorySignupStore
from .wizard import SignupWizard

__all__ = [
    "SignupData",
    "UserType",
    "VerificationMethod",
    "WizardStep",
    "resolve_step",
    "FileSignupStore",
    "MemorySignupStore",
    "SignupWizard",
]
