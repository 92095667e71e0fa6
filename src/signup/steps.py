"""
Step Resolver.

Maps (user_type, current_step) to the step that should be active. The
loved-one path has an extra caregiver step, so the same position means
different things on different paths.

Anything the tables don't cover resolves to type selection; the resolver
never yields an undefined step.
"""

from enum import Enum

from .state import UserType


class WizardStep(Enum):
    """Screens of the signup wizard."""
    TYPE_SELECTION = "type-selection"
    VERIFICATION = "verification"
    CAREGIVER_INFO = "caregiver-info"
    PERSONAL_INFO = "personal-info"
    PERSONALIZATION = "personalization"
    CALL_PREFERENCES = "call-preferences"
    CHECKOUT = "checkout"
    SUCCESS = "success"


LOVED_ONE_STEPS: tuple[WizardStep, ...] = (
    WizardStep.TYPE_SELECTION,
    WizardStep.VERIFICATION,
    WizardStep.CAREGIVER_INFO,
    WizardStep.PERSONAL_INFO,
    WizardStep.PERSONALIZATION,
    WizardStep.CALL_PREFERENCES,
    WizardStep.CHECKOUT,
    WizardStep.SUCCESS,
)

DEFAULT_STEPS: tuple[WizardStep, ...] = (
    WizardStep.TYPE_SELECTION,
    WizardStep.VERIFICATION,
    WizardStep.PERSONAL_INFO,
    WizardStep.PERSONALIZATION,
    WizardStep.CALL_PREFERENCES,
    WizardStep.CHECKOUT,
    WizardStep.SUCCESS,
)


def step_sequence(user_type: UserType | None) -> tuple[WizardStep, ...]:
    """Ordered steps for a path."""
    if user_type == UserType.LOVED_ONE:
        return LOVED_ONE_STEPS
    return DEFAULT_STEPS


def total_steps(user_type: UserType | None) -> int:
    """Number of steps on a path: 8 for loved-one, 7 otherwise."""
    return len(step_sequence(user_type))


def resolve_position(user_type: UserType | None, current_step: int) -> int:
    """
    1-based position that will actually be rendered.

    Out-of-range values (e.g. after switching from loved-one to myself while on
    step 8) go back to step 1, not to the nearest valid step.
    """
    if user_type is None:
        return 1
    if 1 <= current_step <= total_steps(user_type):
        return current_step
    return 1


def resolve_step(user_type: UserType | None, current_step: int) -> WizardStep:
    """Step to render for the given state."""
    position = resolve_position(user_type, current_step)
    return step_sequence(user_type)[position - 1]


def step_number(user_type: UserType | None, step: WizardStep) -> int | None:
    """Position of a step on a path, or None if the path skips it."""
    sequence = step_sequence(user_type)
    if step not in sequence:
        return None
    return sequence.index(step) + 1


def success_step(user_type: UserType | None) -> int:
    """Position of the success screen, the target of a checkout return."""
    return step_number(user_type, WizardStep.SUCCESS)


def progress_percentage(user_type: UserType | None, current_step: int) -> float:
    position = resolve_position(user_type, current_step)
    return position / total_steps(user_type) * 100
