"""
ElderVoice - CLI Entry Point.

Usage:
    eldervoice signup                  Start or resume signup
    eldervoice signup --session-id ID  Return from checkout
    eldervoice status                  Show saved signup progress
    eldervoice reset                   Forget saved signup progress
    eldervoice serve                   Start the API server
    eldervoice health                  Check configuration
"""

import asyncio
import json
import logging
import sys

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.spinner import Spinner
from rich.table import Table

from signup.client import AuthSession, SessionExpiredError, SignupApiClient
from signup.contact import format_phone
from signup.flow import (
    CallPreferencesStep,
    CaregiverInfoStep,
    CheckoutStep,
    PersonalInfoStep,
    PersonalizationStep,
    SignupFlow,
    StepResult,
    SuccessStep,
    TypeSelectionStep,
    VerificationStep,
)
from signup.forms import RELATIONSHIP_OPTIONS, FacilityInquiryForm
from signup.schedule import VALID_DAY_IDS, format_time
from signup.state import UserType, VerificationMethod
from signup.steps import WizardStep, step_number
from signup.store import JsonFileSlot, get_default_store
from signup.wizard import SignupWizard

app = typer.Typer(
    name="eldervoice",
    help="ElderVoice - friendly check-in calls for the people you care about.",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Auth session file
# =============================================================================


def _session_slot() -> JsonFileSlot:
    from eldervoice.config import client_settings

    return JsonFileSlot(client_settings.auth_session_path)


def load_auth_session() -> AuthSession | None:
    raw = _session_slot().read()
    if not raw:
        return None
    try:
        return AuthSession.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring unreadable auth session: {e}")
        return None


def save_auth_session(session: AuthSession | None) -> None:
    if session is None:
        _session_slot().remove()
    else:
        _session_slot().write(json.dumps(session.to_dict()))


def make_client(session: AuthSession | None) -> SignupApiClient:
    from eldervoice.config import client_settings

    return SignupApiClient(
        client_settings.api_base_url,
        session=session,
        timeout=client_settings.api_timeout_seconds,
        on_session_expired=lambda: save_auth_session(None),
    )


# =============================================================================
# Signup
# =============================================================================


@app.command()
def signup(
    session_id: str | None = typer.Option(
        None, "--session-id", help="Checkout session id returned by the payment page"
    ),
) -> None:
    """Start or resume the signup wizard."""
    from eldervoice.config import client_settings

    setup_logging(client_settings.log_level)
    console.print(
        Panel.fit(
            "[bold green]ElderVoice[/bold green]\n"
            "Let's set up friendly check-in calls.\n\n"
            "[dim]Your progress is saved after every step. Ctrl+C to stop and resume later.[/dim]",
            title="Welcome",
            border_style="green",
        )
    )

    try:
        asyncio.run(_run_signup(session_id))
    except KeyboardInterrupt:
        console.print("\n\n[dim]Signup paused. Run `eldervoice signup` to pick up where you left off.[/dim]")


async def _run_signup(session_id: str | None) -> None:
    wizard = SignupWizard.hydrate(get_default_store())

    async with make_client(load_auth_session()) as client:
        flow = SignupFlow(wizard, client)
        if flow.handle_checkout_return(session_id):
            console.print("[dim]Welcome back from checkout.[/dim]")

        while True:
            step = flow.step()
            _show_progress(wizard)
            try:
                finished = await _STEP_PROMPTS[step.step](step, session_id)
            except SessionExpiredError as e:
                console.print(f"\n[yellow]{e.message}[/yellow]")
                wizard.go_to_step(step_number(wizard.data.user_type, WizardStep.VERIFICATION))
                continue

            save_auth_session(client.session)
            if finished:
                return


def _show_progress(wizard: SignupWizard) -> None:
    if wizard.data.user_type is None:
        return
    console.print(
        f"\n[bold]Step {wizard.position} of {wizard.total_steps}[/bold] "
        f"[dim]({wizard.progress_percentage:.0f}% complete)[/dim]"
    )


def _report(result: StepResult) -> None:
    for error in result.errors:
        console.print(f"[red]{error}[/red]")
    if result.message:
        console.print(f"[green]{result.message}[/green]")


async def _submit(submit) -> StepResult:
    with Live(Spinner("dots", text="Saving..."), console=console, transient=True):
        return await submit()


def _refill(form, updates: dict):
    """Copy of a form with new answers, re-validated."""
    return type(form).model_validate({**form.model_dump(), **updates})


async def _retry_until(action) -> bool:
    """Run an action until it advances. False if the user gives up."""
    while True:
        result = await action()
        _report(result)
        if result.advanced:
            return True
        if not Confirm.ask("Try again?", default=True):
            return False


# -----------------------------------------------------------------------------
# Step prompts. Each returns True when the CLI should exit.
# -----------------------------------------------------------------------------


async def _prompt_type_selection(step: TypeSelectionStep, session_id: str | None) -> bool:
    choice = Prompt.ask(
        "Who are you signing up?",
        choices=[t.value for t in UserType],
        default=UserType.MYSELF.value,
    )
    result = step.select(choice)
    _report(result)
    if result.redirect:
        await _prompt_facility_inquiry(step)
        return True
    return False


async def _prompt_facility_inquiry(step: TypeSelectionStep) -> None:
    console.print("\n[bold]Care facilities[/bold] work with our team directly. Tell us about your facility.")

    async def attempt() -> StepResult:
        form = FacilityInquiryForm(
            facility_name=Prompt.ask("Facility name"),
            facility_type=Prompt.ask("Facility type"),
            number_of_residents=Prompt.ask("Number of residents"),
            contact_name=Prompt.ask("Your name"),
            email=Prompt.ask("Email"),
            phone=Prompt.ask("Phone"),
            timeline=Prompt.ask("When would you like to start?"),
            message=Prompt.ask("How can we help?"),
            agree_to_contact=Confirm.ask("May we contact you?", default=True),
        )
        result = await _submit(lambda: step.submit_facility_inquiry(form))
        if result.ok:
            result.advanced = True
        return result

    await _retry_until(attempt)


async def _prompt_verification(step: VerificationStep, session_id: str | None) -> bool:
    from eldervoice.config import client_settings

    if step.method is None:
        _report(step.choose_method(Prompt.ask(
            "Verify by",
            choices=[m.value for m in VerificationMethod],
            default=VerificationMethod.PHONE.value,
        )))

    if client_settings.is_development and Confirm.ask("Skip verification (development only)?", default=False):
        _report(step.skip_for_development())
        return False

    async def send() -> StepResult:
        label = "Phone number" if step.method == VerificationMethod.PHONE else "Email address"
        contact = Prompt.ask(label)
        result = await _submit(lambda: step.send_code(contact))
        result.advanced = result.ok
        return result

    async def verify() -> StepResult:
        code = Prompt.ask("6-digit code")
        result = await _submit(lambda: step.verify_code(code))
        result.advanced = result.ok
        return result

    async def password() -> StepResult:
        chosen = Prompt.ask("Choose a password", password=True)
        confirmed = Prompt.ask("Confirm password", password=True)
        return await _submit(lambda: step.set_password(chosen, confirmed))

    for stage in (send, verify, password):
        if not await _retry_until(stage):
            return True
    return False


async def _prompt_caregiver_info(step: CaregiverInfoStep, session_id: str | None) -> bool:
    console.print("\n[bold]About you[/bold] [dim](the person managing the account)[/dim]")
    initial = step.initial_form()

    async def attempt() -> StepResult:
        form = _refill(initial, {
            "first_name": Prompt.ask("First name", default=initial.first_name),
            "last_name": Prompt.ask("Last name", default=initial.last_name),
            "phone": Prompt.ask("Phone", default=initial.phone),
            "email": Prompt.ask("Email", default=initial.email),
        })
        return await _submit(lambda: step.submit(form))

    return not await _retry_until(attempt)


async def _prompt_personal_info(step: PersonalInfoStep, session_id: str | None) -> bool:
    loved_one = step.is_loved_one_flow
    console.print("\n[bold]Who will receive the calls?[/bold]" if loved_one else "\n[bold]About you[/bold]")
    initial = step.initial_form()

    async def attempt() -> StepResult:
        updates = {
            "first_name": Prompt.ask("First name", default=initial.first_name),
            "last_name": Prompt.ask("Last name", default=initial.last_name),
            "nickname": Prompt.ask("Preferred name", default=initial.nickname),
            "phone": Prompt.ask("Phone number for calls"),
            "zip_code": Prompt.ask("ZIP code", default=initial.zip_code),
        }
        if loved_one:
            updates["relationship"] = Prompt.ask(
                "Your relationship to them",
                choices=RELATIONSHIP_OPTIONS,
                default=initial.relationship or RELATIONSHIP_OPTIONS[0],
            )
        else:
            updates["date_of_birth"] = Prompt.ask(
                "Date of birth (YYYY-MM-DD)", default=initial.date_of_birth
            )
        updates["accept_terms"] = Confirm.ask("Accept the Terms of Service and Privacy Policy?", default=False)
        form = _refill(initial, updates)
        return await _submit(lambda: step.submit(form))

    return not await _retry_until(attempt)


async def _prompt_personalization(step: PersonalizationStep, session_id: str | None) -> bool:
    console.print("\n[bold]Make the calls personal[/bold] [dim](optional, press Enter to skip)[/dim]")
    initial = step.initial_form()

    async def attempt() -> StepResult:
        form = _refill(initial, {
            "interests": Prompt.ask("Interests (comma separated)", default=initial.interests),
            "about_text": Prompt.ask("A little about their life", default=initial.about_text),
        })
        return await _submit(lambda: step.submit(form))

    return not await _retry_until(attempt)


async def _prompt_call_preferences(step: CallPreferencesStep, session_id: str | None) -> bool:
    console.print(f"\n[bold]Call schedule[/bold] [dim]Days: {', '.join(VALID_DAY_IDS)}[/dim]")
    initial = step.initial_form()

    async def attempt() -> StepResult:
        days = Prompt.ask("Which days?", default=",".join(initial.days) or "monday,wednesday,friday")
        default_time = Prompt.ask("What time? (HH:MM, 08:00-20:30)", default=initial.default_time)
        form = _refill(initial, {"days": days.split(","), "default_time": default_time})
        result = await _submit(lambda: step.submit(form))
        if result.advanced:
            console.print(f"[dim]Calls at {format_time(form.default_time)}[/dim]")
        return result

    return not await _retry_until(attempt)


async def _prompt_checkout(step: CheckoutStep, session_id: str | None) -> bool:
    console.print(f"\n[bold]Checkout[/bold]\n{step.call_schedule_summary()}")

    while Confirm.ask("Have a coupon code?", default=False):
        code = Prompt.ask("Coupon code")
        result = await _submit(lambda: step.apply_coupon(code))
        _report(result)
        if result.ok:
            break

    summary = step.coupon_summary()
    if summary:
        savings, expires = summary
        console.print(f"[green]{savings}[/green]" + (f" [dim](expires {expires})[/dim]" if expires else ""))

    with Live(Spinner("dots", text="Preparing secure checkout..."), console=console, transient=True):
        client_secret, result = await step.start()
    _report(result)
    if client_secret:
        console.print(
            Panel.fit(
                f"Checkout session ready.\n[dim]Client secret: {client_secret}[/dim]\n\n"
                "Complete payment in the browser, then run:\n"
                "  [bold]eldervoice signup --session-id <session id>[/bold]",
                title="Payment",
                border_style="blue",
            )
        )
    return True


async def _prompt_success(step: SuccessStep, session_id: str | None) -> bool:
    if not session_id:
        console.print("[yellow]Finish payment, then run `eldervoice signup --session-id <id>`.[/yellow]")
        return True

    with Live(Spinner("dots", text="Confirming your subscription..."), console=console, transient=True):
        result = await step.check_session(session_id)
    _report(result)

    status = step.session_status
    if status and status.status == "complete":
        name = step.data.personal_info.first_name or "your loved one"
        console.print(
            Panel.fit(
                f"[bold green]You're all set![/bold green]\n"
                f"ElderVoice will start calling {name} on the schedule you chose.",
                title="Welcome to ElderVoice",
                border_style="green",
            )
        )
        step.finish()
        save_auth_session(None)
    return True


_STEP_PROMPTS = {
    WizardStep.TYPE_SELECTION: _prompt_type_selection,
    WizardStep.VERIFICATION: _prompt_verification,
    WizardStep.CAREGIVER_INFO: _prompt_caregiver_info,
    WizardStep.PERSONAL_INFO: _prompt_personal_info,
    WizardStep.PERSONALIZATION: _prompt_personalization,
    WizardStep.CALL_PREFERENCES: _prompt_call_preferences,
    WizardStep.CHECKOUT: _prompt_checkout,
    WizardStep.SUCCESS: _prompt_success,
}


# =============================================================================
# Progress
# =============================================================================


@app.command()
def status() -> None:
    """Show saved signup progress."""
    store = get_default_store()
    wizard = SignupWizard.hydrate(store)
    data = wizard.data

    if data.user_type is None and data.current_step == 1:
        console.print("[dim]No signup in progress.[/dim]")
        return

    table = Table(title="Signup progress", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Signing up", data.user_type.value if data.user_type else "-")
    table.add_row("Step", f"{wizard.position} of {wizard.total_steps} ({wizard.active_step.value})")
    table.add_row("Progress", f"{wizard.progress_percentage:.0f}%")
    table.add_row("Verified", "yes" if data.is_verified else "no")
    if data.personal_info.first_name:
        table.add_row("Name", f"{data.personal_info.first_name} {data.personal_info.last_name or ''}".strip())
    if data.personal_info.phone:
        table.add_row("Phone", format_phone(data.personal_info.phone))
    if data.call_preferences.days:
        table.add_row("Call days", ", ".join(data.call_preferences.days))
    console.print(table)
    console.print(f"[dim]Saved at {store.path}[/dim]")


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
) -> None:
    """Forget saved signup progress."""
    if not yes and not Confirm.ask("Discard saved signup progress?", default=False):
        raise typer.Exit(0)

    SignupWizard(store=get_default_store()).reset_flow()
    save_auth_session(None)
    console.print("[green]Signup progress cleared.[/green]")


# =============================================================================
# Server / Ops
# =============================================================================


@app.command()
def health() -> None:
    """Check configuration."""
    from eldervoice.config import get_client_settings, get_settings

    console.print("\n[bold]ElderVoice Health Check[/bold]\n")

    try:
        client_config = get_client_settings()
        console.print("[green]OK[/green] Configuration loaded")
        console.print(f"   Environment: {client_config.eldervoice_env}")
        console.print(f"   Log level: {client_config.log_level}")
        console.print(f"   API: {client_config.api_base_url} (timeout {client_config.api_timeout_seconds:g}s)")
        console.print(f"   Signup store: {client_config.signup_store_path}")
    except Exception as e:
        console.print(f"\n[red]FAIL Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a valid .env file.[/dim]")
        raise typer.Exit(1)

    try:
        server_config = get_settings()
    except Exception:
        console.print("[dim]INFO[/dim] Supabase not configured (only needed for `eldervoice serve`)")
    else:
        if server_config.supabase_url.startswith("https://"):
            console.print("[green]OK[/green] Supabase URL configured")
        else:
            console.print("[red]FAIL[/red] Supabase URL missing or invalid")
            raise typer.Exit(1)

    console.print("\n[green]All checks passed![/green]")


@app.command()
def version() -> None:
    """Show version information."""
    from eldervoice import __version__

    console.print(f"ElderVoice version {__version__}")


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the API server."""
    import os

    import uvicorn

    # Hosting platforms set PORT
    actual_port = int(os.environ.get("PORT", port))

    console.print("\n[bold green]ElderVoice API[/bold green]")
    console.print(f"Starting server on http://localhost:{actual_port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        "eldervoice.web.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=actual_port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
