"""
Wizard State Container.

SignupWizard owns the SignupData aggregate and is the only thing allowed to
change it. Step handlers get the wizard passed in explicitly; there is no
module-level wizard.

Every mutation is followed by the persistence hook (the injected store) and
then by any registered listeners.
"""

import logging
from typing import Any, Callable, Mapping

from .state import SignupData, SignupPatch, merge_signup_data
from .steps import (
    WizardStep,
    progress_percentage,
    resolve_position,
    resolve_step,
    total_steps,
)
from .store import SignupStore

logger = logging.getLogger(__name__)

Listener = Callable[[SignupData], None]


class SignupWizard:
    """
    Signup flow state container.

    Operations never raise on odd input; step handlers are responsible for
    domain validation before calling in.
    """

    def __init__(self, data: SignupData | None = None, store: SignupStore | None = None):
        self._data = data if data is not None else SignupData()
        self._store = store
        self._listeners: list[Listener] = []

    @classmethod
    def hydrate(cls, store: SignupStore) -> "SignupWizard":
        """Restore from the store and keep mirroring into it."""
        return cls(data=store.load(), store=store)

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def data(self) -> SignupData:
        return self._data

    @property
    def active_step(self) -> WizardStep:
        return resolve_step(self._data.user_type, self._data.current_step)

    @property
    def position(self) -> int:
        return resolve_position(self._data.user_type, self._data.current_step)

    @property
    def total_steps(self) -> int:
        return total_steps(self._data.user_type)

    @property
    def progress_percentage(self) -> float:
        return progress_percentage(self._data.user_type, self._data.current_step)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def update_data(self, patch: SignupPatch | None = None, **changes: Any) -> SignupData:
        """
        Merge a partial update into the aggregate and persist it.

        Accepts a SignupPatch, keyword arguments, or both (keywords win).
        """
        if patch is not None and not isinstance(patch, Mapping):
            logger.warning(f"Ignoring signup update of type {type(patch).__name__}")
            patch = None
        merged: dict[str, Any] = dict(patch or {})
        merged.update(changes)
        self._data = merge_signup_data(self._data, merged)
        self._persist()
        self._notify()
        return self._data

    def next_step(self) -> None:
        """Advance one step. Not capped here; the resolver handles overflow."""
        self.update_data(current_step=self._data.current_step + 1)

    def prev_step(self) -> None:
        self.update_data(current_step=max(1, self._data.current_step - 1))

    def go_to_step(self, step: int) -> None:
        """Jump directly to a position. No bounds check."""
        self.update_data(current_step=step)

    def reset_flow(self) -> None:
        """Back to defaults and drop the persisted copy."""
        self._data = SignupData()
        if self._store is not None:
            try:
                self._store.clear()
            except Exception as e:
                logger.warning(f"Failed to clear signup store: {e}")
        self._notify()

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` after every change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self._data)
        except Exception as e:
            # Storage is best-effort; keep going in memory
            logger.warning(f"Failed to persist signup data: {e}")

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._data)
            except Exception as e:
                logger.warning(f"Signup listener {listener!r} failed: {e}")
