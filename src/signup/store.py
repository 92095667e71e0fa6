"""
Persistent Store Adapter.

Mirrors the signup aggregate into one durable key-value slot so an
interrupted signup resumes where it left off.

Storage problems are never fatal: a missing or corrupt slot loads as defaults,
and a failed write leaves the wizard running in memory.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from .state import SignupData

logger = logging.getLogger(__name__)

STORAGE_KEY = "eldervoice_signup_data"


class SignupStore(Protocol):
    """Durable slot for the signup aggregate."""

    def load(self) -> SignupData:
        ...

    def save(self, data: SignupData) -> None:
        ...

    def clear(self) -> None:
        ...


def parse_signup_payload(raw: str | None) -> SignupData:
    """
    Turn a stored payload back into SignupData merged over defaults.

    Falls back to defaults on anything that isn't a valid SignupData object.
    """
    if not raw:
        return SignupData()
    try:
        payload = json.loads(raw)
        return SignupData.from_dict(payload)
    except (ValueError, TypeError) as e:
        logger.warning(f"Discarding unreadable signup data: {e}")
        return SignupData()


# =============================================================================
# File Slot
# =============================================================================


class JsonFileSlot:
    """
    A single JSON document on local disk.

    read() returns None when the file is missing or unreadable; write() and
    remove() log failures instead of raising.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def read(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Failed to read {self.path}: {e}")
            return None

    def write(self, text: str) -> bool:
        """Atomically replace the slot contents. Returns False on failure."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                os.replace(tmp_path, self.path)
            except OSError:
                Path(tmp_path).unlink(missing_ok=True)
                raise
            return True
        except OSError as e:
            logger.warning(f"Failed to write {self.path}: {e}")
            return False

    def remove(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove {self.path}: {e}")


# =============================================================================
# Stores
# =============================================================================


class FileSignupStore:
    """Signup store backed by a JSON file (the CLI's local storage)."""

    def __init__(self, path: str | Path):
        self.slot = JsonFileSlot(path)

    @property
    def path(self) -> Path:
        return self.slot.path

    def load(self) -> SignupData:
        return parse_signup_payload(self.slot.read())

    def save(self, data: SignupData) -> None:
        self.slot.write(data.to_json())

    def clear(self) -> None:
        self.slot.remove()


class MemorySignupStore:
    """Signup store that keeps the serialized payload in memory."""

    def __init__(self, raw: str | None = None):
        self.raw = raw

    def load(self) -> SignupData:
        return parse_signup_payload(self.raw)

    def save(self, data: SignupData) -> None:
        self.raw = data.to_json()

    def clear(self) -> None:
        self.raw = None


def get_default_store() -> FileSignupStore:
    """File store at the configured signup_store_path."""
    from eldervoice.config import client_settings

    return FileSignupStore(client_settings.signup_store_path)
