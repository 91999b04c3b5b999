"""
API key storage and the gate every generation run passes through.
The browser app kept the key in local storage; here it lives in a small JSON
file so it survives restarts, or in memory for tests and one-off sessions.
"""
import os
import json
import logging
from typing import Optional
from .errors import MissingCredential

logger = logging.getLogger(__name__)

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None

class CredentialStore:
    def get(self) -> Optional[str]:
        raise NotImplementedError

    def set(self, value: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

class MemoryCredentialStore(CredentialStore):
    def __init__(self, value: Optional[str] = None):
        self._value = _clean(value)

    def get(self) -> Optional[str]:
        return self._value

    def set(self, value: str) -> None:
        value = _clean(value)
        if not value:
            raise MissingCredential("API key must not be empty")
        self._value = value

    def clear(self) -> None:
        self._value = None

class FileCredentialStore(CredentialStore):
    def __init__(self, path: str, default: Optional[str] = None):
        self.path = path
        # Environment key is used only until a key is saved explicitly
        self.default = _clean(default)

    def get(self) -> Optional[str]:
        if not os.path.exists(self.path):
            return self.default
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read credential file {self.path}: {e}")
            return self.default
        value = data.get("api_key") if isinstance(data, dict) else None
        if not isinstance(value, str):
            logger.error(f"Credential file {self.path} holds no api_key string")
            return self.default
        return _clean(value) or self.default

    def set(self, value: str) -> None:
        value = _clean(value)
        if not value:
            raise MissingCredential("API key must not be empty")
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"api_key": value}, f)
        logger.info(f"Saved API key to {self.path}")

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
            logger.info(f"Removed saved API key at {self.path}")
        self.default = None

class CredentialGate:
    """Read-only view of a store used by the orchestrator."""

    def __init__(self, store: CredentialStore):
        self.store = store

    def has_credential(self) -> bool:
        return bool(_clean(self.store.get()))

    def require_credential(self) -> str:
        value = _clean(self.store.get())
        if not value:
            raise MissingCredential()
        return value
