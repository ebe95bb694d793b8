"""
Token storage backends shared by credential stores.

Every save/clear is broadcast to subscribed stores so that consumers
sharing one storage converge on the same token.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from eohub.models import AuthToken

TokenListener = Callable[[AuthToken | None, Any], None]


class TokenStorage(ABC):
    """Persists one AuthToken and notifies listeners of changes."""

    def __init__(self):
        self._listeners: list[TokenListener] = []

    @abstractmethod
    def load(self) -> AuthToken | None:
        """Read the stored token, or None."""
        ...

    @abstractmethod
    def _write(self, token: AuthToken) -> None: ...

    @abstractmethod
    def _erase(self) -> None: ...

    @property
    @abstractmethod
    def version(self) -> int:
        """Changes whenever the stored token changes."""
        ...

    def save(self, token: AuthToken, origin: Any = None) -> None:
        self._write(token)
        self._notify(token, origin)

    def clear(self, origin: Any = None) -> None:
        self._erase()
        self._notify(None, origin)

    def subscribe(self, listener: TokenListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, token: AuthToken | None, origin: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(token, origin)
            except Exception:
                logger.exception("Error in token storage listener")


class MemoryTokenStorage(TokenStorage):
    """In-process storage, shareable between several credential stores."""

    def __init__(self, token: AuthToken | None = None):
        super().__init__()
        self._token = token
        self._version = 0

    def load(self) -> AuthToken | None:
        return self._token

    def _write(self, token: AuthToken) -> None:
        self._token = token
        self._version += 1

    def _erase(self) -> None:
        self._token = None
        self._version += 1

    @property
    def version(self) -> int:
        return self._version


class FileTokenStorage(TokenStorage):
    """
    JSON file storage: {"token", "refreshToken", "expiresAt", "userInfo"}.

    The version is the file's modification time, so stores in other
    processes notice changes on their next expiry check.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)

    def load(self) -> AuthToken | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return AuthToken.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load auth data from {self.path}: {e}")
            return None

    def _write(self, token: AuthToken) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(token.model_dump(mode="json", by_alias=True), f)
        os.replace(tmp_path, self.path)

    def _erase(self) -> None:
        if self.path.exists():
            self.path.unlink()

    @property
    def version(self) -> int:
        try:
            return self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return 0
