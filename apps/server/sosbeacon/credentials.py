"""Bearer-token lookup for backend calls."""

from __future__ import annotations

import logging
import os

from .constants import AUTH_TOKEN_KEY
from .json_utils import safe_json_dumps, safe_json_loads
from .kv_store import PersistenceBackend

LOGGER = logging.getLogger(__name__)

AUTH_TOKEN_ENV = "SOSBEACON_AUTH_TOKEN"


class CredentialStore:
    """Reads the persisted auth token; ``SOSBEACON_AUTH_TOKEN`` wins when set."""

    def __init__(self, backend: PersistenceBackend, *, key: str = AUTH_TOKEN_KEY) -> None:
        self._backend = backend
        self._key = key

    def get_token(self) -> str | None:
        env_token = os.environ.get(AUTH_TOKEN_ENV, "").strip()
        if env_token:
            return env_token
        stored = safe_json_loads(self._backend.read(self._key), context="auth token")
        if not isinstance(stored, str):
            return None
        return stored.strip() or None

    def set_token(self, token: str) -> None:
        token = token.strip()
        if not token:
            raise ValueError("Auth token must not be empty")
        self._backend.write(self._key, safe_json_dumps(token))
        LOGGER.info("Auth token updated")

    def clear(self) -> None:
        self._backend.delete(self._key)
