"""Client for the emergency backend (contacts check + bundle upload).

REST/JSON over HTTPS with bearer-token auth.  ``fetch_contacts`` raises
:class:`BackendError`; ``post_emergency`` never raises and reports the
outcome as an :class:`UploadResult`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .credentials import CredentialStore
from .domain_models import EmergencyBundle
from .http_transport import HttpResponse, HttpTransport, UrllibTransport
from .json_utils import safe_json_dumps

LOGGER = logging.getLogger(__name__)

MISSING_TOKEN_MESSAGE = "User token not found."

_MAX_ERROR_CHARS = 300


class BackendError(Exception):
    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(message if status is None else f"HTTP {status}: {message}")
        self.status = status
        self.message = message


@dataclass(frozen=True, slots=True)
class UploadResult:
    ok: bool
    status: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "status": self.status, "error": self.error}


def _error_message(response: HttpResponse) -> str:
    data = response.json()
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()[:_MAX_ERROR_CHARS]
    text = response.body.decode("utf-8", errors="replace").strip()
    if text and not text.startswith(("{", "[", "<")):
        return text[:_MAX_ERROR_CHARS]
    return f"Request failed with HTTP {response.status}"


class BackendClient:
    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        *,
        transport: HttpTransport | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._transport = transport or UrllibTransport()
        self._timeout_s = timeout_s

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    async def fetch_contacts(self) -> list[dict[str, Any]]:
        token = self._credentials.get_token()
        if token is None:
            raise BackendError(None, MISSING_TOKEN_MESSAGE)
        try:
            response = await self._transport.request(
                "GET",
                f"{self._base_url}/api/contacts",
                headers=self._headers(token),
                timeout_s=self._timeout_s,
            )
        except (OSError, ValueError) as exc:
            raise BackendError(None, f"Contacts request failed: {exc}") from exc
        if not response.ok:
            raise BackendError(response.status, _error_message(response))
        data = response.json()
        contacts = data.get("contacts") if isinstance(data, dict) else None
        if not isinstance(contacts, list):
            raise BackendError(response.status, "Malformed contacts response")
        return [c for c in contacts if isinstance(c, dict)]

    async def has_emergency_contacts(self) -> bool:
        return len(await self.fetch_contacts()) > 0

    async def post_emergency(self, bundle: EmergencyBundle) -> UploadResult:
        token = self._credentials.get_token()
        if token is None:
            LOGGER.error("Emergency upload skipped: %s", MISSING_TOKEN_MESSAGE)
            return UploadResult(ok=False, error=MISSING_TOKEN_MESSAGE)
        body = safe_json_dumps(bundle.to_payload()).encode("utf-8")
        try:
            response = await self._transport.request(
                "POST",
                f"{self._base_url}/api/emergency",
                headers=self._headers(token),
                body=body,
                timeout_s=self._timeout_s,
            )
        except Exception as exc:
            LOGGER.error("Emergency upload failed: %s", exc)
            return UploadResult(ok=False, error=str(exc) or type(exc).__name__)
        if not response.ok:
            message = _error_message(response)
            LOGGER.error("Emergency upload rejected (HTTP %d): %s", response.status, message)
            return UploadResult(ok=False, status=response.status, error=message)
        LOGGER.info("Emergency bundle uploaded (HTTP %d, %d bytes)", response.status, len(body))
        return UploadResult(ok=True, status=response.status)
