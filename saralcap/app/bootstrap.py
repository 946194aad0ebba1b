"""Optional anonymous identity at session start (Firebase Auth REST)."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"


class IdentityBootstrap:
    """
    Fire-and-forget sign-in. Never raises and never blocks captioning: a
    missing key disables it, and any failure is only logged.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        custom_token: Optional[str] = None,
        base_url: str = IDENTITY_TOOLKIT_URL,
        timeout: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = (api_key or "").strip() or None
        self.custom_token = (custom_token or "").strip() or None
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http
        self.uid: Optional[str] = None
        self.signed_in = False
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self.api_key is not None

    def launch(self) -> Optional[asyncio.Task]:
        if not self.enabled:
            logger.warning("identity_disabled", extra={"reason": "no api key configured"})
            return None
        self._task = asyncio.get_running_loop().create_task(self.sign_in())
        return self._task

    async def sign_in(self) -> bool:
        if not self.enabled:
            return False
        if self.custom_token:
            method = "custom_token"
            endpoint = "accounts:signInWithCustomToken"
            body = {"token": self.custom_token, "returnSecureToken": True}
        else:
            method = "anonymous"
            endpoint = "accounts:signUp"
            body = {"returnSecureToken": True}

        http = self._http or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await http.post(
                f"{self.base_url}/{endpoint}",
                params={"key": self.api_key},
                json=body,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("identity_sign_in_failed", extra={"method": method, "error": str(e)})
            return False
        finally:
            if self._http is None:
                await http.aclose()

        self.uid = data.get("localId") if isinstance(data, dict) else None
        self.signed_in = True
        logger.info("identity_signed_in", extra={"method": method, "uid": self.uid})
        return True

    async def aclose(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
