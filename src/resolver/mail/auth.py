"""Microsoft Graph sign-in via the MSAL device code flow.

A GraphAuth is a plain object owned by whoever builds the mail transport; it
holds the token cache for its own lifetime and persists it to disk with
owner-only permissions.

Usage:
    from resolver.mail.auth import GraphAuth

    auth = GraphAuth(
        client_id=config.mail.client_id,
        tenant_id=config.mail.tenant_id,
        scopes=config.mail.scopes,
        token_cache_path=config.mail.token_cache_path,
    )
    token = auth.get_access_token()
"""

from __future__ import annotations

import os
import random
import stat
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import msal
import requests
from rich.console import Console
from rich.panel import Panel

from resolver.core.errors import AuthenticationError
from resolver.core.logging import get_logger

logger = get_logger(__name__)

MSAL_MAX_RETRIES = 3
MSAL_RETRY_DELAYS = [1.0, 2.0, 4.0]

T = TypeVar("T")

# MSAL error code -> actionable message
_DEVICE_FLOW_ERRORS = {
    "authorization_pending": (
        "Sign-in timed out. Run the command again and finish signing in "
        "before the code expires."
    ),
    "authorization_declined": (
        "Sign-in was declined. Run the command again and accept the permission request."
    ),
    "expired_token": "The device code expired. Run the command again.",
}


def _jittered(delay: float) -> float:
    return delay + delay * 0.2 * (2 * random.random() - 1)


class GraphAuth:
    """Acquires Graph access tokens, silently when possible.

    Attributes:
        client_id: Azure AD application (client) ID
        tenant_id: Azure AD tenant ID or 'common'
        scopes: Graph permission scopes
        token_cache_path: Where the serialized MSAL cache lives
    """

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        scopes: list[str],
        token_cache_path: str | Path,
        console: Console | None = None,
    ):
        if not client_id or not client_id.strip():
            raise AuthenticationError(
                "mail.client_id is required for the mail source. "
                "Register an app in Azure Portal (Microsoft Entra ID -> App registrations) "
                "and copy its Application (client) ID into config.yaml."
            )

        self.client_id = client_id
        self.tenant_id = tenant_id
        self.scopes = scopes
        self.token_cache_path = Path(token_cache_path)
        self.console = console or Console(stderr=True)
        self.cache = msal.SerializableTokenCache()
        self._load_cache()
        self.app = msal.PublicClientApplication(
            client_id=client_id,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
            token_cache=self.cache,
        )

    def _with_network_retry(self, operation: Callable[[], T], label: str) -> T:
        """Run an MSAL call, retrying transient network errors with backoff.

        Raises:
            AuthenticationError: If every attempt hit a network error
        """
        last_error: Exception | None = None
        for attempt in range(MSAL_MAX_RETRIES):
            try:
                return operation()
            except requests.exceptions.RequestException as e:
                last_error = e
                if attempt < MSAL_MAX_RETRIES - 1:
                    delay = _jittered(MSAL_RETRY_DELAYS[attempt])
                    logger.warning(
                        "msal_network_retry",
                        operation=label,
                        attempt=attempt + 1,
                        delay=delay,
                        error=str(e),
                    )
                    time.sleep(delay)
        raise AuthenticationError(
            f"{label} failed after {MSAL_MAX_RETRIES} attempts: {last_error}. "
            "Check your network connection and try again."
        ) from last_error

    def get_access_token(self) -> str:
        """Return a valid access token, running the device code flow if needed.

        Raises:
            AuthenticationError: If no token can be obtained
        """
        accounts = self.app.get_accounts()
        if accounts:
            try:
                result = self._with_network_retry(
                    lambda: self.app.acquire_token_silent(scopes=self.scopes, account=accounts[0]),
                    "Silent token acquisition",
                )
            except AuthenticationError as e:
                logger.warning("silent_token_failed", error=str(e))
                result = None
            if result and "access_token" in result:
                self._save_cache()
                return result["access_token"]

        logger.info("device_code_flow_started")
        return self._device_code_flow()

    def _device_code_flow(self) -> str:
        flow = self._with_network_retry(
            lambda: self.app.initiate_device_flow(scopes=self.scopes),
            "Device flow initiation",
        )
        if "user_code" not in flow:
            raise AuthenticationError(
                "Failed to start device code sign-in: "
                f"{flow.get('error_description', 'unknown error')}. "
                "Enable 'Allow public client flows' under App registrations -> "
                "Authentication -> Advanced settings."
            )

        self.console.print(
            Panel(
                f"Open [bold blue]{flow['verification_uri']}[/bold blue] and enter "
                f"[bold green]{flow['user_code']}[/bold green]\n\nWaiting for sign-in...",
                title="Microsoft sign-in required",
                border_style="bright_blue",
            )
        )

        result: dict[str, Any] = self._with_network_retry(
            lambda: self.app.acquire_token_by_device_flow(flow),
            "Device flow sign-in",
        )
        if "access_token" not in result:
            error = result.get("error", "unknown_error")
            description = result.get("error_description", "Authentication failed")
            logger.error("device_code_flow_failed", error=error)
            if "AADSTS7000218" in description:
                raise AuthenticationError(
                    "Device code flow is not enabled for this application. Set "
                    "'Allow public client flows' to Yes in the app registration."
                )
            raise AuthenticationError(
                _DEVICE_FLOW_ERRORS.get(error, f"Authentication failed: {description}")
            )

        self._save_cache()
        logger.info(
            "authentication_successful",
            username=result.get("id_token_claims", {}).get("preferred_username", "unknown"),
        )
        return result["access_token"]

    def _load_cache(self) -> None:
        if not self.token_cache_path.exists():
            return
        try:
            self.cache.deserialize(self.token_cache_path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("token_cache_unreadable", path=str(self.token_cache_path), error=str(e))

    def _save_cache(self) -> None:
        """Persist the cache with mode 600; a failure only costs a future sign-in."""
        if not self.cache.has_state_changed:
            return
        try:
            self.token_cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.token_cache_path.write_text(self.cache.serialize())
            os.chmod(self.token_cache_path, stat.S_IRUSR | stat.S_IWUSR)
        except OSError as e:
            logger.error("token_cache_save_failed", path=str(self.token_cache_path), error=str(e))
