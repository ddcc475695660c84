"""Minimal Microsoft Graph HTTP client with retries.

Retries 5xx responses, 429 throttling (honoring Retry-After), timeouts and
connection errors with jittered exponential backoff. Every other failure is
mapped to GraphAPIError with guidance on how to fix it.

Usage:
    client = GraphClient(auth)
    me = client.get("/me", params={"$select": "mail"})
"""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING, Any

import requests

from resolver.core.errors import AuthenticationError, GraphAPIError, RateLimitExceeded
from resolver.core.logging import get_logger

if TYPE_CHECKING:
    from resolver.mail.auth import GraphAuth

logger = get_logger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAYS = [1.0, 2.0, 4.0]

# Status -> hint appended to the error message
_STATUS_HINTS = {
    401: "The access token was rejected. Delete the token cache file and sign in again.",
    403: "Permission denied. Check the Mail.ReadWrite and Mail.Send permissions in Azure Portal.",
    404: "The resource does not exist. Check mail.folder in config.yaml.",
}


class GraphClient:
    """Thin wrapper over requests.Session for Graph calls.

    Attributes:
        auth: Token source
        base_url: Graph API root
        max_retries: Retries after the first attempt
    """

    def __init__(
        self,
        auth: GraphAuth,
        base_url: str = GRAPH_BASE_URL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delays: list[float] | None = None,
        session: requests.Session | None = None,
    ):
        self.auth = auth
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delays = retry_delays or DEFAULT_RETRY_DELAYS
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        try:
            token = self.auth.get_access_token()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise AuthenticationError(f"Cannot authenticate with Microsoft Graph: {e}") from e
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Prefer": 'outlook.body-content-type="text"',
        }

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _delay(self, attempt: int, response: requests.Response | None = None) -> float:
        base = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]
        if response is not None and response.status_code == 429:
            try:
                base = float(response.headers.get("Retry-After", base))
            except ValueError:
                pass
        return base + base * 0.2 * (2 * random.random() - 1)

    def _raise_for_response(self, response: requests.Response, endpoint: str) -> None:
        try:
            error_info = response.json().get("error", {})
            error_code = error_info.get("code", "unknown")
            error_message = error_info.get("message", response.text)
        except ValueError:
            error_code = "unknown"
            error_message = response.text or f"HTTP {response.status_code}"

        logger.error(
            "graph_api_error",
            endpoint=endpoint,
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message[:200],
        )
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitExceeded(
                f"Microsoft Graph throttled the request after {self.max_retries} retries "
                f"(Retry-After: {retry_after or 'unknown'}). Run again later.",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        hint = _STATUS_HINTS.get(response.status_code, "")
        raise GraphAPIError(
            f"Graph API error ({response.status_code}) on {endpoint}: {error_message}. {hint}".strip(),
            status_code=response.status_code,
            error_code=error_code,
        )

    def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        timeout: float = 30.0,
    ) -> dict[str, Any]:
        """Send one request, retrying transient failures.

        Returns:
            Parsed JSON body ({} for 202/204 responses)

        Raises:
            GraphAPIError: For non-retryable or exhausted failures
            RateLimitExceeded: When throttling persists
            AuthenticationError: When no token can be obtained
        """
        url = self._url(endpoint)

        for attempt in range(self.max_retries + 1):
            retryable = attempt < self.max_retries
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    headers=self._headers(),
                    params=params,
                    json=json,
                    timeout=timeout,
                )
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                if not retryable:
                    raise GraphAPIError(
                        f"Request to {endpoint} failed after {self.max_retries} retries: {e}. "
                        "Check your network connection.",
                    ) from e
                delay = self._delay(attempt)
                logger.warning("graph_request_retry", endpoint=endpoint, error=str(e), delay=delay)
                time.sleep(delay)
                continue

            if response.status_code < 400:
                if response.status_code in (202, 204) or not response.content:
                    return {}
                return response.json()

            if retryable and (response.status_code == 429 or response.status_code >= 500):
                delay = self._delay(attempt, response)
                logger.warning(
                    "graph_request_retry",
                    endpoint=endpoint,
                    status_code=response.status_code,
                    delay=delay,
                )
                time.sleep(delay)
                continue

            self._raise_for_response(response, endpoint)

        raise GraphAPIError(f"Request to {endpoint} failed after {self.max_retries} retries")

    def get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.request("GET", endpoint, params=params)

    def post(self, endpoint: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.request("POST", endpoint, json=json)

    def patch(self, endpoint: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.request("PATCH", endpoint, json=json)
