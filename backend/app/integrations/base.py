"""
Shared HTTP plumbing for external insurance systems.

Handles request building, timeout management, retries with exponential
backoff and error classification. Calls are blocking; services run them on
the task executor.
"""
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx
from httpx import HTTPStatusError, RequestError, TimeoutException, TransportError

from app.core.config import IntegrationSettings
from app.core.errors import (
    IntegrationError,
    IntegrationRejectedError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)
from app.core.logging import get_logger

logger = get_logger(__name__)


class IntegrationClient:
    """Base client for one external system.

    Retries timeouts, transport failures, 429 and 5xx responses up to
    ``max_attempts``. Other 4xx responses are raised immediately as
    ``IntegrationRejectedError``.
    """

    display_name = "Integration"

    def __init__(
        self,
        config: IntegrationSettings,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            config: Endpoint, credentials, timeout and retry settings
            http_client: Pre-built client (tests pass one with a mock transport)
            sleep: Backoff sleep function
        """
        self.config = config
        self.name = config.name
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )
        self._sleep = sleep
        self._lock = threading.Lock()
        self.last_success_at: Optional[datetime] = None
        self.last_failure_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def default_headers(self) -> Dict[str, str]:
        return {
            "X-API-Key": self.config.api_key,
            "Content-Type": "application/json",
        }

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (0-based)."""
        delay = self.config.initial_delay * (self.config.multiplier ** attempt)
        return min(delay, self.config.max_delay)

    def max_call_duration(self) -> float:
        """Worst-case wall time of one ``call`` including every retry."""
        attempts = self.config.max_attempts
        waits = sum(self.backoff_delay(i) for i in range(attempts - 1))
        return attempts * self.config.timeout_seconds + waits

    def call(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Call the external system with retry logic.

        Returns:
            Parsed JSON response (an empty dict for an empty body)

        Raises:
            IntegrationUnavailableError: Disabled, unreachable or 5xx after retries
            IntegrationTimeoutError: Timed out on the last attempt
            IntegrationRejectedError: The remote system refused the request
        """
        if not self.enabled:
            raise IntegrationUnavailableError(self.name, f"{self.display_name} integration is disabled")

        request_headers = self.default_headers()
        if headers:
            request_headers.update(headers)

        max_attempts = self.config.max_attempts
        last_error: Optional[IntegrationError] = None

        for attempt in range(max_attempts):
            logger.debug(f"{self.name} {method} {path} (attempt {attempt + 1}/{max_attempts})")
            try:
                response = self._client.request(
                    method,
                    path,
                    json=payload,
                    params=params,
                    headers=request_headers,
                    timeout=self.config.timeout_seconds,
                )
                response.raise_for_status()
                result = self._parse(response)
                self._record_success()
                return result

            except HTTPStatusError as e:
                status_code = e.response.status_code
                body = e.response.text[:500]
                logger.warning(
                    f"{self.name} HTTP {status_code} on {method} {path} "
                    f"(attempt {attempt + 1}/{max_attempts})"
                )
                # Don't retry client errors unless it's rate limiting
                if 400 <= status_code < 500 and status_code != 429:
                    error = IntegrationRejectedError(
                        self.name,
                        f"{self.display_name} rejected the request ({status_code}): {body}",
                        remote_status=status_code,
                    )
                    self._record_failure(error)
                    raise error from e
                last_error = IntegrationUnavailableError(
                    self.name, f"{self.display_name} returned HTTP {status_code}"
                )

            except TimeoutException:
                logger.warning(
                    f"{self.name} timeout on {method} {path} (attempt {attempt + 1}/{max_attempts})"
                )
                last_error = IntegrationTimeoutError(
                    self.name,
                    f"{self.display_name} did not respond within {self.config.timeout_seconds} seconds",
                )

            except TransportError as e:
                logger.warning(
                    f"{self.name} transport error on {method} {path} "
                    f"(attempt {attempt + 1}/{max_attempts}): {e}"
                )
                last_error = IntegrationUnavailableError(
                    self.name, f"{self.display_name} is unreachable"
                )

            except RequestError as e:
                logger.warning(
                    f"{self.name} unreadable response on {method} {path} "
                    f"(attempt {attempt + 1}/{max_attempts}): {e}"
                )
                last_error = IntegrationUnavailableError(
                    self.name, f"{self.display_name} returned an unreadable response"
                )

            if attempt < max_attempts - 1:
                self._sleep(self.backoff_delay(attempt))

        self._record_failure(last_error)
        raise last_error

    def _parse(self, response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise IntegrationUnavailableError(
                self.name, f"{self.display_name} returned a malformed response"
            ) from e

    def _record_success(self) -> None:
        with self._lock:
            self.last_success_at = datetime.now(timezone.utc)

    def _record_failure(self, error: IntegrationError) -> None:
        with self._lock:
            self.last_failure_at = datetime.now(timezone.utc)
            self.last_error = error.message
        logger.error(f"{self.name} call failed: {error.kind} - {error.message}")

    def status(self) -> Dict[str, Any]:
        """Snapshot used by the readiness probe."""
        with self._lock:
            return {
                "name": self.name,
                "enabled": self.enabled,
                "lastSuccessAt": self.last_success_at.isoformat() if self.last_success_at else None,
                "lastFailureAt": self.last_failure_at.isoformat() if self.last_failure_at else None,
                "lastError": self.last_error,
            }

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
