"""Base provider class with common HTTP error classification."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

import httpx

from ..exceptions import LookupHttpError, LookupTimeoutError, ServiceUnavailableError

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """Base class for authoritative lookup services.

    Provides common functionality:
    - Shared httpx client (injected, owned by the caller)
    - Hard per-attempt deadline
    - Translation of transport failures into LookupFailure subclasses

    One call is one attempt: retrying is the job of RetryPolicy.
    """

    # Default timeout (seconds)
    DEFAULT_TIMEOUT = 8.0

    def __init__(self, client: httpx.AsyncClient, timeout: float = DEFAULT_TIMEOUT):
        """Initialize base provider.

        Args:
            client: Shared httpx AsyncClient
            timeout: Hard deadline per request in seconds
        """
        self.client = client
        self.timeout = timeout

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the canonical provider name, used for logging."""
        pass

    @abstractmethod
    async def lookup(self, country_code: str, identifier: str) -> Dict[str, Any]:
        """Perform one lookup. Must be implemented by subclasses."""
        pass

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        """POST once under a hard deadline.

        Args:
            url: Request URL
            **kwargs: Additional httpx parameters

        Returns:
            HTTP response with a 2xx status

        Raises:
            LookupTimeoutError: Deadline exceeded
            LookupHttpError: Non-success status (body truncated to 512 chars)
            ServiceUnavailableError: Connection could not be established or was reset
        """
        try:
            response = await asyncio.wait_for(
                self.client.post(url, timeout=self.timeout, **kwargs),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"{self.provider_name} request timed out after {self.timeout}s")
            raise LookupTimeoutError(
                f"{self.provider_name} request timed out after {self.timeout}s"
            ) from e
        except httpx.TransportError as e:
            logger.warning(f"{self.provider_name} connection error: {e}")
            raise ServiceUnavailableError(
                f"{self.provider_name} connection failed: {e}"
            ) from e

        if not response.is_success:
            try:
                body = response.text
            except Exception:
                body = ""
            logger.warning(f"{self.provider_name} returned HTTP {response.status_code}")
            raise LookupHttpError(
                response.status_code,
                body,
                message=f"{self.provider_name} HTTP {response.status_code}",
            )

        return response
