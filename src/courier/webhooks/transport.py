"""Outbound HTTP for webhook attempts.

The executor talks to receivers through the `HttpTransport` protocol so the
delivery state machine can be exercised without a network. `HttpxTransport`
is the production implementation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Protocol

import httpx

from courier.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """What the executor needs from an HTTP response."""

    status_code: int
    body: str
    elapsed_ms: float = 0.0

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class HttpTransport(Protocol):
    """POST a signed body to a receiver."""

    async def post(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        timeout_seconds: float,
    ) -> TransportResponse:
        """Send one request.

        Raises:
            TransportError: On connection failure or timeout.
        """
        ...

    async def aclose(self) -> None: ...


class HttpxTransport:
    """HttpTransport over a shared httpx.AsyncClient.

    Redirects are not followed: a 3xx answer is reported to the executor
    as-is and treated as a retryable failure.

    Example:
        ```python
        transport = HttpxTransport()
        response = await transport.post(url, body, headers, timeout_seconds=30)
        await transport.aclose()
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Client to reuse. Closed by `aclose` only if created here.
            transport: Optional httpx transport for the internally created
                client (e.g. httpx.MockTransport in tests).
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport,
            follow_redirects=False,
        )

    async def post(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        timeout_seconds: float,
    ) -> TransportResponse:
        started = time.perf_counter()
        try:
            response = await self._client.post(
                url,
                content=body,
                headers=headers,
                timeout=timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout after {timeout_seconds}s") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e!r}") from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug("POST %s -> %d in %.1fms", url, response.status_code, elapsed_ms)
        return TransportResponse(
            status_code=response.status_code,
            body=response.text,
            elapsed_ms=elapsed_ms,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
