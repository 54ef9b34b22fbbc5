"""HTTP-client capability used by HTTP nodes."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx

from dagflow.errors import HttpTransportError

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})


@dataclass
class HttpResponse:
    """What came back from the server. The body is kept as text."""

    status: int
    status_text: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    duration_ms: float = 0.0
    size: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpClient(ABC):
    """Abstract HTTP capability."""

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        query: dict[str, str] | None = None,
        body: str | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """
        Perform one request.

        Any status code is a response. Raises HttpTransportError only when
        no response was received at all.
        """

    async def aclose(self) -> None:
        return None


class HttpxClient(HttpClient):
    """HttpClient on top of a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        follow_redirects: bool = True,
    ):
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport, follow_redirects=follow_redirects
        )

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        query: dict[str, str] | None = None,
        body: str | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                url,
                headers=headers or None,
                params=query or None,
                content=body.encode("utf-8") if body is not None else None,
                timeout=timeout or self.timeout,
            )
        except httpx.TimeoutException as e:
            raise HttpTransportError(f"Request timed out: {str(e) or type(e).__name__}") from e
        except httpx.HTTPError as e:
            raise HttpTransportError(str(e) or type(e).__name__) from e

        duration_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{method} {url} -> {response.status_code} in {duration_ms:.0f}ms")
        return HttpResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            body=response.text,
            duration_ms=duration_ms,
            size=len(response.content),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
