"""httpx-backed transport satisfying the ``HttpClient`` collaborator."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import httpx

from .errors import NetworkError
from .models import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
    ),
    "Accept-Encoding": "gzip, deflate",
    "Origin": "https://www.skland.com",
    "Referer": "https://www.skland.com/",
}


class HttpxTransport:
    """Sends requests through one shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        default_headers: Mapping[str, str] | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient()
        self._default_headers = dict(DEFAULT_HEADERS if default_headers is None else default_headers)

    async def send(self, request: HttpRequest) -> HttpResponse:
        headers = {**self._default_headers, **request.headers}
        content = request.body.encode("utf-8") if request.body is not None else None
        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=headers,
                content=content,
                timeout=request.timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning(
                "skland_transport_timeout",
                extra={"event": "transport", "method": request.method, "url": request.url},
            )
            raise NetworkError(str(exc) or "request timed out", timed_out=True) from exc
        except httpx.RequestError as exc:
            logger.warning(
                "skland_transport_failure",
                extra={"event": "transport", "method": request.method, "url": request.url, "error": str(exc)},
            )
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        # raw keeps header names and repeated headers as the server sent them
        raw_headers = tuple((key.decode("latin-1"), value.decode("latin-1")) for key, value in response.headers.raw)
        response_headers: dict[str, str] = {}
        for key, value in raw_headers:
            response_headers[key] = f"{response_headers[key]}, {value}" if key in response_headers else value
        return HttpResponse(
            status_code=response.status_code,
            headers=response_headers,
            body=response.content,
            raw_headers=raw_headers,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
