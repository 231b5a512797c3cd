"""HTTP transport for the hosted realtime database REST API."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import aiohttp
from yarl import URL

from fleetsync._constants import USER_AGENT
from fleetsync._redact import redact_url
from fleetsync._stream import EventStreamParser, StreamEvent
from fleetsync.config import FleetConfig
from fleetsync.exceptions import (
    ConflictError,
    RemoteReadError,
    RemoteStoreError,
    RemoteTimeoutError,
    RemoteWriteError,
    SubscriptionError,
)

_logger = logging.getLogger(__name__)

_MISSING: Any = object()


class Transport(Protocol):
    """Structural transport interface used by the collection stores.

    ``RestTransport`` talks to the hosted database; ``InMemoryTransport``
    implements the same semantics in-process for offline use and tests.
    """

    async def get(self, path: str) -> Any:
        ...

    async def get_with_revision(self, path: str) -> tuple[Any, str]:
        ...

    async def put(self, path: str, value: Any, *, if_match: str | None = None) -> None:
        ...

    async def patch(self, path: str, value: dict[str, Any]) -> None:
        ...

    async def patch_many(self, updates: dict[str, Any]) -> None:
        ...

    async def delete(self, path: str) -> None:
        ...

    def stream(self, path: str) -> AsyncIterator[StreamEvent]:
        ...


def _error_message(text: str) -> str:
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return text[:200]


class RestTransport:
    """Path-addressed JSON reads/writes plus event-stream subscriptions."""

    def __init__(self, config: FleetConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._base = URL(config.database_url.rstrip("/"))

    def _url(self, path: str) -> URL:
        url = self._base / f"{path.strip('/')}.json"
        if self._config.auth_token:
            url = url.update_query(auth=self._config.auth_token)
        return url

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[RemoteStoreError],
        body: Any = _MISSING,
        headers: dict[str, str] | None = None,
    ) -> tuple[Any, str | None]:
        url = self._url(path)
        request_headers = {"user-agent": USER_AGENT, **(headers or {})}
        data = None if body is _MISSING else json.dumps(body, separators=(",", ":"))
        if data is not None:
            request_headers["content-type"] = "application/json; charset=UTF-8"

        _logger.debug("%s %s", method, redact_url(url))

        try:
            async with self._http.request(
                method,
                url,
                data=data,
                headers=request_headers,
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout),
            ) as resp:
                text = await resp.text()
                etag = resp.headers.get("ETag")
                if resp.status == 412:
                    raise ConflictError(
                        f"{method} {path} rejected: revision changed",
                        path=path,
                        status_code=resp.status,
                    )
                if resp.status >= 300:
                    raise error_cls(
                        f"HTTP {resp.status} from {method} {path}: {_error_message(text)}",
                        path=path,
                        status_code=resp.status,
                    )
        except RemoteStoreError:
            raise
        except TimeoutError as exc:
            raise RemoteTimeoutError(f"{method} {path} timed out", path=path) from exc
        except aiohttp.ClientError as exc:
            raise error_cls(f"{method} {path} failed: {exc}", path=path) from exc

        if not text:
            return None, etag
        try:
            return json.loads(text), etag
        except json.JSONDecodeError as exc:
            raise error_cls(f"Invalid JSON from {method} {path}: {text[:200]}", path=path) from exc

    async def get(self, path: str) -> Any:
        value, _ = await self._request("GET", path, error_cls=RemoteReadError)
        return value

    async def get_with_revision(self, path: str) -> tuple[Any, str]:
        value, etag = await self._request(
            "GET",
            path,
            error_cls=RemoteReadError,
            headers={"X-Firebase-ETag": "true"},
        )
        if not etag:
            raise RemoteReadError(f"No revision tag returned for {path}", path=path)
        return value, etag

    async def put(self, path: str, value: Any, *, if_match: str | None = None) -> None:
        headers = {"if-match": if_match} if if_match is not None else None
        await self._request("PUT", path, error_cls=RemoteWriteError, body=value, headers=headers)

    async def patch(self, path: str, value: dict[str, Any]) -> None:
        await self._request("PATCH", path, error_cls=RemoteWriteError, body=value)

    async def patch_many(self, updates: dict[str, Any]) -> None:
        """Multi-location update: each key is a full path replaced by its value, atomically."""
        await self._request("PATCH", "", error_cls=RemoteWriteError, body=updates)

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path, error_cls=RemoteWriteError)

    async def stream(self, path: str) -> AsyncIterator[StreamEvent]:
        """Open the event-stream channel on *path* and yield decoded events.

        Ends (by raising :class:`SubscriptionError`) when the connection
        drops, stays silent past ``stream_read_timeout`` or is refused.
        """
        url = self._url(path)
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=self._config.request_timeout,
            sock_read=self._config.stream_read_timeout,
        )
        headers = {"accept": "text/event-stream", "user-agent": USER_AGENT}
        _logger.debug("STREAM %s", redact_url(url))

        try:
            async with self._http.get(url, headers=headers, timeout=timeout) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise SubscriptionError(
                        f"HTTP {resp.status} opening stream on {path}: {_error_message(text)}",
                        path=path,
                        status_code=resp.status,
                    )
                parser = EventStreamParser()
                async for raw_line in resp.content:
                    event = parser.feed_line(raw_line.decode("utf-8"))
                    if event is not None:
                        yield event
        except SubscriptionError:
            raise
        except TimeoutError as exc:
            raise SubscriptionError(f"Stream on {path} went silent", path=path) from exc
        except aiohttp.ClientError as exc:
            raise SubscriptionError(f"Stream on {path} failed: {exc}", path=path) from exc
        raise SubscriptionError(f"Stream on {path} closed by server", path=path)
