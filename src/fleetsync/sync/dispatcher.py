"""CRUD action wrapper that turns every outcome into an :class:`ActionResult`."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict

from fleetsync.exceptions import RemoteStoreError, RemoteTimeoutError, RemoteWriteError

if TYPE_CHECKING:
    from fleetsync.store import RemoteCollectionStore

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class ActionResult(BaseModel):
    """Outcome of one dispatched action.

    ``success`` is always present; ``error`` carries the failure message.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    id: str | None = None
    error: str | None = None
    failed_ids: tuple[str, ...] = ()


def is_retryable(exc: BaseException) -> bool:
    """Timeouts and transient (network or 5xx) write failures only."""
    if isinstance(exc, RemoteTimeoutError):
        return True
    return isinstance(exc, RemoteWriteError) and exc.is_transient


def _message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class CrudActionDispatcher:
    """Runs create/update/delete for one collection and never raises.

    ``busy`` and ``error`` are shared by every call on this dispatcher, so
    with overlapping calls they reflect whichever finished last. Callers
    must read the returned :class:`ActionResult` for their own outcome.
    """

    def __init__(
        self,
        store: RemoteCollectionStore,
        *,
        retry_attempts: int = 0,
        retry_backoff: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._retry_attempts = retry_attempts
        self._retry_backoff = retry_backoff
        self._sleep = sleep
        self._busy = False
        self._error: str | None = None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def store(self) -> RemoteCollectionStore:
        return self._store

    async def create(self, entity: Mapping[str, Any] | BaseModel) -> ActionResult:
        # The payload (and with it an allocated id) is fixed on the first
        # attempt so a retried create cannot write a second entity.
        pinned: dict[str, Any] = {}

        async def call() -> str:
            if not pinned:
                pinned.update(self._store.prepare_create(entity))
            return await self._store.create(pinned)

        return await self._run("create", call)

    async def update(
        self,
        entity_id: str,
        fields: Mapping[str, Any],
        *,
        if_match: str | None = None,
    ) -> ActionResult:
        async def call() -> str:
            await self._store.update(entity_id, fields, if_match=if_match)
            return entity_id

        return await self._run("update", call)

    async def delete(self, entity_id: str) -> ActionResult:
        async def call() -> str:
            await self._store.delete(entity_id)
            return entity_id

        return await self._run("delete", call)

    async def update_many(self, updates: Mapping[str, Mapping[str, Any]]) -> ActionResult:
        async def call() -> None:
            await self._store.batch_update(updates)

        return await self._run("batch update", call)

    async def delete_many(self, entity_ids: Iterable[str]) -> ActionResult:
        """Delete several entities concurrently, reporting the ones that failed."""
        ids = list(entity_ids)
        self._busy = True
        self._error = None
        outcomes = await asyncio.gather(
            *(self._attempt("delete", lambda entity_id=entity_id: self._store.delete(entity_id)) for entity_id in ids),
            return_exceptions=True,
        )
        self._busy = False

        failed: list[str] = []
        first_error: str | None = None
        for entity_id, outcome in zip(ids, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                failed.append(entity_id)
                first_error = first_error or _message(outcome)
        if not failed:
            return ActionResult(success=True)

        message = f"{len(failed)} of {len(ids)} deletes in {self._store.key} failed: {first_error}"
        self._error = message
        _logger.warning(message)
        return ActionResult(success=False, error=message, failed_ids=tuple(failed))

    async def _run(self, action: str, call: Callable[[], Awaitable[str | None]]) -> ActionResult:
        self._busy = True
        self._error = None
        try:
            entity_id = await self._attempt(action, call)
        except Exception as exc:
            message = _message(exc)
            self._busy = False
            self._error = message
            _logger.warning("%s on %s failed: %s", action, self._store.key, message)
            return ActionResult(success=False, error=message)
        self._busy = False
        return ActionResult(success=True, id=entity_id)

    async def _attempt(self, action: str, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await call()
            except RemoteStoreError as exc:
                if attempt >= self._retry_attempts or not is_retryable(exc):
                    raise
                delay = self._retry_backoff * (2**attempt)
                attempt += 1
                _logger.info(
                    "Retrying %s on %s in %.2fs (attempt %d/%d): %s",
                    action,
                    self._store.key,
                    delay,
                    attempt,
                    self._retry_attempts,
                    exc,
                )
                await self._sleep(delay)
