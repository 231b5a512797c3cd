from __future__ import annotations

import asyncio
from typing import Any

import pytest

from fleetsync._memory import InMemoryTransport
from fleetsync.exceptions import (
    AuthError,
    ConflictError,
    EntityValidationError,
    RemoteTimeoutError,
    RemoteWriteError,
)
from fleetsync.store import RemoteCollectionStore
from fleetsync.sync.dispatcher import ActionResult, CrudActionDispatcher, is_retryable


class _FailingStore:
    """Raises the queued errors in order, then succeeds."""

    key = "vehicles"

    def __init__(self, *errors: BaseException) -> None:
        self._errors = list(errors)
        self.calls = 0

    def prepare_create(self, entity: Any) -> dict[str, Any]:
        payload = dict(entity)
        payload.setdefault("id", f"VEH{self.calls}")
        return payload

    async def _maybe_fail(self) -> None:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)

    async def create(self, entity: Any) -> str:
        await self._maybe_fail()
        return str(entity["id"])

    async def update(self, entity_id: str, fields: Any, *, if_match: str | None = None) -> None:
        await self._maybe_fail()

    async def delete(self, entity_id: str) -> None:
        await self._maybe_fail()


async def _no_sleep(_delay: float) -> None:
    return None


def _dispatcher(store: Any, **kwargs: Any) -> CrudActionDispatcher:
    kwargs.setdefault("sleep", _no_sleep)
    return CrudActionDispatcher(store, **kwargs)


@pytest.mark.asyncio
async def test_success_result_carries_id_and_clears_busy() -> None:
    dispatcher = _dispatcher(RemoteCollectionStore(InMemoryTransport(), "vehicles"))

    result = await dispatcher.create({"id": "V1", "driver": "A"})

    assert result == ActionResult(success=True, id="V1")
    assert not dispatcher.busy
    assert dispatcher.error is None


@pytest.mark.parametrize(
    "error",
    [
        RemoteWriteError("Permission denied", status_code=401),
        RemoteTimeoutError("PUT vehicles/V1 exceeded 20s"),
        EntityValidationError("vehicleId: Field required", field="vehicleId"),
        RuntimeError("boom"),
    ],
)
@pytest.mark.asyncio
async def test_failures_become_results_and_never_raise(error: Exception) -> None:
    dispatcher = _dispatcher(_FailingStore(error))

    for result in (
        await dispatcher.create({"id": "V1"}),
        await dispatcher.update("V1", {"driver": "B"}),
        await dispatcher.delete("V1"),
    ):
        assert isinstance(result.success, bool)
        if not result.success:
            assert isinstance(result.error, str)
            assert result.error


@pytest.mark.asyncio
async def test_failure_sets_shared_error_state() -> None:
    dispatcher = _dispatcher(_FailingStore(RemoteWriteError("Permission denied", status_code=403)))

    result = await dispatcher.update("V1", {"driver": "B"})

    assert result.success is False
    assert result.error == "Permission denied"
    assert dispatcher.error == "Permission denied"
    assert not dispatcher.busy


@pytest.mark.asyncio
async def test_busy_is_set_while_the_call_runs() -> None:
    release = asyncio.Event()

    class _BlockingStore(_FailingStore):
        async def delete(self, entity_id: str) -> None:
            await release.wait()

    dispatcher = _dispatcher(_BlockingStore())
    task = asyncio.create_task(dispatcher.delete("V1"))
    await asyncio.sleep(0)

    assert dispatcher.busy
    release.set()
    assert (await task).success
    assert not dispatcher.busy


@pytest.mark.asyncio
async def test_concurrent_calls_report_their_own_outcome() -> None:
    store = _FailingStore(RemoteWriteError("Permission denied", status_code=401))
    dispatcher = _dispatcher(store)

    first, second = await asyncio.gather(dispatcher.delete("V1"), dispatcher.delete("V2"))

    assert [first.success, second.success].count(True) == 1
    assert [first.success, second.success].count(False) == 1


@pytest.mark.asyncio
async def test_no_retry_by_default() -> None:
    store = _FailingStore(RemoteTimeoutError("slow"))
    dispatcher = _dispatcher(store)

    result = await dispatcher.delete("V1")

    assert not result.success
    assert store.calls == 1


@pytest.mark.asyncio
async def test_transient_failures_retry_with_backoff() -> None:
    delays: list[float] = []

    async def record(delay: float) -> None:
        delays.append(delay)

    store = _FailingStore(RemoteTimeoutError("slow"), RemoteWriteError("bad gateway", status_code=502))
    dispatcher = _dispatcher(store, retry_attempts=3, retry_backoff=0.5, sleep=record)

    result = await dispatcher.update("V1", {"driver": "B"})

    assert result.success
    assert store.calls == 3
    assert delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retried_create_keeps_the_allocated_id() -> None:
    store = _FailingStore(RemoteTimeoutError("slow"))
    dispatcher = _dispatcher(store, retry_attempts=1)

    result = await dispatcher.create({"driver": "A"})

    assert result.success
    assert result.id == "VEH0"


@pytest.mark.parametrize(
    "error",
    [
        EntityValidationError("bad"),
        AuthError("expired"),
        ConflictError("changed", status_code=412),
        RemoteWriteError("Permission denied", status_code=401),
    ],
)
def test_non_transient_errors_are_not_retryable(error: Exception) -> None:
    assert not is_retryable(error)


@pytest.mark.asyncio
async def test_delete_many_reports_failed_ids() -> None:
    transport = InMemoryTransport({"serviceHistory": {"SH1": {"id": "SH1"}, "SH2": {"id": "SH2"}}})
    dispatcher = _dispatcher(RemoteCollectionStore(transport, "serviceHistory"))

    result = await dispatcher.delete_many(["SH1", "SH2", "bad/id"])

    assert not result.success
    assert result.failed_ids == ("bad/id",)
    assert "1 of 3 deletes" in (result.error or "")
    assert transport.snapshot("serviceHistory") is None


@pytest.mark.asyncio
async def test_delete_many_success() -> None:
    transport = InMemoryTransport({"serviceHistory": {"SH1": {"id": "SH1"}}})
    dispatcher = _dispatcher(RemoteCollectionStore(transport, "serviceHistory"))

    assert (await dispatcher.delete_many(["SH1"])).success


@pytest.mark.asyncio
async def test_update_many_merges_into_every_entity() -> None:
    transport = InMemoryTransport({"vehicles": {"V1": {"id": "V1"}, "V2": {"id": "V2"}}})
    dispatcher = _dispatcher(RemoteCollectionStore(transport, "vehicles"))

    result = await dispatcher.update_many({"V1": {"driver": "A"}, "V2": {"driver": "B"}})

    assert result.success
    assert result.id is None
    assert transport.snapshot("vehicles/V1")["driver"] == "A"
    assert transport.snapshot("vehicles/V2")["driver"] == "B"


@pytest.mark.asyncio
async def test_update_many_failure_sets_error() -> None:
    transport = InMemoryTransport({"vehicles": {"V1": {"id": "V1"}}})
    dispatcher = _dispatcher(RemoteCollectionStore(transport, "vehicles"))

    result = await dispatcher.update_many({"V1": {"driver": "A"}, "V9": {"driver": "B"}})

    assert not result.success
    assert dispatcher.error == result.error
    assert "driver" not in transport.snapshot("vehicles/V1")
