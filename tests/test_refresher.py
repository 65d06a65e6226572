"""Unit tests for the batch refresher."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from meeple.bgg.client import BggAPIError, RateLimitError
from meeple.models.parsed_thing import ParsedThing
from meeple.services.errors import PersistenceError
from meeple.services.refresher import BatchRefresher, RefreshReport, chunked

from conftest import make_parsed


def _ids(first, last):
    return [str(i) for i in range(first, last + 1)]


def _echo_gateway(fail_when=None):
    """Gateway returning one parsed record per requested id."""
    async def fetch_batch(ids):
        if fail_when is not None and fail_when(ids):
            raise BggAPIError("BGG API error: boom")
        return [make_parsed(i) for i in ids]

    gateway = MagicMock()
    gateway.fetch_batch = AsyncMock(side_effect=fetch_batch)
    return gateway


class TestChunked:
    """Batch slicing."""

    def test_slices_in_order(self):
        assert chunked(_ids(1, 5), 2) == [["1", "2"], ["3", "4"], ["5"]]

    def test_empty(self):
        assert chunked([], 20) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunked(["1"], 0)


@pytest.mark.asyncio
class TestBatchRefresher:
    """Test suite for batch refresh operations."""

    async def test_empty_input_makes_no_call(self, store):
        gateway = _echo_gateway()
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=1.0)

        with patch('asyncio.sleep', new_callable=AsyncMock) as sleep:
            report = await refresher.refresh([])

        gateway.fetch_batch.assert_not_called()
        sleep.assert_not_called()
        assert report.things == []
        assert report.complete

    async def test_one_call_per_batch(self, store):
        gateway = _echo_gateway()
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=1.0)

        with patch('asyncio.sleep', new_callable=AsyncMock):
            report = await refresher.refresh(_ids(1, 45))

        assert gateway.fetch_batch.await_count == 3
        batches = [call.args[0] for call in gateway.fetch_batch.await_args_list]
        assert [len(b) for b in batches] == [20, 20, 5]
        assert sum(batches, []) == _ids(1, 45)
        assert report.batches == 3
        assert len(report.things) == 45

    async def test_delay_between_batches_only(self, store):
        gateway = _echo_gateway()
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=1.0)

        with patch('asyncio.sleep', new_callable=AsyncMock) as sleep:
            await refresher.refresh(_ids(1, 60))

        # 3 batches -> 2 pauses, aucune après le dernier
        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.0)

    async def test_single_batch_never_sleeps(self, store):
        gateway = _echo_gateway()
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=1.0)

        with patch('asyncio.sleep', new_callable=AsyncMock) as sleep:
            await refresher.refresh(_ids(1, 20))

        sleep.assert_not_called()

    async def test_failed_batch_does_not_stop_the_rest(self, store):
        gateway = _echo_gateway(fail_when=lambda ids: "1" in ids)
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=1.0)

        with patch('asyncio.sleep', new_callable=AsyncMock) as sleep:
            report = await refresher.refresh(_ids(1, 25))

        assert gateway.fetch_batch.await_count == 2
        assert sleep.await_count == 1  # le délai tient même après un échec
        assert report.refreshed_ids == _ids(21, 25)
        assert len(report.failed_batches) == 1
        assert report.failed_batches[0].index == 0
        assert report.failed_batches[0].ids == _ids(1, 20)
        assert not report.complete
        assert [t.id for t in store.get_by_ids(_ids(1, 25))] == _ids(21, 25)

    async def test_middle_batch_failure(self, store):
        gateway = _echo_gateway(fail_when=lambda ids: "25" in ids)
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=0)

        report = await refresher.refresh(_ids(1, 50))

        assert gateway.fetch_batch.await_count == 3
        assert report.refreshed_ids == _ids(1, 20) + _ids(41, 50)

    async def test_any_gateway_exception_is_a_batch_failure(self, store):
        gateway = MagicMock()
        gateway.fetch_batch = AsyncMock(side_effect=[RateLimitError("quota"), asyncio.TimeoutError()])
        refresher = BatchRefresher(gateway, store, batch_size=2, delay=0)

        report = await refresher.refresh(_ids(1, 4))

        assert len(report.failed_batches) == 2
        assert report.things == []

    async def test_cancellation_propagates(self, store):
        gateway = MagicMock()
        gateway.fetch_batch = AsyncMock(side_effect=asyncio.CancelledError())
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=0)

        with pytest.raises(asyncio.CancelledError):
            await refresher.refresh(_ids(1, 3))

    async def test_invalid_record_is_rejected_not_the_batch(self, store):
        gateway = MagicMock()
        gateway.fetch_batch = AsyncMock(return_value=[make_parsed("1"), ParsedThing(id=""), make_parsed("3")])
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=0)

        report = await refresher.refresh(_ids(1, 3))

        assert report.refreshed_ids == ["1", "3"]
        assert len(report.rejected) == 1
        assert report.failed_batches == []

    async def test_persistence_error_fails_only_that_batch(self, store):
        real_upsert = store.upsert

        def upsert(parsed, now=None):
            if parsed.id == "2":
                raise PersistenceError("database is locked")
            return real_upsert(parsed, now=now)

        gateway = _echo_gateway()
        refresher = BatchRefresher(gateway, store, batch_size=2, delay=0)

        with patch.object(store, "upsert", side_effect=upsert):
            report = await refresher.refresh(_ids(1, 4))

        # "1" écrit avant l'erreur, "2" perdu, batch suivant intact
        assert report.refreshed_ids == ["1", "3", "4"]
        assert len(report.failed_batches) == 1
        assert report.failed_batches[0].ids == ["1", "2"]

    async def test_report_is_filled_in_place(self, store):
        gateway = _echo_gateway()
        refresher = BatchRefresher(gateway, store, batch_size=20, delay=0)
        report = RefreshReport()

        returned = await refresher.refresh(_ids(1, 3), report=report)

        assert returned is report
        assert report.requested == 3
        assert report.refreshed_ids == _ids(1, 3)
