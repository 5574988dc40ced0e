import asyncio

import pytest

from leaderboard.realtime.adapter import subscribe_to_leaderboard
from leaderboard.realtime.types import SNAPSHOT_TOPIC
from leaderboard.snapshots.store import SnapshotStore
from leaderboard.tests.helpers.builders import BASE_TIME, event, score_payload, settle, wait_until
from leaderboard.tests.helpers.fakes import MemoryEventRepository, MemoryScoreRepository, MemorySnapshotRepository


class UpdateLog:
    def __init__(self):
        self.calls = []

    def __call__(self, scores, error):
        self.calls.append((scores, error))

    @property
    def totals(self):
        return [[s.total_score for s in scores] if scores is not None else None for scores, _error in self.calls]


@pytest.fixture
def snapshots():
    return MemorySnapshotRepository()


@pytest.fixture
def memory_store(snapshots):
    return SnapshotStore(MemoryScoreRepository(), snapshots, MemoryEventRepository([event("e1")]))


def _change(scores, event_id="e1", time_filter="all_time"):
    return {"event_id": event_id, "time_filter": time_filter, "scores": scores}


class TestInitialDelivery:
    async def test_empty_store_delivers_none_once(self, memory_store, feed):
        log = UpdateLog()

        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        assert log.calls == [(None, None)]

    async def test_delivers_stored_snapshot(self, memory_store, snapshots, feed):
        snapshots.put_raw("e1", "all_time", [score_payload("p1", [3, 4])], BASE_TIME)
        log = UpdateLog()

        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        assert log.totals == [[7]]
        assert log.calls[0][1] is None

    async def test_malformed_snapshot_delivers_none(self, memory_store, snapshots, feed):
        snapshots.put_raw("e1", "all_time", [{"player_id": "p1"}], BASE_TIME)
        log = UpdateLog()

        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        assert log.calls == [(None, None)]

    async def test_source_error_is_delivered_as_error(self, memory_store, snapshots, feed):
        snapshots.fail_with = "connection refused"
        log = UpdateLog()

        sub = await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        ((scores, error),) = log.calls
        assert scores is None
        assert "connection refused" in error
        assert sub.active

    async def test_unknown_filter_reads_all_time_snapshot(self, memory_store, snapshots, feed):
        snapshots.put_raw("e1", "all_time", [score_payload("p1", [2])], BASE_TIME)
        log = UpdateLog()

        sub = await subscribe_to_leaderboard(memory_store, feed, "e1", "fortnight", log)

        assert sub.time_filter == "all_time"
        assert log.totals == [[2]]

    async def test_async_callback_is_awaited(self, memory_store, feed):
        calls = []

        async def on_update(scores, error):
            await asyncio.sleep(0)
            calls.append((scores, error))

        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", on_update)

        assert calls == [(None, None)]


class TestChangeDelivery:
    async def test_matching_change_is_delivered(self, memory_store, feed):
        log = UpdateLog()
        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [2])]))
        await wait_until(lambda: len(log.calls) == 2)

        assert log.totals == [None, [2]]

    async def test_other_keys_are_ignored(self, memory_store, feed):
        log = UpdateLog()
        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [2])], event_id="e2"))
        feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [2])], time_filter="last_day"))
        await settle()

        assert log.calls == [(None, None)]

    async def test_invalid_scores_are_reported_as_error(self, memory_store, feed):
        log = UpdateLog()
        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        feed.publish(SNAPSHOT_TOPIC, _change([{"player_id": "p1", "name": "P1"}]))
        await wait_until(lambda: len(log.calls) == 2)

        scores, error = log.calls[1]
        assert scores is None
        assert error.startswith("invalid scores format")

    async def test_unkeyed_message_is_reported_as_error(self, memory_store, feed):
        log = UpdateLog()
        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        feed.publish(SNAPSHOT_TOPIC, {"scores": "garbage"})
        await wait_until(lambda: len(log.calls) == 2)

        scores, error = log.calls[1]
        assert scores is None
        assert error.startswith("malformed snapshot change")

    async def test_unknown_filter_receives_all_time_changes(self, memory_store, feed):
        log = UpdateLog()
        await subscribe_to_leaderboard(memory_store, feed, "e1", "fortnight", log)

        feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [6])]))
        await wait_until(lambda: len(log.calls) == 2)

        assert log.totals == [None, [6]]

    async def test_changes_arrive_in_order(self, memory_store, feed):
        log = UpdateLog()
        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        for value in (5, 4, 3):
            feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [value])]))
        await wait_until(lambda: len(log.calls) == 4)

        assert log.totals == [None, [5], [4], [3]]

    async def test_channel_error_is_reported(self, memory_store, feed):
        log = UpdateLog()
        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        feed.report_error(SNAPSHOT_TOPIC, "socket closed")
        await wait_until(lambda: len(log.calls) == 2)

        assert log.calls[1] == (None, "realtime channel error: socket closed")

    async def test_change_during_initial_fetch_waits_for_initial_value(self, snapshots, feed):
        log = UpdateLog()
        gate = asyncio.Event()

        class SlowStore(SnapshotStore):
            async def fetch(self, event_id, time_filter):
                feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [9])]))
                await gate.wait()
                return None

        store = SlowStore(MemoryScoreRepository(), snapshots, MemoryEventRepository([event("e1")]))
        task = asyncio.create_task(subscribe_to_leaderboard(store, feed, "e1", "all_time", log))
        await settle()
        assert log.calls == []

        gate.set()
        await task
        await wait_until(lambda: len(log.calls) == 2)

        assert log.totals == [None, [9]]

    async def test_callback_exception_does_not_break_subscription(self, memory_store, feed):
        calls = []

        def on_update(scores, error):
            calls.append(scores)
            if len(calls) == 2:
                raise RuntimeError("display crashed")

        await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", on_update)
        feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [2])]))
        feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [3])]))

        await wait_until(lambda: len(calls) == 3)


class TestUnsubscribe:
    async def test_no_delivery_after_unsubscribe(self, memory_store, feed):
        log = UpdateLog()
        sub = await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", log)

        await sub.unsubscribe()
        feed.publish(SNAPSHOT_TOPIC, _change([score_payload("p1", [2])]))
        await settle()

        assert log.calls == [(None, None)]
        assert feed.subscriber_count(SNAPSHOT_TOPIC) == 0

    async def test_unsubscribe_is_idempotent(self, memory_store, feed):
        sub = await subscribe_to_leaderboard(memory_store, feed, "e1", "all_time", UpdateLog())

        await sub.unsubscribe()
        await sub.unsubscribe()

        assert not sub.active

    async def test_cancelled_subscribe_releases_feed(self, snapshots, feed):
        started = asyncio.Event()

        class HangingStore(SnapshotStore):
            async def fetch(self, event_id, time_filter):
                started.set()
                await asyncio.Event().wait()

        store = HangingStore(MemoryScoreRepository(), snapshots, MemoryEventRepository())
        task = asyncio.create_task(subscribe_to_leaderboard(store, feed, "e1", "all_time", UpdateLog()))
        await started.wait()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert feed.subscriber_count(SNAPSHOT_TOPIC) == 0

    async def test_unexpected_fetch_error_releases_feed(self, snapshots, feed):
        class BrokenStore(SnapshotStore):
            async def fetch(self, event_id, time_filter):
                raise ValueError("Invalid isoformat string: 'yesterday'")

        store = BrokenStore(MemoryScoreRepository(), snapshots, MemoryEventRepository())

        with pytest.raises(ValueError, match="isoformat"):
            await subscribe_to_leaderboard(store, feed, "e1", "all_time", UpdateLog())

        assert feed.subscriber_count(SNAPSHOT_TOPIC) == 0
