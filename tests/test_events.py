"""
Tests for the notification fan-out
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest
from starlette.requests import Request

from shopfloor.api import events as events_api
from shopfloor.api.events import format_sse
from shopfloor.auth import Caller
from shopfloor.services import archiver, lifecycle, timer_ledger
from shopfloor.services.events import EventBus


class TestEventBus:
    def test_sequence_numbers_increase(self):
        bus = EventBus(buffer_size=10)
        first = bus.publish("job.created", {"id": 7, "title": "x"})
        second = bus.publish("job.updated", {"id": 7})

        assert (first["seq"], second["seq"]) == (1, 2)
        assert first["job_id"] == 7
        assert first["ts"].endswith("Z")
        assert bus.last_seq == 2

    def test_replay_buffer_is_bounded(self):
        bus = EventBus(buffer_size=3)
        for n in range(5):
            bus.publish("timer.started", {"job_id": n})

        assert [e["seq"] for e in bus.recent()] == [3, 4, 5]
        assert [e["seq"] for e in bus.events_since(3)] == [4, 5]
        assert bus.events_since(5) == []

    def test_publish_from_many_threads_keeps_seq_unique(self):
        bus = EventBus(buffer_size=1000)
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda n: bus.publish("job.updated", {"job_id": n % 4}), range(400)))

        seqs = [e["seq"] for e in bus.recent(limit=0)]
        assert seqs == list(range(1, 401))

    def test_subscriber_receives_events_in_order(self):
        bus = EventBus(buffer_size=10, queue_size=10)

        async def scenario():
            sub = bus.subscribe()
            assert bus.subscriber_count == 1
            publisher = threading.Thread(
                target=lambda: [bus.publish("job.updated", {"job_id": 1, "n": n}) for n in range(3)]
            )
            publisher.start()
            got = [await sub.get(timeout=2) for _ in range(3)]
            publisher.join()
            bus.unsubscribe(sub)
            return got

        received = asyncio.run(scenario())
        assert [e["data"]["n"] for e in received] == [0, 1, 2]
        assert bus.subscriber_count == 0

    def test_slow_subscriber_loses_events_without_blocking(self):
        bus = EventBus(buffer_size=10, queue_size=2)

        async def scenario():
            sub = bus.subscribe()
            for n in range(5):
                bus.publish("job.updated", {"job_id": 1, "n": n})
            # let call_soon_threadsafe callbacks run
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            queued = []
            while not sub.queue.empty():
                queued.append(sub.queue.get_nowait())
            return sub, queued

        sub, queued = asyncio.run(scenario())
        assert [e["data"]["n"] for e in queued] == [0, 1]
        assert sub.dropped == 3
        # The buffer still holds everything for a reconnect
        assert len(bus.events_since(0)) == 5

    def test_get_times_out_with_none(self):
        bus = EventBus()

        async def scenario():
            sub = bus.subscribe()
            try:
                return await sub.get(timeout=0.01)
            finally:
                bus.unsubscribe(sub)

        assert asyncio.run(scenario()) is None

    def test_sse_frame(self):
        frame = format_sse({"seq": 12, "event": "timer.stopped", "job_id": 3, "ts": "t", "data": {}})
        assert frame.startswith("id: 12\nevent: timer.stopped\ndata: {")
        assert frame.endswith("\n\n")

    def test_sse_frame_with_epoch(self):
        frame = format_sse({"seq": 4, "event": "job.updated", "job_id": 1, "ts": "t", "data": {}}, "abc123")
        assert frame.startswith("id: abc123-4\n")

    @pytest.mark.parametrize("value, expected", [
        ("abc123-42", ("abc123", 42)),
        ("42", (None, 42)),
        (" 7 ", (None, 7)),
    ])
    def test_parse_event_id(self, value, expected):
        assert events_api.parse_event_id(value) == expected

    @pytest.mark.parametrize("value", ["garbage", "abc-", ""])
    def test_parse_event_id_rejects_junk(self, value):
        with pytest.raises(ValueError):
            events_api.parse_event_id(value)


STREAM_CALLER = Caller(user_id=1, role="employee", name="Employee e1")


def _request(headers=None):
    """A bare GET request whose client can be disconnected by setting conn["gone"]."""
    conn = {"gone": False}

    async def receive():
        if conn["gone"]:
            return {"type": "http.disconnect"}
        return {"type": "http.request", "body": b"", "more_body": False}

    scope = {
        "type": "http",
        "method": "GET",
        "path": "/v1/events/stream",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    return Request(scope, receive), conn


async def _open(headers=None, since=None):
    request, conn = _request(headers)
    response = await events_api.stream_events(request, since=since, caller=STREAM_CALLER)
    assert response.media_type == "text/event-stream"
    return response.body_iterator, conn


async def _next(frames):
    return await asyncio.wait_for(frames.__anext__(), timeout=2)


def _event_id(frame):
    assert frame.startswith("id: "), frame
    return frame.split("\n", 1)[0][len("id: "):]


@pytest.fixture
def stream_bus(monkeypatch):
    bus = EventBus(buffer_size=5, queue_size=20)
    monkeypatch.setattr(events_api, "event_bus", bus)
    monkeypatch.setattr(events_api, "EVENT_KEEPALIVE_SEC", 0.05)
    return bus


class TestEventStream:
    def test_fresh_stream_delivers_live_events(self, stream_bus):
        async def scenario():
            frames, _ = await _open()
            try:
                assert await _next(frames) == "retry: 3000\n\n"
                stream_bus.publish("job.created", {"id": 3})
                return await _next(frames)
            finally:
                await frames.aclose()

        frame = asyncio.run(scenario())
        assert _event_id(frame) == f"{stream_bus.epoch}-1"
        assert "event: job.created\n" in frame

    @pytest.mark.parametrize("last_event_id", ["0123456789ab-500", "500"])
    def test_reconnect_after_restart_starts_fresh(self, stream_bus, last_event_id):
        # The browser still holds an id from the previous process run
        async def scenario():
            frames, _ = await _open({"Last-Event-ID": last_event_id})
            try:
                assert await _next(frames) == "retry: 3000\n\n"
                resync = await _next(frames)
                stream_bus.publish("job.created", {"id": 3})
                return resync, await _next(frames)
            finally:
                await frames.aclose()

        resync, frame = asyncio.run(scenario())
        assert resync.startswith("event: resync\n")
        assert f'"epoch": "{stream_bus.epoch}"' in resync
        assert _event_id(frame) == f"{stream_bus.epoch}-1"

    def test_replays_backlog_after_last_event_id(self, stream_bus):
        for n in range(3):
            stream_bus.publish("job.updated", {"job_id": 1, "n": n})

        async def scenario():
            frames, _ = await _open({"Last-Event-ID": f"{stream_bus.epoch}-1"})
            try:
                got = [await _next(frames) for _ in range(3)]
                stream_bus.publish("job.updated", {"job_id": 1, "n": 3})
                got.append(await _next(frames))
                return got
            finally:
                await frames.aclose()

        retry, *events = asyncio.run(scenario())
        assert retry == "retry: 3000\n\n"
        assert [_event_id(f) for f in events] == [f"{stream_bus.epoch}-{n}" for n in (2, 3, 4)]

    def test_replays_backlog_after_since(self, stream_bus):
        for n in range(3):
            stream_bus.publish("job.updated", {"job_id": 1, "n": n})

        async def scenario():
            frames, _ = await _open(since=2)
            try:
                return [await _next(frames) for _ in range(2)]
            finally:
                await frames.aclose()

        retry, frame = asyncio.run(scenario())
        assert retry == "retry: 3000\n\n"
        assert _event_id(frame) == f"{stream_bus.epoch}-3"

    def test_event_in_backlog_and_queue_is_sent_once(self, monkeypatch):
        class PublishWhileSubscribing(EventBus):
            def subscribe(self, maxsize=None):
                sub = super().subscribe(maxsize)
                # Lands in the subscriber queue and in the replay buffer
                self.publish("job.updated", {"job_id": 1, "n": "raced"})
                return sub

        bus = PublishWhileSubscribing(buffer_size=5, queue_size=20)
        monkeypatch.setattr(events_api, "event_bus", bus)
        monkeypatch.setattr(events_api, "EVENT_KEEPALIVE_SEC", 0.05)

        async def scenario():
            frames, _ = await _open(since=0)
            try:
                got = [await _next(frames) for _ in range(2)]
                bus.publish("job.updated", {"job_id": 1, "n": "next"})
                got.append(await _next(frames))
                return got
            finally:
                await frames.aclose()

        _, first, second = asyncio.run(scenario())
        assert _event_id(first) == f"{bus.epoch}-1"
        assert _event_id(second) == f"{bus.epoch}-2"

    def test_resume_older_than_buffer_resyncs_then_replays(self, stream_bus):
        for n in range(8):
            stream_bus.publish("job.updated", {"job_id": 1, "n": n})

        async def scenario():
            frames, _ = await _open(since=1)
            try:
                return [await _next(frames) for _ in range(7)]
            finally:
                await frames.aclose()

        retry, resync, *events = asyncio.run(scenario())
        assert resync.startswith("event: resync\n")
        assert [_event_id(f) for f in events] == [f"{stream_bus.epoch}-{n}" for n in range(4, 9)]

    def test_malformed_last_event_id_is_ignored(self, stream_bus):
        async def scenario():
            frames, _ = await _open({"Last-Event-ID": "garbage"})
            try:
                retry = await _next(frames)
                stream_bus.publish("timer.started", {"job_id": 2})
                return retry, await _next(frames)
            finally:
                await frames.aclose()

        retry, frame = asyncio.run(scenario())
        assert retry == "retry: 3000\n\n"
        assert _event_id(frame) == f"{stream_bus.epoch}-1"

    def test_keepalive_when_idle(self, stream_bus):
        async def scenario():
            frames, _ = await _open()
            try:
                await _next(frames)
                return await _next(frames)
            finally:
                await frames.aclose()

        assert asyncio.run(scenario()) == ": keepalive\n\n"

    def test_disconnect_unsubscribes(self, stream_bus):
        async def scenario():
            frames, conn = await _open()
            await _next(frames)
            assert stream_bus.subscriber_count == 1
            conn["gone"] = True
            with pytest.raises(StopAsyncIteration):
                await frames.__anext__()

        asyncio.run(scenario())
        assert stream_bus.subscriber_count == 0


class TestEmittedEvents:
    def test_job_events_follow_commit_order(self, db, make_job, users, bus):
        t0 = datetime(2024, 7, 1, 9, 0, 0)
        job = make_job(assignees=("e1",))
        timer_ledger.start_timer(db, job.id, users["e1"], now=t0, bus=bus)
        timer_ledger.stop_timer(db, job.id, users["e1"], now=t0 + timedelta(minutes=3), bus=bus)
        lifecycle.set_status(db, job.id, "completed", users["e1"], bus=bus)
        archiver.archive_job(db, job.id, users["admin"], bus=bus)

        events = [e for e in bus.recent() if e["job_id"] == job.id]
        assert [e["event"] for e in events] == [
            "job.created", "timer.started", "job.updated", "timer.stopped", "job.updated", "job.archived",
        ]
        assert [e["seq"] for e in events] == sorted(e["seq"] for e in events)

    def test_concurrent_writers_on_one_job_publish_in_commit_order(self, db, make_job, users,
                                                                  session_factory, bus):
        job = make_job(assignees=("e1", "e2"))
        db.rollback()

        def flip(n):
            s = session_factory()
            try:
                status = ("todo", "in_progress", "completed")[n % 3]
                lifecycle.set_status(s, job.id, status, users["admin"], bus=bus)
            finally:
                s.close()

        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(flip, range(30)))

        updates = [e for e in bus.recent() if e["event"] == "job.updated"]
        # Each payload is the state right after its own commit, so updated_at never goes backwards
        stamps = [e["data"]["updated_at"] for e in updates]
        assert len(updates) == 30
        assert stamps == sorted(stamps)

        db.expire_all()
        assert lifecycle.get_job(db, job.id).status == updates[-1]["data"]["status"]
