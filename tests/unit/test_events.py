# =============================================================================
# tests/unit/test_events.py
# Unit Tests for the Event Channel
# =============================================================================

import pytest

from asterix_offline.offline import EventChannel, EventRecorder, EventType, SyncEvent


class TestEventChannel:
    """Test subscription and delivery"""

    def test_each_subscriber_receives_once(self):
        channel = EventChannel()
        first, second = [], []
        channel.subscribe(EventType.SYNC_COMPLETE, first.append)
        channel.subscribe(EventType.SYNC_COMPLETE, second.append)

        channel.emit(EventType.SYNC_COMPLETE, operations_synced=3)

        assert len(first) == 1
        assert len(second) == 1
        assert first[0] is second[0]
        assert first[0]["operations_synced"] == 3

    def test_only_matching_type_delivered(self):
        channel = EventChannel()
        seen = []
        channel.subscribe(EventType.ONLINE, seen.append)

        channel.emit(EventType.OFFLINE)

        assert seen == []

    def test_wildcard_subscription(self):
        channel = EventChannel()
        recorder = EventRecorder.attach(channel)

        channel.emit(EventType.SYNC_START)
        channel.emit(EventType.SYNC_COMPLETE, operations_synced=0)

        assert recorder.types() == [EventType.SYNC_START, EventType.SYNC_COMPLETE]

    def test_string_event_type_accepted(self):
        channel = EventChannel()
        seen = []
        channel.subscribe("sync_error", seen.append)

        channel.emit(EventType.SYNC_ERROR, error="x")

        assert seen[0].type == EventType.SYNC_ERROR

    def test_unknown_event_type_rejected(self):
        with pytest.raises(ValueError):
            EventChannel().subscribe("sync_exploded", lambda e: None)

    def test_unsubscribe(self):
        channel = EventChannel()
        seen = []
        subscription = channel.subscribe(EventType.ONLINE, seen.append)

        subscription.unsubscribe()
        subscription.unsubscribe()
        channel.emit(EventType.ONLINE)

        assert seen == []
        assert channel.subscriber_count == 0

    def test_failing_handler_does_not_block_others(self):
        channel = EventChannel()
        seen = []

        def broken(event):
            raise RuntimeError("handler bug")

        channel.subscribe(EventType.ONLINE, broken)
        channel.subscribe(EventType.ONLINE, seen.append)

        channel.emit(EventType.ONLINE)

        assert len(seen) == 1

    def test_subscriber_added_during_emit_waits_for_next(self):
        channel = EventChannel()
        late = []

        def add_late(event):
            channel.subscribe(EventType.ONLINE, late.append)

        channel.subscribe(EventType.ONLINE, add_late)
        channel.emit(EventType.ONLINE)

        assert late == []

    def test_emit_returns_event_with_timestamp(self):
        event = EventChannel().emit(EventType.SYNC_SKIPPED, reason="offline")

        assert isinstance(event, SyncEvent)
        assert event.data == {"reason": "offline"}
        assert event.timestamp > 0

    def test_clear(self):
        channel = EventChannel()
        channel.subscribe_all(lambda e: None)

        channel.clear()

        assert channel.subscriber_count == 0


def test_recorder_filters_by_type():
    channel = EventChannel()
    recorder = EventRecorder.attach(channel)

    channel.emit(EventType.SYNC_CONFLICT, operation_id="a")
    channel.emit(EventType.SYNC_PROGRESS, total=1, completed=0)
    channel.emit(EventType.SYNC_CONFLICT, operation_id="b")

    assert [e["operation_id"] for e in recorder.of(EventType.SYNC_CONFLICT)] == ["a", "b"]
