"""Tests for feedback recording, history boosts and event delivery."""

from __future__ import annotations

import asyncio
import logging

import pytest

from caprec.errors import FeedbackWriteError, HistoricalReadError, RecommendationNotFoundError
from caprec.recommendations.events import (
    RecommendationEvent,
    RecommendationEventBus,
    RecommendationEventType,
    UINotifier,
)
from caprec.recommendations.feedback import FeedbackRecorder
from caprec.recommendations.history import HistoricalPerformanceTracker
from caprec.recommendations.schemas import RecommendationAction, RecommendationType

from conftest import FlakyStore, RecordingSink, new_record

GENERATED = RecommendationEventType.GENERATED
FEEDBACK = RecommendationEventType.FEEDBACK


def _collect(bus: RecommendationEventBus, *types: RecommendationEventType) -> list[RecommendationEvent]:
    received: list[RecommendationEvent] = []
    bus.subscribe(event_types=list(types), handler=received.append)
    return received


# =====================================================================
# FeedbackRecorder
# =====================================================================


class TestFeedbackRecorder:
    @pytest.mark.asyncio
    async def test_action_is_stored_and_published(self, store: FlakyStore) -> None:
        bus = RecommendationEventBus()
        received = _collect(bus, FEEDBACK)
        record = await store.record_recommendation(new_record(1))

        await FeedbackRecorder(store, bus).record_action(record.id, "accepted")

        loaded = await store.get_recommendation(record.id)
        assert loaded.action == RecommendationAction.ACCEPTED
        assert len(received) == 1
        assert received[0].type == FEEDBACK
        assert received[0].data["recommendation_id"] == record.id
        assert received[0].data["action"] == "accepted"

    @pytest.mark.asyncio
    async def test_unknown_id_raises_not_found(self, store: FlakyStore) -> None:
        bus = RecommendationEventBus()
        received = _collect(bus, FEEDBACK)

        with pytest.raises(RecommendationNotFoundError):
            await FeedbackRecorder(store, bus).record_action(999, RecommendationAction.REJECTED)

        assert received == []

    @pytest.mark.asyncio
    async def test_invalid_action(self, store: FlakyStore) -> None:
        record = await store.record_recommendation(new_record(1))

        with pytest.raises(ValueError):
            await FeedbackRecorder(store, RecommendationEventBus()).record_action(record.id, "maybe")

    @pytest.mark.asyncio
    async def test_store_failure_is_wrapped(self, store: FlakyStore) -> None:
        async def broken(*args, **kwargs) -> None:
            raise RuntimeError("database is locked")

        store.record_recommendation_action = broken

        with pytest.raises(FeedbackWriteError) as exc_info:
            await FeedbackRecorder(store, RecommendationEventBus()).record_action(1, "ignored")

        assert not isinstance(exc_info.value, RecommendationNotFoundError)
        assert "database is locked" in str(exc_info.value)


# =====================================================================
# HistoricalPerformanceTracker
# =====================================================================


class TestHistoricalPerformanceTracker:
    @pytest.mark.asyncio
    async def test_boosts_cover_both_types(self, store: FlakyStore) -> None:
        for rec_type, item_id, accepted in (
            (RecommendationType.AGENT, 7, 2),
            (RecommendationType.SKILL, 3, 1),
        ):
            for n in range(2):
                record = await store.record_recommendation(new_record(item_id, rec_type))
                action = RecommendationAction.ACCEPTED if n < accepted else RecommendationAction.REJECTED
                await store.record_recommendation_action(record.id, action)

        boosts = await HistoricalPerformanceTracker(store).build_boosts()

        assert boosts == {"agent:7": pytest.approx(1.0), "skill:3": pytest.approx(0.5)}

    @pytest.mark.asyncio
    async def test_min_samples_excludes_new_items(self, store: FlakyStore) -> None:
        record = await store.record_recommendation(new_record(1))
        await store.record_recommendation_action(record.id, RecommendationAction.ACCEPTED)

        tracker = HistoricalPerformanceTracker(store, min_samples=2)

        assert await tracker.build_boosts() == {}
        assert await tracker.build_boosts(min_samples=1) == {"skill:1": 1.0}

    @pytest.mark.asyncio
    async def test_read_failure(self, store: FlakyStore) -> None:
        store.fail_history = True

        with pytest.raises(HistoricalReadError):
            await HistoricalPerformanceTracker(store).build_boosts()


# =====================================================================
# RecommendationEventBus
# =====================================================================


class TestEventBus:
    @pytest.mark.asyncio
    async def test_delivery_is_filtered_by_type(self) -> None:
        bus = RecommendationEventBus()
        generated = _collect(bus, GENERATED)
        everything = _collect(bus, GENERATED, FEEDBACK)

        await bus.publish(RecommendationEvent(type=FEEDBACK, data={"recommendation_id": 1}))

        assert generated == []
        assert len(everything) == 1

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self) -> None:
        bus = RecommendationEventBus()
        seen: list[str] = []

        async def handler(event: RecommendationEvent) -> None:
            await asyncio.sleep(0)
            seen.append(event.type.value)

        bus.subscribe(event_types=[GENERATED], handler=handler)
        await bus.publish(RecommendationEvent(type=GENERATED, data={}))

        assert seen == ["recommendations:generated"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, caplog) -> None:
        bus = RecommendationEventBus()

        def broken(event: RecommendationEvent) -> None:
            raise RuntimeError("boom")

        bus.subscribe(event_types=[GENERATED], handler=broken)
        received = _collect(bus, GENERATED)

        with caplog.at_level(logging.ERROR):
            await bus.publish(RecommendationEvent(type=GENERATED, data={}))

        assert len(received) == 1
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = RecommendationEventBus()
        received: list[RecommendationEvent] = []
        sub_id = bus.subscribe(event_types=[GENERATED], handler=received.append)

        assert bus.subscriber_count == 1
        assert bus.unsubscribe(sub_id) is True
        assert bus.unsubscribe(sub_id) is False

        await bus.publish(RecommendationEvent(type=GENERATED, data={}))
        assert received == []
        assert bus.subscriber_count == 0


# =====================================================================
# UINotifier
# =====================================================================


class TestUINotifier:
    def test_sync_sink(self, sink: RecordingSink) -> None:
        UINotifier(sink).notify("recommendations:new", {"recommendations": []})

        assert sink.sent == [("recommendations:new", {"recommendations": []})]

    def test_no_sink_is_a_no_op(self) -> None:
        UINotifier().notify("recommendations:new", {})

    def test_sync_failure_is_logged(self, caplog) -> None:
        class BrokenSink:
            def send(self, channel, payload) -> None:
                raise ConnectionError("window closed")

        with caplog.at_level(logging.WARNING):
            UINotifier(BrokenSink()).notify("recommendations:new", {})

        assert "window closed" in caplog.text

    @pytest.mark.asyncio
    async def test_async_sink_is_not_awaited_inline(self) -> None:
        release = asyncio.Event()
        delivered: list[str] = []

        class SlowSink:
            async def send(self, channel, payload) -> None:
                await release.wait()
                delivered.append(channel)

        notifier = UINotifier(SlowSink())
        notifier.notify("recommendations:new", {})

        assert delivered == []
        release.set()
        await notifier.drain()
        assert delivered == ["recommendations:new"]

    @pytest.mark.asyncio
    async def test_async_failure_is_logged(self, caplog) -> None:
        class FailingSink:
            async def send(self, channel, payload) -> None:
                raise ConnectionError("socket gone")

        notifier = UINotifier(FailingSink())
        with caplog.at_level(logging.WARNING):
            notifier.notify("recommendations:new", {})
            await notifier.drain()
            await asyncio.sleep(0)

        assert "socket gone" in caplog.text
