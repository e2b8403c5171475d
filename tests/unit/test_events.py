"""Unit tests for the event bus."""

from typing import List

import pytest

from keystone.kernel.errors import LifecycleEventError
from keystone.kernel.events import EventBus, EventPayload, LifecyclePhase


def make_payload(topic: str = "custom") -> EventPayload:
    # Handlers under test never touch the kernel
    return EventPayload(kernel=None, topic=topic)  # type: ignore[arg-type]


class TestEventBus:
    """Tests for EventBus."""

    @pytest.mark.asyncio
    async def test_handlers_run_in_subscription_order(self):
        bus = EventBus()
        calls: List[str] = []
        bus.subscribe("custom", lambda p: calls.append("first"))
        bus.subscribe("custom", lambda p: calls.append("second"))
        bus.subscribe("other", lambda p: calls.append("other"))

        await bus.fire("custom", make_payload())

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_the_rest(self):
        """The second handler still runs and the first failure is returned."""
        bus = EventBus()
        calls: List[str] = []

        def broken(payload):
            calls.append("broken")
            raise RuntimeError("first failure")

        def also_broken(payload):
            calls.append("also_broken")
            raise ValueError("second failure")

        bus.subscribe("custom", broken)
        bus.subscribe("custom", lambda p: calls.append("healthy") or "ok")
        bus.subscribe("custom", also_broken)

        error, results = await bus.fire("custom", make_payload())

        assert calls == ["broken", "healthy", "also_broken"]
        assert isinstance(error, RuntimeError)
        assert str(error) == "first failure"
        assert results == ["ok"]

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self):
        bus = EventBus()

        async def handler(payload):
            return payload.topic.upper()

        bus.subscribe("custom", handler)
        result = await bus.fire("custom", make_payload())

        assert result.error is None
        assert result.results == ["CUSTOM"]

    @pytest.mark.asyncio
    async def test_fire_without_subscribers(self):
        result = await EventBus().fire("nobody", make_payload("nobody"))

        assert result.error is None
        assert result.results == []

    @pytest.mark.asyncio
    async def test_must_trigger_raises_lifecycle_error(self):
        bus = EventBus()
        calls: List[str] = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe(LifecyclePhase.BIND_ROUTES, broken)
        bus.subscribe(LifecyclePhase.BIND_ROUTES, lambda p: calls.append("after"))

        with pytest.raises(LifecycleEventError) as exc_info:
            await bus.must_trigger(LifecyclePhase.BIND_ROUTES, make_payload("bindRoutes"))

        assert exc_info.value.topic == "bindRoutes"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert calls == ["after"]

    def test_phase_and_string_topics_are_the_same(self):
        bus = EventBus()

        @bus.on(LifecyclePhase.CONFIGURATION)
        def handler(payload):
            return None

        assert bus.listeners("configuration") == [handler]
