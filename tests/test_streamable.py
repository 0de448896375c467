"""
Tests for StreamableValue, the resolve-once signal cell.
"""

import asyncio

import pytest

from answerbox.chat.streamable import AlreadyResolvedError, StreamableValue


def test_pending_then_resolved():
    v = StreamableValue(True)
    assert v.value is True
    assert not v.is_resolved
    v.done(False)
    assert v.value is False
    assert v.is_resolved


def test_done_twice_raises():
    v = StreamableValue()
    v.done(1)
    with pytest.raises(AlreadyResolvedError):
        v.done(2)
    assert v.value == 1


def test_resolve_if_pending():
    v = StreamableValue()
    assert v.resolve_if_pending("x") is True
    assert v.resolve_if_pending("y") is False
    assert v.value == "x"


def test_observers_notified_once():
    v = StreamableValue()
    seen = []
    v.subscribe(seen.append)
    v.done(5)
    v.resolve_if_pending(6)
    assert seen == [5]


def test_subscribe_after_resolution_fires_immediately():
    v = StreamableValue.resolved("done")
    seen = []
    v.subscribe(seen.append)
    assert seen == ["done"]


def test_failing_observer_does_not_block_others():
    v = StreamableValue()
    seen = []

    def boom(_):
        raise ValueError("observer broke")

    v.subscribe(boom)
    v.subscribe(seen.append)
    v.done(1)
    assert seen == [1]


@pytest.mark.asyncio
async def test_wait_returns_final_value():
    v = StreamableValue(True)

    async def resolve_later():
        await asyncio.sleep(0)
        v.done(False)

    asyncio.get_running_loop().create_task(resolve_later())
    assert await asyncio.wait_for(v.wait(), timeout=1) is False


@pytest.mark.asyncio
async def test_wait_on_resolved_value():
    assert await StreamableValue.resolved(3).wait() == 3


def test_equality_compares_state_and_value():
    assert StreamableValue.resolved(1) == StreamableValue.resolved(1)
    assert StreamableValue.resolved(1) != StreamableValue(1)
    assert StreamableValue.resolved(1) != StreamableValue.resolved(2)
