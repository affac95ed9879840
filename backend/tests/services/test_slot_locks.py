"""Per-slot lock registry behaviour."""

from __future__ import annotations

import asyncio
import gc
import uuid

import pytest

from agenda_engine.services.slot_locks import LockTimeout, SlotLockRegistry

pytestmark = pytest.mark.asyncio


async def test_same_key_shares_one_lock() -> None:
    registry = SlotLockRegistry()
    key = uuid.uuid4()
    assert registry.get(key) is registry.get(key)
    assert registry.get(key) is not registry.get(uuid.uuid4())


async def test_hold_times_out_while_another_holder_is_inside() -> None:
    registry = SlotLockRegistry()
    key = uuid.uuid4()

    async with registry.hold(key, timeout=1):
        with pytest.raises(LockTimeout):
            async with registry.hold(key, timeout=0.05):
                pass

    async with registry.hold(key, timeout=0.05):
        pass


async def test_holders_run_one_at_a_time() -> None:
    registry = SlotLockRegistry()
    key = uuid.uuid4()
    inside = 0
    peak = 0

    async def critical() -> None:
        nonlocal inside, peak
        async with registry.hold(key, timeout=1):
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    await asyncio.gather(*(critical() for _ in range(5)))
    assert peak == 1


async def test_idle_locks_are_released() -> None:
    registry = SlotLockRegistry()
    async with registry.hold(uuid.uuid4(), timeout=1):
        assert len(registry) == 1
    gc.collect()
    assert len(registry) == 0
