import asyncio

import pytest

from pwa_bridge.services.dedup_service import RecentIds
from pwa_bridge.services.escrow_service import EscrowStore
from pwa_bridge.services.identity import Identity
from pwa_bridge.services.keyed_lock import KeyedLock
from pwa_bridge.services.note_capture import PendingNoteCaptures

BOB = Identity(email="bob@example.com", seller_slug="shopx")
CAROL = Identity(email="carol@example.com", seller_slug="shopx")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestPendingNoteCaptures:
    def test_consume_is_exactly_once(self):
        notes = PendingNoteCaptures()
        notes.arm("42", BOB)

        assert notes.consume("42").identity == BOB
        assert notes.consume("42") is None
        assert len(notes) == 0

    def test_rearm_overwrites_binding(self):
        notes = PendingNoteCaptures()
        notes.arm("42", BOB)
        notes.arm("42", CAROL)

        assert len(notes) == 1
        assert notes.consume("42").identity == CAROL

    def test_no_ttl_never_expires(self):
        clock = FakeClock()
        notes = PendingNoteCaptures(clock=clock)
        notes.arm("42", BOB)
        clock.now += 10 ** 7
        assert notes.peek("42") is not None

    def test_ttl_expires_on_access(self):
        clock = FakeClock()
        notes = PendingNoteCaptures(ttl_seconds=60, clock=clock)
        notes.arm("42", BOB)
        notes.arm("43", BOB)

        clock.now += 61
        assert notes.peek("42") is None
        assert notes.consume("43") is None
        assert len(notes) == 0


class TestEscrowStore:
    def test_lock_then_unlock(self):
        escrow = EscrowStore()
        escrow.lock("pwa:shopx:bob@example.com", "https://cdn/m.jpg", 500)

        item = escrow.unlock("pwa:shopx:bob@example.com")
        assert item.media_ref == "https://cdn/m.jpg"
        assert item.amount == 500
        assert escrow.unlock("pwa:shopx:bob@example.com") is None

    def test_last_lock_wins(self):
        escrow = EscrowStore()
        escrow.lock("room", "first", 100)
        escrow.lock("room", "second", 200)

        assert len(escrow) == 1
        assert escrow.unlock("room").media_ref == "second"

    def test_unlock_unknown_room(self):
        assert EscrowStore().unlock("room") is None


class TestRecentIds:
    def test_detects_repeat(self):
        ids = RecentIds()
        assert ids.seen_before(1) is False
        assert ids.seen_before(1) is True
        assert ids.seen_before("2") is False

    def test_window_is_bounded(self):
        ids = RecentIds(window=2)
        for value in (1, 2, 3):
            ids.seen_before(value)
        assert ids.seen_before(1) is False


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_serializes_same_key_and_cleans_up(self):
        locks = KeyedLock()
        active = 0
        peak = 0

        async def worker():
            nonlocal active, peak
            async with locks.hold("bob"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(4)))

        assert peak == 1
        assert len(locks) == 0
