from datetime import datetime, timedelta, timezone

import pytest

from pwa_bridge.services.identity import Identity
from pwa_bridge.services.transcript_service import Sender, TranscriptEntry, entry_from_airtable
from tests.conftest import MESSAGES_TABLE

ALICE = Identity(email="a@x.com", seller_slug="sellera")
START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


async def _seed(transcript, count, identity=ALICE, thread_id="42"):
    for i in range(count):
        await transcript.append(
            TranscriptEntry(
                identity=identity,
                thread_id=thread_id,
                sender=Sender.CLIENT if i % 2 == 0 else Sender.ADMIN,
                text=f"message {i}",
                created_at=START + timedelta(minutes=i),
            )
        )


class TestAppend:
    @pytest.mark.asyncio
    async def test_writes_normalized_fields(self, store, transcript):
        await _seed(transcript, 1)

        [record] = store.records(MESSAGES_TABLE)
        assert record["fields"] == {
            "email": "a@x.com",
            "seller_slug": "sellera",
            "topic_id": "42",
            "sender": "client",
            "text": "message 0",
            "created_at": START.isoformat(),
        }


class TestRecentFor:
    @pytest.mark.asyncio
    async def test_returns_most_recent_thirty_oldest_first(self, transcript):
        await _seed(transcript, 35)

        entries = await transcript.recent_for(ALICE)

        assert len(entries) == 30
        assert [e.text for e in entries] == [f"message {i}" for i in range(5, 35)]
        assert entries == sorted(entries, key=lambda e: e.created_at)

    @pytest.mark.asyncio
    async def test_fewer_than_limit(self, transcript):
        await _seed(transcript, 3)
        entries = await transcript.recent_for(ALICE, limit=10)
        assert [e.text for e in entries] == ["message 0", "message 1", "message 2"]
        assert entries[1].sender is Sender.ADMIN

    @pytest.mark.asyncio
    async def test_filters_by_identity_and_thread(self, transcript):
        await _seed(transcript, 2)
        await _seed(transcript, 2, identity=Identity(email="b@x.com", seller_slug="sellera"))
        await _seed(transcript, 2, thread_id="43")

        assert len(await transcript.recent_for(ALICE)) == 4
        assert len(await transcript.recent_for(ALICE, thread_id="43")) == 2


class TestEntryFromAirtable:
    def test_unknown_sender_and_missing_timestamp(self):
        entry = entry_from_airtable(
            {
                "id": "rec1",
                "createdTime": "2024-01-01T00:00:00.000Z",
                "fields": {"email": "A@X.com", "seller_slug": "SellerA", "sender": "robot", "text": "hi"},
            }
        )
        assert entry.sender is Sender.SYSTEM
        assert entry.identity == ALICE
        assert entry.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert entry.thread_id is None

    @pytest.mark.asyncio
    async def test_naive_timestamps_sort_with_aware_ones(self, store, transcript):
        base = {"email": "a@x.com", "seller_slug": "sellera", "sender": "client"}
        store.insert(MESSAGES_TABLE, {**base, "text": "naive", "created_at": "2024-05-01T12:05:00"})
        store.insert(MESSAGES_TABLE, {**base, "text": "aware", "created_at": "2024-05-01T12:00:00+00:00"})

        entries = await transcript.recent_for(ALICE)

        assert [e.text for e in entries] == ["aware", "naive"]
        assert entries[1].created_at == datetime(2024, 5, 1, 12, 5, tzinfo=timezone.utc)
