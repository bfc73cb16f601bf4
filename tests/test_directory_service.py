import asyncio

import pytest

from pwa_bridge.services.directory_service import append_note
from pwa_bridge.services.identity import Identity, normalize_identity
from tests.conftest import PWA_TABLE

BOB = Identity(email="bob@example.com", seller_slug="shopx")


class TestAppendNote:
    def test_first_note(self):
        assert append_note("", "VIP client") == "• VIP client"

    def test_appends_new_line(self):
        text = append_note(append_note("", "A"), "B")
        assert text == "• A\n• B"
        assert text.endswith("A\n• B")

    def test_empty_is_noop(self):
        assert append_note("• A", "   ") == "• A"
        assert append_note(None, None) == ""

    def test_never_overwrites_free_text(self):
        assert append_note("called on monday", "B") == "called on monday\n• B"


class TestLookups:
    @pytest.mark.asyncio
    async def test_find_by_identity_and_thread(self, store, directory):
        store.insert(PWA_TABLE, {"email": "bob@example.com", "seller_slug": "shopx", "topic_id": "42", "note": ""})

        by_identity = await directory.find_by_identity(BOB)
        by_thread = await directory.find_by_thread_id("42")
        by_both = await directory.find_by_identity_and_thread(BOB, "42")

        assert by_identity.record_id == by_thread.record_id == by_both.record_id
        assert by_thread.identity == BOB
        assert await directory.find_by_identity_and_thread(BOB, "43") is None

    @pytest.mark.asyncio
    async def test_stored_fields_are_normalized_on_read(self, store, directory):
        store.insert(PWA_TABLE, {"email": " Carol@Example.com", "seller_slug": "ShopY", "topic_id": "77"})
        record = await directory.find_by_thread_id("77")
        assert record.identity == normalize_identity("carol@example.com", "shopy")

    @pytest.mark.asyncio
    async def test_missing_record(self, directory):
        assert await directory.find_by_identity(BOB) is None
        assert await directory.find_by_thread_id("999") is None


class TestCreateIfAbsent:
    @pytest.mark.asyncio
    async def test_creates_once(self, store, directory):
        first, first_new = await directory.create_if_absent(BOB)
        second, second_new = await directory.create_if_absent(BOB)

        assert first_new is True
        assert second_new is False
        assert first.record_id == second.record_id
        assert len(store.records(PWA_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_converge(self, store, directory):
        results = await asyncio.gather(*(directory.create_if_absent(BOB) for _ in range(5)))

        assert len({record.record_id for record, _ in results}) == 1
        assert sum(1 for _, is_new in results if is_new) == 1
        assert len(store.records(PWA_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_duplicates_resolve_to_oldest_with_thread(self, store, directory):
        store.insert(PWA_TABLE, {"email": "bob@example.com", "seller_slug": "shopx"})
        with_thread = store.insert(PWA_TABLE, {"email": "bob@example.com", "seller_slug": "shopx", "topic_id": "7"})
        store.insert(PWA_TABLE, {"email": "bob@example.com", "seller_slug": "shopx", "topic_id": "8"})

        record = await directory.find_by_identity(BOB)
        again, is_new = await directory.create_if_absent(BOB)

        assert record.record_id == with_thread["id"]
        assert again.record_id == with_thread["id"]
        assert is_new is False


class TestUpdates:
    @pytest.mark.asyncio
    async def test_append_annotation_reads_latest_text(self, store, directory):
        record, _ = await directory.create_if_absent(BOB)
        await directory.append_annotation(record, "A")

        # Someone else appended in the meantime; our stale copy must not win.
        store.tables[PWA_TABLE][record.record_id]["fields"]["note"] = "• A\n• from panel"
        updated = await directory.append_annotation(record, "B")

        assert updated == "• A\n• from panel\n• B"
        assert store.tables[PWA_TABLE][record.record_id]["fields"]["note"] == updated
        assert record.annotation == updated

    @pytest.mark.asyncio
    async def test_append_empty_annotation_does_not_write(self, store, directory):
        record, _ = await directory.create_if_absent(BOB)
        store.calls.clear()

        assert await directory.append_annotation(record, "  ") == ""
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_control_message_id_overwrite(self, store, directory):
        record, _ = await directory.create_if_absent(BOB)
        await directory.set_control_message_id(record, "10")
        await directory.set_control_message_id(record, "11")

        assert record.control_message_id == "11"
        assert store.tables[PWA_TABLE][record.record_id]["fields"]["panel_message_id"] == "11"
