import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from pwa_bridge.config import Settings
from pwa_bridge.dependencies import Bridge
from pwa_bridge.services.dedup_service import RecentIds
from pwa_bridge.services.directory_service import ConversationDirectory
from pwa_bridge.services.errors import DeliveryError
from pwa_bridge.services.escrow_service import EscrowStore
from pwa_bridge.services.event_router import EventRouter
from pwa_bridge.services.note_capture import PendingNoteCaptures
from pwa_bridge.services.session_registry import SessionRegistry
from pwa_bridge.services.transcript_service import TranscriptStore

PWA_TABLE = "pwa"
MESSAGES_TABLE = "pwa_messages"
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeRecordStore:
    """In-memory stand-in for AirtableClient. Every call yields to the loop once."""

    def __init__(self):
        self.tables: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self._counter = 0

    async def _enter(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        await asyncio.sleep(0)
        if operation in self.fail_on:
            raise DeliveryError(f"Airtable {operation} failed", operation=operation)

    def records(self, table: str) -> list[dict]:
        return list(self.tables.get(table, {}).values())

    def insert(self, table: str, fields: dict) -> dict:
        self._counter += 1
        record = {
            "id": f"rec{self._counter:04d}",
            "createdTime": (BASE_TIME + timedelta(seconds=self._counter)).isoformat().replace("+00:00", "Z"),
            "fields": dict(fields),
        }
        self.tables.setdefault(table, {})[record["id"]] = record
        return record

    async def select(self, table, filters, max_records=None, sort=None):
        await self._enter("select", table)
        rows = [
            r
            for r in self.records(table)
            if all(str(r["fields"].get(k, "")) == str(v) for k, v in filters.items())
        ]
        for field, direction in reversed(sort or []):
            rows.sort(key=lambda r: str(r["fields"].get(field, "")), reverse=direction == "desc")
        return [dict(r, fields=dict(r["fields"])) for r in rows[: max_records or None]]

    async def get(self, table, record_id):
        await self._enter("get", table)
        record = self.tables[table][record_id]
        return dict(record, fields=dict(record["fields"]))

    async def create(self, table, fields):
        await self._enter("create", table)
        record = self.insert(table, fields)
        return dict(record, fields=dict(record["fields"]))

    async def update(self, table, record_id, fields):
        await self._enter("update", table)
        record = self.tables[table][record_id]
        record["fields"].update(fields)
        return dict(record, fields=dict(record["fields"]))


class FakeRelay:
    """Records everything the router asks the staff platform to do."""

    def __init__(self):
        self.sent: list[dict] = []
        self.edits: list[dict] = []
        self.threads: list[str] = []
        self.answered: list[str] = []
        self.fail_on: set[str] = set()
        self._message_id = 500
        self._thread_id = 100

    def texts_in(self, thread_id: str) -> list[str]:
        return [m["text"] for m in self.sent if m["thread_id"] == str(thread_id)]

    async def send_to_thread(self, thread_id, text, buttons=None):
        await asyncio.sleep(0)
        if "send" in self.fail_on:
            raise DeliveryError("Telegram sendMessage rejected", operation="sendMessage")
        self._message_id += 1
        self.sent.append({"thread_id": str(thread_id), "text": text, "buttons": buttons, "message_id": str(self._message_id)})
        return str(self._message_id)

    async def edit_message(self, message_id, text, buttons=None):
        await asyncio.sleep(0)
        if "edit" in self.fail_on:
            raise DeliveryError("Telegram editMessageText rejected", operation="editMessageText")
        self.edits.append({"message_id": str(message_id), "text": text, "buttons": buttons})

    async def create_thread(self, title):
        await asyncio.sleep(0)
        if "create" in self.fail_on:
            raise DeliveryError("Telegram createForumTopic rejected", operation="createForumTopic")
        self._thread_id += 1
        self.threads.append(title)
        return str(self._thread_id)

    async def answer_interaction(self, interaction_id, text=None):
        self.answered.append(interaction_id)
        return "answer" not in self.fail_on


class FakeSink:
    def __init__(self):
        self.frames: list[dict] = []

    async def send_json(self, data):
        self.frames.append(data)

    def events(self, name: Optional[str] = None) -> list[dict]:
        return [f for f in self.frames if name is None or f["event"] == name]


class FakeMedia:
    def __init__(self, url: str = "https://cdn.example.com/media/abc.jpg"):
        self.url = url
        self.uploads: list[tuple[str, bytes]] = []

    async def store(self, content, filename, content_type=None):
        from pwa_bridge.services.errors import ValidationError

        if not content:
            raise ValidationError("No file uploaded")
        self.uploads.append((filename, content))
        return self.url


@pytest.fixture
def store():
    return FakeRecordStore()


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def sessions():
    return SessionRegistry()


@pytest.fixture
def directory(store):
    return ConversationDirectory(store, PWA_TABLE)


@pytest.fixture
def transcript(store):
    return TranscriptStore(store, MESSAGES_TABLE)


@pytest.fixture
def event_router(directory, transcript, relay, sessions):
    return EventRouter(
        directory=directory,
        transcript=transcript,
        relay=relay,
        sessions=sessions,
        notes=PendingNoteCaptures(),
        escrow=EscrowStore(),
    )


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        BOT_TOKEN="test-token",
        staff_group_id="-1001234567890",
        airtable_api_key="key",
        airtable_base_id="app123",
        airtable_table_pwa=PWA_TABLE,
        airtable_table_pwa_messages=MESSAGES_TABLE,
    )


@pytest.fixture
def bridge(event_router, test_settings):
    return Bridge(router=event_router, media=FakeMedia(), updates=RecentIds(), settings=test_settings)
