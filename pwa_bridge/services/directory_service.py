"""Conversation directory: (email, seller_slug) <-> staff topic mapping."""

from dataclasses import dataclass
from typing import Optional

from pwa_bridge.logging_config import get_logger
from pwa_bridge.services.airtable_service import AirtableClient
from pwa_bridge.services.identity import Identity, normalize_identity
from pwa_bridge.services.keyed_lock import KeyedLock

logger = get_logger("directory_service")

NOTE_BULLET = "• "
# Enough to notice duplicates created by the accepted registration race.
DUPLICATE_SCAN_LIMIT = 10


@dataclass
class ConversationRecord:
    record_id: str
    identity: Identity
    thread_id: Optional[str] = None
    annotation: str = ""
    control_message_id: Optional[str] = None
    created_time: str = ""


def append_note(existing: Optional[str], new_text: Optional[str]) -> str:
    """Append `• new_text` as a new line. Existing lines are never rewritten."""
    addition = (new_text or "").strip()
    current = existing or ""
    if not addition:
        return current
    line = f"{NOTE_BULLET}{addition}"
    if not current.strip():
        return line
    return f"{current.rstrip()}\n{line}"


def _clean_id(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def record_from_airtable(raw: dict) -> ConversationRecord:
    fields = raw.get("fields", {})
    return ConversationRecord(
        record_id=raw["id"],
        identity=normalize_identity(fields.get("email"), fields.get("seller_slug")),
        thread_id=_clean_id(fields.get("topic_id")),
        annotation=fields.get("note") or "",
        control_message_id=_clean_id(fields.get("panel_message_id")),
        created_time=raw.get("createdTime", ""),
    )


class ConversationDirectory:
    def __init__(self, store: AirtableClient, table: str):
        self.store = store
        self.table = table
        self._create_locks = KeyedLock()

    def _pick(self, records: list[dict], context: dict) -> Optional[ConversationRecord]:
        if not records:
            return None
        candidates = sorted((record_from_airtable(r) for r in records), key=lambda r: (r.created_time, r.record_id))
        if len(candidates) > 1:
            logger.warning(
                "Duplicate conversation records",
                extra={"context": {**context, "record_ids": [c.record_id for c in candidates]}},
            )
        # Oldest record that already owns a thread wins, so every reader converges on the same one.
        for candidate in candidates:
            if candidate.thread_id:
                return candidate
        return candidates[0]

    async def find_by_identity(self, identity: Identity) -> Optional[ConversationRecord]:
        records = await self.store.select(
            self.table,
            {"email": identity.email, "seller_slug": identity.seller_slug},
            max_records=DUPLICATE_SCAN_LIMIT,
        )
        return self._pick(records, {"email": identity.email, "seller_slug": identity.seller_slug})

    async def find_by_thread_id(self, thread_id: str) -> Optional[ConversationRecord]:
        records = await self.store.select(self.table, {"topic_id": str(thread_id)}, max_records=DUPLICATE_SCAN_LIMIT)
        return self._pick(records, {"topic_id": thread_id})

    async def find_by_identity_and_thread(self, identity: Identity, thread_id: str) -> Optional[ConversationRecord]:
        records = await self.store.select(
            self.table,
            {"email": identity.email, "seller_slug": identity.seller_slug, "topic_id": str(thread_id)},
            max_records=DUPLICATE_SCAN_LIMIT,
        )
        return self._pick(records, {"email": identity.email, "topic_id": thread_id})

    async def create_if_absent(self, identity: Identity) -> tuple[ConversationRecord, bool]:
        """Return the record for `identity`, creating it when none exists.

        Serialized per identity inside this process. Another process can still
        race us; readers then converge through `_pick`.
        """
        async with self._create_locks.hold(f"{identity.seller_slug}\n{identity.email}"):
            existing = await self.find_by_identity(identity)
            if existing:
                return existing, False

            raw = await self.store.create(
                self.table,
                {"email": identity.email, "seller_slug": identity.seller_slug, "note": ""},
            )
            record = record_from_airtable(raw)
            logger.info(
                "Created conversation record",
                extra={"context": {"record_id": record.record_id, "email": identity.email}},
            )

            winner = await self.find_by_identity(identity)
            if winner and winner.record_id != record.record_id:
                logger.warning(
                    "Concurrent registration detected, using existing record",
                    extra={"context": {"created": record.record_id, "kept": winner.record_id}},
                )
                return winner, False
            return record, True

    async def set_thread_id(self, record: ConversationRecord, thread_id: str) -> None:
        await self.store.update(self.table, record.record_id, {"topic_id": str(thread_id)})
        record.thread_id = str(thread_id)

    async def set_control_message_id(self, record: ConversationRecord, message_id: str) -> None:
        if record.control_message_id and record.control_message_id != str(message_id):
            logger.info(
                "Overwriting control panel message id",
                extra={"context": {"record_id": record.record_id, "old": record.control_message_id}},
            )
        await self.store.update(self.table, record.record_id, {"panel_message_id": str(message_id)})
        record.control_message_id = str(message_id)

    async def append_annotation(self, record: ConversationRecord, new_text: str) -> str:
        """Append a note line to the freshest stored text and return the merged text."""
        if not (new_text or "").strip():
            return record.annotation

        latest = await self.store.get(self.table, record.record_id)
        current = latest.get("fields", {}).get("note") or ""
        updated = append_note(current, new_text)
        await self.store.update(self.table, record.record_id, {"note": updated})
        record.annotation = updated
        return updated
