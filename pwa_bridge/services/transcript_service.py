from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pwa_bridge.logging_config import get_logger
from pwa_bridge.services.airtable_service import AirtableClient
from pwa_bridge.services.identity import Identity, normalize_identity

logger = get_logger("transcript_service")

DEFAULT_HISTORY_LIMIT = 30


class Sender(str, Enum):
    CLIENT = "client"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class TranscriptEntry:
    identity: Identity
    thread_id: Optional[str]
    sender: Sender
    text: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _parse_created_at(value: Optional[str], fallback: Optional[str]) -> datetime:
    for candidate in (value, fallback):
        if not candidate:
            continue
        try:
            parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
        except ValueError:
            continue
        # Naive timestamps are stored in UTC.
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(0, tz=timezone.utc)


def entry_from_airtable(raw: dict) -> TranscriptEntry:
    fields = raw.get("fields", {})
    try:
        sender = Sender(fields.get("sender"))
    except ValueError:
        sender = Sender.SYSTEM
    topic_id = fields.get("topic_id")
    return TranscriptEntry(
        identity=normalize_identity(fields.get("email"), fields.get("seller_slug")),
        thread_id=str(topic_id) if topic_id else None,
        sender=sender,
        text=fields.get("text") or "",
        created_at=_parse_created_at(fields.get("created_at"), raw.get("createdTime")),
    )


class TranscriptStore:
    """Append-only message history kept in the transcript table."""

    def __init__(self, store: AirtableClient, table: str):
        self.store = store
        self.table = table

    async def append(self, entry: TranscriptEntry) -> None:
        fields = {
            "email": entry.identity.email,
            "seller_slug": entry.identity.seller_slug,
            "sender": entry.sender.value,
            "text": entry.text,
            "created_at": entry.created_at.isoformat(),
        }
        if entry.thread_id:
            fields["topic_id"] = str(entry.thread_id)
        await self.store.create(self.table, fields)
        logger.debug(f"Transcript entry saved: {entry.sender.value} {entry.identity.email}")

    async def recent_for(
        self,
        identity: Identity,
        thread_id: Optional[str] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[TranscriptEntry]:
        """Most recent `limit` entries, returned oldest first."""
        filters = {"email": identity.email, "seller_slug": identity.seller_slug}
        if thread_id:
            filters["topic_id"] = str(thread_id)

        records = await self.store.select(
            self.table,
            filters,
            max_records=max(1, limit),
            sort=[("created_at", "desc")],
        )
        entries = [entry_from_airtable(raw) for raw in records]
        entries.sort(key=lambda entry: entry.created_at)
        return entries
