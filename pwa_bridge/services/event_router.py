"""Routes every inbound event (live client, staff webhook, button press, panel call).

The router owns the two short-lived workflows: note capture (arm on button
press, consume on the next staff text in the topic) and paid-content escrow
(lock, then unlock on the payment signal). Each external call is attempted
once; a failure drops the rest of the event and is reported in the outcome.
"""

from dataclasses import dataclass, field
from typing import Optional

from pwa_bridge.logging_config import get_logger
from pwa_bridge.services.alert_service import alert_error
from pwa_bridge.services.directory_service import ConversationDirectory, ConversationRecord
from pwa_bridge.services.errors import DeliveryError, LookupMiss, ValidationError
from pwa_bridge.services.escrow_service import EscrowStore, PendingPaidContent
from pwa_bridge.services.identity import Identity, room_key
from pwa_bridge.services.keyed_lock import KeyedLock
from pwa_bridge.services.note_capture import PendingNoteCaptures
from pwa_bridge.services.session_registry import SessionRegistry
from pwa_bridge.services.telegram_service import (
    NOTE_ACTION,
    TelegramService,
    build_note_buttons,
    format_client_message,
    format_control_panel,
    format_panel_message,
    format_topic_title,
    parse_action,
)
from pwa_bridge.services.transcript_service import Sender, TranscriptEntry, TranscriptStore

logger = get_logger("event_router")

EVENT_ADMIN_MESSAGE = "admin_message"
EVENT_CONTENT_LOCKED = "paid_content_locked"
EVENT_CONTENT_UNLOCKED = "paid_content_unlocked"

MSG_NOTE_PROMPT = "✍️ Send the note for this client as your next message in this topic."
MSG_NOTE_SAVED = "✅ Note saved."
MSG_NOTE_NOT_TEXT = "⚠️ Notes must be text. Send the note again as a text message."
MSG_NOTE_NO_CLIENT = "❌ No client is linked to this topic."
MSG_NOTE_ARMED_TOAST = "📝 Waiting for the note"


@dataclass
class RouteOutcome:
    """What an event did: the branch taken and the side effects that succeeded."""

    action: str
    effects: list[str] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def did(self, effect: str) -> "RouteOutcome":
        self.effects.append(effect)
        return self

    def fail(self, error: str, code: str) -> "RouteOutcome":
        self.error = error
        self.error_code = code
        return self


class EventRouter:
    def __init__(
        self,
        directory: ConversationDirectory,
        transcript: TranscriptStore,
        relay: TelegramService,
        sessions: SessionRegistry,
        notes: PendingNoteCaptures,
        escrow: EscrowStore,
        command_prefixes: tuple[str, ...] = ("/env",),
    ):
        self.directory = directory
        self.transcript = transcript
        self.relay = relay
        self.sessions = sessions
        self.notes = notes
        self.escrow = escrow
        self.command_prefixes = tuple(p.lower() for p in command_prefixes)
        self._provision_locks = KeyedLock()

    # Client -> staff

    async def on_client_message(self, connection_id: str, text: Optional[str]) -> RouteOutcome:
        identity = self.sessions.identity_of(connection_id)
        clean_text = (text or "").strip()
        if identity is None or not identity.is_identified or not clean_text:
            logger.debug(f"Dropping client message from unidentified or empty connection {connection_id}")
            return RouteOutcome(action="dropped")
        return await self.relay_client_message(identity, clean_text)

    async def relay_client_message(self, identity: Identity, text: str) -> RouteOutcome:
        outcome = RouteOutcome(action="relayed")
        clean_text = (text or "").strip()
        if not identity.is_identified or not clean_text:
            return RouteOutcome(action="dropped")

        try:
            record = await self._ensure_conversation(identity, outcome)
            await self.relay.send_to_thread(record.thread_id, format_client_message(identity, clean_text))
            outcome.did("delivered")
            await self.transcript.append(
                TranscriptEntry(identity=identity, thread_id=record.thread_id, sender=Sender.CLIENT, text=clean_text)
            )
            outcome.did("transcript_saved")
        except DeliveryError as e:
            logger.error(
                f"Client message not relayed: {e}",
                extra={"context": {"email": identity.email, "seller_slug": identity.seller_slug, "effects": outcome.effects}},
            )
            return outcome.fail(e.message, "delivery_error")

        logger.info("Client → staff", extra={"context": {"room": room_key(identity), "topic_id": record.thread_id}})
        return outcome

    async def register_client(self, identity: Identity) -> tuple[ConversationRecord, RouteOutcome]:
        """Make sure the identity has a record and a staff topic. Raises DeliveryError."""
        outcome = RouteOutcome(action="registered")
        record = await self._ensure_conversation(identity, outcome)
        return record, outcome

    async def _ensure_conversation(self, identity: Identity, outcome: RouteOutcome) -> ConversationRecord:
        record, is_new = await self.directory.create_if_absent(identity)
        if is_new:
            outcome.did("record_created")
        if record.thread_id:
            return record

        async with self._provision_locks.hold(room_key(identity)):
            # Another event for the same client may have provisioned it meanwhile.
            fresh = await self.directory.find_by_identity(identity)
            if fresh and fresh.thread_id:
                return fresh
            record = fresh or record

            try:
                thread_id = await self.relay.create_thread(format_topic_title(identity))
            except DeliveryError as e:
                await alert_error(
                    "Client registration failed: staff topic not created",
                    {"email": identity.email, "seller_slug": identity.seller_slug, "error": e.message},
                )
                raise
            await self.directory.set_thread_id(record, thread_id)
            outcome.did("thread_created")
            logger.info(f"Created topic {thread_id} for {identity.email} / {identity.seller_slug}")

            await self._send_control_panel(record, outcome)
        return record

    async def _send_control_panel(self, record: ConversationRecord, outcome: RouteOutcome) -> None:
        # Decorative: the topic mapping stays even when this fails.
        try:
            message_id = await self.relay.send_to_thread(
                record.thread_id,
                format_control_panel(record.identity, record.annotation),
                buttons=build_note_buttons(record.thread_id),
            )
            await self.directory.set_control_message_id(record, message_id)
            outcome.did("control_message_sent")
        except DeliveryError as e:
            logger.warning(
                f"Control panel not sent: {e}",
                extra={"context": {"topic_id": record.thread_id, "record_id": record.record_id}},
            )

    # Staff -> client

    async def on_staff_message(
        self, thread_id: Optional[str], sender_is_bot: bool, text: Optional[str]
    ) -> RouteOutcome:
        if sender_is_bot:
            return RouteOutcome(action="ignored_bot")
        if not thread_id:
            return RouteOutcome(action="ignored_no_thread")

        thread_id = str(thread_id)
        clean_text = (text or "").strip()

        # No await between the check and the pop: one consumer per armed capture.
        if not clean_text and self.notes.peek(thread_id):
            return await self._reject_non_text_note(thread_id)
        pending = self.notes.consume(thread_id) if clean_text else None
        if pending:
            return await self._capture_note(thread_id, pending.identity, clean_text)

        if clean_text.lower().startswith(self.command_prefixes):
            return RouteOutcome(action="ignored_command")
        if not clean_text:
            return RouteOutcome(action="ignored_empty")

        return await self._relay_admin_reply(thread_id, clean_text)

    async def _reject_non_text_note(self, thread_id: str) -> RouteOutcome:
        outcome = RouteOutcome(action="note_rejected")
        try:
            await self.relay.send_to_thread(thread_id, MSG_NOTE_NOT_TEXT)
            outcome.did("rejection_sent")
        except DeliveryError as e:
            logger.warning(f"Note rejection notice not sent: {e}", extra={"context": {"topic_id": thread_id}})
            outcome.fail(e.message, "delivery_error")
        return outcome

    async def _capture_note(self, thread_id: str, identity: Identity, text: str) -> RouteOutcome:
        outcome = RouteOutcome(action="note_saved")
        try:
            record = await self.directory.find_by_identity_and_thread(identity, thread_id)
            if record is None:
                logger.warning(
                    "Armed note has no matching record",
                    extra={"context": {"topic_id": thread_id, "email": identity.email}},
                )
                await self.relay.send_to_thread(thread_id, MSG_NOTE_NO_CLIENT)
                return outcome.fail("No conversation for armed note", "lookup_miss")

            await self.directory.append_annotation(record, text)
            outcome.did("annotation_saved")
            await self._refresh_control_panel(record, outcome)
            await self.relay.send_to_thread(thread_id, MSG_NOTE_SAVED)
            outcome.did("confirmation_sent")
        except DeliveryError as e:
            logger.error(f"Note capture failed: {e}", extra={"context": {"topic_id": thread_id, "effects": outcome.effects}})
            return outcome.fail(e.message, "delivery_error")

        logger.info("Note captured", extra={"context": {"topic_id": thread_id, "email": identity.email}})
        return outcome

    async def _refresh_control_panel(self, record: ConversationRecord, outcome: RouteOutcome) -> None:
        if not record.control_message_id:
            return
        try:
            await self.relay.edit_message(
                record.control_message_id,
                format_control_panel(record.identity, record.annotation),
                buttons=build_note_buttons(record.thread_id),
            )
            outcome.did("control_message_edited")
        except DeliveryError as e:
            logger.warning(
                f"Control panel edit failed: {e}",
                extra={"context": {"topic_id": record.thread_id, "message_id": record.control_message_id}},
            )

    async def _relay_admin_reply(self, thread_id: str, text: str) -> RouteOutcome:
        outcome = RouteOutcome(action="relayed")
        try:
            record = await self.directory.find_by_thread_id(thread_id)
            if record is None or not record.identity.is_identified:
                logger.debug(f"No client for topic {thread_id}")
                return RouteOutcome(action="ignored_orphan")

            await self.transcript.append(
                TranscriptEntry(identity=record.identity, thread_id=thread_id, sender=Sender.ADMIN, text=text)
            )
            outcome.did("transcript_saved")
        except DeliveryError as e:
            logger.error(f"Admin reply not stored: {e}", extra={"context": {"topic_id": thread_id}})
            return outcome.fail(e.message, "delivery_error")

        room = room_key(record.identity)
        delivered = await self.sessions.broadcast(room, EVENT_ADMIN_MESSAGE, {"text": text, "from": "admin"})
        outcome.did("broadcast")
        logger.info("Staff → client", extra={"context": {"room": room, "topic_id": thread_id, "listeners": delivered}})
        return outcome

    # Staff button press

    async def on_staff_interaction(
        self, thread_id: Optional[str], interaction_id: str, action_tag: Optional[str]
    ) -> RouteOutcome:
        action, payload = parse_action(action_tag)
        thread_id = str(thread_id) if thread_id else payload
        is_note = action == NOTE_ACTION and bool(thread_id) and (not payload or payload == thread_id)

        acknowledged = await self.relay.answer_interaction(interaction_id, MSG_NOTE_ARMED_TOAST if is_note else None)
        outcome = RouteOutcome(action="note_armed" if is_note else "ignored_action")
        if acknowledged:
            outcome.did("interaction_answered")
        if not is_note:
            logger.debug(f"Ignoring callback action {action_tag!r}")
            return outcome

        try:
            record = await self.directory.find_by_thread_id(thread_id)
            if record is None:
                await self.relay.send_to_thread(thread_id, MSG_NOTE_NO_CLIENT)
                return outcome.fail("No conversation for topic", "lookup_miss")

            self.notes.arm(thread_id, record.identity)
            outcome.did("capture_armed")
            await self.relay.send_to_thread(thread_id, MSG_NOTE_PROMPT)
            outcome.did("prompt_sent")
        except DeliveryError as e:
            logger.error(f"Note arm failed: {e}", extra={"context": {"topic_id": thread_id, "effects": outcome.effects}})
            return outcome.fail(e.message, "delivery_error")
        return outcome

    # Staff panel (HTTP)

    async def send_admin_message(self, identity: Identity, text: str) -> RouteOutcome:
        """Panel → client: broadcast, store, and mirror into the staff topic."""
        clean_text = (text or "").strip()
        if not clean_text:
            raise ValidationError("text is required")

        outcome = RouteOutcome(action="relayed")
        record = await self.directory.find_by_identity(identity)
        thread_id = record.thread_id if record else None

        await self.transcript.append(
            TranscriptEntry(identity=identity, thread_id=thread_id, sender=Sender.ADMIN, text=clean_text)
        )
        outcome.did("transcript_saved")
        await self.sessions.broadcast(room_key(identity), EVENT_ADMIN_MESSAGE, {"text": clean_text, "from": "admin"})
        outcome.did("broadcast")

        if thread_id:
            try:
                await self.relay.send_to_thread(thread_id, format_panel_message(clean_text))
                outcome.did("mirrored")
            except DeliveryError as e:
                logger.warning(f"Panel message not mirrored: {e}", extra={"context": {"topic_id": thread_id}})
        return outcome

    async def get_note(self, identity: Identity) -> str:
        record = await self.directory.find_by_identity(identity)
        if record is None:
            raise LookupMiss(f"No conversation for {identity.email} / {identity.seller_slug}")
        return record.annotation

    async def add_note(self, identity: Identity, text: str) -> str:
        if not (text or "").strip():
            raise ValidationError("note is required")
        record = await self.directory.find_by_identity(identity)
        if record is None:
            raise LookupMiss(f"No conversation for {identity.email} / {identity.seller_slug}")

        updated = await self.directory.append_annotation(record, text)
        await self._refresh_control_panel(record, RouteOutcome(action="note_saved"))
        return updated

    # Paid content escrow

    async def lock_paid_content(
        self,
        identity: Identity,
        media_ref: str,
        amount: float,
        text: str = "",
        checkout_ref: Optional[str] = None,
        is_media: bool = True,
    ) -> PendingPaidContent:
        if not (media_ref or "").strip():
            raise ValidationError("mediaUrl is required")
        room = room_key(identity)
        item = self.escrow.lock(room, media_ref.strip(), amount)
        await self.sessions.broadcast(
            room,
            EVENT_CONTENT_LOCKED,
            {"text": text, "checkoutUrl": checkout_ref, "isMedia": is_media, "amount": amount},
        )
        logger.info("Paid content locked", extra={"context": {"room": room, "amount": amount}})
        await self._note_in_transcript(identity, f"🔒 Paid content sent ({amount})")
        return item

    async def unlock_paid_content(self, identity: Identity) -> Optional[PendingPaidContent]:
        """Release the pending item. None means nothing was pending."""
        room = room_key(identity)
        item = self.escrow.unlock(room)
        if item is None:
            logger.info("Unlock with nothing pending", extra={"context": {"room": room}})
            return None
        await self.sessions.broadcast(
            room, EVENT_CONTENT_UNLOCKED, {"mediaUrl": item.media_ref, "amount": item.amount}
        )
        logger.info("Paid content unlocked", extra={"context": {"room": room, "amount": item.amount}})
        await self._note_in_transcript(identity, f"🔓 Paid content unlocked ({item.amount})")
        return item

    async def _note_in_transcript(self, identity: Identity, text: str) -> None:
        try:
            await self.transcript.append(
                TranscriptEntry(identity=identity, thread_id=None, sender=Sender.SYSTEM, text=text)
            )
        except DeliveryError as e:
            logger.warning(f"System transcript entry not saved: {e}", extra={"context": {"room": room_key(identity)}})
