from pwa_bridge.services.directory_service import ConversationDirectory, ConversationRecord, append_note
from pwa_bridge.services.errors import BridgeError, DeliveryError, LookupMiss, ValidationError
from pwa_bridge.services.escrow_service import EscrowStore, PendingPaidContent
from pwa_bridge.services.event_router import EventRouter, RouteOutcome
from pwa_bridge.services.identity import Identity, normalize_identity, room_key
from pwa_bridge.services.note_capture import PendingNoteCaptures
from pwa_bridge.services.session_registry import SessionRegistry
from pwa_bridge.services.transcript_service import Sender, TranscriptEntry, TranscriptStore
