from .client_sync_coordinator import ClientSyncCoordinator, SyncState
from .derived_state import derive_state
from .payment_event_detector import detect_payment_events
from .record_normalizer import RecordLimits, RecordNormalizer
from .record_store import MISSING, RecordStore
from .records_service import RecordsService, WriteOutcome
from .sse_manager import SSEManager

__all__ = [
    "ClientSyncCoordinator",
    "SyncState",
    "derive_state",
    "detect_payment_events",
    "RecordLimits",
    "RecordNormalizer",
    "MISSING",
    "RecordStore",
    "RecordsService",
    "WriteOutcome",
    "SSEManager",
]
