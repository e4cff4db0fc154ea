from .notification_publisher import NotificationPublisher
from .records_storage import LegacyRecordsRepository, RecordsUnitOfWork, RecordsV2Repository
from .records_transport import RecordsTransport, TransportError
from .scheduler import Scheduler, TimerHandle

__all__ = [
    "NotificationPublisher",
    "LegacyRecordsRepository",
    "RecordsUnitOfWork",
    "RecordsV2Repository",
    "RecordsTransport",
    "TransportError",
    "Scheduler",
    "TimerHandle",
]
