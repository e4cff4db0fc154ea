from .client_record_v2 import ClientRecordV2Model
from .records_state import RecordsStateModel

__all__ = [
    "ClientRecordV2Model",
    "RecordsStateModel",
]
