from .base import Base
from .session import async_session_factory, build_engine, build_session_factory, engine
from .models import ClientRecordV2Model, RecordsStateModel

__all__ = [
    "Base",
    "engine",
    "async_session_factory",
    "build_engine",
    "build_session_factory",
    "ClientRecordV2Model",
    "RecordsStateModel",
]
