from .legacy_records_repository import SQLAlchemyLegacyRecordsRepository
from .records_unit_of_work import SQLAlchemyRecordsUnitOfWork
from .records_v2_repository import SQLAlchemyRecordsV2Repository

__all__ = [
    "SQLAlchemyLegacyRecordsRepository",
    "SQLAlchemyRecordsUnitOfWork",
    "SQLAlchemyRecordsV2Repository",
]
