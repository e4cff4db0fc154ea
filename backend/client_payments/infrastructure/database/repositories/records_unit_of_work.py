"""SQLAlchemy unit of work spanning the legacy and v2 records tables."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from client_payments.application.interfaces import RecordsUnitOfWork
from client_payments.domain.exceptions import ConflictError, RecordsError, ServiceUnavailableError
from client_payments.infrastructure.database.repositories.legacy_records_repository import (
    SQLAlchemyLegacyRecordsRepository,
)
from client_payments.infrastructure.database.repositories.records_v2_repository import (
    SQLAlchemyRecordsV2Repository,
)

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (DBAPIError, SQLAlchemyError, OSError)


def _unavailable(exc: BaseException) -> ServiceUnavailableError:
    logger.error("Records storage error: %s", exc)
    return ServiceUnavailableError("Records storage is temporarily unavailable. Try again.")


class SQLAlchemyRecordsUnitOfWork(RecordsUnitOfWork):
    """One AsyncSession transaction exposing both records repositories.

    Storage failures surface as ServiceUnavailableError; a unique-key race on
    the state row surfaces as ConflictError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, state_row_id: int = 1):
        self._session_factory = session_factory
        self._state_row_id = state_row_id
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> "SQLAlchemyRecordsUnitOfWork":
        session = self._session_factory()
        try:
            await session.begin()
        except _STORAGE_ERRORS as exc:
            await session.close()
            raise _unavailable(exc) from exc
        self._session = session
        self.legacy = SQLAlchemyLegacyRecordsRepository(session, self._state_row_id)
        self.v2 = SQLAlchemyRecordsV2Repository(session, self._state_row_id)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        session = self._session
        self._session = None
        if session is None:
            return False
        try:
            if exc is None:
                try:
                    await session.commit()
                except IntegrityError as commit_exc:
                    raise ConflictError(None) from commit_exc
                except _STORAGE_ERRORS as commit_exc:
                    raise _unavailable(commit_exc) from commit_exc
                return False

            await self._rollback_quietly(session)
            if isinstance(exc, RecordsError):
                return False
            if isinstance(exc, IntegrityError):
                raise ConflictError(None) from exc
            if isinstance(exc, _STORAGE_ERRORS):
                raise _unavailable(exc) from exc
            return False
        finally:
            await session.close()

    @staticmethod
    async def _rollback_quietly(session: AsyncSession) -> None:
        try:
            await session.rollback()
        except _STORAGE_ERRORS as exc:
            logger.warning("Rollback failed: %s", exc)

    @asynccontextmanager
    async def savepoint(self, name: str) -> AsyncIterator[None]:
        if self._session is None:
            raise RuntimeError("Unit of work is not active")
        logger.debug("SAVEPOINT %s", name)
        async with self._session.begin_nested():
            yield
