from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from .config import querystream_settings
from .exceptions import InvalidArgumentError, UnsupportedCombinationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import Delete, Select, Update

    from .criteria import CriteriaDelete, CriteriaQuery

logger = logging.getLogger(__name__)


class ExecutableQuery:
    """
    A compiled query bound to a session, ready to run.

    Row offset and row limit live here rather than on the compiled query:
    only the outermost statement can carry them. ``-1`` means "not set".
    """

    def __init__(
        self,
        session: AsyncSession,
        query: Any,
        *,
        params: Mapping[str, Any] | None = None,
        execution_options: Mapping[str, Any] | None = None,
    ):
        if session is None:
            msg = "null session"
            raise InvalidArgumentError(msg)
        if query is None:
            msg = "null query"
            raise InvalidArgumentError(msg)
        self.session = session
        self.query = query
        self.params: dict[str, Any] = dict(params or {})
        self.execution_options: dict[str, Any] = dict(execution_options or {})
        self._first_result = -1
        self._max_results = -1

    @property
    def first_result(self) -> int:
        return self._first_result

    @first_result.setter
    def first_result(self, value: int) -> None:
        if value < -1:
            msg = "invalid first_result"
            raise InvalidArgumentError(msg)
        self._first_result = value

    @property
    def max_results(self) -> int:
        return self._max_results

    @max_results.setter
    def max_results(self, value: int) -> None:
        if value < -1:
            msg = "invalid max_results"
            raise InvalidArgumentError(msg)
        self._max_results = value

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.query!r} "
            f"first_result={self._first_result} max_results={self._max_results}>"
        )


class TypedQuery(ExecutableQuery):
    """
    Executable SELECT.

    Example:
        >>> query = qb.stream(Product).order_by("name").limit(10).to_query()
        >>> products = await query.fetch()
    """

    query: CriteriaQuery

    @property
    def statement(self) -> Select:
        """The SELECT with params, OFFSET and LIMIT applied."""
        stmt = self.query.statement
        if self.params:
            stmt = stmt.params(**self.params)
        if self._first_result != -1:
            stmt = stmt.offset(self._first_result)
        if self._max_results != -1:
            stmt = stmt.limit(self._max_results)
        return stmt

    async def _execute(self, stmt: Select) -> Any:
        logger.debug("Executing %r", self)
        return await self.session.execute(
            stmt, execution_options=self.execution_options
        )

    @staticmethod
    def _is_single_column(stmt: Select) -> bool:
        # A single entity or a single column expression comes back as scalars.
        return len(stmt.column_descriptions) == 1

    async def fetch(self) -> list[Any]:
        """
        Run the query and return every row.

        Single-entity and single-column selections return scalars; wider
        selections return SQLAlchemy ``Row`` tuples.
        """
        stmt = self.statement
        result = await self._execute(stmt)
        rows = result.scalars().all() if self._is_single_column(stmt) else result.all()
        logger.debug("Fetched %d rows", len(rows))
        return list(rows)

    async def first(self) -> Any | None:
        """Return the first row, or None if the query matches nothing."""
        if self._max_results == 0:
            return None
        stmt = self.statement.limit(1)
        result = await self._execute(stmt)
        if self._is_single_column(stmt):
            return result.scalars().first()
        return result.first()

    async def one(self) -> Any:
        """
        Return exactly one row.

        Raises:
            sqlalchemy.exc.NoResultFound: If the query matches nothing.
            sqlalchemy.exc.MultipleResultsFound: If it matches more than one row.
        """
        stmt = self.statement
        result = await self._execute(stmt)
        if self._is_single_column(stmt):
            return result.scalar_one()
        return result.one()


class BulkQuery(ExecutableQuery):
    """
    Executable bulk DELETE or UPDATE.

    Example:
        >>> query = qb.delete_stream(Product).filter(lambda p: p.stock == 0).to_query()
        >>> deleted = await query.execute()
    """

    query: CriteriaDelete

    @property
    def statement(self) -> Delete | Update:
        stmt = self.query.statement
        if self.params:
            stmt = stmt.params(**self.params)
        return stmt

    async def execute(self) -> int:
        """
        Run the statement and return the number of affected rows.

        Raises:
            UnsupportedCombinationError: If a row offset or limit was set, or if
                the statement has no WHERE clause and unfiltered bulk statements
                are not allowed by ``QUERYSTREAM_ALLOW_UNFILTERED_BULK``.
        """
        if self._first_result != -1 or self._max_results != -1:
            msg = "bulk statements do not support a row offset or row limit"
            raise UnsupportedCombinationError(msg)
        # Refuse to touch a whole table by accident.
        if (
            self.query.restriction is None
            and not querystream_settings.ALLOW_UNFILTERED_BULK
        ):
            msg = f"Refusing to run {self.query!r} without filters"
            raise UnsupportedCombinationError(msg)

        logger.debug("Executing %r", self)
        result = await self.session.execute(
            self.statement, execution_options=self.execution_options
        )
        return getattr(result, "rowcount", 0)
