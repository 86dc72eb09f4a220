from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .criteria import AbstractQuery, CriteriaDelete, CriteriaQuery, CriteriaUpdate
from .exceptions import InvalidArgumentError
from .query import BulkQuery, TypedQuery

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import ColumnElement

    from .criteria import CommonCriteria, CriteriaBuilder

C = TypeVar("C", bound="CommonCriteria")


class QueryType(ABC, Generic[C]):
    """
    Describes one kind of query: how to create, restrict and materialize it.

    Query types are stateless apart from the target entity and may be shared
    freely between streams and threads.
    """

    def __init__(self, entity: Any):
        if entity is None:
            msg = "null entity"
            raise InvalidArgumentError(msg)
        self.entity = entity

    @abstractmethod
    def create_criteria_query(self, builder: CriteriaBuilder) -> C:
        """Create a fresh, unconfigured query context."""

    @abstractmethod
    def create_query(self, session: AsyncSession, query: C) -> Any:
        """Wrap a configured query context into an executable query."""

    def where(self, query: CommonCriteria, restriction: ColumnElement[bool]) -> None:
        """Replace the restriction of ``query``, which may also be a subquery."""
        if query is None:
            msg = "null query"
            raise InvalidArgumentError(msg)
        if restriction is None:
            msg = "null restriction"
            raise InvalidArgumentError(msg)
        query.where(restriction)

    def select(self, query: C, selection: Any) -> C:
        """Apply the final selection; a no-op for bulk queries."""
        return query

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return other.entity is self.entity  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self.entity))

    def __repr__(self) -> str:
        name = getattr(self.entity, "__name__", repr(self.entity))
        return f"{type(self).__name__}({name})"


class SearchType(QueryType[CriteriaQuery]):
    """SELECT queries."""

    def create_criteria_query(self, builder: CriteriaBuilder) -> CriteriaQuery:
        if builder is None:
            msg = "null builder"
            raise InvalidArgumentError(msg)
        return builder.create_query()

    def create_query(self, session: AsyncSession, query: CriteriaQuery) -> TypedQuery:
        if session is None:
            msg = "null session"
            raise InvalidArgumentError(msg)
        if query is None:
            msg = "null query"
            raise InvalidArgumentError(msg)
        return TypedQuery(session, query)

    def select(self, query: CriteriaQuery, selection: Any) -> CriteriaQuery:
        if not isinstance(query, AbstractQuery):
            msg = f"cannot select from {type(query).__name__}"
            raise InvalidArgumentError(msg)
        query.select(selection)
        return query


class DeleteType(QueryType[CriteriaDelete]):
    """Bulk DELETE statements."""

    def create_criteria_query(self, builder: CriteriaBuilder) -> CriteriaDelete:
        if builder is None:
            msg = "null builder"
            raise InvalidArgumentError(msg)
        return builder.create_delete(self.entity)

    def create_query(self, session: AsyncSession, query: CriteriaDelete) -> BulkQuery:
        if session is None:
            msg = "null session"
            raise InvalidArgumentError(msg)
        if query is None:
            msg = "null query"
            raise InvalidArgumentError(msg)
        return BulkQuery(session, query)


class UpdateType(QueryType[CriteriaUpdate]):
    """Bulk UPDATE statements."""

    def create_criteria_query(self, builder: CriteriaBuilder) -> CriteriaUpdate:
        if builder is None:
            msg = "null builder"
            raise InvalidArgumentError(msg)
        return builder.create_update(self.entity)

    def create_query(self, session: AsyncSession, query: CriteriaUpdate) -> BulkQuery:
        if session is None:
            msg = "null session"
            raise InvalidArgumentError(msg)
        if query is None:
            msg = "null query"
            raise InvalidArgumentError(msg)
        return BulkQuery(session, query)
