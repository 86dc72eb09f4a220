from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect

from .context import current_subquery
from .exceptions import InvalidArgumentError
from .querytype import DeleteType, SearchType, UpdateType
from .stream import DeleteStream, SearchStream, UpdateStream

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class QueryBuilder:
    """
    Entry point for building query streams against one session.

    Example:
        >>> qb = QueryBuilder(db)
        >>> products = await qb.stream(Product).filter("active").to_query().fetch()
    """

    def __init__(self, session: AsyncSession):
        if session is None:
            msg = "null session"
            raise InvalidArgumentError(msg)
        self.session = session

    def stream(self, entity: Any) -> SearchStream:
        """
        Return a SearchStream selecting every ``entity`` row.
        """
        if entity is None:
            msg = "null entity"
            raise InvalidArgumentError(msg)
        return SearchStream(
            self.session,
            SearchType(entity),
            lambda builder, query: query.from_(entity),
        )

    def delete_stream(self, entity: Any) -> DeleteStream:
        """
        Return a DeleteStream targeting ``entity``.
        """
        if entity is None:
            msg = "null entity"
            raise InvalidArgumentError(msg)
        return DeleteStream(
            self.session,
            DeleteType(entity),
            lambda builder, query: query.from_(entity),
        )

    def update_stream(self, entity: Any) -> UpdateStream:
        """
        Return an UpdateStream targeting ``entity``.
        """
        if entity is None:
            msg = "null entity"
            raise InvalidArgumentError(msg)
        return UpdateStream(
            self.session,
            UpdateType(entity),
            lambda builder, query: query.from_(entity),
        )

    def substream(self, root: Any) -> SearchStream:
        """
        Return a SearchStream correlated with ``root`` of an enclosing query.

        The stream starts from ``root`` itself and can only be built as a
        subquery, typically through ``exists()`` or ``as_subquery()`` inside a
        configurer of the stream that owns ``root``.

        Raises:
            InvalidArgumentError: If ``root`` is not a mapped entity or alias.
            NotASubqueryError: When the stream is built as a top-level query.

        Example:
            >>> # Products with at least one bad review
            >>> qb.stream(Product).filter(
            ...     lambda p: qb.substream(p)
            ...     .join("reviews")
            ...     .filter(lambda r: r.rating < 2)
            ...     .exists()
            ... )
        """
        if root is None:
            msg = "null root"
            raise InvalidArgumentError(msg)
        info = inspect(root, raiseerr=False)
        mapper = getattr(info, "mapper", None)
        if mapper is None:
            msg = f"{root!r} is not a mapped entity"
            raise InvalidArgumentError(msg)
        return SearchStream(
            self.session,
            SearchType(mapper.class_),
            lambda builder, query: current_subquery().correlate(root),
        )
