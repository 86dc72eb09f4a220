"""
Construction context for queries under configuration.

While a terminal method such as ``to_criteria_query()`` runs a stream's
configurer, a stack of :class:`QueryInfo` frames describes the (sub)queries
being built: the top frame is the query currently under construction and the
bottom frame is the outermost query, the only one that is not a subquery.

The stack is held in a ``ContextVar`` so every thread and every asyncio task
sees its own independent value.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generator

from .criteria import CommonCriteria, Subquery
from .exceptions import InvalidArgumentError, NoActiveContextError, NotASubqueryError

if TYPE_CHECKING:
    from .criteria import CriteriaBuilder

logger = logging.getLogger(__name__)

_query_infos: ContextVar[tuple[QueryInfo, ...]] = ContextVar(
    "flash_querystream_query_infos", default=()
)


@dataclass(frozen=True)
class QueryInfo:
    """The builder and query context for one nesting level."""

    builder: CriteriaBuilder
    query: CommonCriteria

    def __post_init__(self) -> None:
        if self.builder is None:
            msg = "null builder"
            raise InvalidArgumentError(msg)
        if self.query is None:
            msg = "null query"
            raise InvalidArgumentError(msg)

    @property
    def subquery(self) -> Subquery:
        """
        Return this frame's query as a subquery.

        Raises:
            NotASubqueryError: If the frame holds a top-level query.
        """
        if not isinstance(self.query, Subquery):
            msg = (
                "streams built with QueryBuilder.substream() can only be used "
                "in subqueries"
            )
            raise NotASubqueryError(msg)
        return self.query

    @property
    def is_subquery(self) -> bool:
        return isinstance(self.query, Subquery)


def query_depth() -> int:
    """Return the number of active frames in the current context."""
    return len(_query_infos.get())


def current_query_info() -> QueryInfo:
    """
    Return the frame of the (sub)query currently under construction.

    Raises:
        NoActiveContextError: If no query is being built in this context.
    """
    infos = _query_infos.get()
    if not infos:
        msg = "subquery not created in the context of a containing query"
        raise NoActiveContextError(msg)
    return infos[-1]


def current_subquery() -> Subquery:
    """
    Return the subquery currently under construction.

    Raises:
        NoActiveContextError: If no query is being built in this context.
        NotASubqueryError: If the current frame is the outermost query.
    """
    return current_query_info().subquery


@contextmanager
def query_info(
    builder: CriteriaBuilder, query: CommonCriteria
) -> Generator[QueryInfo, None, None]:
    """
    Push a new construction frame for the duration of the block.

    The previous stack is restored on every exit path, including errors
    raised by the configurers running inside the block.

    >>> with query_info(builder, query) as info:
    ...     selection = stream.configure(info.builder, info.query)
    """
    if not isinstance(query, CommonCriteria):
        msg = f"unsupported query context {type(query).__name__}"
        raise InvalidArgumentError(msg)
    info = QueryInfo(builder, query)
    token = _query_infos.set((*_query_infos.get(), info))
    logger.debug(
        "Entered %s construction (depth %d)", type(query).__name__, query_depth()
    )
    try:
        yield info
    finally:
        _query_infos.reset(token)
        logger.debug("Left %s construction", type(query).__name__)
