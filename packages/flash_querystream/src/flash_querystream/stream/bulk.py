from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import QueryableAttribute
from sqlalchemy.sql.expression import ClauseElement

from ..exceptions import InvalidArgumentError
from ..querytype import DeleteType, UpdateType

from .base import QueryStream

if TYPE_CHECKING:
    from ..criteria import CriteriaBuilder, CriteriaUpdate


class DeleteStream(QueryStream[DeleteType]):
    """
    Lazy, immutable builder for bulk DELETE statements.

    Example:
        >>> deleted = await (
        ...     qb.delete_stream(Product).filter(lambda p: p.stock == 0).to_query()
        ... ).execute()
    """


class UpdateStream(QueryStream[UpdateType]):
    """
    Lazy, immutable builder for bulk UPDATE statements.

    Example:
        >>> updated = await (
        ...     qb.update_stream(Product)
        ...     .filter(lambda p: p.category == "sale")
        ...     .set("price", lambda p: p.price * 0.9)
        ...     .to_query()
        ... ).execute()
    """

    def set(self, attribute: Any, value: Any) -> UpdateStream:
        """
        Add a SET clause.

        Args:
            attribute: Attribute name or mapped attribute of the target entity.
            value: A literal, a SQL expression, or a callable
                ``selection -> expression`` evaluated when the statement is built.
        """
        if attribute is None:
            msg = "null attribute"
            raise InvalidArgumentError(msg)
        self._check_offset_limit("set()")

        def modifier(
            builder: CriteriaBuilder, query: CriteriaUpdate, selection: Any
        ) -> None:
            query.set(attribute, _evaluate(value, selection))

        return self._mod_query(modifier)


def _evaluate(value: Any, selection: Any) -> Any:
    # SQL expressions are used as they are; other callables build one.
    if isinstance(value, (ClauseElement, QueryableAttribute)) or not callable(value):
        return value
    return value(selection)
