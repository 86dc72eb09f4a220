from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
)

from sqlalchemy import inspect

from ..context import current_query_info, query_info
from ..criteria import CriteriaQuery
from ..exceptions import (
    AlreadyBoundError,
    InvalidArgumentError,
    UnsupportedCombinationError,
)
from ..querytype import SearchType
from ..ref import Ref

from .base import QueryStream, _selection_function

if TYPE_CHECKING:
    from ..criteria import AbstractQuery, CriteriaBuilder, Subquery


def _require_top_level(query: AbstractQuery, operation: str) -> None:
    # Checked on the runtime type: the same stream may be built as a subquery.
    if not isinstance(query, CriteriaQuery):
        msg = (
            f"sorry, can't {operation} a subquery because ORDER BY and GROUP BY "
            "are only supported on the outermost query"
        )
        raise UnsupportedCombinationError(msg)


def _expression_function(target: Any, name: str) -> Callable[[Any], Any]:
    """Like ``_selection_function`` but also accepts a Ref, read at build time."""
    if isinstance(target, Ref):
        return lambda selection: target.get()
    return _selection_function(target, name)


class SearchStream(QueryStream[SearchType]):
    """
    Lazy, immutable builder for SELECT queries.

    A SearchStream starts from a root entity and composes filtering, sorting,
    grouping, projection and joins without building any SQL. Each operation
    returns a new SearchStream; the statement is only assembled when a
    terminal method runs.

    Terminal methods:
        - to_criteria_query()
        - to_query()
        - as_subquery() / exists() (inside another stream's configuration)

    Notes:
        - Streams are safe to reuse and chain.
        - Sorting and grouping are only possible on the outermost query.
        - skip() and limit() must come last in the chain.

    Examples:
        >>> qb = QueryBuilder(db)
        >>> stream = qb.stream(Product).filter("active").order_by("name")
        >>> products = await stream.skip(10).limit(5).to_query().fetch()

        >>> # Aggregation
        >>> qb.stream(Product).group_by("category").map(
        ...     lambda p: (p.category, func.avg(p.price))
        ... )
    """

    def distinct(self) -> SearchStream:
        """
        Return only distinct rows.

        Calling it more than once has no further effect.

        Example:
            >>> qb.stream(Product).map("category").distinct()
            # SELECT DISTINCT products.category FROM products;
        """
        self._check_offset_limit("distinct()")
        return self._mod_query(lambda builder, query, selection: query.distinct(True))

    # Sorting

    def order_by(self, target: Any, asc: bool = True) -> SearchStream:
        """
        Sort by one expression.

        Args:
            target: A Ref bound elsewhere in the query, an attribute of the
                selection (name or mapped attribute), or a callable
                ``selection -> expression``.
            asc: Ascending when True, descending otherwise.

        Notes:
            - Like ORDER BY itself, a later sort replaces an earlier one.

        Examples:
            >>> qb.stream(Product).order_by("name")
            # SELECT * FROM products ORDER BY products.name ASC;

            >>> qb.stream(Product).order_by(lambda p: p.price * p.stock, asc=False)
        """
        order_function = _expression_function(target, "order expression")
        ascending = asc
        return self._sort(
            lambda builder, selection: [
                builder.order(order_function(selection), ascending)
            ]
        )

    def order_by_attributes(self, *orders: tuple[Any, bool]) -> SearchStream:
        """
        Sort by several attributes of the selection.

        Example:
            >>> qb.stream(Product).order_by_attributes(
            ...     ("category", True), ("price", False)
            ... )
            # ... ORDER BY products.category ASC, products.price DESC
        """
        if not orders:
            msg = "no orders"
            raise InvalidArgumentError(msg)
        functions = []
        for index, order in enumerate(orders, 1):
            if not isinstance(order, tuple) or len(order) != 2:
                msg = f"order {index} must be an (attribute, asc) pair"
                raise InvalidArgumentError(msg)
            attribute, ascending = order
            functions.append(
                (_selection_function(attribute, f"attribute{index}"), ascending)
            )
        return self._sort(
            lambda builder, selection: [
                builder.order(function(selection), ascending)
                for function, ascending in functions
            ]
        )

    def order_by_multi(self, order_list_function: Callable[[Any], Any]) -> SearchStream:
        """
        Sort by the list of order clauses ``order_list_function(selection)`` returns.

        Raises:
            UnsupportedCombinationError: After skip()/limit(), or when built as a
                subquery.

        Example:
            >>> qb.stream(Product).order_by_multi(
            ...     lambda p: [p.category.asc(), p.price.desc()]
            ... )
        """
        if order_list_function is None:
            msg = "null order_list_function"
            raise InvalidArgumentError(msg)
        return self._sort(lambda builder, selection: order_list_function(selection))

    def _sort(self, orders: Callable[[CriteriaBuilder, Any], Any]) -> SearchStream:
        self._check_offset_limit("sorting")

        def modifier(builder: CriteriaBuilder, query: Any, selection: Any) -> None:
            _require_top_level(query, "sort")
            query.order_by(list(orders(builder, selection)))

        return self._mod_query(modifier)

    # Grouping

    def group_by(self, target: Any) -> SearchStream:
        """
        Group by one expression: a Ref, an attribute, or a callable.

        Example:
            >>> qb.stream(Product).group_by("category")
            # ... GROUP BY products.category
        """
        group_function = _expression_function(target, "group expression")
        return self.group_by_multi(lambda selection: [group_function(selection)])

    def group_by_multi(self, group_function: Callable[[Any], Any]) -> SearchStream:
        """
        Group by the list of expressions ``group_function(selection)`` returns.

        Raises:
            UnsupportedCombinationError: After skip()/limit(), or when built as a
                subquery.
        """
        if group_function is None:
            msg = "null group_function"
            raise InvalidArgumentError(msg)
        self._check_offset_limit("grouping")

        def modifier(builder: CriteriaBuilder, query: Any, selection: Any) -> None:
            _require_top_level(query, "group")
            query.group_by(list(group_function(selection)))

        return self._mod_query(modifier)

    def having(self, having_function: Any) -> SearchStream:
        """
        Restrict groups with a boolean expression built from the selection.

        Example:
            >>> qb.stream(Product).group_by("category").having(
            ...     lambda p: func.count(p.id) > 3
            ... )
        """
        predicate_builder = _selection_function(having_function, "having_function")
        self._check_offset_limit("grouping")
        return self._mod_query(
            lambda builder, query, selection: query.having(predicate_builder(selection))
        )

    # Roots, joins and projection

    def add_root(self, ref: Ref[Any], entity: Any) -> SearchStream:
        """
        Add another, independent FROM root for ``entity`` and bind it to ``ref``.

        The selection is unchanged; use the ref to relate the new root to the
        rest of the query.

        Example:
            >>> category = Ref()
            >>> (
            ...     qb.stream(Product)
            ...     .add_root(category, Category)
            ...     .filter(lambda p: p.category == category.get().name)
            ... )
        """
        if ref is None:
            msg = "null ref"
            raise InvalidArgumentError(msg)
        if entity is None:
            msg = "null entity"
            raise InvalidArgumentError(msg)
        if ref.is_bound():
            msg = "reference is already bound"
            raise AlreadyBoundError(msg)
        self._check_offset_limit("roots")
        return self._mod_query(
            lambda builder, query, selection: ref.bind(query.from_(entity))
        )

    def join(self, attribute: Any, *, outer: bool = False) -> SearchStream:
        """
        Join a relationship of the selection; the joined entity becomes the selection.

        Example:
            >>> qb.stream(Product).join("reviews").filter(lambda r: r.rating < 2)
            # SELECT reviews_1.* FROM products JOIN reviews AS reviews_1 ...
        """
        if attribute is None:
            msg = "null attribute"
            raise InvalidArgumentError(msg)
        self._check_offset_limit("join()")
        return self._with_selection(
            lambda builder, query, selection: query.join(
                selection, attribute, outer=outer
            )
        )

    def map(self, target: Any) -> SearchStream:
        """
        Replace the selection with an attribute of it or ``target(selection)``.

        Example:
            >>> qb.stream(Product).map("name")
            # SELECT products.name FROM products;
        """
        mapper = _selection_function(target, "mapper")
        return self._with_selection(lambda builder, query, selection: mapper(selection))

    def count(self) -> SearchStream:
        """
        Select how many values the stream would return instead of the values.

        Entity selections count rows. A single column counts its non-NULL
        values, or its distinct non-NULL values after ``distinct()``.

        Raises:
            UnsupportedCombinationError: When counting distinct rows of a
                selection with several columns.

        Examples:
            >>> await qb.stream(Product).filter("active").count().to_query().one()
            # SELECT count(*) FROM products WHERE products.active;

            >>> qb.stream(Product).map("category_id").distinct().count()
            # SELECT count(DISTINCT products.category_id) FROM products;
        """
        return self._with_selection(_count)

    # Subqueries

    def as_subquery(self) -> Any:
        """
        Build this stream as a scalar subquery of the query being configured.

        Must be called from a configurer (a filter, map, ... function) of an
        enclosing stream while that stream is being built.

        Raises:
            NoActiveContextError: If no query is being built.

        Example:
            >>> average = qb.stream(Product).map(lambda p: func.avg(p.price))
            >>> qb.stream(Product).filter(lambda p: p.price > average.as_subquery())
        """
        return self._build_subquery().scalar()

    def exists(self) -> Any:
        """
        Build this stream as an EXISTS predicate of the query being configured.

        Example:
            >>> qb.stream(Product).filter(
            ...     lambda p: qb.substream(p).join("reviews").exists()
            ... )
        """
        return self._build_subquery().exists()

    def _build_subquery(self) -> Subquery:
        info = current_query_info()
        subquery = info.query.subquery()
        with query_info(info.builder, subquery):
            subquery.select(self.configure(info.builder, subquery))
        return subquery


def _count(builder: CriteriaBuilder, query: Any, selection: Any) -> Any:
    distinct = query.is_distinct
    # DISTINCT applies inside the aggregate, not to the single result row.
    query.distinct(False)
    if isinstance(selection, (tuple, list)):
        if distinct:
            msg = "sorry, can't count distinct rows of a multi-column selection"
            raise UnsupportedCombinationError(msg)
        return builder.count()
    if _is_entity(selection):
        return builder.count()
    if distinct:
        return builder.count_distinct(selection)
    return builder.count(selection)


def _is_entity(selection: Any) -> bool:
    info = inspect(selection, raiseerr=False)
    if info is None:
        return False
    return bool(
        getattr(info, "is_mapper", False) or getattr(info, "is_aliased_class", False)
    )
