from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generic,
    Mapping,
    TypeVar,
)

from sqlalchemy.orm import QueryableAttribute

from ..config import querystream_settings
from ..configurer import compose, transform
from ..context import query_info
from ..criteria import CriteriaBuilder, Subquery, resolve_attribute
from ..exceptions import (
    AlreadyBoundError,
    InvalidArgumentError,
    UnsupportedCombinationError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import ColumnElement

    from ..configurer import Configurer, Modifier, Transformer
    from ..criteria import CommonCriteria
    from ..querytype import QueryType
    from ..ref import Ref

logger = logging.getLogger(__name__)

QT = TypeVar("QT", bound="QueryType[Any]")


def _selection_function(target: Any, name: str) -> Callable[[Any], Any]:
    """
    Normalize an attribute or a callable into a function of the selection.

    Attributes (names or mapped attributes) are looked up on the runtime
    selection, which fails with InvalidArgumentError when it has no such
    attribute.
    """
    if target is None:
        msg = f"null {name}"
        raise InvalidArgumentError(msg)
    if isinstance(target, (str, QueryableAttribute)):
        return lambda selection: resolve_attribute(selection, target)
    if callable(target):
        return target
    msg = f"{name} must be an attribute or a callable, not {type(target).__name__}"
    raise InvalidArgumentError(msg)


class QueryStreamBase(Generic[QT]):
    """
    Immutable node holding one step of a query configuration.

    A node carries the session, the query type, the configurer built so far
    and the row offset/limit. Nodes are never modified: every operation
    returns a new node and the original stays valid, so a partially built
    stream can be reused as a template for many queries.
    """

    def __init__(
        self,
        session: AsyncSession,
        query_type: QT,
        configurer: Configurer,
        *,
        first_result: int = -1,
        max_results: int = -1,
        params: Mapping[str, Any] | None = None,
        execution_options: Mapping[str, Any] | None = None,
    ):
        if session is None:
            msg = "null session"
            raise InvalidArgumentError(msg)
        if query_type is None:
            msg = "null query_type"
            raise InvalidArgumentError(msg)
        if configurer is None:
            msg = "null configurer"
            raise InvalidArgumentError(msg)
        if first_result < -1:
            msg = "invalid first_result"
            raise InvalidArgumentError(msg)
        if max_results < -1:
            msg = "invalid max_results"
            raise InvalidArgumentError(msg)
        self.session: AsyncSession = session
        self.query_type: QT = query_type
        self.configurer: Configurer = configurer
        self.first_result = first_result
        self.max_results = max_results
        self._params: Mapping[str, Any] = dict(params or {})
        self._execution_options: Mapping[str, Any] = dict(execution_options or {})

    def _clone(
        self,
        configurer: Configurer | None = None,
        *,
        first_result: int | None = None,
        max_results: int | None = None,
        params: Mapping[str, Any] | None = None,
        execution_options: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Return a new instance of the current class with updated state.

        Using self.__class__ keeps the most derived stream type, so the new
        node offers the same operations as this one.
        """
        return self.__class__(
            self.session,
            self.query_type,
            configurer if configurer is not None else self.configurer,
            first_result=self.first_result if first_result is None else first_result,
            max_results=self.max_results if max_results is None else max_results,
            params=self._params if params is None else params,
            execution_options=(
                self._execution_options
                if execution_options is None
                else execution_options
            ),
        )

    def _mod_query(self, modifier: Modifier) -> Any:
        """Return a copy whose configurer also applies ``modifier``."""
        return self._clone(compose(self.configurer, modifier))

    def _with_selection(self, transformer: Transformer) -> Any:
        """Return a copy whose configurer replaces the selection."""
        return self._clone(transform(self.configurer, transformer))

    @property
    def params(self) -> Mapping[str, Any]:
        return dict(self._params)

    @property
    def execution_options(self) -> Mapping[str, Any]:
        return dict(self._execution_options)

    def configure(self, builder: CriteriaBuilder, query: CommonCriteria) -> Any:
        """Run the whole configuration chain against ``query``."""
        return self.configurer(builder, query)

    def _check_offset_limit(self, operation: str) -> None:
        # Restructuring after skip()/limit() would silently reorder the query.
        if self.first_result != -1 or self.max_results != -1:
            self._fail_offset_limit(
                f"{operation} must be performed prior to skip() or limit()"
            )

    @staticmethod
    def _fail_offset_limit(restriction: str) -> None:
        msg = (
            f"sorry, {restriction} because SQL only supports a row offset or "
            "row count limit on the outermost query"
        )
        raise UnsupportedCombinationError(msg)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.query_type!r} "
            f"first_result={self.first_result} max_results={self.max_results}>"
        )


class QueryStream(QueryStreamBase[QT]):
    """
    Operations and terminal methods shared by every kind of stream.

    Nothing touches the database or even builds SQL until a terminal method
    runs: ``to_criteria_query()`` replays the configurer chain against a
    fresh query context and ``to_query()`` wraps the result for execution.
    """

    # Terminal methods

    def to_criteria_query(self) -> Any:
        """
        Build the compiled query described by this stream.

        A fresh builder and query context are created, pushed as the bottom
        construction frame, and configured by running the whole chain. The
        stream itself is left untouched and can be built again.

        Example:
            >>> query = qb.stream(Product).filter("active").to_criteria_query()
            >>> print(query.statement)
        """
        builder = CriteriaBuilder()
        query = self.query_type.create_criteria_query(builder)
        with query_info(builder, query):
            compiled = self.query_type.select(query, self.configure(builder, query))
        logger.debug("Built %r from %r", compiled, self)
        return compiled

    def to_query(self) -> Any:
        """
        Build the executable query, applying the row offset and row limit.

        Example:
            >>> query = qb.stream(Product).skip(10).limit(5).to_query()
            >>> products = await query.fetch()
        """
        query = self.query_type.create_query(self.session, self.to_criteria_query())
        query.params.update(self._params)
        query.execution_options.update(self._execution_options)
        if self.first_result != -1:
            query.first_result = self.first_result
        if self.max_results != -1:
            query.max_results = self.max_results
        if querystream_settings.LOG_COMPILED_SQL:
            logger.debug("Compiled SQL for %r:\n%s", self, query.statement)
        return query

    # Refs

    def bind(self, ref: Ref[Any], function: Any = None) -> Any:
        """
        Bind ``ref`` to the selection when the query is built.

        With ``function`` (a callable or an attribute of the selection), the
        ref is bound to the derived expression instead, which lets another
        part of the overall query reuse a joined attribute or a subexpression.

        Args:
            ref: An unbound Ref.
            function: Optional mapping applied to the selection before binding.

        Returns:
            A new stream with the same selection.

        Raises:
            InvalidArgumentError: If ``ref`` is None.
            AlreadyBoundError: If ``ref`` is already bound, now or when built.

        Example:
            >>> product = Ref()
            >>> qb.stream(Product).bind(product).map("name")
        """
        if ref is None:
            msg = "null ref"
            raise InvalidArgumentError(msg)
        mapper = (
            (lambda selection: selection)
            if function is None
            else _selection_function(function, "ref function")
        )
        if ref.is_bound():
            msg = "reference is already bound"
            raise AlreadyBoundError(msg)
        return self._mod_query(
            lambda builder, query, selection: ref.bind(mapper(selection))
        )

    def peek(self, peeker: Callable[[Any], Any]) -> Any:
        """
        Call ``peeker`` with the selection when the query is built.

        Example:
            >>> qb.stream(Product).peek(seen.append)
        """
        if peeker is None:
            msg = "null peeker"
            raise InvalidArgumentError(msg)
        return self._mod_query(lambda builder, query, selection: peeker(selection))

    # Filtering

    def filter(self, predicate: Any) -> Any:
        """
        Restrict the query with a boolean expression built from the selection.

        The new restriction is ANDed after any restriction already present, so
        chained filters accumulate in the order they were written.

        Args:
            predicate: A callable ``selection -> boolean expression`` or a
                boolean attribute of the selection (name or mapped attribute).

        Returns:
            A new stream with the same selection.

        Raises:
            InvalidArgumentError: If ``predicate`` is None or the attribute does
                not exist on the selection.
            UnsupportedCombinationError: If skip() or limit() was already applied.

        Examples:
            >>> qb.stream(Product).filter("active")
            >>> qb.stream(Product).filter(lambda p: p.price > 10)
        """
        predicate_builder = _selection_function(predicate, "predicate")
        self._check_offset_limit("filter()")

        def modifier(builder: CriteriaBuilder, query: CommonCriteria, selection: Any):
            self._and(builder, query, predicate_builder(selection))

        return self._mod_query(modifier)

    def _and(
        self,
        builder: CriteriaBuilder,
        query: CommonCriteria,
        expression: ColumnElement[bool],
    ) -> None:
        old_restriction = query.restriction
        self.query_type.where(
            query,
            builder.and_(old_restriction, expression)
            if old_restriction is not None
            else expression,
        )

    # Offset and limit

    def limit(self, limit: int) -> Any:
        """
        Limit the number of rows returned.

        Chained limits keep the smallest one. After limit() only further
        skip()/limit() calls and terminal methods are allowed.

        Raises:
            InvalidArgumentError: If ``limit`` is negative.
            UnsupportedCombinationError: When built as a subquery.

        Example:
            >>> qb.stream(Product).order_by("name").limit(10)
            # SELECT ... ORDER BY products.name ASC LIMIT 10
        """
        if not isinstance(limit, int) or limit < 0:
            msg = "limit < 0"
            raise InvalidArgumentError(msg)
        new_max_results = (
            min(limit, self.max_results) if self.max_results != -1 else limit
        )

        def modifier(builder: CriteriaBuilder, query: CommonCriteria, selection: Any):
            if isinstance(query, Subquery):
                self._fail_offset_limit("can't invoke limit() on a subquery")

        return self._clone(
            compose(self.configurer, modifier), max_results=new_max_results
        )

    def skip(self, skip: int) -> Any:
        """
        Skip the first ``skip`` rows.

        Chained skips add up.

        Raises:
            InvalidArgumentError: If ``skip`` is negative.
            UnsupportedCombinationError: When built as a subquery.

        Example:
            >>> qb.stream(Product).order_by("name").skip(20).limit(10)
            # SELECT ... ORDER BY products.name ASC LIMIT 10 OFFSET 20
        """
        if not isinstance(skip, int) or skip < 0:
            msg = "skip < 0"
            raise InvalidArgumentError(msg)
        new_first_result = self.first_result + skip if self.first_result != -1 else skip

        def modifier(builder: CriteriaBuilder, query: CommonCriteria, selection: Any):
            if isinstance(query, Subquery):
                self._fail_offset_limit("can't invoke skip() on a subquery")

        return self._clone(
            compose(self.configurer, modifier), first_result=new_first_result
        )

    # Pass-through configuration

    def with_params(self, **params: Any) -> Any:
        """
        Supply values for ``bindparam()`` placeholders used in the query.

        Example:
            >>> (
            ...     qb.stream(Product)
            ...     .filter(lambda p: p.name == bindparam("name"))
            ...     .with_params(name="Widget")
            ... )
        """
        return self._clone(params={**self._params, **params})

    def with_execution_options(self, **options: Any) -> Any:
        """Pass SQLAlchemy execution options through to ``session.execute()``."""
        return self._clone(execution_options={**self._execution_options, **options})
