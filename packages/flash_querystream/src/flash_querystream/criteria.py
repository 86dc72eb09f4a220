from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Sequence

from sqlalchemy import and_, asc, delete, desc, distinct, func, select, update
from sqlalchemy.orm import RelationshipProperty, aliased
from sqlalchemy.orm import join as orm_join

from .exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from sqlalchemy.sql import ColumnElement, Delete, Exists, Select, Update
    from sqlalchemy.sql.elements import ScalarSelect


def resolve_attribute(selection: Any, attribute: Any) -> Any:
    """
    Look up ``attribute`` on ``selection``.

    ``attribute`` is either an attribute name or a mapped attribute such as
    ``Product.name``; only its key is used, so a mapped attribute of the
    entity class also resolves against an alias of that entity.

    Raises:
        InvalidArgumentError: If the selection has no such attribute.
    """
    if attribute is None:
        msg = "null attribute"
        raise InvalidArgumentError(msg)
    key = attribute if isinstance(attribute, str) else getattr(attribute, "key", None)
    if not isinstance(key, str):
        msg = f"unsupported attribute {attribute!r}"
        raise InvalidArgumentError(msg)
    value = getattr(selection, key, None)
    if value is None:
        msg = f"selection {selection!r} has no attribute '{key}'"
        raise InvalidArgumentError(msg)
    return value


def _resolve_relationship(
    from_: Any, attribute: Any
) -> tuple[Any, RelationshipProperty[Any]]:
    attr = resolve_attribute(from_, attribute)
    prop = getattr(attr, "property", None)
    if not isinstance(prop, RelationshipProperty):
        msg = f"attribute {attribute!r} is not a relationship"
        raise InvalidArgumentError(msg)
    return attr, prop


class CriteriaBuilder:
    """
    Toolkit passed to every configurer alongside the query under construction.

    It gathers the SQLAlchemy expression helpers configurers need and acts as
    the factory for new query contexts.

    Example:
        >>> builder = CriteriaBuilder()
        >>> query = builder.create_query()
        >>> product = query.from_(Product)
        >>> query.where(builder.and_(product.active, product.price > 10))
    """

    def and_(self, *clauses: ColumnElement[bool]) -> ColumnElement[bool]:
        return and_(*clauses)

    def asc(self, expr: Any) -> Any:
        return asc(expr)

    def desc(self, expr: Any) -> Any:
        return desc(expr)

    def order(self, expr: Any, ascending: bool) -> Any:
        return self.asc(expr) if ascending else self.desc(expr)

    def count(self, expr: Any | None = None) -> Any:
        """``count(*)`` without an expression, otherwise its non-NULL values."""
        return func.count() if expr is None else func.count(expr)

    def count_distinct(self, expr: Any) -> Any:
        return func.count(distinct(expr))

    def create_query(self) -> CriteriaQuery:
        return CriteriaQuery()

    def create_delete(self, entity: Any) -> CriteriaDelete:
        return CriteriaDelete(entity)

    def create_update(self, entity: Any) -> CriteriaUpdate:
        return CriteriaUpdate(entity)


class CommonCriteria:
    """
    State shared by every query context: the WHERE restriction.

    Query contexts are mutable. Configurers mutate them while a terminal build
    runs; the stream nodes that own the configurers never hold on to them.
    """

    def __init__(self) -> None:
        self._restriction: ColumnElement[bool] | None = None

    @property
    def restriction(self) -> ColumnElement[bool] | None:
        return self._restriction

    def where(self, restriction: ColumnElement[bool]) -> CommonCriteria:
        """Replace the WHERE restriction."""
        if restriction is None:
            msg = "null restriction"
            raise InvalidArgumentError(msg)
        self._restriction = restriction
        return self

    def subquery(self) -> Subquery:
        """Create a subquery nested in this query."""
        return Subquery(self)


class AbstractQuery(CommonCriteria):
    """Roots, joins, grouping and projection shared by queries and subqueries."""

    def __init__(self) -> None:
        super().__init__()
        self._roots: list[Any] = []
        self._joins: list[tuple[Any, bool]] = []
        self._group_by: list[Any] = []
        self._having: ColumnElement[bool] | None = None
        self._distinct = False
        self._selection: Any = None

    @property
    def roots(self) -> Sequence[Any]:
        return tuple(self._roots)

    @property
    def group_list(self) -> Sequence[Any]:
        return tuple(self._group_by)

    @property
    def group_restriction(self) -> ColumnElement[bool] | None:
        return self._having

    @property
    def is_distinct(self) -> bool:
        return self._distinct

    @property
    def selection(self) -> Any:
        return self._selection

    def from_(self, entity: Any) -> Any:
        """
        Add a FROM root for ``entity`` and return it.

        The first root of a top-level query is the entity itself; any further
        root is an alias so the same entity can appear more than once.
        """
        if entity is None:
            msg = "null entity"
            raise InvalidArgumentError(msg)
        if not self._roots and self._use_entity_as_root():
            root = entity
        else:
            root = aliased(entity)
        self._roots.append(root)
        return root

    def join(self, from_: Any, attribute: Any, *, outer: bool = False) -> Any:
        """
        Join the relationship ``attribute`` of ``from_`` and return the joined entity.

        The joined entity is always an alias, so a relationship can be joined
        more than once within one query.
        """
        attr, prop = _resolve_relationship(from_, attribute)
        target = aliased(prop.mapper.class_)
        self._joins.append((attr.of_type(target), outer))
        return target

    def group_by(self, expressions: Iterable[Any]) -> AbstractQuery:
        """Replace the GROUP BY list."""
        self._group_by = list(expressions)
        return self

    def having(self, restriction: ColumnElement[bool]) -> AbstractQuery:
        """Replace the HAVING restriction."""
        if restriction is None:
            msg = "null restriction"
            raise InvalidArgumentError(msg)
        self._having = restriction
        return self

    def distinct(self, distinct: bool = True) -> AbstractQuery:
        self._distinct = distinct
        return self

    def select(self, selection: Any) -> AbstractQuery:
        """Set what the query selects."""
        if selection is None:
            msg = "null selection"
            raise InvalidArgumentError(msg)
        self._selection = selection
        return self

    def _use_entity_as_root(self) -> bool:
        return True

    def _build_select(self) -> Select:
        selection = self._selection
        if selection is None:
            if not self._roots:
                msg = "query has no roots"
                raise InvalidArgumentError(msg)
            selection = self._roots[0]
        columns = selection if isinstance(selection, (tuple, list)) else (selection,)

        stmt = select(*columns)
        if self._roots:
            stmt = stmt.select_from(*self._roots)
        for onclause, outer in self._joins:
            stmt = stmt.join(onclause, isouter=outer)
        if self._restriction is not None:
            stmt = stmt.where(self._restriction)
        if self._group_by:
            stmt = stmt.group_by(*self._group_by)
        if self._having is not None:
            stmt = stmt.having(self._having)
        if self._distinct:
            stmt = stmt.distinct()
        return stmt


class CriteriaQuery(AbstractQuery):
    """Top-level SELECT under construction; the only context that can be sorted."""

    def __init__(self) -> None:
        super().__init__()
        self._order_by: list[Any] = []

    @property
    def order_list(self) -> Sequence[Any]:
        return tuple(self._order_by)

    def order_by(self, orders: Iterable[Any]) -> CriteriaQuery:
        """Replace the ORDER BY list."""
        self._order_by = list(orders)
        return self

    @property
    def statement(self) -> Select:
        """The SQLAlchemy ``Select`` described by this query."""
        stmt = self._build_select()
        if self._order_by:
            stmt = stmt.order_by(*self._order_by)
        return stmt

    def __repr__(self) -> str:
        return f"<CriteriaQuery roots={len(self._roots)}>"


class Subquery(AbstractQuery):
    """
    SELECT nested inside another query.

    Roots added to a subquery are always aliases, so an entity that also
    appears in the enclosing query is never correlated away by accident.
    Correlation with the enclosing query is explicit through ``correlate()``.
    """

    def __init__(self, parent: CommonCriteria):
        super().__init__()
        if parent is None:
            msg = "null parent"
            raise InvalidArgumentError(msg)
        self.parent = parent
        self._correlated: list[Any] = []
        self._join_criteria: list[ColumnElement[bool]] = []

    @property
    def correlated_roots(self) -> Sequence[Any]:
        return tuple(self._correlated)

    def correlate(self, root: Any) -> Any:
        """Correlate ``root`` of an enclosing query with this subquery and return it."""
        if root is None:
            msg = "null root"
            raise InvalidArgumentError(msg)
        if not any(root is r for r in self._correlated):
            self._correlated.append(root)
        return root

    def join(self, from_: Any, attribute: Any, *, outer: bool = False) -> Any:
        if not any(from_ is r for r in self._correlated):
            return super().join(from_, attribute, outer=outer)

        # A correlated root is not part of this subquery's FROM clause, so the
        # joined entity becomes a root and the join condition a restriction.
        attr, prop = _resolve_relationship(from_, attribute)
        if outer:
            msg = "outer joins from a correlated root are not supported"
            raise InvalidArgumentError(msg)
        if prop.secondary is not None:
            msg = (
                "joins through an association table are not supported "
                "from a correlated root"
            )
            raise InvalidArgumentError(msg)
        target = aliased(prop.mapper.class_)
        self._roots.append(target)
        self._join_criteria.append(orm_join(from_, target, attr).onclause)
        return target

    def _use_entity_as_root(self) -> bool:
        return False

    @property
    def statement(self) -> Select:
        stmt = self._build_select()
        if self._join_criteria:
            stmt = stmt.where(*self._join_criteria)
        if self._correlated:
            stmt = stmt.correlate(*self._correlated)
        return stmt

    def scalar(self) -> ScalarSelect[Any]:
        """Return this subquery as a scalar expression."""
        return self.statement.scalar_subquery()

    def exists(self) -> Exists:
        """Return an EXISTS predicate over this subquery."""
        return self.statement.exists()

    def __repr__(self) -> str:
        return f"<Subquery roots={len(self._roots)} parent={self.parent!r}>"


class CriteriaDelete(CommonCriteria):
    """Bulk DELETE under construction."""

    def __init__(self, entity: Any):
        super().__init__()
        if entity is None:
            msg = "null entity"
            raise InvalidArgumentError(msg)
        self.entity = entity

    def from_(self, entity: Any) -> Any:
        """Return the single root of this statement, which must be ``entity``."""
        if entity is not self.entity:
            msg = f"{type(self).__name__} targets {self.entity!r}, not {entity!r}"
            raise InvalidArgumentError(msg)
        return self.entity

    @property
    def statement(self) -> Delete:
        stmt = delete(self.entity)
        if self._restriction is not None:
            stmt = stmt.where(self._restriction)
        return stmt

    def __repr__(self) -> str:
        return f"<CriteriaDelete {getattr(self.entity, '__name__', self.entity)}>"


class CriteriaUpdate(CriteriaDelete):
    """Bulk UPDATE under construction."""

    def __init__(self, entity: Any):
        super().__init__(entity)
        self._values: dict[str, Any] = {}

    @property
    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def set(self, attribute: Any, value: Any) -> CriteriaUpdate:
        """Add a SET clause; a later clause for the same attribute wins."""
        attr = resolve_attribute(self.entity, attribute)
        self._values[attr.key] = value
        return self

    @property
    def statement(self) -> Update:  # type: ignore[override]
        if not self._values:
            msg = "update has no SET clauses"
            raise InvalidArgumentError(msg)
        stmt = update(self.entity)
        if self._restriction is not None:
            stmt = stmt.where(self._restriction)
        return stmt.values(self._values)

    def __repr__(self) -> str:
        return f"<CriteriaUpdate {getattr(self.entity, '__name__', self.entity)}>"
