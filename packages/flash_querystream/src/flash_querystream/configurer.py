"""
Configurers and their composition.

A configurer is a plain callable ``(builder, query) -> selection``. It applies
one increment of configuration to a query context and returns the current
selection. Stream nodes never mutate a configurer; each fluent operation
wraps the previous one, so the oldest configuration runs first when a
terminal build finally invokes the chain.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from .exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from .criteria import CommonCriteria, CriteriaBuilder

Configurer = Callable[["CriteriaBuilder", "CommonCriteria"], Any]
Modifier = Callable[["CriteriaBuilder", "CommonCriteria", Any], None]
Transformer = Callable[["CriteriaBuilder", "CommonCriteria", Any], Any]


def compose(prev: Configurer, extra: Modifier) -> Configurer:
    """
    Wrap ``prev`` with a side effect that keeps the selection unchanged.

    ``extra`` receives the builder, the query and the selection computed by
    ``prev``; it may mutate the query or bind a Ref.

    Example:
        >>> distinct = compose(configurer, lambda b, q, s: q.distinct())
    """
    if prev is None:
        msg = "null configurer"
        raise InvalidArgumentError(msg)
    if extra is None:
        msg = "null modifier"
        raise InvalidArgumentError(msg)

    def configure(builder: CriteriaBuilder, query: CommonCriteria) -> Any:
        selection = prev(builder, query)
        extra(builder, query, selection)
        return selection

    return configure


def transform(prev: Configurer, extra: Transformer) -> Configurer:
    """
    Wrap ``prev`` with a step that replaces the selection.

    Example:
        >>> names = transform(configurer, lambda b, q, s: s.name)
    """
    if prev is None:
        msg = "null configurer"
        raise InvalidArgumentError(msg)
    if extra is None:
        msg = "null transformer"
        raise InvalidArgumentError(msg)

    def configure(builder: CriteriaBuilder, query: CommonCriteria) -> Any:
        return extra(builder, query, prev(builder, query))

    return configure
