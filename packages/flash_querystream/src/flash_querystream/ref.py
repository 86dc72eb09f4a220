from __future__ import annotations

from typing import Generic, TypeVar

from .exceptions import AlreadyBoundError, UnboundReferenceError

T = TypeVar("T")

_UNSET = object()


class Ref(Generic[T]):
    """
    Write-once cell that captures an expression produced while a query is built.

    A Ref is handed to ``bind()`` (or ``add_root()``) on one stream and read
    from a configurer somewhere else in the same overall query, typically
    through ``order_by(ref)`` or ``group_by(ref)``. The value only exists
    once the binding chain has been run by a terminal build.

    Example:
        >>> product = Ref()
        >>> stream = (
        ...     qb.stream(Product)
        ...     .bind(product)
        ...     .map(lambda p: p.name)
        ...     .order_by(lambda _: product.get().price)
        ... )
    """

    __slots__ = ("_value",)

    def __init__(self) -> None:
        self._value: object = _UNSET

    def bind(self, value: T) -> None:
        """
        Bind this reference to ``value``.

        Raises:
            AlreadyBoundError: If the reference is already bound.
        """
        if self._value is not _UNSET:
            msg = "reference is already bound"
            raise AlreadyBoundError(msg)
        self._value = value

    def get(self) -> T:
        """
        Return the bound value.

        Raises:
            UnboundReferenceError: If the reference has not been bound yet.
        """
        if self._value is _UNSET:
            msg = "reference is not bound"
            raise UnboundReferenceError(msg)
        return self._value  # type: ignore[return-value]

    def is_bound(self) -> bool:
        return self._value is not _UNSET

    def unbind(self) -> None:
        """Detach the current value so the owning stream can be built again."""
        self._value = _UNSET

    def __repr__(self) -> str:
        if self._value is _UNSET:
            return "Ref(<unbound>)"
        return f"Ref({self._value!r})"
