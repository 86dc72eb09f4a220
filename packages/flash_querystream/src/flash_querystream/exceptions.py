class QueryStreamError(Exception):
    """Base class for all Flash QueryStream exceptions."""


class InvalidArgumentError(QueryStreamError, ValueError):
    """Raised when a builder or Ref operation receives a null or invalid argument."""


class AlreadyBoundError(QueryStreamError, RuntimeError):
    """Raised when a Ref that already holds a value is bound again."""


class UnboundReferenceError(QueryStreamError, RuntimeError):
    """Raised when a Ref is read before the chain that binds it has run."""


class NoActiveContextError(QueryStreamError, RuntimeError):
    """Raised when the construction context is read outside of any query build."""


class NotASubqueryError(QueryStreamError, RuntimeError):
    """Raised when a subquery-only stream is used as a top-level query."""


class UnsupportedCombinationError(QueryStreamError, RuntimeError):
    """Raised when an operation is incompatible with the current chain state."""
