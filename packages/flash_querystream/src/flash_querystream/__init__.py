from .builder import QueryBuilder
from .config import QueryStreamSettings, querystream_settings
from .context import current_query_info, current_subquery, query_info
from .criteria import (
    CriteriaBuilder,
    CriteriaDelete,
    CriteriaQuery,
    CriteriaUpdate,
    Subquery,
)
from .exceptions import (
    AlreadyBoundError,
    InvalidArgumentError,
    NoActiveContextError,
    NotASubqueryError,
    QueryStreamError,
    UnboundReferenceError,
    UnsupportedCombinationError,
)
from .query import BulkQuery, TypedQuery
from .querytype import DeleteType, QueryType, SearchType, UpdateType
from .ref import Ref
from .stream import DeleteStream, QueryStream, SearchStream, UpdateStream

__all__ = [
    "AlreadyBoundError",
    "BulkQuery",
    "CriteriaBuilder",
    "CriteriaDelete",
    "CriteriaQuery",
    "CriteriaUpdate",
    "DeleteStream",
    "DeleteType",
    "InvalidArgumentError",
    "NoActiveContextError",
    "NotASubqueryError",
    "QueryBuilder",
    "QueryStream",
    "QueryStreamError",
    "QueryStreamSettings",
    "QueryType",
    "Ref",
    "SearchStream",
    "SearchType",
    "Subquery",
    "TypedQuery",
    "UnboundReferenceError",
    "UnsupportedCombinationError",
    "UpdateStream",
    "UpdateType",
    "current_query_info",
    "current_subquery",
    "query_info",
    "querystream_settings",
]
