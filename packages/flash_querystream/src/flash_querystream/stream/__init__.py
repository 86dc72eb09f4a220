from .base import QueryStream, QueryStreamBase
from .bulk import DeleteStream, UpdateStream
from .search import SearchStream

__all__ = [
    "DeleteStream",
    "QueryStream",
    "QueryStreamBase",
    "SearchStream",
    "UpdateStream",
]
