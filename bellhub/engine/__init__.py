"""Query dispatch engine: per-icom queues, lifecycle, bell trigger and live sessions."""

from .bell_trigger import BellTrigger
from .errors import (
    ConflictError,
    DispatchError,
    InvalidRequestError,
    NotFoundError,
    PlaybackFailure,
)
from .lifecycle import QueryLifecycle
from .models import Query, QueryAuthor
from .queues import ChannelQueueManager
from .runtime import DispatchRuntime
from .sessions import LiveSession, LiveSessionHandler
from .store import QueryStore

__all__ = [
    "BellTrigger",
    "ChannelQueueManager",
    "ConflictError",
    "DispatchError",
    "DispatchRuntime",
    "InvalidRequestError",
    "LiveSession",
    "LiveSessionHandler",
    "NotFoundError",
    "PlaybackFailure",
    "Query",
    "QueryAuthor",
    "QueryLifecycle",
    "QueryStore",
]
