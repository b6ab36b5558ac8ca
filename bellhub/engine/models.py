"""Runtime data models for queries and per-icom queue state."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

KIND_SOUND = "sound"
KIND_LIVE_STREAM = "live_stream"

WAITING = "waiting"
PLAYING = "playing"
FINISHED = "finished"
CANCELLED = "cancelled"

ACTIVE_STATUSES = frozenset({WAITING, PLAYING})
TERMINAL_STATUSES = frozenset({FINISHED, CANCELLED})

PRIORITY_MIN = -100
PRIORITY_MAX = 100


@dataclass(frozen=True)
class QueryAuthor:
    """Provenance of a query."""

    type: str  # 'root' | 'account' | 'service'
    name: str
    label: str


SCHEDULER_AUTHOR = QueryAuthor(type="service", name="scheduler", label="School Scheduler")


@dataclass
class Query:
    """A unit of playback work."""

    id: str
    kind: str  # 'sound' | 'live_stream'
    icom: str
    priority: int
    force: bool
    created_at: datetime
    updated_at: datetime
    status: str = WAITING
    author: QueryAuthor | None = None
    duration: float | None = None
    sound_name: str | None = None
    auto_finish_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_info(self) -> dict:
        """Render the public fields of the query."""
        info = {
            "id": self.id,
            "kind": self.kind,
            "icom": self.icom,
            "priority": self.priority,
            "force": self.force,
            "duration": self.duration,
            "status": self.status,
            "author": (
                {"type": self.author.type, "name": self.author.name, "label": self.author.label}
                if self.author
                else None
            ),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.sound_name:
            info["sound_name"] = self.sound_name
        return info


@dataclass
class IcomQueue:
    """Now-playing slot and waiting line of one icom."""

    playing_id: str | None = None
    waiting: list[str] = field(default_factory=list)


@dataclass
class StreamStats:
    """Accounting of binary data pushed into a live-stream query."""

    max_buffers: int = 24
    bytes: int = 0
    chunks: int = 0
    buffers: deque[bytes] = field(init=False)

    def __post_init__(self) -> None:
        self.buffers = deque(maxlen=self.max_buffers)

    def add(self, chunk: bytes) -> None:
        self.bytes += len(chunk)
        self.chunks += 1
        self.buffers.append(bytes(chunk))
