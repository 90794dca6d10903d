"""zklocker data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LockState(str, Enum):
    """Lifecycle of a single lock attempt."""
    CREATED = "created"
    REGISTERED = "registered"
    WAITING = "waiting"
    ACQUIRED = "acquired"
    RELEASED = "released"
    FAILED = "failed"


class EventType(str, Enum):
    """Node change kinds delivered by a watch."""
    CREATED = "created"
    DELETED = "deleted"
    CHANGED = "changed"
    CHILD = "child"
    NONE = "none"


@dataclass(frozen=True)
class WatchEvent:
    """A fired watch notification."""
    type: EventType
    path: str


@dataclass(frozen=True)
class Rank:
    """Position of a request among the siblings for one lock name."""
    position: int
    node: str
    predecessor: Optional[str] = None

    @property
    def is_owner(self) -> bool:
        return self.position == 0

