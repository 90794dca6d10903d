"""In-process coordination store.

``MemoryStore`` holds the node tree; every client talks to it through a
``MemorySession`` so ephemeral nodes can be tied to a session and removed
when that session closes, the way ZooKeeper does on session expiry.
"""

import itertools
import logging
import threading
from typing import Dict, List, Optional, Tuple

from .exceptions import NoNodeError, NodeExistsError, StoreError
from .models import EventType, WatchEvent
from .paths import SEQUENCE_WIDTH
from .store import ANY_VERSION, CoordinationStore, Notification

logger = logging.getLogger(__name__)


class _Node:
    __slots__ = ("value", "owner", "version", "children", "sequence")

    def __init__(self, value: bytes, owner: Optional[int]):
        self.value = value
        self.owner = owner
        self.version = 0
        self.children = set()
        self.sequence = 0


def _split(path: str) -> Tuple[str, str]:
    parent, _, name = path.rpartition("/")
    return parent or "/", name


class MemoryStore:
    """Node tree shared by any number of sessions."""

    def __init__(self):
        self._lock = threading.RLock()
        self._nodes: Dict[str, _Node] = {"/": _Node(b"", None)}
        self._watches: Dict[str, List[Notification]] = {}
        self._session_ids = itertools.count(1)

    def session(self) -> "MemorySession":
        """Open a new client session."""
        return MemorySession(self, next(self._session_ids))

    def get(self, path: str) -> bytes:
        with self._lock:
            return self._node(path).value

    def set(self, path: str, value: bytes) -> None:
        """Replace a node's payload, firing a CHANGED event on its watchers."""
        with self._lock:
            node = self._node(path)
            node.value = value
            node.version += 1
            fired = self._watches.pop(path, [])
        self._fire(fired, WatchEvent(EventType.CHANGED, path))

    def _node(self, path: str) -> _Node:
        try:
            return self._nodes[path]
        except KeyError:
            raise NoNodeError(f"Node does not exist: {path}", path=path) from None

    def _check_path(self, path: str) -> None:
        if not path.startswith("/") or (path != "/" and path.endswith("/")) or "//" in path:
            raise StoreError(f"Invalid path: {path!r}", path=path)

    def _exists(self, path: str) -> bool:
        with self._lock:
            return path in self._nodes

    def _create(self, session_id: int, path: str, value: bytes, ephemeral: bool,
                sequence: bool) -> str:
        self._check_path(path)
        if path == "/":
            raise NodeExistsError("Node already exists: /", path=path)
        parent_path, name = _split(path)
        with self._lock:
            parent = self._node(parent_path)
            if parent.owner is not None:
                raise StoreError(f"Ephemeral node {parent_path} cannot have children",
                                 path=path)
            if sequence:
                name = f"{name}{parent.sequence:0{SEQUENCE_WIDTH}d}"
                path = f"{parent_path.rstrip('/')}/{name}"
                parent.sequence += 1
            if path in self._nodes:
                raise NodeExistsError(f"Node already exists: {path}", path=path)
            self._nodes[path] = _Node(value, session_id if ephemeral else None)
            parent.children.add(name)
        return path

    def _children(self, path: str) -> List[str]:
        with self._lock:
            return list(self._node(path).children)

    def _delete(self, path: str, version: int) -> None:
        if path == "/":
            raise StoreError("Cannot delete the root node", path=path)
        with self._lock:
            node = self._node(path)
            if node.children:
                raise StoreError(f"Node {path} is not empty", path=path)
            if version != ANY_VERSION and version != node.version:
                raise StoreError(f"Version mismatch deleting {path}", path=path)
            parent_path, name = _split(path)
            del self._nodes[path]
            self._nodes[parent_path].children.discard(name)
            fired = self._watches.pop(path, [])
        self._fire(fired, WatchEvent(EventType.DELETED, path))

    def _exists_watch(self, path: str) -> Tuple[bool, Optional[Notification]]:
        with self._lock:
            if path not in self._nodes:
                return False, None
            notification = Notification(path)
            self._watches.setdefault(path, []).append(notification)
            return True, notification

    def _expire(self, session_id: int) -> None:
        with self._lock:
            owned = [p for p, n in self._nodes.items() if n.owner == session_id]
        for path in owned:
            try:
                self._delete(path, ANY_VERSION)
            except NoNodeError:
                pass
        if owned:
            logger.debug("Session %d closed, removed %d ephemeral node(s)", session_id, len(owned))

    def _fire(self, notifications: List[Notification], event: WatchEvent) -> None:
        for notification in notifications:
            notification._fire(event)


class MemorySession(CoordinationStore):
    """A client session on a MemoryStore."""

    def __init__(self, store: MemoryStore, session_id: int):
        self.store = store
        self.session_id = session_id
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise StoreError(f"Session {self.session_id} is closed")

    def exists(self, path: str) -> bool:
        self._check_open()
        return self.store._exists(path)

    def create(self, path: str, value: bytes = b"", ephemeral: bool = False,
               sequence: bool = False) -> str:
        self._check_open()
        return self.store._create(self.session_id, path, value, ephemeral, sequence)

    def children(self, path: str) -> List[str]:
        self._check_open()
        return self.store._children(path)

    def delete(self, path: str, version: int = ANY_VERSION) -> None:
        self._check_open()
        self.store._delete(path, version)

    def exists_watch(self, path: str) -> Tuple[bool, Optional[Notification]]:
        self._check_open()
        return self.store._exists_watch(path)

    def close(self) -> None:
        """End the session and drop its ephemeral nodes."""
        if self.closed:
            return
        self.closed = True
        self.store._expire(self.session_id)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
