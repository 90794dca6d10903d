"""Coordination store contract and the kazoo-backed implementation."""

import logging
import os
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, List, Optional, Tuple

from kazoo.client import KazooClient
from kazoo.exceptions import KazooException
from kazoo.exceptions import NoNodeError as KazooNoNodeError
from kazoo.exceptions import NodeExistsError as KazooNodeExistsError
from kazoo.handlers.threading import KazooTimeoutError

from .exceptions import NoNodeError, NodeExistsError, StoreError
from .models import EventType, WatchEvent

logger = logging.getLogger(__name__)

DEFAULT_HOSTS = "127.0.0.1:2181"
DEFAULT_CONNECT_TIMEOUT = 10.0
ANY_VERSION = -1


class Notification:
    """One-shot change notification for a single node.

    Exactly one outcome is ever delivered: the first call to ``_fire`` wins,
    and a cancelled notification drops any later firing.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._event: Optional[WatchEvent] = None
        self._cancelled = False
        self._callbacks: List[Callable[[WatchEvent], None]] = []

    @property
    def fired(self) -> bool:
        return self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def event(self) -> Optional[WatchEvent]:
        """The delivered event, None until fired."""
        return self._event

    def wait(self, timeout: Optional[float] = None) -> Optional[WatchEvent]:
        """Block until the notification fires; None on timeout."""
        if timeout is not None:
            timeout = max(timeout, 0.0)
        if self._done.wait(timeout):
            return self._event
        return None

    def cancel(self) -> bool:
        """Discard the registration. Returns False if it already fired."""
        with self._lock:
            if self._done.is_set():
                return False
            self._cancelled = True
            self._callbacks.clear()
            return True

    def add_callback(self, callback: Callable[[WatchEvent], None]) -> None:
        """Run ``callback`` with the event once it fires (immediately if it has)."""
        with self._lock:
            if not self._done.is_set():
                if not self._cancelled:
                    self._callbacks.append(callback)
                return
        callback(self._event)

    def _fire(self, event: WatchEvent) -> bool:
        with self._lock:
            if self._cancelled or self._done.is_set():
                return False
            self._event = event
            self._done.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Notification callback for %s failed", self.path)
        return True


class CoordinationStore(ABC):
    """Hierarchical, watch-capable key space consumed by the lockers.

    Implementations must be safe for concurrent use from many threads.
    """

    @abstractmethod
    def exists(self, path: str) -> bool: ...

    @abstractmethod
    def create(self, path: str, value: bytes = b"", ephemeral: bool = False,
               sequence: bool = False) -> str: ...

    @abstractmethod
    def children(self, path: str) -> List[str]: ...

    @abstractmethod
    def delete(self, path: str, version: int = ANY_VERSION) -> None: ...

    @abstractmethod
    def exists_watch(self, path: str) -> Tuple[bool, Optional[Notification]]: ...


_EVENT_TYPES = {
    "CREATED": EventType.CREATED,
    "DELETED": EventType.DELETED,
    "CHANGED": EventType.CHANGED,
    "CHILD": EventType.CHILD,
}


@contextmanager
def _translated(path: str):
    try:
        yield
    except KazooNoNodeError as e:
        raise NoNodeError(f"Node does not exist: {path}", path=path) from e
    except KazooNodeExistsError as e:
        raise NodeExistsError(f"Node already exists: {path}", path=path) from e
    except (KazooException, KazooTimeoutError) as e:
        raise StoreError(f"Store operation on {path} failed: {e!r}", path=path) from e


class KazooStore(CoordinationStore):
    """CoordinationStore backed by a started ``KazooClient``."""

    def __init__(self, client: KazooClient):
        self.client = client

    def exists(self, path: str) -> bool:
        with _translated(path):
            return self.client.exists(path) is not None

    def create(self, path: str, value: bytes = b"", ephemeral: bool = False,
               sequence: bool = False) -> str:
        with _translated(path):
            return self.client.create(path, value, ephemeral=ephemeral, sequence=sequence)

    def children(self, path: str) -> List[str]:
        with _translated(path):
            return self.client.get_children(path)

    def delete(self, path: str, version: int = ANY_VERSION) -> None:
        with _translated(path):
            self.client.delete(path, version=version)

    def exists_watch(self, path: str) -> Tuple[bool, Optional[Notification]]:
        notification = Notification(path)

        def watcher(event):
            notification._fire(
                WatchEvent(_EVENT_TYPES.get(event.type, EventType.NONE), event.path or path)
            )

        with _translated(path):
            stat = self.client.exists(path, watch=watcher)
        if stat is None:
            # ZooKeeper keeps the watch armed for creation; nobody listens for that.
            notification.cancel()
            return False, None
        return True, notification

    def close(self) -> None:
        """Stop and close the underlying client."""
        self.client.stop()
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def connect(hosts: str = None, timeout: float = DEFAULT_CONNECT_TIMEOUT) -> KazooStore:
    """Start a kazoo session and wrap it as a CoordinationStore.

    Args:
        hosts: Comma separated ``host:port`` list. Falls back to the
            ``ZOOKEEPER_HOSTS`` environment variable, then ``127.0.0.1:2181``.
        timeout: Session and connect timeout in seconds
    """
    hosts = hosts or os.environ.get("ZOOKEEPER_HOSTS") or DEFAULT_HOSTS
    client = KazooClient(hosts=hosts, timeout=timeout)
    try:
        client.start(timeout=timeout)
    except KazooTimeoutError as e:
        client.close()
        raise StoreError(f"Could not connect to ZooKeeper at {hosts}: {e}") from e
    logger.info("Connected to ZooKeeper at %s", hosts)
    return KazooStore(client)
