"""zklocker - fair distributed mutex on ZooKeeper."""

from .async_locker import AsyncLocker
from .exceptions import (
    ZkLockerError,
    ValidationError,
    StoreError,
    NoNodeError,
    NodeExistsError,
    ProvisioningError,
    LockError,
    RegistrationError,
    ResolutionError,
    WatchError,
    LockTimeoutError,
    ReleaseError,
)
from .locker import DEFAULT_BASE_PATH, DistributedLock, Locker
from .memory import MemorySession, MemoryStore
from .models import (
    EventType,
    LockState,
    Rank,
    WatchEvent,
)
from .paths import ensure_path, resolve_rank
from .store import CoordinationStore, KazooStore, Notification, connect

__version__ = "1.0.0"
__all__ = [
    "AsyncLocker",
    "CoordinationStore",
    "DEFAULT_BASE_PATH",
    "DistributedLock",
    "KazooStore",
    "Locker",
    "MemorySession",
    "MemoryStore",
    "Notification",
    "connect",
    "ensure_path",
    "resolve_rank",
    "ZkLockerError",
    "ValidationError",
    "StoreError",
    "NoNodeError",
    "NodeExistsError",
    "ProvisioningError",
    "LockError",
    "RegistrationError",
    "ResolutionError",
    "WatchError",
    "LockTimeoutError",
    "ReleaseError",
    "EventType",
    "LockState",
    "Rank",
    "WatchEvent",
]
