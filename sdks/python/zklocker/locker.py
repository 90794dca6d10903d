"""Fair distributed mutex on top of a CoordinationStore."""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Optional

from .exceptions import (
    LockError,
    LockTimeoutError,
    NoNodeError,
    RegistrationError,
    ReleaseError,
    ResolutionError,
    StoreError,
    ValidationError,
    WatchError,
)
from .models import EventType, LockState, Rank
from .paths import ensure_path, join, normalize_path, resolve_rank, validate_lock_name
from .store import ANY_VERSION, CoordinationStore

logger = logging.getLogger(__name__)

# Holds all distributed locks unless a base path is given
DEFAULT_BASE_PATH = "/distribute-locks"

_OUTSTANDING = (LockState.REGISTERED, LockState.WAITING, LockState.ACQUIRED)


class DistributedLock(ABC):
    """Interface shared by distributed lock implementations."""

    @abstractmethod
    def lock(self, lock_name: str) -> None: ...

    @abstractmethod
    def release(self) -> None: ...


def _check_timeout(timeout: Optional[float]) -> Optional[float]:
    if timeout is None:
        return None
    if timeout < 0:
        raise ValidationError("Timeout must not be negative")
    return timeout or None


class Locker(DistributedLock):
    """Distributed mutex using ephemeral sequential request nodes.

    Every ``lock`` call registers ``<base_path>/<lock_name><sequence>``.
    The request with the lowest sequence holds the lock; every other
    request waits for the deletion of the request right before it, so
    waiters are woken one at a time in registration order.

    A Locker tracks one outstanding request at a time. It can be reused
    sequentially (lock, release, lock) but not concurrently; give every
    thread its own Locker and share the store.
    """

    def __init__(
        self,
        store: CoordinationStore,
        base_path: str = DEFAULT_BASE_PATH,
        timeout: Optional[float] = None,
        release_on_timeout: bool = False,
        provision: bool = True,
    ):
        """Initialize the locker.

        Args:
            store: Coordination store, shared freely between lockers
            base_path: Parent node of all request nodes
            timeout: Seconds to wait for the lock; None or 0 waits forever
            release_on_timeout: Delete the request node when a wait times out
                instead of leaving it registered for the caller to release
            provision: Create missing segments of ``base_path``

        Raises:
            ProvisioningError: ``base_path`` could not be created
        """
        self.store = store
        self.timeout = _check_timeout(timeout)
        self.release_on_timeout = release_on_timeout
        if provision:
            self.base_path = ensure_path(store, base_path)
        else:
            self.base_path = normalize_path(base_path)
        self.lock_name = ""
        self.state = LockState.CREATED
        self._node = ""

    @classmethod
    def create(cls, store: CoordinationStore, **kwargs) -> "Locker":
        return cls(store, **kwargs)

    @property
    def name(self) -> str:
        """Full path of the current request node, empty before registration."""
        return self._node

    @property
    def locked(self) -> bool:
        return self.state is LockState.ACQUIRED

    def lock(self, lock_name: str) -> None:
        """Block until ``lock_name`` is held.

        Raises:
            ValidationError: invalid lock name
            RegistrationError: the request node could not be created
            ResolutionError: the request node disappeared before it was ranked
            WatchError: the predecessor could not be watched
            LockTimeoutError: the timeout elapsed first
        """
        validate_lock_name(lock_name)
        if self.state in _OUTSTANDING:
            raise LockError(
                f"Locker already has an outstanding request {self._node}",
                lock_name=self.lock_name, node=self._node,
            )
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        if self._still_registered(lock_name):
            logger.info("Resuming wait with request %s", self._node)
        else:
            self.lock_name = lock_name
            self._register()
        try:
            rank = self._resolve()
            while not rank.is_owner:
                self.state = LockState.WAITING
                self._wait_for(rank.predecessor, deadline)
                # the predecessor may have left without ever holding the lock
                rank = self._resolve()
        except LockTimeoutError:
            self.state = LockState.FAILED
            if self.release_on_timeout:
                try:
                    self._delete_own()
                except ReleaseError as e:
                    logger.warning("Could not drop %s after timeout: %s", self._node, e)
            raise
        except LockError:
            self.state = LockState.FAILED
            raise
        self.state = LockState.ACQUIRED
        logger.debug("%s acquired lock %r", self._node, lock_name)

    def release(self) -> None:
        """Delete the request node. Safe to call repeatedly."""
        if not self._node:
            return
        logger.info("Releasing lock %s", self._node)
        self._delete_own()
        self.state = LockState.RELEASED

    @contextmanager
    def hold(self, lock_name: str):
        """Hold ``lock_name`` for the duration of a ``with`` block."""
        self.lock(lock_name)
        try:
            yield self
        finally:
            self.release()

    def _still_registered(self, lock_name: str) -> bool:
        """True if a timed out or interrupted request keeps its place in line."""
        if self.state is not LockState.FAILED or not self._node:
            return False
        try:
            registered = self.store.exists(self._node)
        except StoreError as e:
            raise RegistrationError(
                f"Could not check request {self._node}: {e}",
                lock_name=self.lock_name, node=self._node,
            ) from e
        if registered and lock_name != self.lock_name:
            raise LockError(
                f"Request {self._node} for lock {self.lock_name!r} is still registered, release it first",
                lock_name=self.lock_name, node=self._node,
            )
        return registered

    def _register(self) -> None:
        self._node = ""
        try:
            node = self.store.create(
                join(self.base_path, self.lock_name), b"", ephemeral=True, sequence=True
            )
        except StoreError as e:
            self.state = LockState.FAILED
            raise RegistrationError(
                f"Could not register request for lock {self.lock_name!r}: {e}",
                lock_name=self.lock_name,
            ) from e
        self._node = node
        self.state = LockState.REGISTERED
        logger.debug("Registered lock request %s", node)

    def _resolve(self) -> Rank:
        try:
            children = self.store.children(self.base_path)
        except StoreError as e:
            raise ResolutionError(
                f"Could not list requests under {self.base_path}: {e}",
                lock_name=self.lock_name, node=self._node,
            ) from e
        try:
            return resolve_rank(children, self.lock_name, self._node.rsplit("/", 1)[-1])
        except ResolutionError as e:
            e.node = self._node
            raise

    def _wait_for(self, predecessor: str, deadline: Optional[float]) -> None:
        path = join(self.base_path, predecessor)
        logger.info("%s is waiting for %s", self._node, path)
        while True:
            try:
                exists, notification = self.store.exists_watch(path)
            except StoreError as e:
                logger.warning("Watch on %s failed: %s", path, e)
                raise WatchError(
                    f"Could not watch predecessor {path}: {e}",
                    lock_name=self.lock_name, node=self._node,
                ) from e
            if not exists:
                return
            remaining = None if deadline is None else deadline - time.monotonic()
            event = notification.wait(remaining)
            if event is None and not notification.cancel():
                # fired between the timer and the cancel
                event = notification.event
            if event is None:
                logger.warning("%s timed out waiting for %s", self._node, path)
                raise LockTimeoutError(
                    f"Timed out after {self.timeout}s waiting for lock {self.lock_name!r}",
                    lock_name=self.lock_name, node=self._node,
                    predecessor=path, timeout=self.timeout,
                )
            if event.type is EventType.DELETED:
                return
            logger.debug("Ignoring %s event on %s", event.type.value, path)

    def _delete_own(self) -> None:
        try:
            if self.store.exists(self._node):
                self.store.delete(self._node, version=ANY_VERSION)
        except NoNodeError:
            pass
        except StoreError as e:
            raise ReleaseError(
                f"Could not release {self._node}: {e}",
                lock_name=self.lock_name, node=self._node,
            ) from e
