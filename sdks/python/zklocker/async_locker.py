"""asyncio flavour of the Locker."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from .exceptions import (
    LockError,
    LockTimeoutError,
    NoNodeError,
    RegistrationError,
    ReleaseError,
    ResolutionError,
    StoreError,
    WatchError,
)
from .locker import DEFAULT_BASE_PATH, _OUTSTANDING, _check_timeout
from .models import EventType, LockState, Rank, WatchEvent
from .paths import ensure_path, join, normalize_path, resolve_rank, validate_lock_name
from .store import ANY_VERSION, CoordinationStore, Notification

logger = logging.getLogger(__name__)


class AsyncLocker:
    """Async distributed mutex with the same protocol as ``Locker``.

    Store calls run in worker threads; waiting for the predecessor only
    suspends the calling task. Cancelling that task discards the watch.
    """

    def __init__(
        self,
        store: CoordinationStore,
        base_path: str = DEFAULT_BASE_PATH,
        timeout: Optional[float] = None,
        release_on_timeout: bool = False,
    ):
        """Initialize the async locker. Call ``provision`` (or use ``create``)
        before the first ``lock`` if the base path may be missing.

        Args:
            store: Coordination store, shared freely between lockers
            base_path: Parent node of all request nodes
            timeout: Seconds to wait for the lock; None or 0 waits forever
            release_on_timeout: Delete the request node when a wait times out
        """
        self.store = store
        self.base_path = normalize_path(base_path)
        self.timeout = _check_timeout(timeout)
        self.release_on_timeout = release_on_timeout
        self.lock_name = ""
        self.state = LockState.CREATED
        self._node = ""

    @classmethod
    async def create(cls, store: CoordinationStore, **kwargs) -> "AsyncLocker":
        locker = cls(store, **kwargs)
        await locker.provision()
        return locker

    async def provision(self) -> None:
        """Create missing segments of the base path."""
        await asyncio.to_thread(ensure_path, self.store, self.base_path)

    @property
    def name(self) -> str:
        return self._node

    @property
    def locked(self) -> bool:
        return self.state is LockState.ACQUIRED

    async def lock(self, lock_name: str) -> None:
        """Wait until ``lock_name`` is held. Raises like ``Locker.lock``."""
        validate_lock_name(lock_name)
        if self.state in _OUTSTANDING:
            raise LockError(
                f"Locker already has an outstanding request {self._node}",
                lock_name=self.lock_name, node=self._node,
            )
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        if await self._still_registered(lock_name):
            logger.info("Resuming wait with request %s", self._node)
        else:
            self.lock_name = lock_name
            await self._register()
        try:
            rank = await self._resolve()
            while not rank.is_owner:
                self.state = LockState.WAITING
                await self._wait_for(rank.predecessor, deadline)
                rank = await self._resolve()
        except LockTimeoutError:
            self.state = LockState.FAILED
            if self.release_on_timeout:
                try:
                    await asyncio.to_thread(self._delete_own)
                except ReleaseError as e:
                    logger.warning("Could not drop %s after timeout: %s", self._node, e)
            raise
        except asyncio.CancelledError:
            self.state = LockState.FAILED
            raise
        except LockError:
            self.state = LockState.FAILED
            raise
        self.state = LockState.ACQUIRED
        logger.debug("%s acquired lock %r", self._node, lock_name)

    async def release(self) -> None:
        """Delete the request node. Safe to call repeatedly."""
        if not self._node:
            return
        logger.info("Releasing lock %s", self._node)
        await asyncio.to_thread(self._delete_own)
        self.state = LockState.RELEASED

    @asynccontextmanager
    async def hold(self, lock_name: str):
        await self.lock(lock_name)
        try:
            yield self
        finally:
            await self.release()

    async def _still_registered(self, lock_name: str) -> bool:
        if self.state is not LockState.FAILED or not self._node:
            return False
        try:
            registered = await asyncio.to_thread(self.store.exists, self._node)
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

    async def _register(self) -> None:
        self._node = ""
        pending = asyncio.ensure_future(asyncio.to_thread(
            self.store.create,
            join(self.base_path, self.lock_name), b"", ephemeral=True, sequence=True,
        ))
        try:
            node = await asyncio.shield(pending)
        except asyncio.CancelledError:
            # the create still completes in its worker thread; keep the node so release() finds it
            self.state = LockState.FAILED
            try:
                self._node = await pending
            except StoreError:
                logger.debug("Registration for %r failed after cancellation", self.lock_name)
            raise
        except StoreError as e:
            self.state = LockState.FAILED
            raise RegistrationError(
                f"Could not register request for lock {self.lock_name!r}: {e}",
                lock_name=self.lock_name,
            ) from e
        self._node = node
        self.state = LockState.REGISTERED

    async def _resolve(self) -> Rank:
        try:
            children = await asyncio.to_thread(self.store.children, self.base_path)
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

    async def _wait_for(self, predecessor: str, deadline: Optional[float]) -> None:
        path = join(self.base_path, predecessor)
        logger.info("%s is waiting for %s", self._node, path)
        while True:
            try:
                exists, notification = await asyncio.to_thread(self.store.exists_watch, path)
            except StoreError as e:
                raise WatchError(
                    f"Could not watch predecessor {path}: {e}",
                    lock_name=self.lock_name, node=self._node,
                ) from e
            if not exists:
                return
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            try:
                event = await asyncio.wait_for(self._fired(notification), remaining)
            except asyncio.TimeoutError:
                # fired between the timer and the cancel
                event = notification.event
                if event is None:
                    logger.warning("%s timed out waiting for %s", self._node, path)
                    raise LockTimeoutError(
                        f"Timed out after {self.timeout}s waiting for lock {self.lock_name!r}",
                        lock_name=self.lock_name, node=self._node,
                        predecessor=path, timeout=self.timeout,
                    ) from None
            if event.type is EventType.DELETED:
                return

    async def _fired(self, notification: Notification) -> WatchEvent:
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def deliver(event):
            if not future.done():
                future.set_result(event)

        def schedule(event):
            if not loop.is_closed():
                loop.call_soon_threadsafe(deliver, event)

        notification.add_callback(schedule)
        try:
            return await future
        finally:
            notification.cancel()

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
