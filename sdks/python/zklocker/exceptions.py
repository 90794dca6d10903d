"""zklocker exception classes."""


class ZkLockerError(Exception):
    """Base exception for all zklocker errors."""
    pass


class ValidationError(ZkLockerError):
    """Raised when input validation fails."""
    pass


class StoreError(ZkLockerError):
    """Raised when a coordination store operation fails."""

    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path


class NoNodeError(StoreError):
    """Raised when the addressed node (or its parent) does not exist."""
    pass


class NodeExistsError(StoreError):
    """Raised when creating a node that already exists."""
    pass


class ProvisioningError(ZkLockerError):
    """Raised when the lock base path cannot be created."""

    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path


class LockError(ZkLockerError):
    """Raised when lock operations fail."""

    def __init__(self, message: str, lock_name: str = None, node: str = None):
        super().__init__(message)
        self.lock_name = lock_name
        self.node = node


class RegistrationError(LockError):
    """Raised when the lock request node cannot be created."""
    pass


class ResolutionError(LockError):
    """Raised when the caller's request node is missing from the sibling list."""
    pass


class WatchError(LockError):
    """Raised when the watch on the predecessor node cannot be set."""
    pass


class LockTimeoutError(LockError):
    """Raised when the predecessor is not released within the configured timeout."""

    def __init__(self, message: str, lock_name: str = None, node: str = None,
                 predecessor: str = None, timeout: float = None):
        super().__init__(message, lock_name=lock_name, node=node)
        self.predecessor = predecessor
        self.timeout = timeout


class ReleaseError(LockError):
    """Raised when the request node cannot be deleted."""
    pass

