import threading
import time


def wait_for(predicate, timeout=5.0):
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class LockThread(threading.Thread):
    """Runs ``locker.lock(name)`` in the background and records the outcome."""

    def __init__(self, locker, lock_name):
        super().__init__(daemon=True)
        self.locker = locker
        self.lock_name = lock_name
        self.acquired = threading.Event()
        self.error = None

    def run(self):
        try:
            self.locker.lock(self.lock_name)
        except Exception as ex:
            self.error = ex
            return
        self.acquired.set()
