import threading
import time

from zklocker import EventType, Notification, WatchEvent


def test_notification_01():
    """Firing delivers the event to waiters and only the first firing counts"""
    n = Notification("/a")
    assert n.fired is False
    assert n._fire(WatchEvent(EventType.CHANGED, "/a")) is True
    assert n._fire(WatchEvent(EventType.DELETED, "/a")) is False
    assert n.fired is True
    assert n.wait(0) == WatchEvent(EventType.CHANGED, "/a")


def test_notification_02():
    """Waiting times out with None, cancellation drops later firings"""
    n = Notification("/a")
    t0 = time.monotonic()
    assert n.wait(0.1) is None
    assert time.monotonic() - t0 >= 0.1
    assert n.cancel() is True
    assert n.cancelled is True
    assert n._fire(WatchEvent(EventType.DELETED, "/a")) is False
    assert n.wait(0) is None


def test_notification_03():
    """Cancelling after the firing is a no-op"""
    n = Notification("/a")
    n._fire(WatchEvent(EventType.DELETED, "/a"))
    assert n.cancel() is False
    assert n.wait(0).type is EventType.DELETED


def test_notification_04():
    """Negative timeouts behave like zero"""
    n = Notification("/a")
    assert n.wait(-1) is None


def test_notification_05():
    """Callbacks run on firing, or immediately when already fired"""
    received = []
    n = Notification("/a")
    n.add_callback(received.append)
    n._fire(WatchEvent(EventType.DELETED, "/a"))
    n.add_callback(received.append)
    assert [e.type for e in received] == [EventType.DELETED, EventType.DELETED]

    n = Notification("/b")
    n.add_callback(received.append)
    n.cancel()
    n._fire(WatchEvent(EventType.DELETED, "/b"))
    assert len(received) == 2


def test_notification_06():
    """A failing callback does not prevent delivery to the others"""
    received = []

    def broken(event):
        raise RuntimeError("boom")

    n = Notification("/a")
    n.add_callback(broken)
    n.add_callback(received.append)
    assert n._fire(WatchEvent(EventType.DELETED, "/a")) is True
    assert len(received) == 1


def test_notification_07():
    """A blocked waiter is woken from another thread"""
    n = Notification("/a")
    timer = threading.Timer(0.05, n._fire, args=(WatchEvent(EventType.DELETED, "/a"),))
    timer.start()
    event = n.wait(5)
    timer.join()
    assert event.type is EventType.DELETED
