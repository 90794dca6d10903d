import pytest

from zklocker import NodeExistsError, ProvisioningError, ResolutionError, StoreError, ValidationError
from zklocker.memory import MemorySession
from zklocker.paths import ensure_path, is_request_node, lock_requests, normalize_path, resolve_rank, validate_lock_name


# fmt: off
@pytest.mark.parametrize("path, expected", [
    ("/", "/"),
    ("", "/"),
    ("/test/", "/test"),
    ("test", "/test"),
    ("//a///b/", "/a/b"),
])
# fmt: on
def test_normalize_path_01(path, expected):
    assert normalize_path(path) == expected


@pytest.mark.parametrize("name", ["", "a/b", "/", None])
def test_validate_lock_name_01(name):
    with pytest.raises(ValidationError):
        validate_lock_name(name)


def test_ensure_path_01(session):
    """Every segment is created once and repeated calls are no-ops"""
    assert ensure_path(session, "/a/b/c/") == "/a/b/c"
    assert session.exists("/a") and session.exists("/a/b") and session.exists("/a/b/c")
    assert ensure_path(session, "a/b/c") == "/a/b/c"
    assert ensure_path(session, "/") == "/"
    assert session.children("/a/b/c") == []


class _RacingSession(MemorySession):
    """Reports nodes as absent, so create runs into nodes made by someone else."""

    def exists(self, path):
        return False


def test_ensure_path_02(store):
    session = store.session()
    ensure_path(session, "/a/b")
    racing = _RacingSession(store, 99)
    with pytest.raises(NodeExistsError):
        racing.create("/a")
    assert ensure_path(racing, "/a/b/c") == "/a/b/c"
    assert session.exists("/a/b/c")


def test_ensure_path_03(store):
    closed = store.session()
    closed.close()
    with pytest.raises(ProvisioningError) as ex:
        ensure_path(closed, "/a/b")
    assert ex.value.path == "/a"
    assert isinstance(ex.value.__cause__, StoreError)


# fmt: off
@pytest.mark.parametrize("child, lock_name, expected", [
    ("res0000000001", "res", True),
    ("res000000001", "res", False),
    ("res00000000012", "res", False),
    ("resource0000000001", "res", False),
    ("res", "res", False),
    ("other0000000001", "res", False),
    ("res-a0000000003", "res-a", True),
])
# fmt: on
def test_is_request_node_01(child, lock_name, expected):
    assert is_request_node(child, lock_name) is expected


def test_lock_requests_01():
    children = ["res0000000010", "other0000000002", "res0000000009", "resource0000000001", "res0000000011"]
    assert lock_requests(children, "res") == ["res0000000009", "res0000000010", "res0000000011"]


def test_resolve_rank_01():
    children = ["res0000000003", "res0000000001", "x0000000002", "res0000000002"]

    rank = resolve_rank(children, "res", "res0000000001")
    assert rank.position == 0
    assert rank.is_owner is True
    assert rank.predecessor is None

    rank = resolve_rank(children, "res", "res0000000003")
    assert rank.position == 2
    assert rank.is_owner is False
    assert rank.predecessor == "res0000000002"


@pytest.mark.parametrize("node", ["res0000000004", "res42"])
def test_resolve_rank_02(node):
    with pytest.raises(ResolutionError):
        resolve_rank(["res0000000001"], "res", node)
