import pytest

from zklocker import EventType, NoNodeError, NodeExistsError, StoreError


def test_memory_create_01(session):
    assert session.exists("/") is True
    assert session.create("/a") == "/a"
    assert session.create("/a/b", b"data") == "/a/b"
    assert session.store.get("/a/b") == b"data"
    assert session.exists("/a/b") is True
    assert session.children("/a") == ["b"]

    with pytest.raises(NodeExistsError):
        session.create("/a")
    with pytest.raises(NoNodeError):
        session.create("/missing/child")
    with pytest.raises(NoNodeError):
        session.children("/missing")


@pytest.mark.parametrize("path", ["a", "/a/", "/a//b"])
def test_memory_create_02(session, path):
    with pytest.raises(StoreError):
        session.create(path)


def test_memory_sequence_01(session):
    """Sequence suffixes are 10 digits, zero padded and increasing per parent"""
    session.create("/locks")
    first = session.create("/locks/res", ephemeral=True, sequence=True)
    second = session.create("/locks/res", ephemeral=True, sequence=True)
    other = session.create("/locks/other", ephemeral=True, sequence=True)
    assert first == "/locks/res0000000000"
    assert second == "/locks/res0000000001"
    assert other == "/locks/other0000000002"
    assert sorted(session.children("/locks")) == [
        "other0000000002", "res0000000000", "res0000000001",
    ]


def test_memory_delete_01(session):
    session.create("/a")
    session.create("/a/b")
    with pytest.raises(StoreError):
        session.delete("/a")
    with pytest.raises(StoreError):
        session.delete("/a/b", version=3)
    session.delete("/a/b")
    session.delete("/a", version=0)
    assert session.exists("/a") is False
    with pytest.raises(NoNodeError):
        session.delete("/a")


def test_memory_ephemeral_01(store):
    """Closing a session removes its ephemeral nodes and fires their watches"""
    owner, observer = store.session(), store.session()
    owner.create("/locks")
    node = owner.create("/locks/res", ephemeral=True, sequence=True)
    with pytest.raises(StoreError):
        owner.create(node + "/child")

    exists, notification = observer.exists_watch(node)
    assert exists is True
    assert notification.fired is False

    owner.close()
    assert observer.exists("/locks") is True
    assert observer.exists(node) is False
    assert notification.wait(0).type is EventType.DELETED

    with pytest.raises(StoreError):
        owner.exists("/locks")
    observer.close()


def test_memory_watch_01(session):
    """Watches are one-shot and only set on existing nodes"""
    assert session.exists_watch("/missing") == (False, None)

    session.create("/a")
    _, n1 = session.exists_watch("/a")
    session.store.set("/a", b"x")
    assert n1.wait(0).type is EventType.CHANGED

    _, n2 = session.exists_watch("/a")
    session.delete("/a")
    assert n2.wait(0).type is EventType.DELETED
    assert n1.wait(0).type is EventType.CHANGED
