import threading

from sealkit.crypto_utils import GrantStore, KeyDirectory, SaltStore, WrappedKeyGrant
from sealkit.stores import InMemoryGrantStore, InMemoryKeyDirectory, InMemorySaltStore


def test_stores_satisfy_protocols():
    assert isinstance(InMemorySaltStore(), SaltStore)
    assert isinstance(InMemoryGrantStore(), GrantStore)
    assert isinstance(InMemoryKeyDirectory(), KeyDirectory)


def test_salt_insert_if_absent():
    store = InMemorySaltStore()
    assert store.insert_salt("c1", b"a" * 32)
    assert not store.insert_salt("c1", b"b" * 32)
    assert store.get_salt("c1") == b"a" * 32


def test_salt_insert_race_has_one_winner():
    store = InMemorySaltStore()
    barrier = threading.Barrier(16)
    results = []

    def worker(i):
        barrier.wait(timeout=10)
        results.append(store.insert_salt("c1", bytes([i]) * 32))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    winner = store.get_salt("c1")
    assert winner is not None and len(set(winner)) == 1


def test_grants_per_conversation():
    store = InMemoryGrantStore()
    store.put_grant(WrappedKeyGrant("c1", "alice", b"x"))
    store.put_grant(WrappedKeyGrant("c1", "bob", b"y"))
    store.put_grant(WrappedKeyGrant("c2", "alice", b"z"))
    store.put_grant(WrappedKeyGrant("c1", "alice", b"x2"))

    assert {g.user_id for g in store.grants_for("c1")} == {"alice", "bob"}
    assert store.get_grant("c1", "alice").wrapped_key == b"x2"
    assert store.get_grant("c3", "alice") is None


def test_directory_records():
    d = InMemoryKeyDirectory()
    assert d.get_public_key("alice") is None
    assert d.get_encrypted_private_key("alice") is None
    d.set_keys("alice", b"\x01" * 32, "sealed")
    assert d.get_public_key("alice") == b"\x01" * 32
    assert d.get_encrypted_private_key("alice") == "sealed"
