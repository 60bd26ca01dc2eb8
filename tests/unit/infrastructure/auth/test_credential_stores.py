import pytest

from restpipe.infrastructure.auth.credential_stores import (
    DiskCredentialStore, MemoryCredentialStore, NoopCredentialStore,
)


@pytest.fixture
def disk_store(tmp_path):
    store = DiskCredentialStore(tmp_path / "tokens")
    yield store
    store.close()


@pytest.mark.parametrize("store_factory", [MemoryCredentialStore, "disk"])
def test_store_fetch_delete(store_factory, tmp_path, credential_factory):
    store = DiskCredentialStore(tmp_path / "tokens") if store_factory == "disk" else store_factory()
    credential = credential_factory()

    store.store_latest("alice", credential)
    store.store_refresh_token("alice", "refresh-token")

    assert store.fetch_latest("alice") == credential
    assert store.fetch_refresh_token("alice") == "refresh-token"
    assert store.fetch_latest("bob") is None

    store.delete_latest("alice")
    store.delete_refresh_token("alice")
    assert store.fetch_latest("alice") is None
    assert store.fetch_refresh_token("alice") is None


def test_deleting_missing_records_is_harmless(disk_store):
    disk_store.delete_latest("nobody")
    disk_store.delete_refresh_token("nobody")


def test_disk_store_survives_reopening(tmp_path, credential_factory):
    credential = credential_factory()
    first = DiskCredentialStore(tmp_path / "tokens")
    first.store_latest("alice", credential)
    first.close()

    second = DiskCredentialStore(tmp_path / "tokens")
    try:
        assert second.fetch_latest("alice") == credential
    finally:
        second.close()


def test_disk_store_ignores_unreadable_records(disk_store, caplog):
    disk_store._cache.set("latest:alice", {"access_token": "abc"})

    assert disk_store.fetch_latest("alice") is None
    assert "unreadable" in caplog.text


def test_disk_store_clear(disk_store, credential_factory):
    disk_store.store_latest("alice", credential_factory())
    disk_store.store_latest("bob", credential_factory())

    disk_store.clear()

    assert disk_store.fetch_latest("alice") is None
    assert disk_store.fetch_latest("bob") is None


def test_noop_store_keeps_nothing(credential_factory):
    store = NoopCredentialStore()
    store.store_latest("alice", credential_factory())
    store.store_refresh_token("alice", "refresh-token")

    assert store.fetch_latest("alice") is None
    assert store.fetch_refresh_token("alice") is None
