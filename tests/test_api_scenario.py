"""End-to-end backup session against the REST server.

Walks through what a restic client does: create the repository, upload
config/keys/data/index/snapshot, take and release a lock, list and read
everything back, then prune in append-only mode.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from restserver.storage.memory_store import InMemoryObjectStore


def blob_id(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@pytest.fixture(params=["filesystem", "memory"])
def session_client(
    request: pytest.FixtureRequest, make_client: Callable[..., TestClient]
) -> TestClient:
    """Run each scenario against both backends."""
    if request.param == "memory":
        return make_client(object_store=InMemoryObjectStore())
    return make_client()


class TestBackupSession:
    """A full client session."""

    def test_backup_and_restore(self, session_client: TestClient) -> None:
        client = session_client
        repo = "/backups"

        assert client.post(f"{repo}?create=true").status_code == 200
        assert client.head(f"{repo}/config").status_code == 404
        assert client.post(f"{repo}/config", content=b"repo-config").status_code == 200

        key = b"key-file"
        assert client.post(f"{repo}/keys/{blob_id(key)}", content=key).status_code == 200

        lock = b"lock-file"
        lock_id = blob_id(lock)
        assert client.post(f"{repo}/locks/{lock_id}", content=lock).status_code == 200

        packs = [f"pack-{i}".encode() * 1000 for i in range(5)]
        for pack in packs:
            assert client.post(f"{repo}/data/{blob_id(pack)}", content=pack).status_code == 200

        index = b"index-file"
        snapshot = b"snapshot-file"
        client.post(f"{repo}/index/{blob_id(index)}", content=index)
        client.post(f"{repo}/snapshots/{blob_id(snapshot)}", content=snapshot)

        assert client.delete(f"{repo}/locks/{lock_id}").status_code == 200
        assert client.get(f"{repo}/locks/").json() == []

        # Restore side
        assert client.get(f"{repo}/config").content == b"repo-config"
        assert client.get(f"{repo}/snapshots/").json() == [blob_id(snapshot)]
        assert client.get(f"{repo}/keys/").json() == [blob_id(key)]

        listed = client.get(f"{repo}/data/").json()
        assert listed == sorted(blob_id(p) for p in packs)

        for pack in packs:
            response = client.get(f"{repo}/data/{blob_id(pack)}")
            assert response.content == pack
            assert hashlib.sha256(response.content).hexdigest() == blob_id(pack)

    def test_append_only_prune_is_refused(
        self, make_client: Callable[..., TestClient]
    ) -> None:
        store = InMemoryObjectStore()
        writer = make_client(object_store=store)
        guarded = make_client(object_store=store, append_only=True)

        writer.post("/?create=true")
        pack = b"pack"
        writer.post(f"/data/{blob_id(pack)}", content=pack)
        writer.post("/snapshots/s1", content=b"snap")

        assert guarded.post("/locks/l1", content=b"lock").status_code == 200
        assert guarded.delete(f"/data/{blob_id(pack)}").status_code == 403
        assert guarded.delete("/snapshots/s1").status_code == 403
        assert guarded.delete("/config").status_code == 403
        assert guarded.delete("/locks/l1").status_code == 200

        assert guarded.get("/data/").json() == [blob_id(pack)]
