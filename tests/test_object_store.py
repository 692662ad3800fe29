"""Tests for the object store backends."""

import pytest

from jigsync.object_store import FilesystemObjectStore, InMemoryObjectStore


@pytest.mark.asyncio
async def test_in_memory_put_and_delete():
    store = InMemoryObjectStore()

    url = await store.put(b"data", "image/png", "rooms/u1/1.png")

    assert url == "memory://objects/rooms/u1/1.png"
    assert store.key_for(url) == "rooms/u1/1.png"
    assert store.objects["rooms/u1/1.png"] == (b"data", "image/png")

    await store.delete("rooms/u1/1.png")
    await store.delete("rooms/u1/1.png")
    assert store.objects == {}


@pytest.mark.asyncio
async def test_filesystem_put_and_delete(tmp_path):
    store = FilesystemObjectStore(tmp_path, "/media/")

    url = await store.put(b"data", "image/png", "rooms/u1/1.png")

    assert url == "/media/rooms/u1/1.png"
    assert (tmp_path / "rooms" / "u1" / "1.png").read_bytes() == b"data"
    assert store.key_for(url) == "rooms/u1/1.png"

    await store.delete("rooms/u1/1.png")
    assert not (tmp_path / "rooms" / "u1" / "1.png").exists()
    await store.delete("rooms/u1/1.png")


@pytest.mark.asyncio
async def test_filesystem_key_cannot_escape_root(tmp_path):
    store = FilesystemObjectStore(tmp_path / "media")

    url = await store.put(b"x", "image/png", "../../etc/passwd")

    assert url == "/media/etc/passwd"
    assert (tmp_path / "media" / "etc" / "passwd").exists()


@pytest.mark.asyncio
async def test_empty_key_rejected():
    with pytest.raises(ValueError):
        await InMemoryObjectStore().put(b"x", "image/png", "../")


def test_key_for_foreign_url():
    assert InMemoryObjectStore().key_for("https://cdn.example.com/a.png") is None
