"""Tests for the content-addressed block stores."""

import base64
import hashlib

import pytest

from conftest import make_genesis

from dataverse_streams.blockstore import (
    FileBlockStore,
    MemoryBlockStore,
    decode_envelope,
    encode_envelope,
)
from dataverse_streams.exceptions import StorageIOError


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "file":
        return FileBlockStore(tmp_path / "blocks")
    return MemoryBlockStore()


class TestBlockStore:
    """Behaviour shared by every block store."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        assert await store.put("bafyabc", b"\x00data") is True
        assert await store.get("bafyabc") == b"\x00data"
        assert await store.has("bafyabc")

    @pytest.mark.asyncio
    async def test_missing(self, store):
        assert await store.get("bafymissing") is None
        assert not await store.has("bafymissing")

    @pytest.mark.asyncio
    async def test_append_only(self, store):
        await store.put("bafyabc", b"first")
        assert await store.put("bafyabc", b"second") is False
        assert await store.get("bafyabc") == b"first"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cid", ["bafy.genesis", "no:such", "../escape", "a/b", "x" * 300, ""])
    async def test_any_cid_string_is_a_key(self, store, cid):
        assert await store.get(cid) is None
        assert not await store.has(cid)
        assert await store.put(cid, b"data") is True
        assert await store.get(cid) == b"data"
        assert await store.has(cid)

    @pytest.mark.asyncio
    async def test_event_envelope(self, store):
        event = make_genesis("G", {"a": 1}, extra_blocks=(b"\xffsig",))
        assert await store.put_event(event) is True
        assert await store.get_event("G") == event
        assert await store.get_event("H") is None


class TestFileBlockStore:
    """File layout specifics."""

    @pytest.mark.asyncio
    async def test_file_named_by_encoded_cid(self, tmp_path):
        store = FileBlockStore(tmp_path)
        await store.put("bafyXY", b"data")

        shard = hashlib.sha256(b"bafyXY").hexdigest()[:2]
        path = tmp_path / shard / f"b{base64.b32encode(b'bafyXY').decode().rstrip('=').lower()}.block"
        assert store.path_for("bafyXY") == path
        assert path.read_bytes() == b"data"
        assert list((tmp_path / shard).glob(".tmp_*")) == []

    def test_keys_stay_inside_root(self, tmp_path):
        store = FileBlockStore(tmp_path)
        for cid in ["../escape", "a/b", "/abs", "x" * 300]:
            path = store.path_for(cid)
            assert path.parent.parent == tmp_path
            assert len(path.name) <= 210

    def test_case_distinct_cids_do_not_share_a_file(self, tmp_path):
        store = FileBlockStore(tmp_path)
        assert store.path_for("bafyAB") != store.path_for("bafyab")

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        await FileBlockStore(tmp_path).put("bafyabc", b"data")
        assert await FileBlockStore(tmp_path).get("bafyabc") == b"data"


class TestEnvelope:
    """Envelope encoding."""

    def test_envelope_is_canonical(self):
        event = make_genesis("G")
        assert encode_envelope(event) == encode_envelope(make_genesis("G"))
        assert decode_envelope(encode_envelope(event)) == event

    def test_corrupt_envelope(self):
        with pytest.raises(StorageIOError, match="decode_envelope"):
            decode_envelope(b"\xff not json")
