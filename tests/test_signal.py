"""Tests for signal derivation, matching and index maintenance."""

import base64
import json

import pytest

from dataverse_streams.index import IndexMaintainer, extract_signal, matches, signal_contains


def encode_options(options: dict, urlsafe: bool = False) -> str:
    raw = json.dumps(options).encode("utf-8")
    encoded = base64.urlsafe_b64encode(raw) if urlsafe else base64.b64encode(raw)
    return encoded.decode("ascii")


class TestExtractSignal:
    """Default signal extraction from stream content."""

    def test_top_level_signal(self):
        assert extract_signal({"signal": {"kind": "post"}}) == {"kind": "post"}

    def test_options_object(self):
        content = {"options": {"signal": {"kind": "folder"}}}
        assert extract_signal(content) == {"kind": "folder"}

    def test_base64_options(self):
        content = {"options": encode_options({"signal": {"kind": "folder", "tags": ["a"]}})}
        assert extract_signal(content) == {"kind": "folder", "tags": ["a"]}

    def test_urlsafe_unpadded_options(self):
        options = encode_options({"signal": {"note": "??>>"}}, urlsafe=True).rstrip("=")
        assert extract_signal({"options": options}) == {"note": "??>>"}

    def test_top_level_signal_wins(self):
        content = {"signal": {"from": "top"}, "options": {"signal": {"from": "options"}}}
        assert extract_signal(content) == {"from": "top"}

    @pytest.mark.parametrize(
        "content",
        [
            {},
            {"signal": "not an object"},
            {"options": "!!not base64!!"},
            {"options": encode_options({"other": 1})},
            {"options": base64.b64encode(b"[1,2]").decode("ascii")},
        ],
    )
    def test_no_signal(self, content):
        assert extract_signal(content) is None


class TestSignalMatching:
    """Containment predicates and callables."""

    SIGNAL = {
        "kind": "post",
        "count": 1,
        "flag": True,
        "author": {"name": "ada", "verified": True},
        "tags": ["x", "y"],
    }

    @pytest.mark.parametrize(
        "predicate",
        [
            {},
            {"kind": "post"},
            {"author": {"name": "ada"}},
            {"tags": ["y"]},
            {"kind": "post", "author": {"verified": True}},
        ],
    )
    def test_contained(self, predicate):
        assert signal_contains(self.SIGNAL, predicate)

    @pytest.mark.parametrize(
        "predicate",
        [
            {"kind": "comment"},
            {"missing": 1},
            {"author": {"name": "bob"}},
            {"tags": ["z"]},
            {"count": True},
            {"flag": 1},
            {"author": "ada"},
        ],
    )
    def test_not_contained(self, predicate):
        assert not signal_contains(self.SIGNAL, predicate)

    def test_callable_predicate(self):
        assert matches(self.SIGNAL, lambda s: s["count"] > 0)
        assert not matches(self.SIGNAL, lambda s: s["count"] > 5)

    def test_missing_signal_never_matches(self):
        assert not matches(None, {})
        assert not matches(None, lambda s: True)

    def test_invalid_predicate(self):
        with pytest.raises(TypeError):
            matches(self.SIGNAL, ["kind"])


class TestIndexMaintainer:
    """Index folder upkeep inside a transaction."""

    @pytest.mark.asyncio
    async def test_refresh_upserts_folder(self, backend):
        maintainer = IndexMaintainer()
        async with backend.transaction() as tx:
            await maintainer.refresh(tx, "s1", "A", {"signal": {"kind": "post"}})
        async with backend.transaction() as tx:
            await maintainer.refresh(tx, "s1", "B", {"signal": {"kind": "draft"}})

        async with backend.transaction() as tx:
            folder = await tx.get_index_folder("s1")
        assert folder.tip == "B"
        assert folder.signal == {"kind": "draft"}

    @pytest.mark.asyncio
    async def test_query_returns_sorted_matches(self, backend):
        maintainer = IndexMaintainer()
        async with backend.transaction() as tx:
            await maintainer.refresh(tx, "s2", "B", {"signal": {"kind": "post"}})
            await maintainer.refresh(tx, "s1", "A", {"signal": {"kind": "post"}})
            await maintainer.refresh(tx, "s3", "C", {"signal": {"kind": "note"}})
            await maintainer.refresh(tx, "s4", "D", {})

        async with backend.transaction() as tx:
            assert await maintainer.query(tx, {"kind": "post"}) == ["s1", "s2"]
            assert await maintainer.query(tx, lambda s: True) == ["s1", "s2", "s3"]

    @pytest.mark.asyncio
    async def test_custom_extractor(self, memory_backend):
        maintainer = IndexMaintainer(lambda content: {"size": len(content)})
        async with memory_backend.transaction() as tx:
            folder = await maintainer.refresh(tx, "s1", "A", {"a": 1, "b": 2})
        assert folder.signal == {"size": 2}
