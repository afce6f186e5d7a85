"""
test_mcp_server.py — MCP Tool Surface Tests

Tools are plain functions under the FastMCP decorator, so they are called
directly. Server state is pointed at a temporary store.
"""

import json

import pytest
from glyph_sdk import mcp_server
from glyph_sdk.assembly import StoryViewer
from glyph_sdk.hashing import hash_content
from glyph_sdk.merkle import MerkleTree
from glyph_sdk.publishing import Publisher
from glyph_sdk.retrieval import ChunkReader
from glyph_sdk.storage import save_manifest


@pytest.fixture
def server(tmp_path, monkeypatch):
    monkeypatch.setenv("GLYPH_DB", str(tmp_path / "store.db"))
    monkeypatch.setenv("GLYPH_RPC_URL", "http://localhost:8899")
    for name in ("_config", "_codec", "_store", "_viewer"):
        monkeypatch.setattr(mcp_server, name, None)
    mcp_server._ensure_initialized()
    yield mcp_server
    mcp_server._store.close()


def _leaves(n):
    return [hash_content(str(i)) for i in range(n)]


class TestStatelessTools:
    """Merkle tools need no server state."""

    def test_merkle_root(self):
        leaves = _leaves(5)
        out = json.loads(mcp_server.merkle_root(leaves))
        assert out["root"] == MerkleTree.build(leaves).root
        assert out["leaf_count"] == 5

    def test_merkle_root_empty(self):
        assert "error" in json.loads(mcp_server.merkle_root([]))

    def test_proof_round_trip(self):
        leaves = _leaves(6)
        out = json.loads(mcp_server.merkle_proof(leaves, 4))
        valid = json.loads(mcp_server.check_proof(out["leaf"], out["proof"], out["root"]))
        assert valid == {"valid": True}

        forged = json.loads(mcp_server.check_proof(leaves[3], out["proof"], out["root"]))
        assert forged == {"valid": False}

    def test_proof_out_of_range(self):
        assert "error" in json.loads(mcp_server.merkle_proof(_leaves(2), 9))

    def test_identity_root(self):
        a, b, c = _leaves(3)
        out = json.loads(mcp_server.identity_root(a, b, c))
        assert out["identity_root"] == MerkleTree.identity(a, b, c).root


class TestCodecTools:
    def test_status(self, server):
        out = json.loads(server.status())
        assert out["rpc_url"] == "http://localhost:8899"
        assert out["payload_ceiling"] == 566
        assert out["stories"] == []

    def test_chunk_text(self, server):
        out = json.loads(server.chunk_text("word " * 300))
        assert out["total_chunks"] >= 2
        assert out["chunks"][1]["previous_chunk_hash"] == out["chunks"][0]["content_hash"]
        assert out["original_size"] == len("word " * 300) - 1
        assert 0 < out["compressed_size"] < out["original_size"]
        assert out["compression_ratio"] == round(out["compressed_size"] / out["original_size"], 4)

    def test_chunk_empty(self, server):
        assert "error" in json.loads(server.chunk_text("   "))

    def test_encode_decode(self, server):
        record = {"kind": "post", "content": "hello", "author": "k", "ts": 1}
        encoded = json.loads(server.encode_record(json.dumps(record)))
        assert encoded["frame_size"] <= encoded["ceiling"]

        decoded = json.loads(server.decode_payload(encoded["payload"]))
        assert decoded["kind"] == "post"
        assert decoded["record"] == record
        assert decoded["legacy"] is False

    def test_encode_base58(self, server):
        record = {"kind": "post", "content": "hello", "author": "k", "ts": 1}
        encoded = json.loads(server.encode_record(json.dumps(record), scheme="base58"))
        assert json.loads(server.decode_payload(encoded["payload"]))["record"] == record

    def test_encode_unknown_kind(self, server):
        out = json.loads(server.encode_record(json.dumps({"kind": "nope"})))
        assert out["type"] == "DecodeFailure"

    def test_decode_garbage(self, server):
        out = json.loads(server.decode_payload("!!!not a payload!!!"))
        assert out["type"] == "MalformedFrame"


class TestLoadStory:
    @pytest.mark.asyncio
    async def test_load_story(self, server, ledger, queue, story_text, genesis_hashes):
        published = await Publisher(ledger, queue=queue).publish_story(
            story_text, "Tide", "AuthorKey", *genesis_hashes
        )
        save_manifest(server._store, published.manifest)
        server._viewer = StoryViewer(ChunkReader(ledger, queue))

        out = json.loads(await server.load_story(published.manifest.story_id))
        assert out["title"] == "Tide"
        assert out["complete"] is True
        assert out["text"].startswith("The lighthouse keeper")

    @pytest.mark.asyncio
    async def test_unknown_story(self, server):
        out = json.loads(await server.load_story("missing"))
        assert "error" in out


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
