"""
Glyph MCP Server — Chunked Ledger Publishing Tools for LLM Agents

This is the MCP (Model Context Protocol) interface to the Glyph SDK.
It lets an agent chunk text, encode and decode wire frames, build and check
Merkle proofs, and read published stories back from the ledger.

Usage:
    python -m glyph_sdk.mcp_server

For Claude Desktop / Cursor, add to config:
    {
        "mcpServers": {
            "glyph": {
                "command": "python",
                "args": ["-m", "glyph_sdk.mcp_server"],
                "env": {"GLYPH_RPC_URL": "https://api.devnet.solana.com"}
            }
        }
    }

Environment:
    GLYPH_RPC_URL   ledger JSON-RPC endpoint
    GLYPH_DB        manifest store (default ./.glyph/store.db)
    GLYPH_*         protocol overrides, see glyph_sdk.config
"""
from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from glyph_sdk import __version__
from glyph_sdk.assembly import StoryViewer
from glyph_sdk.chunking import Chunker, preprocess_text
from glyph_sdk.compression import compression_stats
from glyph_sdk.config import ProtocolConfig
from glyph_sdk.errors import GlyphError
from glyph_sdk.ledger import JsonRpcLedgerClient
from glyph_sdk.merkle import MerkleTree, identity_root as compose_identity_root, verify_proof
from glyph_sdk.records import record_from_dict
from glyph_sdk.retrieval import ChunkReader, RateLimitedQueue
from glyph_sdk.storage import SqliteStore, StoryCache, load_manifest, list_manifests
from glyph_sdk.wire import WireCodec

# Initialize MCP server
mcp = FastMCP("glyph")

TOOL_ERRORS = (GlyphError, ValueError, TypeError, KeyError, IndexError)

# Globals (initialized on first use)
_config: Optional[ProtocolConfig] = None
_codec: Optional[WireCodec] = None
_store = None
_viewer: Optional[StoryViewer] = None


def _ensure_initialized():
    """Lazy initialization of config, codec, store and viewer."""
    global _config, _codec, _store, _viewer

    if _config is not None:
        return

    _config = ProtocolConfig.from_env()
    _codec = WireCodec(_config.codec)

    db_path = Path(os.environ.get("GLYPH_DB", "./.glyph/store.db"))
    db_path.parent.mkdir(parents=True, exist_ok=True)
    _store = SqliteStore(db_path)

    ledger = JsonRpcLedgerClient(_config.rpc_url, ceiling=_config.codec.payload_ceiling)
    reader = ChunkReader(ledger, RateLimitedQueue(_config.retrieval))
    _viewer = StoryViewer(reader, _codec, StoryCache(_store))


def _error(e: Exception) -> str:
    return json.dumps({"error": str(e), "type": type(e).__name__})


# ============================================================================
# TOOLS — Actions that LLM can take
# ============================================================================

@mcp.tool()
def status() -> str:
    """
    Get Glyph status: version, ledger endpoint, limits, stored manifests.

    Use this first to check what the server is configured against.
    """
    _ensure_initialized()

    info = {
        "version": __version__,
        "rpc_url": _config.rpc_url,
        "payload_ceiling": _config.codec.payload_ceiling,
        "wire_version": _config.codec.wire_version,
        "target_chunk_size": _config.chunking.target_chunk_size,
        "lane_count": _config.graph.lane_count,
        "stories": list_manifests(_store),
        "active_sessions": _viewer.active_sessions(),
    }
    return json.dumps(info, indent=2)


@mcp.tool()
def chunk_text(text: str, previous_hash: Optional[str] = None) -> str:
    """
    Split text into ledger-sized chunks.

    Args:
        text: Content to split
        previous_hash: Hash of the author's prior story, if any

    Returns:
        JSON with compression totals and one entry per chunk: index, hashes, sizes, text
    """
    _ensure_initialized()
    try:
        chunks = Chunker(_config.chunking, ceiling=_config.codec.payload_ceiling).chunk(text, previous_hash)
    except TOOL_ERRORS as e:
        return _error(e)

    stats = compression_stats(preprocess_text(text))
    return json.dumps({
        "total_chunks": len(chunks),
        "original_size": stats.original_size,
        "compressed_size": stats.compressed_size,
        "compression_ratio": round(stats.ratio, 4),
        "chunks": [{**c.to_dict(), "text": c.original_text} for c in chunks],
    }, indent=2)


@mcp.tool()
def encode_record(record_json: str, scheme: str = "base64") -> str:
    """
    Encode a record (JSON object with a "kind") into a transport payload.

    Args:
        record_json: e.g. {"kind": "post", "content": "hi", "author": "...", "ts": 1}
        scheme: "base64" or "base58"
    """
    _ensure_initialized()
    try:
        record = record_from_dict(json.loads(record_json))
        frame = _codec.encode(record)
        payload = _codec.to_transport(frame, scheme)
    except TOOL_ERRORS as e:
        return _error(e)

    return json.dumps({
        "kind": record.kind,
        "frame_size": len(frame),
        "payload_size": len(payload),
        "ceiling": _codec.ceiling,
        "payload": payload.decode("ascii"),
    }, indent=2)


@mcp.tool()
def decode_payload(payload: str) -> str:
    """
    Decode a transport payload (base64/base58 text, framed or legacy).

    Integrity is checked before anything is parsed.
    """
    _ensure_initialized()
    try:
        record = _codec.decode_transport(payload.strip())
    except TOOL_ERRORS as e:
        return _error(e)

    return json.dumps({
        "kind": record.kind,
        "legacy": getattr(record, "legacy", False),
        "record": record.to_dict(),
    }, indent=2)


@mcp.tool()
def merkle_root(leaves: List[str]) -> str:
    """Build a general Merkle tree over ordered leaf hashes and return its root."""
    try:
        tree = MerkleTree.build(leaves)
    except TOOL_ERRORS as e:
        return _error(e)
    return json.dumps({"root": tree.root, "depth": tree.depth, "leaf_count": len(tree.leaves)})


@mcp.tool()
def merkle_proof(leaves: List[str], index: int) -> str:
    """Inclusion proof for leaves[index] in the general tree over `leaves`."""
    try:
        tree = MerkleTree.build(leaves)
        proof = tree.proof(index)
    except TOOL_ERRORS as e:
        return _error(e)
    return json.dumps({
        "leaf": tree.leaves[index],
        "root": tree.root,
        "proof": [step.to_dict() for step in proof],
    }, indent=2)


@mcp.tool()
def check_proof(leaf: str, proof: List[dict], root: str) -> str:
    """
    Verify an inclusion proof ([{"hash": ..., "position": "left"|"right"}]).

    An invalid proof is a normal answer ({"valid": false}), not an error.
    """
    return json.dumps({"valid": verify_proof(leaf, proof, root)})


@mcp.tool()
def identity_root(lane_root: str, user_genesis: str, platform_genesis: str) -> str:
    """Compose the identity root from a lane tree root and the two genesis hashes."""
    try:
        root = compose_identity_root(lane_root, user_genesis, platform_genesis)
    except TOOL_ERRORS as e:
        return _error(e)
    return json.dumps({"identity_root": root})


@mcp.tool()
async def load_story(story_id: str, include_text: bool = True) -> str:
    """
    Fetch and assemble a stored story from the ledger.

    Unavailable chunks appear as placeholders; the result lists which
    chunks loaded and which failed.
    """
    _ensure_initialized()
    try:
        manifest = load_manifest(_store, story_id)
        if manifest is None:
            return json.dumps({"error": f"Story not found: {story_id}"})
        result = await _viewer.load(manifest)
    except TOOL_ERRORS as e:
        return _error(e)

    body = {"title": manifest.title, **result.to_dict()}
    if include_text:
        body["text"] = result.text
    return json.dumps(body, indent=2)


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Run the MCP server."""
    # stdout carries the stdio transport
    logging.basicConfig(
        stream=sys.stderr,
        level=os.environ.get("GLYPH_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    mcp.run(transport='stdio')


if __name__ == "__main__":
    main()
