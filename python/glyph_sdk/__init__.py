"""
Glyph SDK
=========

Chunked, content-addressed publishing on top of a ledger's memo field:
  - chunking: bounded, hash-chained chunks cut at natural boundaries
  - merkle: content trees, fixed lane trees, identity composition, proofs
  - wire: versioned, integrity-checked, size-bounded frames
  - retrieval / assembly: rate-limited fetching and progressive reassembly

Ledger access and persistence sit behind small protocols (ledger, storage).
"""

from .config import (
    ChunkingConfig,
    CodecConfig,
    GraphConfig,
    ProtocolConfig,
    RetrievalConfig,
)
from .errors import (
    DecodeFailure,
    GlyphError,
    IntegrityFailure,
    InvalidManifest,
    InvalidTreeShape,
    IrreducibleChunk,
    MalformedFrame,
    NetworkFailure,
    OversizedPayload,
    TransactionNotFound,
)
from .hashing import (
    ZERO_HASH,
    Domain,
    hash_content,
    hash_pair,
    hash_with_domain,
    platform_genesis_hash,
    user_genesis_hash,
)
from .chunking import Chunk, Chunker, create_chunks, preprocess_text, reassemble
from .merkle import (
    MerkleTree,
    Position,
    ProofStep,
    TreeShape,
    build_content_tree,
    content_proof,
    identity_root,
    verify_identity_root,
    verify_proof,
)
from .graph import Lane, build_anchor, build_lane_roots, should_publish_anchor
from .records import Anchor, Glyph, PlatformGenesis, Post, UserGenesis, record_from_dict
from .wire import FieldTable, WireCodec, XorNibbleCipher
from .manifest import Manifest, ManifestEntry
from .storage import MemoryStore, SqliteStore, StoryCache
from .ledger import JsonRpcLedgerClient, MemoryLedger
from .retrieval import ChunkReader, RateLimitedQueue, TTLCache
from .assembly import AssemblyResult, RetrievalSession, StoryViewer
from .publishing import Publisher, PublishedStory

__version__ = "0.4.0"
__all__ = [
    # Config
    "ProtocolConfig",
    "ChunkingConfig",
    "CodecConfig",
    "RetrievalConfig",
    "GraphConfig",
    # Errors
    "GlyphError",
    "MalformedFrame",
    "IntegrityFailure",
    "DecodeFailure",
    "OversizedPayload",
    "IrreducibleChunk",
    "InvalidTreeShape",
    "InvalidManifest",
    "NetworkFailure",
    "TransactionNotFound",
    # Hashing
    "ZERO_HASH",
    "Domain",
    "hash_content",
    "hash_pair",
    "hash_with_domain",
    "platform_genesis_hash",
    "user_genesis_hash",
    # Chunking
    "Chunk",
    "Chunker",
    "create_chunks",
    "preprocess_text",
    "reassemble",
    # Merkle
    "MerkleTree",
    "TreeShape",
    "Position",
    "ProofStep",
    "build_content_tree",
    "content_proof",
    "identity_root",
    "verify_identity_root",
    "verify_proof",
    # Graph
    "Lane",
    "build_anchor",
    "build_lane_roots",
    "should_publish_anchor",
    # Records / wire
    "PlatformGenesis",
    "UserGenesis",
    "Post",
    "Glyph",
    "Anchor",
    "record_from_dict",
    "FieldTable",
    "WireCodec",
    "XorNibbleCipher",
    # Manifest / storage / ledger
    "Manifest",
    "ManifestEntry",
    "MemoryStore",
    "SqliteStore",
    "StoryCache",
    "MemoryLedger",
    "JsonRpcLedgerClient",
    # Retrieval
    "TTLCache",
    "RateLimitedQueue",
    "ChunkReader",
    "RetrievalSession",
    "StoryViewer",
    "AssemblyResult",
    # Publishing
    "Publisher",
    "PublishedStory",
]
