"""
config.py — Protocol Configuration

Frozen dataclasses grouping every tunable of the protocol. Defaults mirror
the deployed network; `ProtocolConfig.from_env()` lets a host override them
through GLYPH_* environment variables.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace

# [version byte][32-byte integrity hash]
FRAME_HEADER_SIZE = 33

DEFAULT_CIPHER_KEY = bytes([0x47, 0x6C, 0x79, 0x66, 0x66, 0x69, 0x74, 0x69])


@dataclass(frozen=True)
class ChunkingConfig:
    target_chunk_size: int = 400
    tail_window: int = 200
    remainder_tolerance: float = 1.2

    def __post_init__(self):
        if self.target_chunk_size < 1:
            raise ValueError(f"target_chunk_size must be positive, got {self.target_chunk_size}")
        if self.tail_window < 1:
            raise ValueError(f"tail_window must be positive, got {self.tail_window}")
        if self.remainder_tolerance < 1.0:
            raise ValueError(f"remainder_tolerance must be >= 1.0, got {self.remainder_tolerance}")


@dataclass(frozen=True)
class CodecConfig:
    payload_ceiling: int = 566
    wire_version: int = 0x01
    cipher_key: bytes = DEFAULT_CIPHER_KEY

    def __post_init__(self):
        if self.payload_ceiling <= FRAME_HEADER_SIZE:
            raise ValueError(
                f"payload_ceiling must exceed the {FRAME_HEADER_SIZE}-byte header, "
                f"got {self.payload_ceiling}"
            )
        if not 0 <= self.wire_version <= 0xFF:
            raise ValueError(f"wire_version must fit in one byte, got {self.wire_version}")
        if not self.cipher_key:
            raise ValueError("cipher_key must not be empty")


@dataclass(frozen=True)
class RetrievalConfig:
    """Timings are in seconds."""
    min_request_interval: float = 0.5
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    cache_ttl: float = 300.0
    cache_max_size: int = 100

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.cache_max_size < 1:
            raise ValueError(f"cache_max_size must be positive, got {self.cache_max_size}")


@dataclass(frozen=True)
class GraphConfig:
    lane_count: int = 32
    anchor_interval_ms: int = 24 * 60 * 60 * 1000

    def __post_init__(self):
        n = self.lane_count
        if n < 1 or n & (n - 1):
            raise ValueError(f"lane_count must be a power of two, got {n}")


@dataclass(frozen=True)
class ProtocolConfig:
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    codec: CodecConfig = field(default_factory=CodecConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    graph: GraphConfig = field(default_factory=GraphConfig)
    rpc_url: str = "https://api.devnet.solana.com"

    @classmethod
    def from_env(cls, environ=None) -> "ProtocolConfig":
        """Build a config, overriding defaults from GLYPH_* variables."""
        env = os.environ if environ is None else environ
        base = cls()

        chunking = base.chunking
        if "GLYPH_TARGET_CHUNK_SIZE" in env:
            chunking = replace(chunking, target_chunk_size=int(env["GLYPH_TARGET_CHUNK_SIZE"]))

        codec = base.codec
        if "GLYPH_PAYLOAD_CEILING" in env:
            codec = replace(codec, payload_ceiling=int(env["GLYPH_PAYLOAD_CEILING"]))

        retrieval = base.retrieval
        if "GLYPH_MIN_INTERVAL" in env:
            retrieval = replace(retrieval, min_request_interval=float(env["GLYPH_MIN_INTERVAL"]))
        if "GLYPH_MAX_RETRIES" in env:
            retrieval = replace(retrieval, max_retries=int(env["GLYPH_MAX_RETRIES"]))
        if "GLYPH_CACHE_TTL" in env:
            retrieval = replace(retrieval, cache_ttl=float(env["GLYPH_CACHE_TTL"]))

        graph = base.graph
        if "GLYPH_LANE_COUNT" in env:
            graph = replace(graph, lane_count=int(env["GLYPH_LANE_COUNT"]))

        return cls(
            chunking=chunking,
            codec=codec,
            retrieval=retrieval,
            graph=graph,
            rpc_url=env.get("GLYPH_RPC_URL", base.rpc_url),
        )
