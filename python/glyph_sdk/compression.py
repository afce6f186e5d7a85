"""
compression.py — Compression and Transport-Text Primitives

zlib (deflate) for payload bytes, base64 / base58 for ASCII-safe transport.
Both decoders raise DecodeFailure rather than leaking library errors.
"""
from __future__ import annotations

import base64
import binascii
import zlib
from dataclasses import dataclass

import base58

from .errors import DecodeFailure

COMPRESSION_LEVEL = 6


def compress(text: str) -> bytes:
    """UTF-8 encode and deflate."""
    return zlib.compress(text.encode("utf-8"), COMPRESSION_LEVEL)


def decompress(data: bytes) -> str:
    """Inflate and UTF-8 decode."""
    try:
        return zlib.decompress(data).decode("utf-8")
    except (zlib.error, UnicodeDecodeError) as e:
        raise DecodeFailure(f"Decompression failed: {e}") from e


def compress_bytes(data: bytes) -> bytes:
    return zlib.compress(data, COMPRESSION_LEVEL)


def decompress_bytes(data: bytes) -> bytes:
    try:
        return zlib.decompress(data)
    except zlib.error as e:
        raise DecodeFailure(f"Decompression failed: {e}") from e


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_base64(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeFailure(f"Invalid base64: {e}") from e


def to_base58(data: bytes) -> str:
    return base58.b58encode(data).decode("ascii")


def from_base58(text: str) -> bytes:
    try:
        return base58.b58decode(text)
    except ValueError as e:
        raise DecodeFailure(f"Invalid base58: {e}") from e


def encoded_size(data: bytes) -> int:
    """Length of `data` once base64-encoded: ceil(n / 3) * 4."""
    return ((len(data) + 2) // 3) * 4


@dataclass
class CompressionStats:
    original_size: int
    compressed_size: int

    @property
    def ratio(self) -> float:
        if self.original_size == 0:
            return 0.0
        return self.compressed_size / self.original_size


def compression_stats(text: str) -> CompressionStats:
    return CompressionStats(
        original_size=len(text.encode("utf-8")),
        compressed_size=len(compress(text)),
    )
