"""
errors.py — Glyph Protocol Error Taxonomy

Codec failures are fatal for the record they concern and are raised before
any interpretation of unverified bytes. Network failures are retried by the
retrieval queue and, once exhausted, are isolated to a single chunk.

Proof verification is not an error path: `verify_proof` returns a bool.
"""
from typing import Optional


class GlyphError(Exception):
    """Base class for every error raised by glyph_sdk."""
    pass


# =============================================================================
# WIRE CODEC
# =============================================================================

class MalformedFrame(GlyphError):
    """Raised when a frame is shorter than its header or has an unknown version byte."""
    pass


class IntegrityFailure(GlyphError):
    """Raised when the stored integrity hash does not match the encrypted segment."""
    pass


class DecodeFailure(GlyphError):
    """Raised when decrypt/decompress/parse fails after integrity has passed."""
    pass


class OversizedPayload(GlyphError):
    """Raised at publish time when a frame exceeds the transport ceiling."""

    def __init__(self, size: int, ceiling: int):
        super().__init__(f"Frame is {size} bytes, ceiling is {ceiling}")
        self.size = size
        self.ceiling = ceiling


# =============================================================================
# CHUNKING / MERKLE / MANIFEST
# =============================================================================

class IrreducibleChunk(GlyphError):
    """Raised when a single character still does not fit under the ceiling."""
    pass


class InvalidTreeShape(GlyphError, ValueError):
    """Raised when a fixed-shape tree receives the wrong number of leaves."""
    pass


class InvalidManifest(GlyphError, ValueError):
    """Raised when a manifest fails structural validation."""
    pass


# =============================================================================
# RETRIEVAL
# =============================================================================

class NetworkFailure(GlyphError):
    """Raised when a ledger fetch or submit fails."""

    def __init__(self, message: str, retryable: bool = True, status_code: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class TransactionNotFound(NetworkFailure):
    """Raised when the ledger has no (visible) transaction for a reference."""

    def __init__(self, ref: str):
        super().__init__(f"Transaction not found: {ref}")
        self.ref = ref
