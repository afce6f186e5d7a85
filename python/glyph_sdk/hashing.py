"""
hashing.py — Content and Domain-Separated Hashing

All hashes are SHA-256, carried as 64-char lowercase hex strings.

Domain separation prefixes the payload with a fixed 4-byte ASCII tag so that
structurally different data never collide under the same hash:

    hash_with_domain(tag, payload) = SHA256(tag || payload)

Pair hashing sorts its two hex inputs before concatenating them, which makes
it commutative:

    hash_pair(a, b) = SHA256(min(a, b) || max(a, b))
"""
from __future__ import annotations

import hashlib
import json
import re
from enum import Enum
from typing import Any, Dict, Union

HASH_HEX_LENGTH = 64
ZERO_HASH = "0" * HASH_HEX_LENGTH

_HEX_RE = re.compile(r"^[0-9a-f]{64}$")


class Domain(str, Enum):
    """
    4-byte domain tags.

    UGR, IDENTITY_ROOT and CHUNK_ROOT are registered so peers can recognise
    them, but no tree here applies them: the lane tree and the identity root
    combine nodes with untagged `hash_pair`, and the content tree carries its
    chunk hashes as plain leaves. Only genesis hashes, lane roots and lane
    items are tagged.
    """
    USER_GENESIS = "UGEN"
    UGR = "UGR "
    IDENTITY_ROOT = "IDEN"
    PLATFORM_GENESIS = "GGEN"
    LANE_ROOT = "LANE"
    CHUNK_ROOT = "CHUN"
    CONTENT_ITEM = "ITEM"


def _as_bytes(data: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    raise TypeError(f"Expected bytes or str, got {type(data).__name__}")


def hash_content(data: Union[bytes, str]) -> str:
    """SHA-256 hex digest of raw bytes (str is hashed as UTF-8)."""
    return hashlib.sha256(_as_bytes(data)).hexdigest()


def hash_bytes(data: Union[bytes, str]) -> bytes:
    """SHA-256 raw 32-byte digest."""
    return hashlib.sha256(_as_bytes(data)).digest()


def hash_with_domain(domain: Union[Domain, str], payload: Union[bytes, str]) -> str:
    """
    Domain-separated hash: SHA256(tag || payload).

    Raises ValueError for a tag that is not one of `Domain`.
    """
    try:
        tag = Domain(domain)
    except ValueError:
        valid = ", ".join(repr(d.value) for d in Domain)
        raise ValueError(f"Invalid domain: {domain!r}. Must be one of: {valid}") from None
    return hash_content(tag.value.encode("ascii") + _as_bytes(payload))


def hash_pair(a: str, b: str) -> str:
    """Commutative pair hash over two hex strings."""
    first, second = sorted((a, b))
    return hash_content(first + second)


def is_hash(value: Any) -> bool:
    """True for a 64-char lowercase hex string."""
    return isinstance(value, str) and bool(_HEX_RE.match(value))


def canonical_json(data: Dict[str, Any]) -> str:
    """Key-sorted, whitespace-free JSON."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def platform_genesis_hash(record: Dict[str, Any]) -> str:
    """Identity anchor of a platform genesis record."""
    return hash_with_domain(Domain.PLATFORM_GENESIS, canonical_json(record))


def user_genesis_hash(public_key: str, platform_hash: str, alias: str) -> str:
    """UGEN || public key || platform genesis hash || alias."""
    return hash_with_domain(Domain.USER_GENESIS, public_key + platform_hash + alias)


def item_hash(item: Union[bytes, str]) -> str:
    """Leaf hash of one item inside a lane."""
    return hash_with_domain(Domain.CONTENT_ITEM, item)
