"""
wire.py — Secure Wire-Format Codec

Encode (every stage always runs, in this order):

    record → obfuscate keys → canonical JSON → deflate → cipher
           → SHA-256(ciphertext) → [version][hash(32)][ciphertext]

Decode is the inverse behind a fail-fast gate: length, version and
integrity are checked before a single ciphertext byte is interpreted.

Transport: frames travel as ASCII text (base64 or base58). Older memos may
carry one extra text layer, or no frame at all (plain compressed glyph).
`WireCodec.decode_transport` detects the layer structurally.

NOTE: XorNibbleCipher is obfuscation, NOT encryption. Anyone holding this
module can decrypt every frame. Use the `Cipher` protocol to plug in a real
cipher where confidentiality matters.
"""
from __future__ import annotations

import json
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from .compression import (
    compress_bytes,
    decompress,
    decompress_bytes,
    from_base58,
    from_base64,
    to_base58,
    to_base64,
)
from .config import FRAME_HEADER_SIZE, CodecConfig
from .errors import DecodeFailure, IntegrityFailure, MalformedFrame, OversizedPayload
from .hashing import hash_bytes, hash_content
from .records import Glyph, Record, record_from_dict

logger = logging.getLogger(__name__)

HASH_SIZE = 32
MIN_FRAME_SIZE = FRAME_HEADER_SIZE + 1

# =============================================================================
# FIELD OBFUSCATION TABLES
# =============================================================================

DEFAULT_FIELDS = {
    "kind": "a", "ver": "b", "ts": "c", "alias": "d", "parent": "e", "pub": "f",
    "seq": "g", "content": "h", "title": "i", "author": "j", "authorName": "k",
    "authorPublicKey": "l", "socialPost": "m", "type": "n", "filename": "o",
    "size": "p", "prev": "q", "tags": "r", "mentions": "s", "replies": "t",
    "recipient": "u", "encrypted": "v", "reaction": "w", "messageType": "x",
    "threadId": "y", "attachment": "z",
    "index": "A", "total": "B", "hash": "C", "story": "D", "network": "E",
    "protocol": "F", "epoch": "G", "identityRoot": "H",
}

DEFAULT_KIND_VALUES = {
    "glyffiti_genesis": "g",
    "user_genesis": "u",
    "post": "p",
    "glyph": "c",
    "user_graph_anchor": "x",
}


class FieldTable:
    """
    Static bijective name ↔ token table, plus optional value tables for
    enum-like fields. Applies to top-level keys only. Unknown keys and
    values pass through unchanged, so an unknown key that is spelled like a
    token cannot be told apart from it and is rejected.
    """

    def __init__(
        self,
        fields: Mapping[str, str],
        values: Optional[Mapping[str, Mapping[str, str]]] = None,
    ):
        self.fields = MappingProxyType(dict(fields))
        self.reverse = MappingProxyType(self._invert(self.fields, "field"))
        values = values or {}
        self.values = MappingProxyType({k: MappingProxyType(dict(v)) for k, v in values.items()})
        self.reverse_values = MappingProxyType({
            k: MappingProxyType(self._invert(v, f"value of {k!r}")) for k, v in self.values.items()
        })

    @staticmethod
    def _invert(table: Mapping[str, str], label: str) -> Dict[str, str]:
        inverse = {token: name for name, token in table.items()}
        if len(inverse) != len(table):
            raise ValueError(f"Obfuscation table for {label} is not bijective")
        clash = set(inverse) & set(table)
        if clash:
            raise ValueError(f"Obfuscation tokens collide with names for {label}: {sorted(clash)}")
        return inverse

    def obfuscate(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Names → tokens. Raises ValueError when the result would not decode back."""
        out = {}
        for key, value in data.items():
            if key not in self.fields and key in self.reverse:
                raise ValueError(f"Field {key!r} is reserved as an obfuscation token")
            table = self.values.get(key)
            if table is not None and isinstance(value, str):
                if value not in table and value in self.reverse_values[key]:
                    raise ValueError(f"Value {value!r} of {key!r} is reserved as an obfuscation token")
                value = table.get(value, value)
            out[self.fields.get(key, key)] = value
        return out

    def deobfuscate(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Tokens → names. A plain field name on the wire is ambiguous: DecodeFailure."""
        out = {}
        for token, value in data.items():
            if token in self.fields:
                raise DecodeFailure(f"Unobfuscated field name {token!r} on the wire")
            key = self.reverse.get(token, token)
            table = self.reverse_values.get(key)
            if table is not None and isinstance(value, str):
                if value in self.values[key]:
                    raise DecodeFailure(f"Unobfuscated value {value!r} of {key!r} on the wire")
                value = table.get(value, value)
            out[key] = value
        return out


DEFAULT_FIELD_TABLE = FieldTable(DEFAULT_FIELDS, {"kind": DEFAULT_KIND_VALUES})


# =============================================================================
# CIPHER
# =============================================================================

class Cipher(Protocol):
    def encrypt(self, data: bytes) -> bytes: ...

    def decrypt(self, data: bytes) -> bytes: ...


def _swap_nibbles(x: int) -> int:
    return ((x << 4) | (x >> 4)) & 0xFF


class XorNibbleCipher:
    """
    Position-keyed XOR, nibble swap, constant XOR. NOT cryptographically
    secure: it hides payloads from casual inspection and nothing more.

        c[i] = swap(p[i] ^ key[i % len] ^ (i & 0xFF)) ^ 0xAA
    """

    MASK = 0xAA

    def __init__(self, key: bytes):
        if not key:
            raise ValueError("Cipher key must not be empty")
        self.key = bytes(key)

    def encrypt(self, data: bytes) -> bytes:
        key, n = self.key, len(self.key)
        return bytes(
            _swap_nibbles(b ^ key[i % n] ^ (i & 0xFF)) ^ self.MASK
            for i, b in enumerate(data)
        )

    def decrypt(self, data: bytes) -> bytes:
        key, n = self.key, len(self.key)
        return bytes(
            _swap_nibbles(b ^ self.MASK) ^ key[i % n] ^ (i & 0xFF)
            for i, b in enumerate(data)
        )


# =============================================================================
# CODEC
# =============================================================================

# payload → candidate frame, or None when the layer does not apply
TransportStrategy = Callable[[bytes], Optional[bytes]]

TRANSPORT_SCHEMES = ("raw", "base64", "base58")


def _ascii(payload: bytes) -> Optional[str]:
    try:
        text = payload.decode("ascii").strip()
    except UnicodeDecodeError:
        return None
    return text or None


def _raw_frame(payload: bytes) -> Optional[bytes]:
    return payload


def _base64_frame(payload: bytes) -> Optional[bytes]:
    text = _ascii(payload)
    if text is None:
        return None
    try:
        return from_base64(text)
    except DecodeFailure:
        return None


def _base58_frame(payload: bytes) -> Optional[bytes]:
    text = _ascii(payload)
    if text is None:
        return None
    try:
        return from_base58(text)
    except DecodeFailure:
        return None


def _base58_wrapped_base64_frame(payload: bytes) -> Optional[bytes]:
    inner = _base58_frame(payload)
    if inner is None:
        return None
    return _base64_frame(inner)


DEFAULT_TRANSPORT_STRATEGIES: Sequence[TransportStrategy] = (
    _raw_frame,
    _base64_frame,
    _base58_frame,
    _base58_wrapped_base64_frame,
)


class WireCodec:
    """
    Record ↔ size-bounded binary frame.

    Args:
        config: ceiling, version byte, cipher key
        fields: obfuscation table
        cipher: overrides the default XorNibbleCipher built from config
    """

    def __init__(
        self,
        config: Optional[CodecConfig] = None,
        fields: FieldTable = DEFAULT_FIELD_TABLE,
        cipher: Optional[Cipher] = None,
        strategies: Sequence[TransportStrategy] = DEFAULT_TRANSPORT_STRATEGIES,
    ):
        self.config = config or CodecConfig()
        self.fields = fields
        self.cipher = cipher or XorNibbleCipher(self.config.cipher_key)
        self.strategies = tuple(strategies)

    @property
    def ceiling(self) -> int:
        return self.config.payload_ceiling

    # -------------------------------------------------------------------------
    # Encode
    # -------------------------------------------------------------------------

    def build_frame(self, record: Union[Record, Mapping[str, Any]]) -> bytes:
        """Run the full encode pipeline without the size gate."""
        data = record.to_dict() if isinstance(record, Record) else dict(record)
        if "kind" not in data:
            raise ValueError("Record has no 'kind' discriminant")

        obfuscated = self.fields.obfuscate(data)
        serialized = json.dumps(obfuscated, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        compressed = compress_bytes(serialized.encode("utf-8"))
        encrypted = self.cipher.encrypt(compressed)
        frame = bytes([self.config.wire_version]) + hash_bytes(encrypted) + encrypted

        logger.debug(
            f"Encoded {data['kind']}: json={len(serialized)}B compressed={len(compressed)}B "
            f"frame={len(frame)}B"
        )
        return frame

    def encode(self, record: Union[Record, Mapping[str, Any]]) -> bytes:
        """Build a frame, failing with OversizedPayload above the ceiling."""
        frame = self.build_frame(record)
        if len(frame) > self.ceiling:
            raise OversizedPayload(len(frame), self.ceiling)
        return frame

    def frame_size(self, record: Union[Record, Mapping[str, Any]]) -> int:
        return len(self.build_frame(record))

    # -------------------------------------------------------------------------
    # Decode
    # -------------------------------------------------------------------------

    def looks_like_frame(self, data: Optional[bytes]) -> bool:
        """Structural sniff: long enough and carries a supported version byte."""
        return (
            data is not None
            and len(data) >= MIN_FRAME_SIZE
            and data[0] == self.config.wire_version
        )

    def has_valid_integrity(self, frame: bytes) -> bool:
        return hash_bytes(frame[FRAME_HEADER_SIZE:]) == frame[1:FRAME_HEADER_SIZE]

    def decode_dict(self, frame: bytes) -> Dict[str, Any]:
        """Verify and decode a frame into its plain (de-obfuscated) dict."""
        frame = bytes(frame)
        if len(frame) < MIN_FRAME_SIZE:
            raise MalformedFrame(f"Frame too short: {len(frame)} bytes (minimum {MIN_FRAME_SIZE})")
        if frame[0] != self.config.wire_version:
            raise MalformedFrame(f"Unsupported wire version: 0x{frame[0]:02x}")
        if not self.has_valid_integrity(frame):
            raise IntegrityFailure("Integrity hash mismatch; payload is corrupt or tampered")

        compressed = self.cipher.decrypt(frame[FRAME_HEADER_SIZE:])
        raw = decompress_bytes(compressed)
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeFailure(f"Frame body is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise DecodeFailure(f"Frame body must be an object, got {type(parsed).__name__}")
        return self.fields.deobfuscate(parsed)

    def decode(self, frame: bytes) -> Record:
        """Verify and decode a frame into its typed record."""
        return record_from_dict(self.decode_dict(frame))

    # -------------------------------------------------------------------------
    # Transport text
    # -------------------------------------------------------------------------

    def to_transport(self, frame: bytes, scheme: str = "base64") -> bytes:
        if scheme == "raw":
            return bytes(frame)
        if scheme == "base64":
            return to_base64(frame).encode("ascii")
        if scheme == "base58":
            return to_base58(frame).encode("ascii")
        raise ValueError(f"Unknown transport scheme {scheme!r}, expected one of {TRANSPORT_SCHEMES}")

    def unwrap_transport(self, payload: bytes) -> Optional[bytes]:
        """
        Strip transport text layers and return the frame, or None when no
        strategy produces something frame-shaped.

        Candidates with a valid header are preferred when their integrity
        also checks out; otherwise the first frame-shaped candidate wins so
        that tampering surfaces as IntegrityFailure on decode.
        """
        shaped: List[bytes] = []
        for strategy in self.strategies:
            candidate = strategy(payload)
            if not self.looks_like_frame(candidate):
                continue
            if self.has_valid_integrity(candidate):
                return candidate
            shaped.append(candidate)
        return shaped[0] if shaped else None

    def decode_transport(self, payload: Union[bytes, str]) -> Record:
        """Decode whatever a ledger memo holds: framed or legacy."""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        frame = self.unwrap_transport(payload)
        if frame is not None:
            return self.decode(frame)

        legacy = decode_legacy_glyph(payload)
        if legacy is not None:
            logger.debug("Payload decoded via legacy plain-glyph format")
            return legacy
        raise MalformedFrame("Payload is neither a wire frame nor a legacy glyph")


def decode_legacy_glyph(payload: bytes) -> Optional[Glyph]:
    """
    Pre-frame memos hold base64 text of deflated chunk text, sometimes
    wrapped once more in base58. Returns None when neither form parses.
    """
    for strategy in (_base64_frame, _base58_wrapped_base64_frame):
        compressed = strategy(payload)
        if not compressed:
            continue
        try:
            text = decompress(compressed)
        except DecodeFailure:
            continue
        return Glyph(
            index=0,
            total=1,
            content=text,
            hash=hash_content(compressed),
            legacy=True,
        )
    return None
