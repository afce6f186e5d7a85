"""
records.py — Wire Record Types

Every structure that travels in a frame is one of a closed set of record
types, discriminated by `kind`. Decoding reads the discriminant after the
frame's integrity has been verified and routes through RECORD_KINDS.

Unknown fields survive a round trip in `extra`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from .errors import DecodeFailure
from .hashing import platform_genesis_hash, user_genesis_hash

NoneType = type(None)


def _type_ok(value: Any, expected: tuple) -> bool:
    # bool is an int subclass but never a valid count or timestamp
    if isinstance(value, bool) and bool not in expected:
        return False
    return isinstance(value, expected)


@dataclass
class Record:
    """
    Base record. Subclasses set `kind`, `WIRE_KEYS` (attribute → key) and
    `WIRE_TYPES` (attribute → accepted types, checked on decode).
    """
    kind: ClassVar[str] = ""
    WIRE_KEYS: ClassVar[Dict[str, str]] = {}
    WIRE_TYPES: ClassVar[Dict[str, tuple]] = {}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind}
        for attr, key in self.WIRE_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        extra = getattr(self, "extra", None) or {}
        for key, value in extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        if data.get("kind") != cls.kind:
            raise DecodeFailure(f"Expected kind {cls.kind!r}, got {data.get('kind')!r}")

        by_key = {key: attr for attr, key in cls.WIRE_KEYS.items()}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "kind":
                continue
            if key in by_key:
                kwargs[by_key[key]] = value
            else:
                extra[key] = value

        for attr, value in kwargs.items():
            expected = cls.WIRE_TYPES.get(attr)
            if expected is not None and not _type_ok(value, expected):
                names = "/".join(t.__name__ for t in expected)
                raise DecodeFailure(
                    f"Invalid {cls.kind} record: {attr} must be {names}, got {type(value).__name__}"
                )

        try:
            return cls(**kwargs, extra=extra)
        except TypeError as e:
            raise DecodeFailure(f"Invalid {cls.kind} record: {e}") from e


@dataclass
class PlatformGenesis(Record):
    """Platform root of trust. Has no parent."""
    kind: ClassVar[str] = "glyffiti_genesis"
    WIRE_KEYS: ClassVar[Dict[str, str]] = {
        "network": "network", "ts": "ts", "ver": "ver", "protocol": "protocol",
    }
    WIRE_TYPES: ClassVar[Dict[str, tuple]] = {
        "network": (str,), "ts": (int,), "ver": (str,), "protocol": (str,),
    }

    network: str
    ts: int
    ver: str = "1.0.0"
    protocol: str = "glyph"
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UserGenesis(Record):
    """Per-user root of trust, parented to the platform genesis."""
    kind: ClassVar[str] = "user_genesis"
    WIRE_KEYS: ClassVar[Dict[str, str]] = {
        "parent": "parent", "pub": "pub", "alias": "alias", "ts": "ts", "seq": "seq", "ver": "ver",
    }
    WIRE_TYPES: ClassVar[Dict[str, tuple]] = {
        "parent": (str,), "pub": (str,), "alias": (str,), "ts": (int,), "seq": (int,), "ver": (int,),
    }

    parent: str
    pub: str
    alias: str
    ts: int
    seq: int = 0
    ver: int = 1
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Post(Record):
    kind: ClassVar[str] = "post"
    WIRE_KEYS: ClassVar[Dict[str, str]] = {
        "content": "content", "author": "author", "ts": "ts",
        "title": "title", "prev": "prev", "tags": "tags",
    }
    WIRE_TYPES: ClassVar[Dict[str, tuple]] = {
        "content": (str,), "author": (str,), "ts": (int,),
        "title": (str, NoneType), "prev": (str, NoneType), "tags": (list, NoneType),
    }

    content: str
    author: str
    ts: int
    title: Optional[str] = None
    prev: Optional[str] = None
    tags: Optional[List[str]] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Glyph(Record):
    """
    One published chunk.

    `hash` is the chunk's content hash (SHA-256 of its compressed payload);
    `content` is the chunk text. `legacy` marks records recovered from the
    pre-frame format and is never written to the wire.
    """
    kind: ClassVar[str] = "glyph"
    WIRE_KEYS: ClassVar[Dict[str, str]] = {
        "index": "index", "total": "total", "content": "content",
        "hash": "hash", "prev": "prev", "story": "story",
    }
    WIRE_TYPES: ClassVar[Dict[str, tuple]] = {
        "index": (int,), "total": (int,), "content": (str,), "hash": (str,),
        "prev": (str, NoneType), "story": (str, NoneType),
    }

    index: int
    total: int
    content: str
    hash: str
    prev: Optional[str] = None
    story: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    legacy: bool = field(default=False, compare=False)


@dataclass
class Anchor(Record):
    """User graph anchor: commits a user's lanes under their identity root."""
    kind: ClassVar[str] = "user_graph_anchor"
    WIRE_KEYS: ClassVar[Dict[str, str]] = {
        "identity_root": "identityRoot", "epoch": "epoch", "pub": "pub",
        "prev": "prev", "ver": "ver",
    }
    WIRE_TYPES: ClassVar[Dict[str, tuple]] = {
        "identity_root": (str,), "epoch": (int,), "pub": (str,), "prev": (str, NoneType), "ver": (int,),
    }

    identity_root: str
    epoch: int
    pub: str
    prev: Optional[str] = None
    ver: int = 1
    extra: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        if not isinstance(self.epoch, int) or self.epoch <= 0:
            raise ValueError(f"Invalid epoch value: {self.epoch!r}")


AnyRecord = Union[PlatformGenesis, UserGenesis, Post, Glyph, Anchor]

RECORD_KINDS: Dict[str, Type[Record]] = {
    cls.kind: cls for cls in (PlatformGenesis, UserGenesis, Post, Glyph, Anchor)
}


def record_from_dict(data: Dict[str, Any]) -> Record:
    """Route a decoded dict to its record type by `kind`."""
    if not isinstance(data, dict):
        raise DecodeFailure(f"Record must be an object, got {type(data).__name__}")
    kind = data.get("kind")
    cls = RECORD_KINDS.get(kind)
    if cls is None:
        raise DecodeFailure(f"Unknown record kind: {kind!r}")
    return cls.from_dict(data)


def genesis_hash(record: Union[PlatformGenesis, UserGenesis]) -> str:
    """Permanent identity anchor of a genesis record."""
    if isinstance(record, PlatformGenesis):
        return platform_genesis_hash(record.to_dict())
    if isinstance(record, UserGenesis):
        return user_genesis_hash(record.pub, record.parent, record.alias)
    raise TypeError(f"Not a genesis record: {type(record).__name__}")

