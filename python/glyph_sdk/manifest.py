"""
manifest.py — Story Manifest

Off-chain index that maps chunk order to on-chain transaction references,
plus the summary a reader needs before fetching anything.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import InvalidManifest
from .hashing import is_hash


@dataclass(frozen=True)
class ManifestEntry:
    chunk_index: int
    transaction_ref: str
    content_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_index": self.chunk_index,
            "transaction_ref": self.transaction_ref,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestEntry":
        return cls(
            chunk_index=data["chunk_index"],
            transaction_ref=data["transaction_ref"],
            content_hash=data["content_hash"],
        )


@dataclass
class Manifest:
    story_id: str
    title: str
    author_key: str
    total_chunks: int
    content_length: int
    root_hash: str
    entries: List[ManifestEntry]
    previous_hash: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    tags: List[str] = field(default_factory=list)

    def validate(self) -> None:
        """Raise InvalidManifest on any structural problem."""
        if not self.story_id:
            raise InvalidManifest("Manifest has no story_id")
        if not self.title:
            raise InvalidManifest("Manifest has no title")
        if self.total_chunks < 1:
            raise InvalidManifest(f"total_chunks must be positive, got {self.total_chunks}")
        if len(self.entries) != self.total_chunks:
            raise InvalidManifest(
                f"Manifest lists {len(self.entries)} entries for {self.total_chunks} chunks"
            )
        if not is_hash(self.root_hash):
            raise InvalidManifest(f"Invalid root hash: {self.root_hash!r}")

        for i, entry in enumerate(sorted(self.entries, key=lambda e: e.chunk_index)):
            if entry.chunk_index != i:
                raise InvalidManifest(f"Chunk indexes are not dense: expected {i}, got {entry.chunk_index}")
            if not entry.transaction_ref:
                raise InvalidManifest(f"Chunk {i} has no transaction reference")
            if not is_hash(entry.content_hash):
                raise InvalidManifest(f"Chunk {i} has an invalid content hash")

    def ordered_entries(self) -> List[ManifestEntry]:
        return sorted(self.entries, key=lambda e: e.chunk_index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "story_id": self.story_id,
            "title": self.title,
            "author_key": self.author_key,
            "total_chunks": self.total_chunks,
            "content_length": self.content_length,
            "root_hash": self.root_hash,
            "previous_hash": self.previous_hash,
            "created_at": self.created_at,
            "tags": list(self.tags),
            "entries": [e.to_dict() for e in self.ordered_entries()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        try:
            return cls(
                story_id=data["story_id"],
                title=data["title"],
                author_key=data["author_key"],
                total_chunks=data["total_chunks"],
                content_length=data.get("content_length", 0),
                root_hash=data["root_hash"],
                entries=[ManifestEntry.from_dict(e) for e in data["entries"]],
                previous_hash=data.get("previous_hash"),
                created_at=data.get("created_at", 0.0),
                tags=list(data.get("tags", [])),
            )
        except (KeyError, TypeError) as e:
            raise InvalidManifest(f"Malformed manifest: {e}") from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, text: str) -> "Manifest":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidManifest(f"Manifest is not valid JSON: {e}") from e
        return cls.from_dict(data)
