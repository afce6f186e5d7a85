"""
assembly.py — Progressive Story Assembly

Loads a story chunk by chunk in index order and hands the growing text to
the caller after every step. A chunk that cannot be fetched or verified is
replaced by a visible placeholder and loading moves on; one bad chunk never
aborts the story.

Each story runs in its own RetrievalSession. Cancelling a session stops it
before its next chunk and leaves already-assembled text intact. Sessions for
different stories may run concurrently; they share the reader's queue.
"""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .compression import compress
from .errors import DecodeFailure, GlyphError, IntegrityFailure
from .hashing import hash_content
from .manifest import Manifest, ManifestEntry
from .records import Glyph
from .retrieval import ChunkReader
from .storage import StoryCache
from .wire import WireCodec

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[int, str, bool], Any]
ProgressCallback = Callable[[int, int, float], Any]


def placeholder(index: int) -> str:
    """Marker inserted in place of an unavailable chunk."""
    return f"\n\n[chunk {index} unavailable]\n\n"


async def _notify(callback: Optional[Callable[..., Any]], *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class RetrievalSession:
    """Cooperative cancellation flag for one story load."""

    def __init__(self, story_id: str):
        self.story_id = story_id
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class AssemblyResult:
    story_id: str
    text: str
    total: int
    loaded: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)
    cancelled: bool = False
    from_cache: bool = False

    @property
    def complete(self) -> bool:
        """Every chunk loaded and verified."""
        return not self.cancelled and len(self.loaded) == self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "story_id": self.story_id,
            "total": self.total,
            "loaded": self.loaded,
            "failed": {str(k): v for k, v in self.failed.items()},
            "cancelled": self.cancelled,
            "complete": self.complete,
            "from_cache": self.from_cache,
            "length": len(self.text),
        }


class StoryViewer:
    def __init__(
        self,
        reader: ChunkReader,
        codec: Optional[WireCodec] = None,
        story_cache: Optional[StoryCache] = None,
    ):
        self.reader = reader
        self.codec = codec or WireCodec()
        self.story_cache = story_cache
        self.sessions: Dict[str, RetrievalSession] = {}

    async def load_chunk(self, entry: ManifestEntry) -> str:
        """Fetch, decode and verify one chunk against its manifest entry."""
        payload = await self.reader.fetch(entry.transaction_ref)
        record = self.codec.decode_transport(payload)

        if not isinstance(record, Glyph):
            raise DecodeFailure(f"Expected a glyph record, got {record.kind!r}")
        if record.hash != entry.content_hash:
            raise IntegrityFailure(f"Chunk {entry.chunk_index} hash does not match the manifest")
        if not record.legacy and record.index != entry.chunk_index:
            raise IntegrityFailure(
                f"Chunk {entry.chunk_index} transaction carries index {record.index}"
            )
        if not record.legacy and hash_content(compress(record.content)) != entry.content_hash:
            raise IntegrityFailure(f"Chunk {entry.chunk_index} text does not match its hash")
        return record.content

    async def load(
        self,
        manifest: Manifest,
        on_chunk: Optional[ChunkCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        session: Optional[RetrievalSession] = None,
    ) -> AssemblyResult:
        """
        Assemble a story.

        `on_chunk(index, assembled_text, is_complete)` fires after every
        chunk, placeholders included; `is_complete` is True on the last one.
        `on_progress(done, total, percent)` fires alongside it.
        """
        manifest.validate()
        story_id = manifest.story_id
        total = manifest.total_chunks

        if self.story_cache is not None:
            cached = self.story_cache.get(story_id, manifest.root_hash)
            if cached is not None:
                logger.info(f"Story {story_id} served from cache")
                await _notify(on_chunk, total - 1, cached, True)
                await _notify(on_progress, total, total, 100.0)
                return AssemblyResult(story_id, cached, total, list(range(total)), from_cache=True)

        session = session or RetrievalSession(story_id)
        self.sessions[story_id] = session
        result = AssemblyResult(story_id=story_id, text="", total=total)
        parts: List[str] = []

        try:
            for entry in manifest.ordered_entries():
                if session.cancelled:
                    logger.info(f"Story {story_id} cancelled after {len(parts)}/{total} chunks")
                    result.cancelled = True
                    break

                index = entry.chunk_index
                try:
                    parts.append(await self.load_chunk(entry))
                    result.loaded.append(index)
                except GlyphError as e:
                    log = logger.error if isinstance(e, IntegrityFailure) else logger.warning
                    log(f"Story {story_id} chunk {index} unavailable: {e}")
                    parts.append(placeholder(index))
                    result.failed[index] = str(e)

                result.text = "".join(parts)
                done = len(parts)
                await _notify(on_chunk, index, result.text, done == total)
                await _notify(on_progress, done, total, done * 100.0 / total)
        finally:
            if self.sessions.get(story_id) is session:
                del self.sessions[story_id]

        if result.complete and self.story_cache is not None:
            self.story_cache.put(story_id, result.text, manifest.root_hash)

        logger.info(
            f"Story {story_id}: {len(result.loaded)}/{total} chunks loaded, {len(result.failed)} failed"
        )
        return result

    def cancel(self, story_id: str) -> bool:
        session = self.sessions.get(story_id)
        if session is None:
            return False
        session.cancel()
        return True

    def active_sessions(self) -> List[str]:
        return list(self.sessions)
