"""
chunking.py — Chunking Engine

Splits text into ordered, size-bounded, hash-chained chunks:

  1. preprocess_text()    — whitespace / line-ending normalization (idempotent)
  2. boundary walk        — cut near target size at paragraph > sentence > word
  3. size fit             — compress each slice; halve until it fits the ceiling
  4. chain                — chunk[i].previous_chunk_hash = chunk[i-1].content_hash

Concatenating the chunks' decompressed payloads in index order reproduces the
preprocessed text exactly.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .compression import compress, decompress, encoded_size
from .config import ChunkingConfig, CodecConfig
from .errors import IntegrityFailure, IrreducibleChunk
from .hashing import hash_content

logger = logging.getLogger(__name__)

# (text slice, compressed payload) -> size compared against the ceiling
SizeMeasure = Callable[[str, bytes], int]

SENTENCE_TERMINATORS = (". ", "? ", "! ")

_INLINE_WS_RE = re.compile(r"[ \t]+")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def preprocess_text(text: str) -> str:
    """
    Normalize text before chunking:
    - CRLF / CR → LF
    - Runs of spaces/tabs → one space
    - Trim spaces at both ends of each line
    - Collapse 3+ newlines to 2
    - Trim the whole text
    """
    if not isinstance(text, str):
        raise TypeError(f"Expected str, got {type(text).__name__}")

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _INLINE_WS_RE.sub(" ", text)
    text = "\n".join(line.strip(" ") for line in text.split("\n"))
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def find_natural_break(text: str, start: int, end: int, window: int = 200) -> int:
    """
    Choose where a chunk spanning text[start:end] should end.

    Searches the last `window` characters of the slice for, in order:
    a paragraph break, a sentence terminator, a word boundary (only in the
    back half of the window). Falls back to `end`, so the result is always
    in (start, end].
    """
    lo = max(start, end - window)
    region = text[lo:end]

    idx = region.rfind("\n\n")
    if idx != -1:
        return lo + idx + 2

    idx = max(region.rfind(t) for t in SENTENCE_TERMINATORS)
    if idx != -1:
        return lo + idx + 2

    idx = region.rfind(" ")
    if idx != -1 and idx > len(region) * 0.5:
        return lo + idx + 1

    return end


def estimate_chunk_count(text: str, target_chunk_size: int = 400) -> int:
    """Rough chunk count before size fitting."""
    if not text:
        return 0
    return math.ceil(len(preprocess_text(text)) / target_chunk_size)


def base64_measure(text: str, payload: bytes) -> int:
    """Default measure: size of the payload once base64-encoded."""
    return encoded_size(payload)


@dataclass(frozen=True)
class Chunk:
    """One bounded piece of content. Immutable."""
    index: int
    total_chunks: int
    payload: bytes
    content_hash: str
    previous_chunk_hash: Optional[str]
    original_text: str

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "total_chunks": self.total_chunks,
            "content_hash": self.content_hash,
            "previous_chunk_hash": self.previous_chunk_hash,
            "size": len(self.payload),
            "text_length": len(self.original_text),
        }


class Chunker:
    """
    Text → ordered list of Chunks.

    Args:
        config: boundary-walk parameters
        ceiling: size limit each chunk's measure must respect
        measure: size function; defaults to base64 size of the payload
    """

    def __init__(
        self,
        config: Optional[ChunkingConfig] = None,
        ceiling: Optional[int] = None,
        measure: Optional[SizeMeasure] = None,
    ):
        self.config = config or ChunkingConfig()
        self.ceiling = ceiling if ceiling is not None else CodecConfig().payload_ceiling
        self.measure = measure or base64_measure

    def split(self, text: str) -> List[str]:
        """Boundary walk over already-preprocessed text."""
        target = self.config.target_chunk_size
        limit = target * self.config.remainder_tolerance
        pieces: List[str] = []
        cursor = 0

        while cursor < len(text):
            if len(text) - cursor <= limit:
                pieces.append(text[cursor:])
                break
            end = find_natural_break(text, cursor, cursor + target, self.config.tail_window)
            pieces.append(text[cursor:end])
            cursor = end

        return pieces

    def fit(self, piece: str) -> List[Tuple[str, bytes]]:
        """
        Compress `piece`, halving it until every part fits the ceiling.

        Halving ignores natural boundaries. Uses an explicit stack so depth
        is bounded by the data, not the interpreter.
        """
        fitted: List[Tuple[str, bytes]] = []
        stack = [piece]

        while stack:
            part = stack.pop()
            payload = compress(part)
            size = self.measure(part, payload)
            if size <= self.ceiling:
                fitted.append((part, payload))
                continue
            if len(part) <= 1:
                raise IrreducibleChunk(
                    f"Single character {part!r} measures {size}, ceiling is {self.ceiling}"
                )
            mid = len(part) // 2
            # Pushed in reverse so the first half is processed first.
            stack.append(part[mid:])
            stack.append(part[:mid])

        if len(fitted) > 1:
            logger.debug(f"Oversized slice of {len(piece)} chars split into {len(fitted)} parts")
        return fitted

    def chunk(self, text: str, previous_hash: Optional[str] = None) -> List[Chunk]:
        """
        Produce the final chunk list.

        `previous_hash` links chunk 0 to the author's prior story or genesis;
        None marks the first content ever.
        """
        clean = preprocess_text(text)
        if not clean:
            raise ValueError("Cannot chunk empty text")

        parts: List[Tuple[str, bytes]] = []
        for piece in self.split(clean):
            parts.extend(self.fit(piece))

        total = len(parts)
        chunks: List[Chunk] = []
        prev = previous_hash
        for i, (part, payload) in enumerate(parts):
            content_hash = hash_content(payload)
            chunks.append(Chunk(
                index=i,
                total_chunks=total,
                payload=payload,
                content_hash=content_hash,
                previous_chunk_hash=prev,
                original_text=part,
            ))
            prev = content_hash

        logger.debug(f"Chunked {len(clean)} chars into {total} chunks")
        return chunks


def create_chunks(
    text: str,
    previous_hash: Optional[str] = None,
    config: Optional[ChunkingConfig] = None,
    ceiling: Optional[int] = None,
    measure: Optional[SizeMeasure] = None,
) -> List[Chunk]:
    """Convenience wrapper around Chunker.chunk()."""
    return Chunker(config, ceiling, measure).chunk(text, previous_hash)


def reassemble(chunks: Sequence[Chunk]) -> str:
    """
    Verify and join chunks back into text.

    Raises ValueError for a non-dense index set and IntegrityFailure for a
    hash or chain mismatch.
    """
    ordered = sorted(chunks, key=lambda c: c.index)
    if [c.index for c in ordered] != list(range(len(ordered))):
        raise ValueError("Chunk indexes must be dense and zero-based")

    parts = []
    for i, chunk in enumerate(ordered):
        if hash_content(chunk.payload) != chunk.content_hash:
            raise IntegrityFailure(f"Chunk {i} payload does not match its content hash")
        if i > 0 and chunk.previous_chunk_hash != ordered[i - 1].content_hash:
            raise IntegrityFailure(f"Chunk {i} breaks the hash chain")
        parts.append(decompress(chunk.payload))
    return "".join(parts)
