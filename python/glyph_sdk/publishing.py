"""
publishing.py — Publish Pipeline

text → chunks → content Merkle tree → Glyph frames → ledger → Manifest

Chunk sizing is measured against the real transport text of a Glyph frame,
so every chunk that leaves the chunker is known to fit the ledger's ceiling.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from .chunking import Chunk, Chunker, SizeMeasure, preprocess_text
from .config import ProtocolConfig
from .errors import OversizedPayload
from .hashing import canonical_json, hash_content
from .ledger import LedgerClient, Signer
from .manifest import Manifest, ManifestEntry
from .merkle import MerkleTree, build_content_tree
from .records import Glyph, PlatformGenesis, Record, UserGenesis, genesis_hash
from .retrieval import RateLimitedQueue
from .storage import RecordStore, save_genesis, save_manifest
from .wire import WireCodec

logger = logging.getLogger(__name__)

# Slack for fields whose final values are unknown while measuring.
MEASURE_MARGIN = 12


@dataclass
class PublishedStory:
    manifest: Manifest
    tree: MerkleTree
    chunks: List[Chunk]


class Publisher:
    def __init__(
        self,
        ledger: LedgerClient,
        codec: Optional[WireCodec] = None,
        queue: Optional[RateLimitedQueue] = None,
        store: Optional[RecordStore] = None,
        config: Optional[ProtocolConfig] = None,
        scheme: str = "base64",
    ):
        self.config = config or ProtocolConfig()
        self.ledger = ledger
        self.codec = codec or WireCodec(self.config.codec)
        self.queue = queue or RateLimitedQueue(self.config.retrieval)
        self.store = store
        self.scheme = scheme

    @property
    def ceiling(self) -> int:
        return min(self.ledger.payload_size_ceiling(), self.codec.ceiling)

    def transport_size(self, record: Record) -> int:
        return len(self.codec.to_transport(self.codec.build_frame(record), self.scheme))

    def glyph_measure(self, story_id: str, previous_hash: Optional[str]) -> SizeMeasure:
        """Size of a chunk once wrapped as a transport-encoded Glyph frame."""
        def measure(text: str, payload: bytes) -> int:
            probe = Glyph(
                index=0,
                total=0,
                content=text,
                hash=hash_content(payload),
                prev=previous_hash or hash_content(b"\x00" + payload),
                story=story_id,
            )
            return self.transport_size(probe) + MEASURE_MARGIN
        return measure

    async def submit(self, payload: bytes, signer: Optional[Signer], label: str) -> str:
        async def _submit() -> str:
            return await self.ledger.submit_payload(payload, signer)
        return await self.queue.run(_submit, label=label)

    async def publish_record(self, record: Record, signer: Optional[Signer] = None) -> str:
        """Encode one record and submit it. Oversize is a hard failure."""
        frame = self.codec.encode(record)
        payload = self.codec.to_transport(frame, self.scheme)
        if len(payload) > self.ceiling:
            raise OversizedPayload(len(payload), self.ceiling)
        return await self.submit(payload, signer, label=record.kind)

    async def publish_genesis(
        self,
        record: Union[PlatformGenesis, UserGenesis],
        signer: Optional[Signer] = None,
    ) -> str:
        """Publish a genesis record and remember it under its hash."""
        ref = await self.publish_record(record, signer)
        anchor = genesis_hash(record)
        if self.store is not None:
            save_genesis(self.store, anchor, record)
        logger.info(f"Published {record.kind} {anchor[:12]}... as {ref}")
        return ref

    async def publish_story(
        self,
        text: str,
        title: str,
        author_key: str,
        user_genesis_hash: str,
        platform_genesis_hash: str,
        signer: Optional[Signer] = None,
        previous_hash: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        story_id: Optional[str] = None,
    ) -> PublishedStory:
        clean = preprocess_text(text)
        story_id = story_id or hash_content(f"{author_key}\n{title}\n{clean}")[:16]

        chunker = Chunker(
            self.config.chunking,
            ceiling=self.ceiling,
            measure=self.glyph_measure(story_id, previous_hash),
        )
        chunks = chunker.chunk(clean, previous_hash)

        metadata = {
            "story": story_id,
            "title": title,
            "author": author_key,
            "total_chunks": len(chunks),
            "tags": list(tags or []),
        }
        tree = build_content_tree(
            platform_genesis_hash,
            user_genesis_hash,
            hash_content(canonical_json(metadata)),
            [c.content_hash for c in chunks],
        )

        entries = []
        for chunk in chunks:
            record = Glyph(
                index=chunk.index,
                total=chunk.total_chunks,
                content=chunk.original_text,
                hash=chunk.content_hash,
                prev=chunk.previous_chunk_hash,
                story=story_id,
            )
            ref = await self.publish_record(record, signer)
            entries.append(ManifestEntry(chunk.index, ref, chunk.content_hash))
            logger.debug(f"Story {story_id}: chunk {chunk.index + 1}/{chunk.total_chunks} → {ref}")

        manifest = Manifest(
            story_id=story_id,
            title=title,
            author_key=author_key,
            total_chunks=len(chunks),
            content_length=len(clean),
            root_hash=tree.root,
            entries=entries,
            previous_hash=previous_hash,
            tags=list(tags or []),
        )
        manifest.validate()
        if self.store is not None:
            save_manifest(self.store, manifest)

        logger.info(f"Published story {story_id} ({title!r}): {len(chunks)} chunks, root {tree.root[:12]}...")
        return PublishedStory(manifest=manifest, tree=tree, chunks=chunks)
