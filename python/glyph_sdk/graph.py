"""
graph.py — User Graph Lanes and Anchors

A user's social state is partitioned into a fixed number of lanes (posts,
replies, likes, ...). Each lane root commits to that lane's items; the lane
tree root (UGR) commits to all lanes; the identity root binds the UGR to the
user's genesis and the platform genesis. An Anchor record publishes the
identity root for one epoch.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .config import GraphConfig
from .hashing import ZERO_HASH, Domain, hash_with_domain, item_hash
from .merkle import MerkleTree
from .records import Anchor

logger = logging.getLogger(__name__)


class Lane(IntEnum):
    """Assigned lanes. Indexes 8 and above are reserved."""
    POSTS = 0
    REPLIES = 1
    LIKES = 2
    FOLLOWS = 3
    STORIES = 4
    PROFILE = 5
    REVOCATIONS = 6
    BOOKMARKS = 7


def lane_root(items: Iterable[Union[bytes, str]]) -> str:
    """Domain-tagged root over a lane's items; ZERO_HASH for an empty lane."""
    leaves = [item_hash(item) for item in items]
    if not leaves:
        return ZERO_HASH
    return hash_with_domain(Domain.LANE_ROOT, MerkleTree.build(leaves).root)


def build_lane_roots(
    lane_items: Optional[Mapping[int, Iterable[Union[bytes, str]]]] = None,
    lane_count: int = 32,
) -> List[str]:
    """All `lane_count` lane roots, zero-filled where a lane has no items."""
    roots = [ZERO_HASH] * lane_count
    for lane, items in (lane_items or {}).items():
        index = int(lane)
        if not 0 <= index < lane_count:
            raise ValueError(f"Lane index must be between 0 and {lane_count - 1}, got {index}")
        roots[index] = lane_root(items)
    return roots


@dataclass
class AnchorBundle:
    record: Anchor
    lane_tree: MerkleTree
    identity_tree: MerkleTree

    @property
    def ugr(self) -> str:
        return self.lane_tree.root

    @property
    def identity_root(self) -> str:
        return self.identity_tree.root

    def lane_proof(self, lane: int):
        return self.lane_tree.proof(int(lane))


def build_anchor(
    user_genesis_hash: str,
    platform_genesis_hash: str,
    public_key: str,
    epoch: int,
    lane_items: Optional[Mapping[int, Iterable[Union[bytes, str]]]] = None,
    prev: Optional[str] = None,
    config: Optional[GraphConfig] = None,
) -> AnchorBundle:
    """Build lane tree, identity tree and the Anchor record for one epoch."""
    config = config or GraphConfig()
    roots = build_lane_roots(lane_items, config.lane_count)
    lane_tree = MerkleTree.lanes(roots, config.lane_count)
    identity_tree = MerkleTree.identity(lane_tree.root, user_genesis_hash, platform_genesis_hash)

    record = Anchor(identity_root=identity_tree.root, epoch=epoch, pub=public_key, prev=prev)
    record.validate()

    filled = sum(1 for r in roots if r != ZERO_HASH)
    logger.info(f"Anchor for {public_key[:8]}...: {filled}/{config.lane_count} lanes, epoch {epoch}")
    return AnchorBundle(record=record, lane_tree=lane_tree, identity_tree=identity_tree)


def should_publish_anchor(
    last_epoch_ms: Optional[int],
    now_ms: int,
    interval_ms: int = GraphConfig.anchor_interval_ms,
) -> bool:
    """True when no anchor exists yet or the last one is at least `interval_ms` old."""
    if last_epoch_ms is None:
        return True
    return now_ms - last_epoch_ms >= interval_ms


def lane_summary(roots: List[str]) -> Dict[str, str]:
    """Named lanes → root, for display."""
    return {lane.name.lower(): roots[lane] for lane in Lane if lane < len(roots)}
