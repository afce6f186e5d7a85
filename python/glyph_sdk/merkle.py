"""
merkle.py — Merkle Tree Engine

One pairwise primitive, three shapes:

  GENERAL   — any non-empty ordered leaf list (content trees)
  LANES     — exactly N leaves, N a power of two (user graph root)
  IDENTITY  — exactly 3 leaves, composed as
                  hash_pair(hash_pair(lane_root, user_genesis), platform_genesis)

Odd-count policy (GENERAL): the unpaired trailing node of a level is paired
with a copy of itself. `levels` stores nodes without the padding copy, so
levels[i+1][j] = hash_pair(levels[i][2j], levels[i][2j+1] or levels[i][2j]).

Because hash_pair sorts its inputs, a proof step's `position` does not change
the folded value. It is recorded and validated but carries no security weight.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence, Union

from .errors import InvalidTreeShape
from .hashing import hash_pair

CONTENT_LEAF_OFFSET = 3
DEFAULT_LANE_COUNT = 32
IDENTITY_LEAF_COUNT = 3


class TreeShape(str, Enum):
    GENERAL = "general"
    LANES = "lanes"
    IDENTITY = "identity"


class Position(str, Enum):
    """Side on which the sibling sits."""
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class ProofStep:
    sibling: str
    position: Position

    def to_dict(self) -> Dict[str, str]:
        return {"hash": self.sibling, "position": self.position.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProofStep":
        return cls(sibling=data["hash"], position=Position(data["position"]))


MerkleProof = List[ProofStep]


def _pair_level(level: Sequence[str]) -> List[str]:
    parents = []
    for j in range(0, len(level), 2):
        left = level[j]
        right = level[j + 1] if j + 1 < len(level) else left
        parents.append(hash_pair(left, right))
    return parents


def _is_power_of_two(n: int) -> bool:
    return n > 0 and n & (n - 1) == 0


@dataclass
class MerkleTree:
    """Binary hash tree. Read-only once built."""
    leaves: List[str]
    levels: List[List[str]]
    shape: TreeShape = TreeShape.GENERAL
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def root(self) -> str:
        return self.levels[-1][0]

    @property
    def depth(self) -> int:
        return len(self.levels) - 1

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def build(cls, leaves: Iterable[str]) -> "MerkleTree":
        """General tree over an ordered, non-empty leaf list."""
        leaves = list(leaves)
        if not leaves:
            raise ValueError("Cannot build a Merkle tree with no leaves")

        levels = [leaves]
        current = leaves
        while len(current) > 1:
            current = _pair_level(current)
            levels.append(current)
        return cls(leaves=leaves, levels=levels, shape=TreeShape.GENERAL)

    @classmethod
    def lanes(cls, lane_roots: Iterable[str], lane_count: int = DEFAULT_LANE_COUNT) -> "MerkleTree":
        """Fixed lane tree: exactly `lane_count` leaves, a power of two."""
        lane_roots = list(lane_roots)
        if not _is_power_of_two(lane_count):
            raise InvalidTreeShape(f"Lane count must be a power of two, got {lane_count}")
        if len(lane_roots) != lane_count:
            raise InvalidTreeShape(
                f"Lane tree requires exactly {lane_count} lane roots, got {len(lane_roots)}"
            )
        tree = cls.build(lane_roots)
        tree.shape = TreeShape.LANES
        tree.meta["lane_count"] = lane_count
        return tree

    @classmethod
    def identity(cls, lane_root: str, user_genesis: str, platform_genesis: str) -> "MerkleTree":
        """Fixed 3-leaf identity composition."""
        inner = hash_pair(lane_root, user_genesis)
        root = hash_pair(inner, platform_genesis)
        leaves = [lane_root, user_genesis, platform_genesis]
        return cls(
            leaves=leaves,
            levels=[leaves, [inner, platform_genesis], [root]],
            shape=TreeShape.IDENTITY,
        )

    # -------------------------------------------------------------------------
    # Proofs
    # -------------------------------------------------------------------------

    def proof(self, index: int) -> MerkleProof:
        """Inclusion proof for leaf `index`, ordered leaf → root."""
        if not 0 <= index < len(self.leaves):
            raise IndexError(f"Leaf index {index} out of range (0-{len(self.leaves) - 1})")

        if self.shape is TreeShape.IDENTITY:
            return self._identity_proof(index)

        steps: MerkleProof = []
        idx = index
        for level in self.levels[:-1]:
            sibling_idx = idx ^ 1
            if sibling_idx >= len(level):
                sibling_idx = idx
            position = Position.LEFT if idx % 2 else Position.RIGHT
            steps.append(ProofStep(level[sibling_idx], position))
            idx //= 2
        return steps

    def _identity_proof(self, index: int) -> MerkleProof:
        lane_root, user_genesis, platform_genesis = self.leaves
        inner = self.levels[1][0]
        if index == 0:
            return [ProofStep(user_genesis, Position.RIGHT), ProofStep(platform_genesis, Position.RIGHT)]
        if index == 1:
            return [ProofStep(lane_root, Position.LEFT), ProofStep(platform_genesis, Position.RIGHT)]
        return [ProofStep(inner, Position.LEFT)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "shape": self.shape.value,
            "leaf_count": len(self.leaves),
            "depth": self.depth,
            "levels": self.levels,
            **self.meta,
        }


def verify_proof(leaf: str, proof: Sequence[Union[ProofStep, Dict[str, Any]]], root: str) -> bool:
    """
    Fold `proof` over `leaf` and compare with `root`.

    Never raises: a malformed proof is just an invalid one.
    """
    try:
        acc = leaf
        for step in proof:
            if not isinstance(step, ProofStep):
                step = ProofStep.from_dict(step)
            if not isinstance(step.sibling, str) or not isinstance(acc, str):
                return False
            if Position(step.position) is Position.LEFT:
                acc = hash_pair(step.sibling, acc)
            else:
                acc = hash_pair(acc, step.sibling)
        return acc == root
    except (KeyError, TypeError, ValueError, AttributeError):
        return False


# =============================================================================
# CONTENT AND IDENTITY HELPERS
# =============================================================================

def build_content_tree(
    platform_genesis_hash: str,
    user_genesis_hash: str,
    metadata_hash: str,
    chunk_hashes: Sequence[str],
) -> MerkleTree:
    """[platform genesis, user genesis, metadata, chunk_0 .. chunk_k]"""
    if not chunk_hashes:
        raise ValueError("A content tree needs at least one chunk hash")
    leaves = [platform_genesis_hash, user_genesis_hash, metadata_hash, *chunk_hashes]
    return MerkleTree.build(leaves)


def content_proof(tree: MerkleTree, chunk_index: int) -> MerkleProof:
    return tree.proof(CONTENT_LEAF_OFFSET + chunk_index)


def identity_root(lane_root: str, user_genesis: str, platform_genesis: str) -> str:
    return MerkleTree.identity(lane_root, user_genesis, platform_genesis).root


def verify_identity_root(
    expected_root: str,
    lane_root: str,
    user_genesis: str,
    platform_genesis: str,
) -> bool:
    """Recompute the two-step identity composition and compare."""
    try:
        return identity_root(lane_root, user_genesis, platform_genesis) == expected_root
    except TypeError:
        return False
