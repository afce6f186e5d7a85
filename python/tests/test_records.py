"""
test_records.py — Record Tagged Union and Lane/Anchor Tests
"""

import pytest
from glyph_sdk.config import GraphConfig
from glyph_sdk.errors import DecodeFailure
from glyph_sdk.graph import (
    Lane,
    build_anchor,
    build_lane_roots,
    lane_root,
    lane_summary,
    should_publish_anchor,
)
from glyph_sdk.hashing import ZERO_HASH, Domain, hash_content, hash_with_domain, item_hash, user_genesis_hash
from glyph_sdk.merkle import MerkleTree, verify_identity_root, verify_proof
from glyph_sdk.records import (
    RECORD_KINDS,
    Anchor,
    Glyph,
    PlatformGenesis,
    Post,
    UserGenesis,
    genesis_hash,
    record_from_dict,
)


class TestRecordKinds:
    """Discriminant routing."""

    def test_all_kinds_registered(self):
        assert set(RECORD_KINDS) == {
            "glyffiti_genesis", "user_genesis", "post", "glyph", "user_graph_anchor",
        }

    def test_route_by_kind(self):
        record = record_from_dict({"kind": "post", "content": "x", "author": "k", "ts": 1})
        assert isinstance(record, Post)

    def test_unknown_kind(self):
        with pytest.raises(DecodeFailure):
            record_from_dict({"kind": "nope"})

    def test_missing_kind(self):
        with pytest.raises(DecodeFailure):
            record_from_dict({"content": "x"})

    def test_not_a_dict(self):
        with pytest.raises(DecodeFailure):
            record_from_dict(["kind", "post"])

    def test_missing_required_field(self):
        with pytest.raises(DecodeFailure):
            record_from_dict({"kind": "glyph", "index": 0})

    def test_extra_fields_preserved(self):
        data = {"kind": "post", "content": "x", "author": "k", "ts": 1, "replies": 3}
        record = record_from_dict(data)
        assert record.extra == {"replies": 3}
        assert record.to_dict() == data

    def test_none_fields_omitted(self):
        data = Glyph(index=0, total=1, content="x", hash=hash_content("x")).to_dict()
        assert "prev" not in data
        assert "story" not in data

    def test_anchor_wire_names(self):
        data = Anchor(identity_root="i" * 64, epoch=5, pub="k", prev="tx1").to_dict()
        assert data["identityRoot"] == "i" * 64
        assert data["prev"] == "tx1"


class TestFieldTypes:
    """Decoded fields are checked against each record's declared wire types."""

    GLYPH = {"kind": "glyph", "index": 0, "total": 1, "content": "x", "hash": "h" * 64}

    @pytest.mark.parametrize("field,value", [
        ("content", 5),
        ("content", None),
        ("hash", ["h"]),
        ("index", "0"),
        ("index", True),
        ("total", 1.5),
        ("prev", 7),
    ])
    def test_glyph_field_types(self, field, value):
        with pytest.raises(DecodeFailure, match=field):
            record_from_dict({**self.GLYPH, field: value})

    def test_optional_null_accepted(self):
        record = record_from_dict({**self.GLYPH, "prev": None, "story": None})
        assert record.prev is None

    def test_post_tags_must_be_list(self):
        with pytest.raises(DecodeFailure, match="tags"):
            record_from_dict({"kind": "post", "content": "x", "author": "k", "ts": 1, "tags": "a,b"})

    def test_anchor_epoch_must_be_int(self):
        data = Anchor(identity_root="i" * 64, epoch=5, pub="k").to_dict()
        with pytest.raises(DecodeFailure, match="epoch"):
            record_from_dict({**data, "epoch": "5"})

    def test_extra_fields_untyped(self):
        record = record_from_dict({**self.GLYPH, "mood": {"any": ["shape"]}})
        assert record.extra == {"mood": {"any": ["shape"]}}


class TestGenesis:
    """Platform genesis has no parent; user genesis is parented."""

    def test_user_genesis_hash(self):
        platform = PlatformGenesis(network="devnet", ts=1)
        parent = genesis_hash(platform)
        user = UserGenesis(parent=parent, pub="PubKey", alias="alice", ts=2)
        assert genesis_hash(user) == user_genesis_hash("PubKey", parent, "alice")

    def test_platform_genesis_domain(self):
        platform = PlatformGenesis(network="devnet", ts=1)
        assert genesis_hash(platform) != hash_content(str(platform.to_dict()))
        assert genesis_hash(platform) == genesis_hash(PlatformGenesis(network="devnet", ts=1))

    def test_not_genesis(self):
        with pytest.raises(TypeError):
            genesis_hash(Post(content="x", author="k", ts=1))


class TestLanes:
    """Lane roots, UGR, anchors."""

    def test_empty_lane_is_zero_hash(self):
        assert lane_root([]) == ZERO_HASH

    def test_lane_root_domain(self):
        items = ["post-1", "post-2"]
        tree = MerkleTree.build([item_hash(i) for i in items])
        assert lane_root(items) == hash_with_domain(Domain.LANE_ROOT, tree.root)

    def test_build_lane_roots(self):
        roots = build_lane_roots({Lane.POSTS: ["p1"], Lane.LIKES: ["l1", "l2"]})
        assert len(roots) == 32
        assert roots[Lane.POSTS] == lane_root(["p1"])
        assert roots[Lane.LIKES] == lane_root(["l1", "l2"])
        assert roots[Lane.REPLIES] == ZERO_HASH
        assert roots[31] == ZERO_HASH

    def test_lane_index_out_of_range(self):
        with pytest.raises(ValueError):
            build_lane_roots({32: ["x"]})

    def test_lane_summary(self):
        summary = lane_summary(build_lane_roots())
        assert summary["posts"] == ZERO_HASH
        assert len(summary) == len(Lane)

    def test_anchor_bundle(self):
        ug, pg = hash_content("user"), hash_content("platform")
        bundle = build_anchor(ug, pg, "PubKey", epoch=1700000000000,
                              lane_items={Lane.STORIES: ["story-1"]}, prev="tx0")

        assert bundle.record.identity_root == bundle.identity_root
        assert bundle.record.prev == "tx0"
        assert verify_identity_root(bundle.identity_root, bundle.ugr, ug, pg)
        roots = bundle.lane_tree.leaves
        assert verify_proof(roots[Lane.STORIES], bundle.lane_proof(Lane.STORIES), bundle.ugr)

    def test_zero_anchor_deterministic(self):
        ug, pg = hash_content("user"), hash_content("platform")
        a = build_anchor(ug, pg, "PubKey", epoch=1)
        b = build_anchor(ug, pg, "PubKey", epoch=2)
        assert a.ugr == b.ugr == MerkleTree.lanes([ZERO_HASH] * 32).root
        assert a.identity_root == b.identity_root
        assert a.identity_root not in (a.ugr, ug, pg)

    def test_small_lane_config(self):
        bundle = build_anchor(hash_content("u"), hash_content("p"), "k", epoch=1,
                              config=GraphConfig(lane_count=8))
        assert len(bundle.lane_tree.leaves) == 8

    def test_invalid_epoch(self):
        with pytest.raises(ValueError):
            build_anchor(hash_content("u"), hash_content("p"), "k", epoch=0)

    def test_should_publish(self):
        day = 24 * 60 * 60 * 1000
        assert should_publish_anchor(None, 1000)
        assert not should_publish_anchor(1000, 1000 + day - 1)
        assert should_publish_anchor(1000, 1000 + day)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
