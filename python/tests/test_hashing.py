"""
test_hashing.py — Hashing Core Gate Tests

Content hashing, domain separation, commutative pair hashing.
"""

import hashlib

import pytest
from glyph_sdk.hashing import (
    ZERO_HASH,
    Domain,
    hash_content,
    hash_pair,
    hash_with_domain,
    is_hash,
    item_hash,
    platform_genesis_hash,
    user_genesis_hash,
)
from glyph_sdk.merkle import MerkleTree


class TestContentHash:
    """SHA-256, lowercase hex."""

    def test_known_vector(self):
        """sha256("abc")."""
        assert hash_content("abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_str_hashed_as_utf8(self):
        """str and its UTF-8 bytes hash identically."""
        assert hash_content("héllo") == hash_content("héllo".encode("utf-8"))

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            hash_content(42)

    def test_is_hash(self):
        assert is_hash(hash_content(b"x"))
        assert is_hash(ZERO_HASH)
        assert not is_hash("ABC")
        assert not is_hash(hash_content(b"x").upper())
        assert not is_hash(None)


class TestDomainSeparation:
    """Same payload, different tags → different hashes."""

    def test_tags_are_four_bytes(self):
        for domain in Domain:
            assert len(domain.value.encode("ascii")) == 4

    def test_domains_never_collide(self):
        payload = "same payload"
        hashes = {hash_with_domain(d, payload) for d in Domain}
        assert len(hashes) == len(Domain)
        assert hash_content(payload) not in hashes

    def test_tag_is_prefix(self):
        """hash_with_domain = SHA256(tag || payload)."""
        expected = hashlib.sha256(b"LANE" + b"abc").hexdigest()
        assert hash_with_domain(Domain.LANE_ROOT, b"abc") == expected
        assert hash_with_domain("LANE", b"abc") == expected

    def test_unknown_tag_rejected(self):
        with pytest.raises(ValueError):
            hash_with_domain("NOPE", b"abc")

    def test_user_genesis_hash(self):
        """UGEN || pubkey || platform hash || alias."""
        pub, platform, alias = "PubKey111", "ab" * 32, "alice"
        assert user_genesis_hash(pub, platform, alias) == hash_with_domain(
            Domain.USER_GENESIS, pub + platform + alias
        )

    def test_platform_genesis_is_key_order_independent(self):
        a = platform_genesis_hash({"network": "devnet", "ts": 1})
        b = platform_genesis_hash({"ts": 1, "network": "devnet"})
        assert a == b

    def test_item_hash_uses_item_domain(self):
        assert item_hash("post-1") == hash_with_domain(Domain.CONTENT_ITEM, "post-1")

    @pytest.mark.parametrize("domain", [Domain.UGR, Domain.IDENTITY_ROOT, Domain.CHUNK_ROOT])
    def test_reserved_tags_not_applied_to_trees(self, domain):
        """Identity composition pairs nodes untagged; reserved tags stay out of it."""
        lane, ug, pg = hash_content("lane"), hash_content("ug"), hash_content("pg")
        root = MerkleTree.identity(lane, ug, pg).root
        assert root == hash_pair(hash_pair(lane, ug), pg)
        assert root != hash_with_domain(domain, hash_pair(lane, ug) + pg)
        assert hash_with_domain(domain.value, b"x") == hashlib.sha256(domain.value.encode() + b"x").hexdigest()


class TestPairHash:
    """Sorted concatenation makes pairing commutative."""

    def test_commutative(self):
        a, b = hash_content("a"), hash_content("b")
        assert hash_pair(a, b) == hash_pair(b, a)

    def test_sorted_concatenation(self):
        a, b = hash_content("a"), hash_content("b")
        lo, hi = sorted((a, b))
        assert hash_pair(a, b) == hash_content(lo + hi)

    def test_self_pair(self):
        a = hash_content("a")
        assert hash_pair(a, a) == hash_content(a + a)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
