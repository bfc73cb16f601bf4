import pytest

from pwa_bridge.services.errors import ValidationError
from pwa_bridge.services.identity import (
    Identity,
    normalize_identity,
    parse_room_key,
    require_identity,
    room_key,
)


class TestNormalizeIdentity:
    @pytest.mark.parametrize(
        "email,slug",
        [
            ("Bob@Example.com", "ShopX"),
            ("  bob@example.com  ", " shopx"),
            ("BOB@EXAMPLE.COM\n", "SHOPX\t"),
        ],
    )
    def test_case_and_whitespace_variants_collapse(self, email, slug):
        identity = normalize_identity(email, slug)
        assert identity == Identity(email="bob@example.com", seller_slug="shopx")
        assert room_key(identity) == "pwa:shopx:bob@example.com"

    def test_idempotent(self):
        once = normalize_identity("  A@X.com ", " SellerA ")
        twice = normalize_identity(once.email, once.seller_slug)
        assert once == twice

    def test_absent_values_become_empty(self):
        identity = normalize_identity(None, None)
        assert identity == Identity(email="", seller_slug="")
        assert identity.is_identified is False


class TestRequireIdentity:
    def test_missing_email_rejected(self):
        with pytest.raises(ValidationError) as exc:
            require_identity("   ", "shopx")
        assert "email" in str(exc.value)

    def test_missing_slug_rejected(self):
        with pytest.raises(ValidationError):
            require_identity("bob@example.com", None)

    def test_slug_with_delimiter_rejected(self):
        with pytest.raises(ValidationError):
            require_identity("bob@example.com", "shop:x")

    def test_email_may_contain_delimiter(self):
        identity = require_identity('"odd:local"@example.com', "shopx")
        assert parse_room_key(room_key(identity)) == identity


class TestRoomKey:
    def test_round_trip(self):
        identity = require_identity("a@x.com", "sellerA")
        assert parse_room_key(room_key(identity)) == identity

    def test_distinct_identities_give_distinct_rooms(self):
        first = require_identity("a@x.com", "seller")
        second = require_identity("seller:a@x.com", "a")
        assert room_key(first) != room_key(second)

    def test_invalid_room_key(self):
        with pytest.raises(ValidationError):
            parse_room_key("chat:shopx:bob@example.com")
