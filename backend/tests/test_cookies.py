"""Tests for the "__utmx" / "__utmxx" cookie codec."""
import pytest

from gacx.config import Settings
from gacx.services.cookies import (
    TIMESTAMP_TTL,
    UTMX_COOKIE,
    UTMXX_COOKIE,
    build_cookies,
    decode_variation,
    parse_assignment_field,
    parse_timestamp_field,
    parse_variation,
    update_assignment_cookie,
    update_timestamp_cookie,
)
from gacx.services.hashing import generate_hash


UTMX = "159991919.ft-5xaLPSturFXCPgoFrKg$0:1.ft-6uzLPSelrFQsPgouIkD$0:2"
UTMXX = (
    "159991919.ft-5xaLPSturFXCPgoFrKg$0:1380888455:8035200"
    ".ft-6uzLPSelrFQsPgouIkD$0:1380888456:8035200"
)


def test_decode_known_cookie():
    """Test decoding a cookie written by the tracking client."""
    assert decode_variation(UTMX, "ft-6uzLPSelrFQsPgouIkD") == 2
    assert decode_variation(UTMX, "ft-5xaLPSturFXCPgoFrKg") == 1


def test_decode_unknown_experiment_is_absent():
    """Test that an experiment without a field decodes to None."""
    assert decode_variation(UTMX, "unknown-id") is None


@pytest.mark.parametrize("value", [None, "", "159991919", "garbage"])
def test_decode_without_fields_is_absent(value):
    """Test that values without a dot mean "no prior cookie"."""
    assert decode_variation(value, "exp") is None


def test_decode_skips_malformed_fields():
    """Test that malformed fields are ignored instead of raising."""
    value = "1.garbage.$0:3.exp:4.exp$:5.exp$0:7"

    assert decode_variation(value, "exp") == 7


def test_decode_first_match_wins():
    """Test that only the first field for an experiment counts."""
    assert decode_variation("1.exp$0:3.exp$0:4", "exp") == 3


def test_decode_legacy_multi_values():
    """Test that only the first "-"-separated variation is used."""
    assert decode_variation("1.exp$0:3-1-2", "exp") == 3


def test_decode_tolerates_any_tag():
    """Test that the tag is opaque and not required to be "0"."""
    assert decode_variation("1.exp$abc:4", "exp") == 4


def test_parse_variation_without_number_reads_zero():
    """Test that a non-numeric variation reads as the original."""
    assert parse_variation("x") == 0
    assert parse_variation("") == 0
    assert parse_variation("-2") == 0
    assert parse_variation("12abc") == 12


def test_parse_assignment_field():
    """Test splitting an assignment field into its parts."""
    field = parse_assignment_field("exp$0:3")

    assert field.experiment_id == "exp"
    assert field.tag == "0"
    assert field.variation == "3"
    assert parse_assignment_field("exp0:3") is None
    assert parse_assignment_field("exp$03") is None


def test_parse_timestamp_field_with_trailing_part():
    """Test that everything after the TTL is kept as opaque trailing data."""
    field = parse_timestamp_field("exp$0:1000:8035200:a:b")

    assert field.timestamp == "1000"
    assert field.ttl == "8035200"
    assert field.trailing == "a:b"


def test_parse_timestamp_field_rejects_missing_ttl():
    """Test that fields without a TTL do not parse."""
    assert parse_timestamp_field("exp$0:1000") is None
    assert parse_timestamp_field("exp$0:1000:") is None


def test_create_assignment_cookie():
    """Test creating a "__utmx" value when there is no prior cookie."""
    value = update_assignment_cookie(None, "exp", 3, "example.com")

    assert value == f"{generate_hash('example.com')}.exp$0:3"


def test_assignment_round_trip():
    """Test that a written variation decodes back."""
    value = update_assignment_cookie("", "exp", 5, "example.com")

    assert decode_variation(value, "exp") == 5


def test_update_assignment_replaces_in_place():
    """Test that updating an experiment twice never duplicates its field."""
    value = update_assignment_cookie(None, "exp", 1, "example.com")
    value = update_assignment_cookie(value, "exp", 2, "example.com")

    assert value.count("exp$") == 1
    assert decode_variation(value, "exp") == 2
    assert len(value.split(".")) == 2


def test_update_assignment_keeps_domain_hash_and_other_fields():
    """Test that the existing domain hash and other experiments are preserved."""
    value = update_assignment_cookie(UTMX, "ft-5xaLPSturFXCPgoFrKg", 4, "other.org")

    assert value == "159991919.ft-5xaLPSturFXCPgoFrKg$0:4.ft-6uzLPSelrFQsPgouIkD$0:2"


def test_update_assignment_appends_new_experiment():
    """Test that a new experiment is appended with tag "0"."""
    value = update_assignment_cookie(UTMX, "new-exp", 1, "example.com")

    assert value == UTMX + ".new-exp$0:1"


def test_update_assignment_preserves_tag_and_malformed_fields():
    """Test that tags and unparseable fields pass through verbatim."""
    value = update_assignment_cookie("7.junk.exp$9:1-2", "exp", 3, "example.com")

    assert value == "7.junk.exp$9:3"


def test_create_timestamp_cookie():
    """Test creating a "__utmxx" value for a new experiment."""
    value = update_timestamp_cookie("", "myExp", 1000, "example.com")

    assert value == f"{generate_hash('example.com')}.myExp$0:1000:8035200"
    assert value == "60493049.myExp$0:1000:8035200"


def test_update_timestamp_only_touches_timestamp():
    """Test that tag, TTL and trailing part are preserved on update."""
    value = update_timestamp_cookie("5.exp$x:1:99:tail.other$0:2:8035200", "exp", 1000, "example.com")

    assert value == "5.exp$x:1000:99:tail.other$0:2:8035200"


def test_update_timestamp_appends_with_fixed_ttl():
    """Test that new timestamp fields always use the client's TTL."""
    value = update_timestamp_cookie(UTMXX, "new-exp", 1000, "example.com")

    assert value == UTMXX + ".new-exp$0:1000:" + TIMESTAMP_TTL


def test_update_timestamp_without_trailing_part():
    """Test that no trailing part is invented for existing fields."""
    value = update_timestamp_cookie(UTMXX, "ft-6uzLPSelrFQsPgouIkD", 1000, "example.com")

    assert value.endswith(".ft-6uzLPSelrFQsPgouIkD$0:1000:8035200")
    assert value.count("ft-6uzLPSelrFQsPgouIkD") == 1


def test_build_cookies_uses_client_attributes():
    """Test cookie attributes match what the tracking client sets."""
    settings = Settings(_env_file=None, cookie_path="/shop", cookie_expiration_seconds=100)

    cookies = build_cookies("1.exp$0:1", "1.exp$0:5:8035200", "example.com", 5, settings)

    assert [c.name for c in cookies] == [UTMX_COOKIE, UTMXX_COOKIE]
    assert [c.value for c in cookies] == ["1.exp$0:1", "1.exp$0:5:8035200"]
    for cookie in cookies:
        assert cookie.domain == ".example.com"
        assert cookie.path == "/shop"
        assert cookie.expires == 105
        assert cookie.secure is False
        assert cookie.httponly is False
