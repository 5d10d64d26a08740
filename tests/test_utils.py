"""Tests for hivelink.utils module."""

import pytest
from hivelink.errors import MQTTMalformedPacketError, MQTTRangeError
from hivelink.utils import (
    encode_varint,
    decode_varint,
    encode_string,
    decode_string,
    encode_binary,
    decode_binary,
    encode_uint16,
    encode_uint32,
    decode_uint16,
    decode_uint32,
    validate_topic_name,
    validate_topic_filter,
    generate_client_id
)


class TestVarint:
    """Test MQTT variable byte integer encoding/decoding."""

    def test_encode_zero(self):
        """Test encoding 0."""
        assert encode_varint(0) == b'\x00'

    def test_encode_127(self):
        """Test encoding 127 (max single byte)."""
        assert encode_varint(127) == b'\x7f'

    def test_encode_128(self):
        """Test encoding 128 (min two bytes)."""
        assert encode_varint(128) == b'\x80\x01'

    def test_encode_16383(self):
        """Test encoding 16383 (max two bytes)."""
        assert encode_varint(16383) == b'\xff\x7f'

    def test_encode_16384(self):
        """Test encoding 16384 (min three bytes)."""
        assert encode_varint(16384) == b'\x80\x80\x01'

    def test_encode_268435455(self):
        """Test encoding 268435455 (max allowed value)."""
        assert encode_varint(268435455) == b'\xff\xff\xff\x7f'

    def test_encode_too_large(self):
        """Test encoding value > max raises MQTTRangeError."""
        with pytest.raises(MQTTRangeError, match="Variable byte integer must be 0-268435455"):
            encode_varint(268435456)

    def test_encode_negative(self):
        """Test encoding negative value raises MQTTRangeError."""
        with pytest.raises(MQTTRangeError):
            encode_varint(-1)

    def test_decode_128(self):
        """Test decoding 128."""
        assert decode_varint(b'\x80\x01') == (128, 2)

    def test_decode_268435455(self):
        """Test decoding max value."""
        assert decode_varint(b'\xff\xff\xff\x7f') == (268435455, 4)

    def test_decode_with_offset(self):
        """Test decoding with offset."""
        assert decode_varint(b'\xaa\xbb\x80\x01', 2) == (128, 2)

    def test_decode_continuation_on_fourth_byte(self):
        """Test a 4th byte with the continuation bit set is malformed."""
        with pytest.raises(MQTTMalformedPacketError, match="Malformed variable byte integer"):
            decode_varint(b'\x80\x80\x80\x80\x01')

    def test_decode_truncated(self):
        """Test input ending inside a varint is malformed."""
        with pytest.raises(MQTTMalformedPacketError, match="Truncated"):
            decode_varint(b'\x80\x80')

    def test_roundtrip_boundaries(self):
        """Test boundary values survive encode then decode."""
        for value in (0, 127, 128, 16383, 16384, 2097151, 2097152, 268435455):
            encoded = encode_varint(value)
            assert decode_varint(encoded) == (value, len(encoded))


class TestStrings:
    """Test MQTT UTF-8 string and binary data encoding."""

    def test_encode_ascii(self):
        """Test encoding ASCII string."""
        assert encode_string("hello") == b'\x00\x05hello'

    def test_encode_unicode_counts_bytes(self):
        """Test the length prefix counts encoded bytes, not characters."""
        assert encode_string("café") == b'\x00\x05' + "café".encode('utf-8')

    def test_encode_max_length(self):
        """Test a 65535-byte string encodes to 2 + 65535 bytes."""
        encoded = encode_string("a" * 65535)
        assert len(encoded) == 65537
        assert encoded[:2] == b'\xff\xff'

    def test_encode_too_long(self):
        """Test a 65536-byte string raises MQTTRangeError."""
        with pytest.raises(MQTTRangeError, match="String exceeds 65535 bytes"):
            encode_string("a" * 65536)

    def test_decode_returns_str_and_offset(self):
        """Test decoding with offset returns text and the next offset."""
        assert decode_string(b'\xff\xff\x00\x03foo', 2) == ('foo', 7)

    def test_decode_truncated(self):
        """Test a declared length beyond the data is malformed."""
        with pytest.raises(MQTTMalformedPacketError, match="Truncated data"):
            decode_string(b'\x00\x05abc')

    def test_decode_invalid_utf8(self):
        """Test invalid UTF-8 is malformed."""
        with pytest.raises(MQTTMalformedPacketError, match="Invalid UTF-8"):
            decode_string(b'\x00\x02\xc3\x28')

    def test_binary_roundtrip(self):
        """Test binary data keeps arbitrary bytes."""
        encoded = encode_binary(b'\x00\xff\x10')
        assert encoded == b'\x00\x03\x00\xff\x10'
        assert decode_binary(encoded) == (b'\x00\xff\x10', 5)


class TestFixedWidth:
    """Test fixed width integer helpers."""

    def test_uint16(self):
        """Test two byte integers are big-endian."""
        assert encode_uint16(0x1234) == b'\x12\x34'
        assert decode_uint16(b'\x12\x34') == (0x1234, 2)

    def test_uint16_out_of_range(self):
        """Test 65536 does not fit in two bytes."""
        with pytest.raises(MQTTRangeError):
            encode_uint16(65536)

    def test_uint32(self):
        """Test four byte integers are big-endian."""
        assert encode_uint32(60) == b'\x00\x00\x00\x3c'
        assert decode_uint32(b'\x00\x00\x00\x3c') == (60, 4)

    def test_decode_truncated(self):
        """Test truncated fixed width integers are malformed."""
        with pytest.raises(MQTTMalformedPacketError):
            decode_uint32(b'\x00\x00')


class TestValidateTopicName:
    """Test MQTT topic name validation (for PUBLISH)."""

    def test_valid_simple_topic(self):
        """Test valid simple topic."""
        assert validate_topic_name("home/temperature") is True

    def test_valid_bytes(self):
        """Test valid topic as bytes."""
        assert validate_topic_name(b"test/topic") is True

    def test_empty_topic(self):
        """Test empty topic raises ValueError."""
        with pytest.raises(ValueError, match="Topic name cannot be empty"):
            validate_topic_name("")

    def test_too_long_topic(self):
        """Test topic exceeding max length raises ValueError."""
        with pytest.raises(ValueError, match="Topic name exceeds maximum length"):
            validate_topic_name("a" * 65536)

    def test_wildcard_plus(self):
        """Test topic with + wildcard raises ValueError."""
        with pytest.raises(ValueError, match="Topic name cannot contain wildcards"):
            validate_topic_name("home/+/temperature")

    def test_wildcard_hash(self):
        """Test topic with # wildcard raises ValueError."""
        with pytest.raises(ValueError, match="Topic name cannot contain wildcards"):
            validate_topic_name("home/#")

    def test_custom_max_length(self):
        """Test custom max length parameter."""
        assert validate_topic_name("ab", max_length=2) is True
        with pytest.raises(ValueError, match="exceeds maximum length"):
            validate_topic_name("abc", max_length=2)


class TestValidateTopicFilter:
    """Test MQTT topic filter validation (for SUBSCRIBE)."""

    def test_valid_plus_wildcard(self):
        """Test valid + wildcard."""
        assert validate_topic_filter("home/+/temperature") is True

    def test_valid_hash_wildcard(self):
        """Test valid # wildcard at end."""
        assert validate_topic_filter("home/#") is True

    def test_valid_hash_only(self):
        """Test # wildcard alone."""
        assert validate_topic_filter("#") is True

    def test_valid_multiple_plus(self):
        """Test multiple + wildcards."""
        assert validate_topic_filter("+/+/+") is True

    def test_empty_filter(self):
        """Test empty filter raises ValueError."""
        with pytest.raises(ValueError, match="Topic filter cannot be empty"):
            validate_topic_filter("")

    def test_hash_not_at_end(self):
        """Test # wildcard not at end raises ValueError."""
        with pytest.raises(ValueError, match="# wildcard must be last character"):
            validate_topic_filter("home/#/temperature")

    def test_hash_not_after_slash(self):
        """Test # wildcard not alone or after / raises ValueError."""
        with pytest.raises(ValueError, match="# must be alone or after /"):
            validate_topic_filter("home#")

    def test_plus_not_occupying_full_level(self):
        """Test + wildcard not occupying full level raises ValueError."""
        with pytest.raises(ValueError, match=r"\+ must occupy entire level"):
            validate_topic_filter("home/te+st")


class TestGenerateClientId:
    """Test client ID generation."""

    def test_generate_format(self):
        """Test generated client ID has correct format."""
        client_id = generate_client_id()
        assert client_id.startswith("hivelink-")
        assert len(client_id) == 17  # "hivelink-" + 8 chars

    def test_generate_unique(self):
        """Test generated IDs are reasonably unique."""
        ids = set(generate_client_id() for _ in range(100))
        assert len(ids) > 1

    def test_custom_prefix(self):
        """Test a custom prefix and length."""
        client_id = generate_client_id(prefix='dev-', length=4)
        assert client_id.startswith('dev-')
        assert len(client_id) == 8
