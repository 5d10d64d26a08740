"""
HiveLink utility functions.

Implements the MQTT primitive wire types (variable byte integers,
length-prefixed strings and binary data, fixed-width integers) plus
topic validation and client id generation.
"""

import random
import struct

from .errors import MQTTMalformedPacketError, MQTTRangeError

MAX_VARINT = 268435455
MAX_STRING_LENGTH = 65535


def encode_varint(value):
    """Encode a variable byte integer (MQTT remaining length encoding).

    Args:
        value: Integer 0-268435455

    Returns:
        bytes of 1-4 bytes, least significant group first

    Raises:
        MQTTRangeError: If value is outside 0-268435455
    """
    if value < 0 or value > MAX_VARINT:
        raise MQTTRangeError("Variable byte integer must be 0-268435455, got %d" % value)

    result = bytearray()
    while True:
        byte = value % 128
        value = value // 128
        if value > 0:
            byte |= 0x80
        result.append(byte)
        if value == 0:
            break
    return bytes(result)


def decode_varint(data, offset=0):
    """Decode a variable byte integer.

    Args:
        data: bytes/bytearray containing the encoded value
        offset: starting position in data

    Returns:
        (value, bytes_consumed) tuple

    Raises:
        MQTTMalformedPacketError: If input ends early or a 4th byte
            still has the continuation bit set
    """
    multiplier = 1
    value = 0
    byte_count = 0

    while True:
        if byte_count >= 4:
            raise MQTTMalformedPacketError("Malformed variable byte integer")
        if offset + byte_count >= len(data):
            raise MQTTMalformedPacketError("Truncated variable byte integer")
        byte = data[offset + byte_count]
        byte_count += 1
        value += (byte & 0x7F) * multiplier
        if (byte & 0x80) == 0:
            break
        multiplier *= 128

    return (value, byte_count)


def encode_binary(data):
    """Encode binary data with a 2-byte big-endian length prefix."""
    if len(data) > MAX_STRING_LENGTH:
        raise MQTTRangeError("Binary data exceeds 65535 bytes (%d)" % len(data))
    return struct.pack('!H', len(data)) + bytes(data)


def encode_string(s):
    """Encode an MQTT UTF-8 string with length prefix.

    Args:
        s: str or bytes

    Returns:
        bytes with 2-byte big-endian length + encoded string

    Raises:
        MQTTRangeError: If the encoded form is longer than 65535 bytes
    """
    if isinstance(s, str):
        s = s.encode('utf-8')
    if len(s) > MAX_STRING_LENGTH:
        raise MQTTRangeError("String exceeds 65535 bytes (%d)" % len(s))
    return struct.pack('!H', len(s)) + s


def decode_binary(data, offset=0):
    """Decode length-prefixed binary data.

    Returns:
        (bytes, new_offset) tuple
    """
    if offset + 2 > len(data):
        raise MQTTMalformedPacketError("Truncated length prefix at offset %d" % offset)
    length = struct.unpack_from('!H', data, offset)[0]
    end = offset + 2 + length
    if end > len(data):
        raise MQTTMalformedPacketError(
            "Truncated data: need %d bytes, have %d" % (length, len(data) - offset - 2))
    return (bytes(data[offset + 2:end]), end)


def decode_string(data, offset=0):
    """Decode an MQTT UTF-8 string.

    Returns:
        (str, new_offset) tuple

    Raises:
        MQTTMalformedPacketError: On truncation or invalid UTF-8
    """
    raw, offset = decode_binary(data, offset)
    try:
        return (raw.decode('utf-8'), offset)
    except UnicodeDecodeError:
        raise MQTTMalformedPacketError("Invalid UTF-8 string")


def encode_uint16(value):
    if not 0 <= value <= 0xFFFF:
        raise MQTTRangeError("Two byte integer must be 0-65535, got %d" % value)
    return struct.pack('!H', value)


def encode_uint32(value):
    if not 0 <= value <= 0xFFFFFFFF:
        raise MQTTRangeError("Four byte integer must be 0-4294967295, got %d" % value)
    return struct.pack('!I', value)


def decode_uint8(data, offset=0):
    if offset >= len(data):
        raise MQTTMalformedPacketError("Truncated byte at offset %d" % offset)
    return (data[offset], offset + 1)


def decode_uint16(data, offset=0):
    if offset + 2 > len(data):
        raise MQTTMalformedPacketError("Truncated two byte integer at offset %d" % offset)
    return (struct.unpack_from('!H', data, offset)[0], offset + 2)


def decode_uint32(data, offset=0):
    if offset + 4 > len(data):
        raise MQTTMalformedPacketError("Truncated four byte integer at offset %d" % offset)
    return (struct.unpack_from('!I', data, offset)[0], offset + 4)


def validate_topic_name(topic, max_length=MAX_STRING_LENGTH):
    """Validate MQTT topic name (for PUBLISH).

    Args:
        topic: bytes or str
        max_length: maximum allowed length

    Returns:
        True if valid

    Raises:
        ValueError if invalid
    """
    if isinstance(topic, str):
        topic = topic.encode('utf-8')

    if not topic:
        raise ValueError("Topic name cannot be empty")
    if len(topic) > max_length:
        raise ValueError("Topic name exceeds maximum length")
    if b'+' in topic or b'#' in topic:
        raise ValueError("Topic name cannot contain wildcards")

    return True


def validate_topic_filter(topic_filter, max_length=MAX_STRING_LENGTH):
    """Validate MQTT topic filter (for SUBSCRIBE).

    Args:
        topic_filter: bytes or str
        max_length: maximum allowed length

    Returns:
        True if valid

    Raises:
        ValueError if invalid
    """
    if isinstance(topic_filter, str):
        topic_filter = topic_filter.encode('utf-8')

    if not topic_filter:
        raise ValueError("Topic filter cannot be empty")
    if len(topic_filter) > max_length:
        raise ValueError("Topic filter exceeds maximum length")

    # '#' only as the last character, alone or after '/'
    hash_pos = topic_filter.find(b'#')
    if hash_pos != -1:
        if hash_pos != len(topic_filter) - 1:
            raise ValueError("# wildcard must be last character")
        if hash_pos > 0 and topic_filter[hash_pos - 1:hash_pos] != b'/':
            raise ValueError("# must be alone or after /")

    for level in topic_filter.split(b'/'):
        if b'+' in level and level != b'+':
            raise ValueError("+ must occupy entire level")

    return True


_ID_ALPHABET = 'abcdefghijklmnopqrstuvwxyz0123456789'


def generate_client_id(prefix='hivelink-', length=8):
    """Generate a random client ID.

    Returns:
        str in format "hivelink-xxxxxxxx"
    """
    rng = random.SystemRandom()
    return prefix + ''.join(rng.choice(_ID_ALPHABET) for _ in range(length))
