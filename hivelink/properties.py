"""
MQTT 5 property encoding for HiveLink.

A properties block is a variable byte integer length followed by
(identifier, value) entries. Properties are exposed to callers as a dict
keyed by snake_case names; user properties are a list of (key, value)
string pairs and subscription identifiers a list of ints, since both may
repeat.
"""

from .errors import MQTTMalformedPacketError, MQTTRangeError
from .packet import (
    CONNECT, CONNACK, PUBLISH, PUBACK, PUBREC, PUBREL, PUBCOMP,
    SUBSCRIBE, SUBACK, UNSUBSCRIBE, UNSUBACK, DISCONNECT, packet_name,
)
from .utils import (
    encode_varint, decode_varint, encode_string, decode_string,
    encode_binary, decode_binary, encode_uint16, encode_uint32,
    decode_uint8, decode_uint16, decode_uint32,
)

# Wire types
BYTE = 0
TWO_BYTE_INT = 1
FOUR_BYTE_INT = 2
VARINT = 3
UTF8 = 4
BINARY = 5
UTF8_PAIR = 6

WILL = 'WILL'

PROPERTIES = {
    0x01: ('payload_format_indicator', BYTE),
    0x02: ('message_expiry_interval', FOUR_BYTE_INT),
    0x03: ('content_type', UTF8),
    0x08: ('response_topic', UTF8),
    0x09: ('correlation_data', BINARY),
    0x0B: ('subscription_identifier', VARINT),
    0x11: ('session_expiry_interval', FOUR_BYTE_INT),
    0x12: ('assigned_client_identifier', UTF8),
    0x13: ('server_keep_alive', TWO_BYTE_INT),
    0x15: ('authentication_method', UTF8),
    0x16: ('authentication_data', BINARY),
    0x17: ('request_problem_information', BYTE),
    0x18: ('will_delay_interval', FOUR_BYTE_INT),
    0x19: ('request_response_information', BYTE),
    0x1A: ('response_information', UTF8),
    0x1C: ('server_reference', UTF8),
    0x1F: ('reason_string', UTF8),
    0x21: ('receive_maximum', TWO_BYTE_INT),
    0x22: ('topic_alias_maximum', TWO_BYTE_INT),
    0x23: ('topic_alias', TWO_BYTE_INT),
    0x24: ('maximum_qos', BYTE),
    0x25: ('retain_available', BYTE),
    0x26: ('user_properties', UTF8_PAIR),
    0x27: ('maximum_packet_size', FOUR_BYTE_INT),
    0x28: ('wildcard_subscription_available', BYTE),
    0x29: ('subscription_identifier_available', BYTE),
    0x2A: ('shared_subscription_available', BYTE),
}

PROPERTY_IDS = dict((name, pid) for pid, (name, _) in PROPERTIES.items())

REPEATABLE = ('user_properties', 'subscription_identifier')

_ACK_ALLOWED = frozenset((0x1F, 0x26))

ALLOWED = {
    CONNECT: frozenset((0x11, 0x15, 0x16, 0x17, 0x19, 0x21, 0x22, 0x26, 0x27)),
    CONNACK: frozenset((0x11, 0x12, 0x13, 0x15, 0x16, 0x1A, 0x1C, 0x1F, 0x21, 0x22,
                        0x24, 0x25, 0x26, 0x27, 0x28, 0x29, 0x2A)),
    PUBLISH: frozenset((0x01, 0x02, 0x03, 0x08, 0x09, 0x0B, 0x23, 0x26)),
    WILL: frozenset((0x01, 0x02, 0x03, 0x08, 0x09, 0x18, 0x26)),
    PUBACK: _ACK_ALLOWED,
    PUBREC: _ACK_ALLOWED,
    PUBREL: _ACK_ALLOWED,
    PUBCOMP: _ACK_ALLOWED,
    SUBSCRIBE: frozenset((0x0B, 0x26)),
    SUBACK: _ACK_ALLOWED,
    UNSUBSCRIBE: frozenset((0x26,)),
    UNSUBACK: _ACK_ALLOWED,
    DISCONNECT: frozenset((0x11, 0x1C, 0x1F, 0x26)),
}


def _context_name(context):
    if context == WILL:
        return 'Will'
    return packet_name(context)


def _normalize_pairs(value):
    if isinstance(value, dict):
        return [(str(k), str(v)) for k, v in value.items()]
    return [(str(k), str(v)) for k, v in value]


def _encode_value(wire_type, value):
    if wire_type == BYTE:
        value = int(value)
        if not 0 <= value <= 0xFF:
            raise MQTTRangeError("Byte property must be 0-255, got %d" % value)
        return bytes([value])
    if wire_type == TWO_BYTE_INT:
        return encode_uint16(int(value))
    if wire_type == FOUR_BYTE_INT:
        return encode_uint32(int(value))
    if wire_type == VARINT:
        return encode_varint(int(value))
    if wire_type == UTF8:
        return encode_string(value)
    if wire_type == BINARY:
        if isinstance(value, str):
            value = value.encode('utf-8')
        return encode_binary(value)
    raise ValueError('Unsupported property wire type: %r' % wire_type)


def encode_properties(properties, context=None):
    """Encode a properties block including its length prefix.

    Args:
        properties: dict of name -> value, or None
        context: packet type (or WILL) used to reject properties the
            packet cannot carry; None skips the check

    Returns:
        bytes

    Raises:
        ValueError: On an unknown name or a name not allowed in context
        MQTTRangeError: On an out of range value
    """
    body = bytearray()
    if properties:
        allowed = ALLOWED.get(context) if context is not None else None
        items = []
        for name, value in properties.items():
            if value is None:
                continue
            if name not in PROPERTY_IDS:
                raise ValueError('Unknown property: %s' % name)
            prop_id = PROPERTY_IDS[name]
            if allowed is not None and prop_id not in allowed:
                raise ValueError('Property %s not allowed in %s' % (name, _context_name(context)))
            items.append((prop_id, name, value))

        items.sort(key=lambda item: item[0])
        for prop_id, name, value in items:
            wire_type = PROPERTIES[prop_id][1]
            if wire_type == UTF8_PAIR:
                for key, val in _normalize_pairs(value):
                    body.append(prop_id)
                    body.extend(encode_string(key))
                    body.extend(encode_string(val))
            elif name == 'subscription_identifier' and isinstance(value, (list, tuple)):
                for sub_id in value:
                    body.append(prop_id)
                    body.extend(_encode_value(VARINT, sub_id))
            else:
                body.append(prop_id)
                body.extend(_encode_value(wire_type, value))

    return encode_varint(len(body)) + bytes(body)


def _decode_value(wire_type, data, offset):
    if wire_type == BYTE:
        return decode_uint8(data, offset)
    if wire_type == TWO_BYTE_INT:
        return decode_uint16(data, offset)
    if wire_type == FOUR_BYTE_INT:
        return decode_uint32(data, offset)
    if wire_type == VARINT:
        value, consumed = decode_varint(data, offset)
        return (value, offset + consumed)
    if wire_type == UTF8:
        return decode_string(data, offset)
    if wire_type == BINARY:
        return decode_binary(data, offset)
    key, offset = decode_string(data, offset)
    value, offset = decode_string(data, offset)
    return ((key, value), offset)


def decode_properties(data, offset=0):
    """Decode a properties block starting at its length prefix.

    Every identifier of the MQTT 5 table is decoded whatever packet
    carries it. An identifier outside the table has no known width, so
    parsing of the block stops there; the rest of the block is skipped
    using its declared length and the packet stays in sync.

    Returns:
        (properties_dict, offset_after_block) tuple

    Raises:
        MQTTMalformedPacketError: On a truncated block or value
    """
    length, consumed = decode_varint(data, offset)
    start = offset + consumed
    end = start + length
    if end > len(data):
        raise MQTTMalformedPacketError(
            "Properties length %d exceeds packet (%d bytes left)" % (length, len(data) - start))

    block = bytes(data[start:end])
    props = {}
    pos = 0
    while pos < len(block):
        prop_id = block[pos]
        pos += 1
        if prop_id not in PROPERTIES:
            break
        name, wire_type = PROPERTIES[prop_id]
        value, pos = _decode_value(wire_type, block, pos)
        if name in REPEATABLE:
            props.setdefault(name, []).append(value)
        else:
            props[name] = value

    return (props, end)
