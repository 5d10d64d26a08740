"""
Reason and return code tables for HiveLink.

MQTT 3.1.1 uses small per-packet return code sets; MQTT 5 uses a single
reason code space whose meaning depends on the packet carrying it.
Brokers may send reserved or vendor codes, so lookups never fail.
"""

from .packet import (
    CONNACK, PUBACK, PUBREC, PUBREL, PUBCOMP, SUBACK, UNSUBACK, DISCONNECT,
    ProtocolVersion,
)

UNKNOWN = 'Unknown'

V311_CONNACK = {
    0: 'Connection Accepted',
    1: 'Connection Refused: unacceptable protocol version',
    2: 'Connection Refused: identifier rejected',
    3: 'Connection Refused: server unavailable',
    4: 'Connection Refused: bad username or password',
    5: 'Connection Refused: not authorized',
}

V311_SUBACK = {
    0x00: 'Success - Maximum QoS 0',
    0x01: 'Success - Maximum QoS 1',
    0x02: 'Success - Maximum QoS 2',
    0x80: 'Failure',
}

V5_CONNACK = {
    0x00: 'Success',
    0x80: 'Unspecified error',
    0x81: 'Malformed Packet',
    0x82: 'Protocol Error',
    0x83: 'Implementation specific error',
    0x84: 'Unsupported Protocol Version',
    0x85: 'Client Identifier not valid',
    0x86: 'Bad User Name or Password',
    0x87: 'Not authorized',
    0x88: 'Server unavailable',
    0x89: 'Server busy',
    0x8A: 'Banned',
    0x8C: 'Bad authentication method',
    0x90: 'Topic Name invalid',
    0x95: 'Packet too large',
    0x97: 'Quota exceeded',
    0x99: 'Payload format invalid',
    0x9A: 'Retain not supported',
    0x9B: 'QoS not supported',
    0x9C: 'Use another server',
    0x9D: 'Server moved',
    0x9F: 'Connection rate exceeded',
}

V5_SUBACK = {
    0x00: 'Granted QoS 0',
    0x01: 'Granted QoS 1',
    0x02: 'Granted QoS 2',
    0x80: 'Unspecified error',
    0x83: 'Implementation specific error',
    0x87: 'Not authorized',
    0x8F: 'Topic Filter invalid',
    0x91: 'Packet Identifier in use',
    0x97: 'Quota exceeded',
    0x9E: 'Shared Subscriptions not supported',
    0xA1: 'Subscription Identifiers not supported',
    0xA2: 'Wildcard Subscriptions not supported',
}

V5_UNSUBACK = {
    0x00: 'Success',
    0x11: 'No subscription existed',
    0x80: 'Unspecified error',
    0x83: 'Implementation specific error',
    0x87: 'Not authorized',
    0x8F: 'Topic Filter invalid',
    0x91: 'Packet Identifier in use',
}

V5_PUBACK = {
    0x00: 'Success',
    0x10: 'No matching subscribers',
    0x80: 'Unspecified error',
    0x83: 'Implementation specific error',
    0x87: 'Not authorized',
    0x90: 'Topic Name invalid',
    0x91: 'Packet Identifier in use',
    0x97: 'Quota exceeded',
    0x99: 'Payload format invalid',
}

V5_PUBCOMP = {
    0x00: 'Success',
    0x92: 'Packet Identifier not found',
}

V5_DISCONNECT = {
    0x00: 'Normal disconnection',
    0x04: 'Disconnect with Will Message',
    0x80: 'Unspecified error',
    0x81: 'Malformed Packet',
    0x82: 'Protocol Error',
    0x83: 'Implementation specific error',
    0x87: 'Not authorized',
    0x89: 'Server busy',
    0x8B: 'Server shutting down',
    0x8D: 'Keep Alive timeout',
    0x8E: 'Session taken over',
    0x8F: 'Topic Filter invalid',
    0x90: 'Topic Name invalid',
    0x93: 'Receive Maximum exceeded',
    0x94: 'Topic Alias invalid',
    0x95: 'Packet too large',
    0x96: 'Message rate too high',
    0x97: 'Quota exceeded',
    0x98: 'Administrative action',
    0x99: 'Payload format invalid',
    0x9A: 'Retain not supported',
    0x9B: 'QoS not supported',
    0x9C: 'Use another server',
    0x9D: 'Server moved',
    0x9E: 'Shared Subscriptions not supported',
    0x9F: 'Connection rate exceeded',
    0xA0: 'Maximum connect time',
    0xA1: 'Subscription Identifiers not supported',
    0xA2: 'Wildcard Subscriptions not supported',
}

# Union of every v5 table, used when the carrying packet is not known
V5_GENERIC = {}
for _table in (V5_DISCONNECT, V5_PUBCOMP, V5_PUBACK, V5_UNSUBACK, V5_SUBACK, V5_CONNACK):
    V5_GENERIC.update(_table)
V5_GENERIC[0x00] = 'Success'

_V311_TABLES = {
    CONNACK: V311_CONNACK,
    SUBACK: V311_SUBACK,
}

_V5_TABLES = {
    CONNACK: V5_CONNACK,
    SUBACK: V5_SUBACK,
    UNSUBACK: V5_UNSUBACK,
    PUBACK: V5_PUBACK,
    PUBREC: V5_PUBACK,
    PUBREL: V5_PUBCOMP,
    PUBCOMP: V5_PUBCOMP,
    DISCONNECT: V5_DISCONNECT,
}


def describe(code, version, packet_type=None):
    """Describe a reason code.

    Args:
        code: Reason or return code received from the broker
        version: Protocol level (4 or 5)
        packet_type: Packet that carried the code; CONNACK when omitted
            for 3.1.1, the merged table when omitted for 5.0

    Returns:
        str description, 'Unknown' for unmapped codes
    """
    if version == ProtocolVersion.V5:
        table = _V5_TABLES.get(packet_type, V5_GENERIC)
    else:
        table = _V311_TABLES.get(packet_type, V311_CONNACK)
    return table.get(code, UNKNOWN)


def is_failure(code):
    """Codes 0x80 and above signal failure (SUBACK and every v5 packet)."""
    return code >= 0x80
