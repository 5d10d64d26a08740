"""
Codec interface for HiveLink.

A codec turns packet value objects into complete MQTT frames and frame
bodies back into packet objects. One codec is selected per connection
from the negotiated protocol version; nothing downstream branches on the
version again.
"""

import struct

from .errors import MQTTMalformedPacketError, MQTTRangeError
from .packet import (
    CONNECT, CONNACK, PUBLISH, PUBACK, PUBREC, PUBREL, PUBCOMP, SUBSCRIBE,
    SUBACK, UNSUBSCRIBE, UNSUBACK, PINGREQ, PINGRESP, DISCONNECT,
    ACK_TYPES, PingReq, PingResp, ProtocolVersion, QoS, packet_name,
)
from .utils import encode_varint, decode_varint, encode_string, encode_binary

PROTOCOL_NAME = 'MQTT'

# Fixed header flags every packet but PUBLISH must carry
REQUIRED_FLAGS = {
    CONNECT: 0, CONNACK: 0, PUBACK: 0, PUBREC: 0, PUBREL: 0x02, PUBCOMP: 0,
    SUBSCRIBE: 0x02, SUBACK: 0, UNSUBSCRIBE: 0x02, UNSUBACK: 0,
    PINGREQ: 0, PINGRESP: 0, DISCONNECT: 0,
}


def frame(packet_type, body, flags=None):
    """Prefix a body with the fixed header (type nibble, flags, length)."""
    if flags is None:
        flags = REQUIRED_FLAGS.get(packet_type, 0)
    return bytes([(packet_type << 4) | flags]) + encode_varint(len(body)) + bytes(body)


def split_frame(data):
    """Split one complete frame into (packet_type, flags, body).

    Raises:
        MQTTMalformedPacketError: If the frame is truncated or has
            trailing bytes
    """
    if not data:
        raise MQTTMalformedPacketError('Empty frame')
    length, consumed = decode_varint(data, 1)
    start = 1 + consumed
    if len(data) != start + length:
        raise MQTTMalformedPacketError(
            'Frame length mismatch: header says %d, have %d' % (length, len(data) - start))
    return ((data[0] >> 4) & 0x0F, data[0] & 0x0F, bytes(data[start:]))


def check_packet_id(packet_id):
    if packet_id is None or not 1 <= packet_id <= 0xFFFF:
        raise MQTTRangeError('Packet ID must be 1-65535, got %r' % (packet_id,))
    return struct.pack('!H', packet_id)


class Codec:
    """Version-specific encoder/decoder pair.

    Subclasses implement ``encode_<kind>`` / ``decode_<kind>`` methods;
    ``encode`` and ``decode`` dispatch on the packet type.
    """

    version = None

    _ENCODERS = {
        CONNECT: 'encode_connect', CONNACK: 'encode_connack', PUBLISH: 'encode_publish',
        PUBACK: 'encode_ack', PUBREC: 'encode_ack', PUBREL: 'encode_ack', PUBCOMP: 'encode_ack',
        SUBSCRIBE: 'encode_subscribe', SUBACK: 'encode_suback',
        UNSUBSCRIBE: 'encode_unsubscribe', UNSUBACK: 'encode_unsuback',
        PINGREQ: 'encode_pingreq', PINGRESP: 'encode_pingresp',
        DISCONNECT: 'encode_disconnect',
    }

    @property
    def version_name(self):
        return ProtocolVersion.name(self.version)

    def encode(self, packet):
        """Encode any packet object into a complete frame."""
        method = self._ENCODERS.get(packet.packet_type)
        if method is None:
            raise ValueError('Cannot encode packet type %r' % packet.packet_type)
        if packet.packet_type in (PINGREQ, PINGRESP):
            return getattr(self, method)()
        return getattr(self, method)(packet)

    def decode(self, packet_type, flags, body):
        """Decode a frame body into a packet object.

        Raises:
            MQTTMalformedPacketError: On invalid fixed header flags or body
        """
        if packet_type != PUBLISH:
            required = REQUIRED_FLAGS.get(packet_type)
            if required is None:
                raise MQTTMalformedPacketError('Unknown packet type %d' % packet_type)
            if flags != required:
                raise MQTTMalformedPacketError(
                    'Invalid flags 0x%X for %s' % (flags, packet_name(packet_type)))

        if packet_type == PUBLISH:
            return self.decode_publish(flags, body)
        if packet_type in ACK_TYPES:
            return self.decode_ack(packet_type, body)
        if packet_type in (PINGREQ, PINGRESP):
            return self.decode_ping(packet_type, body)
        decoder = {
            CONNECT: self.decode_connect, CONNACK: self.decode_connack,
            SUBSCRIBE: self.decode_subscribe, SUBACK: self.decode_suback,
            UNSUBSCRIBE: self.decode_unsubscribe, UNSUBACK: self.decode_unsuback,
            DISCONNECT: self.decode_disconnect,
        }[packet_type]
        return decoder(body)

    def decode_frame(self, data):
        """Decode one complete frame (fixed header included)."""
        return self.decode(*split_frame(data))

    # Shared building blocks

    def encode_pingreq(self):
        return bytes([0xC0, 0x00])

    def encode_pingresp(self):
        return bytes([0xD0, 0x00])

    def decode_ping(self, packet_type, body):
        if body:
            raise MQTTMalformedPacketError('%s must have an empty body' % packet_name(packet_type))
        return PingReq() if packet_type == PINGREQ else PingResp()

    def _connect_header(self, packet):
        """Protocol name, level, connect flags and keep alive."""
        flags = 0
        if packet.clean_start:
            flags |= 0x02
        will = packet.will
        if will is not None:
            flags |= 0x04
            flags |= QoS.clamp(will.qos) << 3
            if will.retain:
                flags |= 0x20
        if packet.password is not None:
            flags |= 0x40
        if packet.username is not None:
            flags |= 0x80

        if not 0 <= packet.keep_alive <= 0xFFFF:
            raise MQTTRangeError('Keep alive must be 0-65535, got %d' % packet.keep_alive)

        header = bytearray(encode_string(PROTOCOL_NAME))
        header.append(self.version)
        header.append(flags)
        header.extend(struct.pack('!H', packet.keep_alive))
        return header

    def _connect_credentials(self, packet):
        payload = bytearray()
        if packet.username is not None:
            payload.extend(encode_string(packet.username))
        if packet.password is not None:
            payload.extend(encode_binary(packet.password))
        return payload

    def _publish_flags(self, packet):
        qos = packet.qos
        if qos not in (0, 1, 2):
            raise MQTTRangeError('Invalid QoS: %r' % (qos,))
        return (int(bool(packet.dup)) << 3) | (qos << 1) | int(bool(packet.retain))


def get_codec(version):
    """Return the codec for a protocol version (level or name)."""
    level = ProtocolVersion.parse(version)
    if level == ProtocolVersion.V5:
        from .v5 import V5Codec
        return V5Codec()
    from .v311 import V311Codec
    return V311Codec()
