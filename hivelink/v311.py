"""
MQTT 3.1.1 codec for HiveLink.

Protocol Reference: http://docs.oasis-open.org/mqtt/mqtt/v3.1.1/mqtt-v3.1.1.html

3.1.1 packets carry no properties and no reason codes beyond CONNACK and
SUBACK return codes; those fields of the packet objects are ignored on
encode and left at their defaults on decode.
"""

import struct

from .codec import Codec, PROTOCOL_NAME, check_packet_id, frame
from .errors import MQTTMalformedPacketError, MQTTProtocolError
from .packet import (
    CONNECT, PUBLISH, SUBACK, SUBSCRIBE, UNSUBACK, UNSUBSCRIBE,
    ConnAck, Connect, Disconnect, Publish, QoSAck, SubAck, Subscribe, UnsubAck,
    Unsubscribe, WillMessage, ProtocolVersion, QoS, packet_name,
)
from .utils import (
    encode_string, encode_binary, decode_string, decode_binary,
    decode_uint8, decode_uint16,
)


class V311Codec(Codec):
    """Encoder/decoder for protocol level 4."""

    version = ProtocolVersion.V311

    # CONNECT / CONNACK

    def encode_connect(self, packet):
        body = self._connect_header(packet)
        body.extend(encode_string(packet.client_id))
        if packet.will is not None:
            body.extend(encode_string(packet.will.topic))
            body.extend(encode_binary(packet.will.payload))
        body.extend(self._connect_credentials(packet))
        return frame(CONNECT, body)

    def decode_connect(self, data):
        """
        Parse CONNECT packet body.

        Raises:
            MQTTMalformedPacketError: If packet format is invalid
            MQTTProtocolError: If the protocol level is not 4
        """
        if len(data) < 10:
            raise MQTTMalformedPacketError('CONNECT packet too short')

        protocol_name, offset = decode_string(data, 0)
        if protocol_name != PROTOCOL_NAME:
            raise MQTTMalformedPacketError('Invalid protocol name: %s' % protocol_name)

        level, offset = decode_uint8(data, offset)
        if level != self.version:
            raise MQTTProtocolError('Unsupported protocol level: %d' % level, reason_code=0x01)

        flags, offset = decode_uint8(data, offset)
        if flags & 0x01:
            raise MQTTMalformedPacketError('Reserved bit in connect flags is not 0')

        has_will = bool(flags & 0x04)
        will_qos = (flags >> 3) & 0x03
        will_retain = bool(flags & 0x20)
        if not has_will and (will_qos or will_retain):
            raise MQTTMalformedPacketError('Will QoS/Retain set but Will flag is 0')
        if will_qos > 2:
            raise MQTTMalformedPacketError('Invalid Will QoS: %d' % will_qos)

        keep_alive, offset = decode_uint16(data, offset)
        client_id, offset = decode_string(data, offset)

        will = None
        if has_will:
            will_topic, offset = decode_string(data, offset)
            will_payload, offset = decode_binary(data, offset)
            will = WillMessage(will_topic, will_payload, will_qos, will_retain)

        username = password = None
        if flags & 0x80:
            username, offset = decode_string(data, offset)
        if flags & 0x40:
            password, offset = decode_binary(data, offset)

        if offset != len(data):
            raise MQTTMalformedPacketError('Extra data in CONNECT packet')

        return Connect(client_id, keep_alive, bool(flags & 0x02), username, password, will)

    def encode_connack(self, packet):
        session_byte = 0x01 if packet.session_present else 0x00
        return bytes([0x20, 0x02, session_byte, packet.reason_code])

    def decode_connack(self, data):
        if len(data) < 2:
            raise MQTTMalformedPacketError('CONNACK packet too short (%d bytes)' % len(data))
        return ConnAck(bool(data[0] & 0x01), data[1])

    # PUBLISH and acknowledgements

    def encode_publish(self, packet):
        body = bytearray(encode_string(packet.topic))
        if packet.qos > 0:
            body.extend(check_packet_id(packet.packet_id))
        body.extend(packet.payload)
        return frame(PUBLISH, body, self._publish_flags(packet))

    def decode_publish(self, flags, data):
        """
        Parse PUBLISH packet body.

        Raises:
            MQTTMalformedPacketError: If packet format is invalid
        """
        qos = (flags >> 1) & 0x03
        if qos > 2:
            raise MQTTMalformedPacketError('Invalid PUBLISH QoS: %d' % qos)

        topic, offset = self._decode_topic(data)

        packet_id = None
        if qos > 0:
            packet_id, offset = decode_uint16(data, offset)
            if packet_id == 0:
                raise MQTTMalformedPacketError('Packet ID cannot be 0')

        return Publish(topic, data[offset:], qos, retain=bool(flags & 0x01),
                       dup=bool(flags & 0x08), packet_id=packet_id)

    def _decode_topic(self, data):
        topic, offset = decode_string(data, 0)
        if not topic:
            raise MQTTMalformedPacketError('Empty topic in PUBLISH')
        if '+' in topic or '#' in topic:
            raise MQTTMalformedPacketError('Wildcards not allowed in PUBLISH topic')
        return topic, offset

    def encode_ack(self, packet):
        return frame(packet.packet_type, check_packet_id(packet.packet_id))

    def decode_ack(self, packet_type, data):
        if len(data) != 2:
            raise MQTTMalformedPacketError(
                '%s must be 2 bytes, got %d' % (packet_name(packet_type), len(data)))
        return QoSAck(packet_type, struct.unpack('!H', data)[0])

    # SUBSCRIBE / SUBACK

    def encode_subscribe(self, packet):
        body = bytearray(check_packet_id(packet.packet_id))
        count = 0
        for topic_filter, qos in packet.topics:
            if not topic_filter:
                continue
            body.extend(encode_string(topic_filter))
            body.append(QoS.clamp(qos))
            count += 1
        if count == 0:
            raise ValueError('SUBSCRIBE requires at least one topic filter')
        return frame(SUBSCRIBE, body)

    def decode_subscribe(self, data):
        """
        Parse SUBSCRIBE packet body.

        Raises:
            MQTTMalformedPacketError: If packet format is invalid
        """
        # Minimum: 2 bytes packet ID + 2 bytes topic length + 1 byte QoS
        if len(data) < 5:
            raise MQTTMalformedPacketError('SUBSCRIBE packet too short')

        packet_id, offset = decode_uint16(data, 0)
        if packet_id == 0:
            raise MQTTMalformedPacketError('Packet ID cannot be 0')

        topics = []
        while offset < len(data):
            topic_filter, offset = decode_string(data, offset)
            if not topic_filter:
                raise MQTTMalformedPacketError('Empty topic filter in SUBSCRIBE')
            qos, offset = decode_uint8(data, offset)
            if qos > 2:
                raise MQTTMalformedPacketError('Invalid QoS in SUBSCRIBE: %d' % qos)
            topics.append((topic_filter, qos))

        return Subscribe(packet_id, topics)

    def encode_suback(self, packet):
        body = bytearray(check_packet_id(packet.packet_id))
        body.extend(bytes(packet.reason_codes))
        return frame(SUBACK, body)

    def decode_suback(self, data):
        if len(data) < 3:
            raise MQTTMalformedPacketError('SUBACK packet too short (%d bytes)' % len(data))
        packet_id, offset = decode_uint16(data, 0)
        return SubAck(packet_id, list(data[offset:]))

    # UNSUBSCRIBE / UNSUBACK

    def encode_unsubscribe(self, packet):
        body = bytearray(check_packet_id(packet.packet_id))
        topics = [t for t in packet.topics if t]
        if not topics:
            raise ValueError('UNSUBSCRIBE requires at least one topic filter')
        for topic_filter in topics:
            body.extend(encode_string(topic_filter))
        return frame(UNSUBSCRIBE, body)

    def decode_unsubscribe(self, data):
        # Minimum: 2 bytes packet ID + 2 bytes topic length
        if len(data) < 4:
            raise MQTTMalformedPacketError('UNSUBSCRIBE packet too short')

        packet_id, offset = decode_uint16(data, 0)
        if packet_id == 0:
            raise MQTTMalformedPacketError('Packet ID cannot be 0')

        topics = []
        while offset < len(data):
            topic_filter, offset = decode_string(data, offset)
            if not topic_filter:
                raise MQTTMalformedPacketError('Empty topic filter in UNSUBSCRIBE')
            topics.append(topic_filter)

        return Unsubscribe(packet_id, topics)

    def encode_unsuback(self, packet):
        return frame(UNSUBACK, check_packet_id(packet.packet_id))

    def decode_unsuback(self, data):
        # 3.1.1 carries no per-filter codes; success is implicit
        if len(data) < 2:
            raise MQTTMalformedPacketError('UNSUBACK packet too short (%d bytes)' % len(data))
        packet_id, _ = decode_uint16(data, 0)
        return UnsubAck(packet_id)

    # DISCONNECT

    def encode_disconnect(self, packet=None):
        return bytes([0xE0, 0x00])

    def decode_disconnect(self, data):
        return Disconnect()
