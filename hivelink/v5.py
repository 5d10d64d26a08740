"""
MQTT 5.0 codec for HiveLink.

Protocol Reference: https://docs.oasis-open.org/mqtt/mqtt/v5.0/mqtt-v5.0.html

Structurally a superset of 3.1.1: a properties block follows the fixed
fields of CONNECT, CONNACK, PUBLISH, the QoS acknowledgements, SUBSCRIBE,
SUBACK, UNSUBSCRIBE, UNSUBACK and DISCONNECT, and acknowledgements carry
reason codes.
"""

import struct

from .codec import Codec, PROTOCOL_NAME, check_packet_id, frame
from .errors import MQTTMalformedPacketError, MQTTProtocolError
from .packet import (
    CONNECT, CONNACK, PUBLISH, SUBACK, SUBSCRIBE, UNSUBACK, UNSUBSCRIBE, DISCONNECT,
    ConnAck, Connect, Disconnect, Publish, QoSAck, SubAck, Subscribe,
    SubscribeOptions, UnsubAck, Unsubscribe, WillMessage, ProtocolVersion, packet_name,
)
from .properties import WILL, encode_properties, decode_properties
from .utils import (
    encode_string, encode_binary, decode_string, decode_binary,
    decode_uint8, decode_uint16,
)


class V5Codec(Codec):
    """Encoder/decoder for protocol level 5."""

    version = ProtocolVersion.V5

    # CONNECT / CONNACK

    def encode_connect(self, packet):
        body = self._connect_header(packet)
        body.extend(encode_properties(packet.properties, CONNECT))
        body.extend(encode_string(packet.client_id))
        if packet.will is not None:
            body.extend(encode_properties(packet.will.properties, WILL))
            body.extend(encode_string(packet.will.topic))
            body.extend(encode_binary(packet.will.payload))
        body.extend(self._connect_credentials(packet))
        return frame(CONNECT, body)

    def decode_connect(self, data):
        protocol_name, offset = decode_string(data, 0)
        if protocol_name != PROTOCOL_NAME:
            raise MQTTMalformedPacketError('Invalid protocol name: %s' % protocol_name)

        level, offset = decode_uint8(data, offset)
        if level != self.version:
            raise MQTTProtocolError('Unsupported protocol level: %d' % level, reason_code=0x84)

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
        properties, offset = decode_properties(data, offset)
        client_id, offset = decode_string(data, offset)

        will = None
        if has_will:
            will_properties, offset = decode_properties(data, offset)
            will_topic, offset = decode_string(data, offset)
            will_payload, offset = decode_binary(data, offset)
            will = WillMessage(will_topic, will_payload, will_qos, will_retain, will_properties)

        username = password = None
        if flags & 0x80:
            username, offset = decode_string(data, offset)
        if flags & 0x40:
            password, offset = decode_binary(data, offset)

        if offset != len(data):
            raise MQTTMalformedPacketError('Extra data in CONNECT packet')

        return Connect(client_id, keep_alive, bool(flags & 0x02), username, password, will,
                       properties)

    def encode_connack(self, packet):
        body = bytearray([0x01 if packet.session_present else 0x00, packet.reason_code])
        body.extend(encode_properties(packet.properties, CONNACK))
        return frame(CONNACK, body)

    def decode_connack(self, data):
        if len(data) < 2:
            raise MQTTMalformedPacketError('CONNACK packet too short (%d bytes)' % len(data))
        properties = None
        # Some brokers omit the properties block on refusal
        if len(data) > 2:
            properties, _ = decode_properties(data, 2)
        return ConnAck(bool(data[0] & 0x01), data[1], properties)

    # PUBLISH and acknowledgements

    def encode_publish(self, packet):
        body = bytearray(encode_string(packet.topic))
        if packet.qos > 0:
            body.extend(check_packet_id(packet.packet_id))
        body.extend(encode_properties(packet.properties, PUBLISH))
        body.extend(packet.payload)
        return frame(PUBLISH, body, self._publish_flags(packet))

    def decode_publish(self, flags, data):
        qos = (flags >> 1) & 0x03
        if qos > 2:
            raise MQTTMalformedPacketError('Invalid PUBLISH QoS: %d' % qos)

        topic, offset = decode_string(data, 0)
        if '+' in topic or '#' in topic:
            raise MQTTMalformedPacketError('Wildcards not allowed in PUBLISH topic')

        packet_id = None
        if qos > 0:
            packet_id, offset = decode_uint16(data, offset)
            if packet_id == 0:
                raise MQTTMalformedPacketError('Packet ID cannot be 0')

        properties, offset = decode_properties(data, offset)
        # An empty topic is legal only when a topic alias stands in for it
        if not topic and 'topic_alias' not in properties:
            raise MQTTMalformedPacketError('Empty topic in PUBLISH without topic alias')

        return Publish(topic, data[offset:], qos, retain=bool(flags & 0x01),
                       dup=bool(flags & 0x08), packet_id=packet_id, properties=properties)

    def encode_ack(self, packet):
        body = bytearray(check_packet_id(packet.packet_id))
        # Success without properties may use the 2-byte short form
        if packet.reason_code != 0 or packet.properties:
            body.append(packet.reason_code)
            if packet.properties:
                body.extend(encode_properties(packet.properties, packet.packet_type))
        return frame(packet.packet_type, body)

    def decode_ack(self, packet_type, data):
        if len(data) < 2:
            raise MQTTMalformedPacketError(
                '%s packet too short (%d bytes)' % (packet_name(packet_type), len(data)))
        packet_id = struct.unpack_from('!H', data, 0)[0]
        if len(data) == 2:
            return QoSAck(packet_type, packet_id)
        reason_code = data[2]
        properties = None
        if len(data) > 3:
            properties, _ = decode_properties(data, 3)
        return QoSAck(packet_type, packet_id, reason_code, properties)

    # SUBSCRIBE / SUBACK

    def encode_subscribe(self, packet):
        options = packet.options
        body = bytearray(check_packet_id(packet.packet_id))
        body.extend(encode_properties(options.properties, SUBSCRIBE))
        count = 0
        for topic_filter, qos in packet.topics:
            if not topic_filter:
                continue
            body.extend(encode_string(topic_filter))
            body.append(options.options_byte(qos))
            count += 1
        if count == 0:
            raise ValueError('SUBSCRIBE requires at least one topic filter')
        return frame(SUBSCRIBE, body)

    def decode_subscribe(self, data):
        packet_id, offset = decode_uint16(data, 0)
        if packet_id == 0:
            raise MQTTMalformedPacketError('Packet ID cannot be 0')
        properties, offset = decode_properties(data, offset)

        topics = []
        options = None
        while offset < len(data):
            topic_filter, offset = decode_string(data, offset)
            if not topic_filter:
                raise MQTTMalformedPacketError('Empty topic filter in SUBSCRIBE')
            byte, offset = decode_uint8(data, offset)
            if byte & 0xC0:
                raise MQTTMalformedPacketError('Reserved subscription option bits set')
            qos = byte & 0x03
            retain_handling = (byte >> 4) & 0x03
            if qos > 2 or retain_handling > 2:
                raise MQTTMalformedPacketError('Invalid subscription options 0x%02X' % byte)
            if options is None:
                options = SubscribeOptions(bool(byte & 0x04), bool(byte & 0x08),
                                           retain_handling, properties)
            topics.append((topic_filter, qos))

        if not topics:
            raise MQTTMalformedPacketError('SUBSCRIBE must contain at least one topic')
        return Subscribe(packet_id, topics, options)

    def encode_suback(self, packet):
        body = bytearray(check_packet_id(packet.packet_id))
        body.extend(encode_properties(packet.properties, SUBACK))
        body.extend(bytes(packet.reason_codes))
        return frame(SUBACK, body)

    def decode_suback(self, data):
        # Packet ID, properties length and at least one code
        if len(data) < 4:
            raise MQTTMalformedPacketError('SUBACK packet too short (%d bytes)' % len(data))
        packet_id, offset = decode_uint16(data, 0)
        properties, offset = decode_properties(data, offset)
        return SubAck(packet_id, list(data[offset:]), properties)

    # UNSUBSCRIBE / UNSUBACK

    def encode_unsubscribe(self, packet):
        body = bytearray(check_packet_id(packet.packet_id))
        body.extend(encode_properties(packet.properties, UNSUBSCRIBE))
        topics = [t for t in packet.topics if t]
        if not topics:
            raise ValueError('UNSUBSCRIBE requires at least one topic filter')
        for topic_filter in topics:
            body.extend(encode_string(topic_filter))
        return frame(UNSUBSCRIBE, body)

    def decode_unsubscribe(self, data):
        packet_id, offset = decode_uint16(data, 0)
        if packet_id == 0:
            raise MQTTMalformedPacketError('Packet ID cannot be 0')
        properties, offset = decode_properties(data, offset)

        topics = []
        while offset < len(data):
            topic_filter, offset = decode_string(data, offset)
            if not topic_filter:
                raise MQTTMalformedPacketError('Empty topic filter in UNSUBSCRIBE')
            topics.append(topic_filter)

        if not topics:
            raise MQTTMalformedPacketError('UNSUBSCRIBE must contain at least one topic')
        return Unsubscribe(packet_id, topics, properties)

    def encode_unsuback(self, packet):
        body = bytearray(check_packet_id(packet.packet_id))
        body.extend(encode_properties(packet.properties, UNSUBACK))
        body.extend(bytes(packet.reason_codes))
        return frame(UNSUBACK, body)

    def decode_unsuback(self, data):
        if len(data) < 4:
            raise MQTTMalformedPacketError('UNSUBACK packet too short (%d bytes)' % len(data))
        packet_id, offset = decode_uint16(data, 0)
        properties, offset = decode_properties(data, offset)
        return UnsubAck(packet_id, list(data[offset:]), properties)

    # DISCONNECT

    def encode_disconnect(self, packet=None):
        if packet is None:
            packet = Disconnect()
        body = bytearray()
        if packet.reason_code != 0 or packet.properties:
            body.append(packet.reason_code)
            if packet.properties:
                body.extend(encode_properties(packet.properties, DISCONNECT))
        return frame(DISCONNECT, body)

    def decode_disconnect(self, data):
        if not data:
            return Disconnect()
        properties = None
        if len(data) > 1:
            properties, _ = decode_properties(data, 1)
        return Disconnect(data[0], properties)
