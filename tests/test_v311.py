"""Tests for hivelink.v311 codec."""

import pytest
from hivelink.errors import MQTTMalformedPacketError, MQTTProtocolError, MQTTRangeError
from hivelink.packet import (
    PUBACK, PUBREC, PUBREL, PUBCOMP,
    Connect, ConnAck, Publish, QoSAck, Subscribe, SubAck, Unsubscribe, UnsubAck,
    Disconnect, PingReq, PingResp, WillMessage,
)
from hivelink.v311 import V311Codec


@pytest.fixture
def codec():
    return V311Codec()


class TestConnect:
    """Test CONNECT encoding."""

    def test_minimal_connect(self, codec):
        """Test a clean session CONNECT with keep alive 60."""
        data = codec.encode(Connect('c1', keep_alive=60, clean_start=True))
        assert data == b'\x10\x0e\x00\x04MQTT\x04\x02\x00\x3c\x00\x02c1'

    def test_flags_with_will_and_credentials(self, codec):
        """Test will, will QoS, will retain, username and password flags."""
        will = WillMessage('status', b'offline', qos=1, retain=True)
        data = codec.encode(Connect('c1', 30, True, 'user', 'pass', will))
        assert data[9] == 0xEE

    def test_connect_round_trip_with_will(self, codec):
        """Test a full CONNECT decodes back to the same object."""
        packet = Connect('dev-9', 120, False, 'user', b'pw', WillMessage('w', b'bye', 2, False))
        assert codec.decode_frame(codec.encode(packet)) == packet

    def test_wrong_protocol_level(self, codec):
        """Test a v5 CONNECT is refused by the 3.1.1 decoder."""
        body = b'\x00\x04MQTT\x05\x02\x00\x3c\x00\x00'
        with pytest.raises(MQTTProtocolError, match="Unsupported protocol level"):
            codec.decode_connect(body)

    def test_keep_alive_out_of_range(self, codec):
        """Test keep alive must fit in two bytes."""
        with pytest.raises(MQTTRangeError):
            codec.encode(Connect('c1', keep_alive=70000))


class TestConnAck:
    """Test CONNACK decoding."""

    def test_session_present_and_code(self, codec):
        """Test the session present bit and return code."""
        ack = codec.decode_frame(b'\x20\x02\x01\x00')
        assert ack == ConnAck(True, 0)
        assert ack.success is True

    def test_refused(self, codec):
        """Test a non-zero return code is not a success."""
        ack = codec.decode_frame(b'\x20\x02\x00\x05')
        assert ack.reason_code == 5
        assert ack.success is False

    def test_too_short(self, codec):
        """Test a one byte CONNACK is malformed."""
        with pytest.raises(MQTTMalformedPacketError):
            codec.decode_frame(b'\x20\x01\x00')


class TestPublish:
    """Test PUBLISH encoding and decoding."""

    def test_qos1_publish(self, codec):
        """Test topic, packet id and payload layout."""
        data = codec.encode(Publish('a/b', b'hi', qos=1, packet_id=10))
        assert data == b'\x32\x09\x00\x03a/b\x00\x0ahi'

    def test_qos0_has_no_packet_id(self, codec):
        """Test QoS 0 omits the packet identifier."""
        assert codec.encode(Publish('t', b'x')) == b'\x30\x04\x00\x01tx'

    def test_flags(self, codec):
        """Test DUP, QoS 2 and RETAIN bits in the fixed header."""
        data = codec.encode(Publish('t', b'', qos=2, retain=True, dup=True, packet_id=1))
        assert data[0] == 0x3D

    def test_decode(self, codec):
        """Test a QoS 2 retained PUBLISH decodes all fields."""
        msg = codec.decode_frame(b'\x35\x06\x00\x01t\x00\x07z')
        assert msg == Publish('t', b'z', qos=2, retain=True, packet_id=7)

    def test_empty_topic_malformed(self, codec):
        """Test 3.1.1 never allows an empty topic."""
        with pytest.raises(MQTTMalformedPacketError, match="Empty topic"):
            codec.decode_frame(b'\x30\x02\x00\x00')

    def test_wildcard_topic_malformed(self, codec):
        """Test wildcards are rejected in received topics."""
        with pytest.raises(MQTTMalformedPacketError, match="Wildcards"):
            codec.decode_frame(b'\x30\x03\x00\x01#')

    def test_qos3_malformed(self, codec):
        """Test QoS bits 11 are malformed."""
        with pytest.raises(MQTTMalformedPacketError, match="Invalid PUBLISH QoS"):
            codec.decode_frame(b'\x36\x05\x00\x01t\x00\x01')

    def test_zero_packet_id(self, codec):
        """Test packet id 0 is malformed on QoS > 0."""
        with pytest.raises(MQTTMalformedPacketError, match="Packet ID cannot be 0"):
            codec.decode_frame(b'\x32\x05\x00\x01t\x00\x00')


class TestAcks:
    """Test PUBACK, PUBREC, PUBREL and PUBCOMP."""

    @pytest.mark.parametrize('packet_type, first_byte', [
        (PUBACK, 0x40), (PUBREC, 0x50), (PUBREL, 0x62), (PUBCOMP, 0x70),
    ])
    def test_encode(self, codec, packet_type, first_byte):
        """Test each acknowledgement is exactly four bytes."""
        assert codec.encode(QoSAck(packet_type, 10)) == bytes([first_byte, 0x02, 0x00, 0x0A])

    def test_reason_code_not_encoded(self, codec):
        """Test 3.1.1 drops reason codes on acknowledgements."""
        assert codec.encode(QoSAck(PUBACK, 1, 0x10)) == b'\x40\x02\x00\x01'

    def test_decode(self, codec):
        """Test an acknowledgement decodes with a success code."""
        ack = codec.decode_frame(b'\x50\x02\x12\x34')
        assert ack == QoSAck(PUBREC, 0x1234)

    def test_must_be_two_bytes(self, codec):
        """Test extra bytes after the packet id are malformed."""
        with pytest.raises(MQTTMalformedPacketError, match="must be 2 bytes"):
            codec.decode_frame(b'\x40\x03\x00\x01\x00')


class TestSubscribe:
    """Test SUBSCRIBE, SUBACK, UNSUBSCRIBE and UNSUBACK."""

    def test_subscribe(self, codec):
        """Test one filter with its requested QoS."""
        data = codec.encode(Subscribe(1, [('a/b', 1)]))
        assert data == b'\x82\x08\x00\x01\x00\x03a/b\x01'

    def test_subscribe_skips_empty_filters(self, codec):
        """Test empty filters are not sent."""
        data = codec.encode(Subscribe(1, [('', 0), ('x', 2)]))
        assert data == b'\x82\x06\x00\x01\x00\x01x\x02'

    def test_subscribe_requires_a_filter(self, codec):
        """Test a SUBSCRIBE with no usable filter is refused."""
        with pytest.raises(ValueError):
            codec.encode(Subscribe(1, [('', 0)]))

    def test_subscribe_round_trip(self, codec):
        """Test SUBSCRIBE decodes for broker-side fakes."""
        packet = Subscribe(3, [('a/+', 0), ('b/#', 2)])
        assert codec.decode_frame(codec.encode(packet)) == packet

    def test_suback(self, codec):
        """Test SUBACK return codes including failure."""
        ack = codec.decode_frame(b'\x90\x04\x00\x01\x01\x80')
        assert ack == SubAck(1, [1, 0x80])

    def test_suback_too_short(self, codec):
        """Test SUBACK needs at least one return code."""
        with pytest.raises(MQTTMalformedPacketError):
            codec.decode_frame(b'\x90\x02\x00\x01')

    def test_unsubscribe(self, codec):
        """Test UNSUBSCRIBE layout."""
        data = codec.encode(Unsubscribe(2, ['a/b']))
        assert data == b'\xa2\x07\x00\x02\x00\x03a/b'

    def test_unsuback_has_no_codes(self, codec):
        """Test 3.1.1 UNSUBACK carries only the packet id."""
        assert codec.decode_frame(b'\xb0\x02\x00\x02') == UnsubAck(2)
        assert codec.encode(UnsubAck(2, [0x11])) == b'\xb0\x02\x00\x02'


class TestControl:
    """Test PINGREQ, PINGRESP and DISCONNECT."""

    def test_ping(self, codec):
        """Test ping frames are two bytes."""
        assert codec.encode(PingReq()) == b'\xc0\x00'
        assert codec.decode_frame(b'\xd0\x00') == PingResp()

    def test_disconnect(self, codec):
        """Test DISCONNECT ignores any reason code on 3.1.1."""
        assert codec.encode(Disconnect(0x04)) == b'\xe0\x00'
        assert codec.decode_frame(b'\xe0\x00') == Disconnect()
