"""
pytest configuration and fixtures for HiveLink tests.

FakeTransport stands in for the TCP transport; ScriptedBroker answers the
frames the client writes, using the package's own codecs.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

import asyncio
import pytest

from hivelink.client import MQTTClient
from hivelink.codec import get_codec
from hivelink.errors import MQTTTimeoutError, MQTTTransportError
from hivelink.packet import (
    PUBLISH, PUBACK, PUBREC, PUBREL, PUBCOMP, SUBSCRIBE, UNSUBSCRIBE, PINGREQ, CONNECT,
    ConnAck, Publish, QoSAck, SubAck, UnsubAck, ProtocolVersion,
)
from hivelink.topic import matches


# Configure pytest-asyncio for the async tests
pytest_plugins = ('pytest_asyncio',)

# Returned by a responder to make the transport drop the connection
DROP = object()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeTransport:
    """In-memory transport.

    Frames written by the client are recorded in ``written`` and passed
    to an optional responder, whose replies become readable bytes.
    """

    def __init__(self, responder=None):
        self.responder = responder
        self.written = []
        self.inbound = bytearray()
        self.open_calls = 0
        self.fail_opens = 0
        self.tls_options = None
        self._open = False

    async def open(self, host, port, timeout=5.0):
        self.open_calls += 1
        self.host = host
        self.port = port
        if self.fail_opens > 0:
            self.fail_opens -= 1
            raise MQTTTransportError('Connection refused by %s:%d' % (host, port))
        self._open = True

    async def enable_tls(self, options=None):
        self.tls_options = options

    async def write(self, data):
        if not self._open:
            raise MQTTTransportError('Transport not open')
        data = bytes(data)
        self.written.append(data)
        if self.responder is not None:
            replies = self.responder(data)
            if replies is DROP:
                self.drop()
            else:
                for reply in replies:
                    self.inbound.extend(reply)
        return len(data)

    async def read_exact(self, length, timeout=None):
        if not self._open:
            raise MQTTTransportError('Transport not open')
        # Suspend like a stream read, even when the bytes are buffered
        await asyncio.sleep(0)
        if len(self.inbound) < length:
            await asyncio.sleep(min(timeout or 0, 0.01))
            raise MQTTTimeoutError('Timed out reading %d bytes' % length)
        chunk = bytes(self.inbound[:length])
        del self.inbound[:length]
        return chunk

    async def close(self):
        self._open = False

    def is_open(self):
        return self._open

    def feed(self, data):
        """Queue raw bytes for the client to read."""
        self.inbound.extend(data)

    def drop(self):
        """Simulate the peer vanishing."""
        self._open = False
        self.inbound.clear()

    def clear(self):
        self.written = []

    def packets(self, codec):
        """Decode every written frame."""
        return [codec.decode_frame(data) for data in self.written]

    def packets_of(self, codec, packet_type):
        return [p for p in self.packets(codec) if p.packet_type == packet_type]


class ScriptedBroker:
    """Minimal broker answering one client's frames."""

    def __init__(self, version=ProtocolVersion.V311):
        self.codec = get_codec(version)
        self.received = []
        self.subscriptions = {}  # topic_filter -> (qos, no_local)
        self.retained = {}       # topic -> payload, sent on matching SUBSCRIBE

        # CONNACK
        self.session_present = False
        self.connack_code = 0
        self.connack_properties = None

        # Behaviour switches
        self.ack_publishes = True
        self.puback_code = 0
        self.pubrec_code = 0
        self.answer_pings = True
        self.suback_codes = None
        self.drop_on_publish = 0

        self._next_id = 0

    def __call__(self, data):
        packet = self.codec.decode_frame(data)
        self.received.append(packet)
        handler = {
            CONNECT: self._on_connect, PUBLISH: self._on_publish,
            PUBREC: self._on_pubrec, PUBREL: self._on_pubrel,
            SUBSCRIBE: self._on_subscribe, UNSUBSCRIBE: self._on_unsubscribe,
            PINGREQ: self._on_pingreq,
        }.get(packet.packet_type)
        if handler is None:
            return []
        return handler(packet)

    def received_of(self, packet_type):
        return [p for p in self.received if p.packet_type == packet_type]

    def next_id(self):
        self._next_id = self._next_id % 65535 + 1
        return self._next_id

    def publish_frame(self, topic, payload, qos=0, retain=False, dup=False, packet_id=None,
                      properties=None):
        if qos > 0 and packet_id is None:
            packet_id = self.next_id()
        return self.codec.encode(Publish(topic, payload, qos, retain, dup, packet_id, properties))

    def _on_connect(self, packet):
        return [self.codec.encode(ConnAck(self.session_present, self.connack_code,
                                          self.connack_properties))]

    def _on_publish(self, packet):
        if self.drop_on_publish > 0:
            self.drop_on_publish -= 1
            return DROP

        replies = []
        for topic_filter, (qos, no_local) in self.subscriptions.items():
            if no_local or not matches(packet.topic, topic_filter):
                continue
            replies.append(self.publish_frame(packet.topic, packet.payload,
                                              min(packet.qos, qos)))

        if self.ack_publishes and packet.qos == 1:
            replies.append(self.codec.encode(QoSAck(PUBACK, packet.packet_id, self.puback_code)))
        elif self.ack_publishes and packet.qos == 2:
            replies.append(self.codec.encode(QoSAck(PUBREC, packet.packet_id, self.pubrec_code)))
        return replies

    def _on_pubrec(self, packet):
        return [self.codec.encode(QoSAck(PUBREL, packet.packet_id))]

    def _on_pubrel(self, packet):
        return [self.codec.encode(QoSAck(PUBCOMP, packet.packet_id))]

    def _on_subscribe(self, packet):
        replies = []
        codes = self.suback_codes or [qos for _, qos in packet.topics]
        for (topic_filter, qos), code in zip(packet.topics, codes):
            if code >= 0x80:
                continue
            self.subscriptions[topic_filter] = (qos, packet.options.no_local)
            for topic, payload in self.retained.items():
                if matches(topic, topic_filter):
                    replies.append(self.publish_frame(topic, payload, retain=True))
        replies.append(self.codec.encode(SubAck(packet.packet_id, codes)))
        return replies

    def _on_unsubscribe(self, packet):
        for topic_filter in packet.topics:
            self.subscriptions.pop(topic_filter, None)
        codes = [0] * len(packet.topics) if self.codec.version == ProtocolVersion.V5 else []
        return [self.codec.encode(UnsubAck(packet.packet_id, codes))]

    def _on_pingreq(self, packet):
        if not self.answer_pings:
            return []
        return [self.codec.encode_pingresp()]


def make_client(version=ProtocolVersion.V311, broker=None, **options):
    """Build a client wired to a ScriptedBroker through a FakeTransport."""
    broker = broker or ScriptedBroker(version)
    transport = FakeTransport(broker)
    options.setdefault('client_id', 'test-client')
    options.setdefault('log_level', 'ERROR')
    options.setdefault('reconnect_base_delay', 0)
    options.setdefault('reconnect_max_delay', 0)
    options.setdefault('reconnect_jitter', 0)
    client = MQTTClient(transport=transport, protocol_version=version, **options)
    return client, broker, transport


# Fixtures

@pytest.fixture
def broker():
    """Provide a 3.1.1 ScriptedBroker."""
    return ScriptedBroker(ProtocolVersion.V311)


@pytest.fixture
def broker_v5():
    """Provide a 5.0 ScriptedBroker."""
    return ScriptedBroker(ProtocolVersion.V5)


@pytest.fixture
def v311():
    return get_codec(4)


@pytest.fixture
def v5():
    return get_codec(5)


@pytest.fixture
def clock():
    """Provide a FakeClock."""
    return FakeClock()
