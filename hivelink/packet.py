"""
MQTT control packet model for HiveLink.

Version-agnostic value classes for the 14 MQTT control packet types.
The same classes are produced and consumed by both the 3.1.1 and the
5.0 codecs; fields a version cannot carry (properties, reason codes)
are simply left at their defaults by the 3.1.1 codec.
"""

# MQTT packet type constants
CONNECT = 1
CONNACK = 2
PUBLISH = 3
PUBACK = 4
PUBREC = 5
PUBREL = 6
PUBCOMP = 7
SUBSCRIBE = 8
SUBACK = 9
UNSUBSCRIBE = 10
UNSUBACK = 11
PINGREQ = 12
PINGRESP = 13
DISCONNECT = 14

PACKET_NAMES = {
    CONNECT: 'CONNECT', CONNACK: 'CONNACK', PUBLISH: 'PUBLISH',
    PUBACK: 'PUBACK', PUBREC: 'PUBREC', PUBREL: 'PUBREL', PUBCOMP: 'PUBCOMP',
    SUBSCRIBE: 'SUBSCRIBE', SUBACK: 'SUBACK',
    UNSUBSCRIBE: 'UNSUBSCRIBE', UNSUBACK: 'UNSUBACK',
    PINGREQ: 'PINGREQ', PINGRESP: 'PINGRESP', DISCONNECT: 'DISCONNECT',
}

ACK_TYPES = (PUBACK, PUBREC, PUBREL, PUBCOMP)


def packet_name(packet_type):
    return PACKET_NAMES.get(packet_type, 'UNKNOWN(%d)' % packet_type)


class QoS:
    """Delivery guarantee levels."""
    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE = 2

    @staticmethod
    def clamp(qos):
        return max(0, min(2, int(qos)))


class ProtocolVersion:
    """Protocol levels as carried in the CONNECT variable header."""
    V311 = 4
    V5 = 5

    _ALIASES = {
        4: 4, '4': 4, '3.1.1': 4, 'v3': 4, 'v3.1.1': 4, 'V3_1_1': 4,
        5: 5, '5': 5, '5.0': 5, 'v5': 5, 'v5.0': 5, 'V5_0': 5,
    }

    @classmethod
    def parse(cls, value):
        """Normalize a version given as level or name.

        Raises:
            ValueError: If the version is not 3.1.1 or 5.0
        """
        try:
            return cls._ALIASES[value]
        except (KeyError, TypeError):
            raise ValueError('Unsupported protocol version: %r' % (value,))

    @staticmethod
    def name(level):
        return '5.0' if level == ProtocolVersion.V5 else '3.1.1'


class Packet:
    """Base for packet value classes: equality and repr over __slots__."""
    __slots__ = ()
    packet_type = None

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return all(getattr(self, s) == getattr(other, s) for s in self.__slots__)

    __hash__ = None

    def __repr__(self):
        fields = ', '.join('%s=%r' % (s, getattr(self, s)) for s in self.__slots__)
        return '%s(%s)' % (type(self).__name__, fields)


class WillMessage(Packet):
    """Last Will and Testament carried in CONNECT."""
    __slots__ = ('topic', 'payload', 'qos', 'retain', 'properties')

    def __init__(self, topic, payload=b'', qos=0, retain=False, properties=None):
        self.topic = topic
        self.payload = payload.encode('utf-8') if isinstance(payload, str) else bytes(payload)
        self.qos = qos
        self.retain = retain
        self.properties = properties or None


class SubscribeOptions(Packet):
    """MQTT 5 subscription options applied to every filter of a SUBSCRIBE."""
    __slots__ = ('no_local', 'retain_as_published', 'retain_handling', 'properties')

    def __init__(self, no_local=False, retain_as_published=False, retain_handling=0,
                 properties=None):
        self.no_local = bool(no_local)
        self.retain_as_published = bool(retain_as_published)
        # Out of range retain handling falls back to "send on subscribe"
        self.retain_handling = retain_handling if retain_handling in (0, 1, 2) else 0
        self.properties = properties or None

    def options_byte(self, qos):
        """Build the per-filter options byte for the given requested QoS."""
        byte = QoS.clamp(qos)
        if self.no_local:
            byte |= 0x04
        if self.retain_as_published:
            byte |= 0x08
        byte |= self.retain_handling << 4
        return byte


class Connect(Packet):
    __slots__ = ('client_id', 'keep_alive', 'clean_start', 'username', 'password',
                 'will', 'properties')
    packet_type = CONNECT

    def __init__(self, client_id='', keep_alive=60, clean_start=True, username=None,
                 password=None, will=None, properties=None):
        self.client_id = client_id
        self.keep_alive = keep_alive
        self.clean_start = clean_start
        self.username = username
        if isinstance(password, str):
            password = password.encode('utf-8')
        self.password = password
        self.will = will
        self.properties = properties or None


class ConnAck(Packet):
    __slots__ = ('session_present', 'reason_code', 'properties')
    packet_type = CONNACK

    def __init__(self, session_present=False, reason_code=0, properties=None):
        self.session_present = session_present
        self.reason_code = reason_code
        self.properties = properties or None

    @property
    def success(self):
        return self.reason_code == 0


class Publish(Packet):
    """Application message, used both outbound and as the delivered message."""
    __slots__ = ('topic', 'payload', 'qos', 'retain', 'dup', 'packet_id', 'properties')
    packet_type = PUBLISH

    def __init__(self, topic, payload=b'', qos=0, retain=False, dup=False, packet_id=None,
                 properties=None):
        self.topic = topic
        self.payload = payload.encode('utf-8') if isinstance(payload, str) else bytes(payload)
        self.qos = qos
        self.retain = retain
        self.dup = dup
        self.packet_id = packet_id if qos > 0 else None
        self.properties = properties or None

    @property
    def text(self):
        """Payload decoded as UTF-8 (replacement on bad bytes)."""
        return self.payload.decode('utf-8', 'replace')


class QoSAck(Packet):
    """PUBACK, PUBREC, PUBREL or PUBCOMP, distinguished by packet_type."""
    __slots__ = ('packet_type', 'packet_id', 'reason_code', 'properties')

    def __init__(self, packet_type, packet_id, reason_code=0, properties=None):
        if packet_type not in ACK_TYPES:
            raise ValueError('Not a QoS acknowledgement type: %d' % packet_type)
        self.packet_type = packet_type
        self.packet_id = packet_id
        self.reason_code = reason_code
        self.properties = properties or None

    @property
    def success(self):
        return self.reason_code < 0x80


class Subscribe(Packet):
    __slots__ = ('packet_id', 'topics', 'options')
    packet_type = SUBSCRIBE

    def __init__(self, packet_id, topics, options=None):
        self.packet_id = packet_id
        self.topics = [(f, q) for f, q in topics]  # (topic_filter, requested_qos)
        self.options = options if options is not None else SubscribeOptions()


class SubAck(Packet):
    __slots__ = ('packet_id', 'reason_codes', 'properties')
    packet_type = SUBACK

    def __init__(self, packet_id, reason_codes, properties=None):
        self.packet_id = packet_id
        self.reason_codes = list(reason_codes)
        self.properties = properties or None


class Unsubscribe(Packet):
    __slots__ = ('packet_id', 'topics', 'properties')
    packet_type = UNSUBSCRIBE

    def __init__(self, packet_id, topics, properties=None):
        self.packet_id = packet_id
        self.topics = list(topics)
        self.properties = properties or None


class UnsubAck(Packet):
    __slots__ = ('packet_id', 'reason_codes', 'properties')
    packet_type = UNSUBACK

    def __init__(self, packet_id, reason_codes=None, properties=None):
        self.packet_id = packet_id
        self.reason_codes = list(reason_codes or [])
        self.properties = properties or None


class PingReq(Packet):
    __slots__ = ()
    packet_type = PINGREQ


class PingResp(Packet):
    __slots__ = ()
    packet_type = PINGRESP


class Disconnect(Packet):
    __slots__ = ('reason_code', 'properties')
    packet_type = DISCONNECT

    def __init__(self, reason_code=0, properties=None):
        self.reason_code = reason_code
        self.properties = properties or None
