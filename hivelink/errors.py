"""
HiveLink Exception Hierarchy

Typed errors raised by the codecs, the transport and the client engine.
Every error carries its human readable text in ``message``.
"""


class MQTTError(Exception):
    """Base exception for all MQTT-related errors."""
    __slots__ = ('message',)

    def __init__(self, message):
        self.message = message
        super().__init__(message)


class MQTTProtocolError(MQTTError):
    """Unexpected packet or broker rejection with optional MQTT reason code."""
    __slots__ = ('reason_code',)

    def __init__(self, message, reason_code=None):
        super().__init__(message)
        self.reason_code = reason_code


class MQTTMalformedPacketError(MQTTProtocolError):
    """Packet bytes could not be decoded (truncated, bad varint, bad UTF-8)."""
    __slots__ = ()

    def __init__(self, message):
        super().__init__(message, reason_code=0x81)


class MQTTRangeError(MQTTError):
    """Value outside the range the wire format can carry."""
    __slots__ = ()

    def __init__(self, message):
        super().__init__(message)


class MQTTConnectionError(MQTTError):
    """Connection-level error (network, timeout, refusal)."""
    __slots__ = ()

    def __init__(self, message):
        super().__init__(message)


class MQTTTransportError(MQTTConnectionError):
    """I/O failure reported by the transport."""
    __slots__ = ()

    def __init__(self, message):
        super().__init__(message)


class MQTTTimeoutError(MQTTConnectionError):
    """A read or acknowledgement did not arrive before its deadline."""
    __slots__ = ()

    def __init__(self, message):
        super().__init__(message)


class MQTTConnectRefusedError(MQTTConnectionError):
    """Broker answered CONNECT with a non-zero reason code."""
    __slots__ = ('reason_code',)

    def __init__(self, message, reason_code):
        super().__init__(message)
        self.reason_code = reason_code
