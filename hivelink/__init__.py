"""
HiveLink - asyncio MQTT 3.1.1 / 5.0 client

One engine, two wire formats: the codec is picked from the negotiated
protocol version and everything above it is version-agnostic.
"""

__version__ = '1.0.0'
__author__ = 'mateuszsury'

from .client import (
    MQTTClient, ClientState, ConnectResult, SubscribeResult, UnsubscribeResult, MessageStream,
)
from .config import ClientConfig
from .errors import (
    MQTTError, MQTTProtocolError, MQTTMalformedPacketError, MQTTRangeError,
    MQTTConnectionError, MQTTTransportError, MQTTTimeoutError, MQTTConnectRefusedError,
)
from .packet import QoS, ProtocolVersion, Publish, WillMessage, SubscribeOptions
from .codec import get_codec
from .topic import matches, TopicFilterTree
from .transport import TcpTransport
from .simple import connect, publish, publish_async

# Convenience aliases
HiveLinkClient = MQTTClient
Message = Publish
