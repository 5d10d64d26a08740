"""
HiveLink Client - MQTT 3.1.1 / 5.0 client engine.

One cooperative pump, ``loop_once``, reads a single packet and drives
every protocol flow. Calls that wait on the broker (connect, QoS 1/2
publish, ping, subscribe, unsubscribe) keep pumping until the
acknowledgement they need arrives or their deadline passes, so messages
interleaved with a handshake are acknowledged and delivered, not lost.

The client is confined to one asyncio task; it spawns no background
tasks of its own.
"""

import asyncio
import time
from collections import deque

from .codec import get_codec
from .config import ClientConfig
from .errors import (
    MQTTError, MQTTConnectionError, MQTTConnectRefusedError, MQTTMalformedPacketError,
    MQTTProtocolError, MQTTTimeoutError, MQTTTransportError,
)
from .logging import get_logger
from .packet import (
    CONNACK, CONNECT, DISCONNECT, PINGREQ, PINGRESP, PUBACK, PUBCOMP, PUBLISH, PUBREC,
    PUBREL, SUBACK, SUBSCRIBE, UNSUBACK, UNSUBSCRIBE, PACKET_NAMES,
    Connect, Disconnect, ProtocolVersion, Publish, QoS, QoSAck, Subscribe, SubscribeOptions,
    Unsubscribe, packet_name,
)
from .qos import ACK_FOR_QOS, QoSManager
from .reasons import describe
from .session import ClientSession, ReconnectPolicy
from .stats import ClientStats
from .topic import TopicFilterTree
from .transport import TcpTransport
from .utils import decode_varint, validate_topic_filter, validate_topic_name

# Upper bound for one pump read so keep-alive is checked regularly
_MAX_POLL = 1.0


class ClientState:
    """Connection lifecycle states."""
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DISCONNECTING = 'disconnecting'
    STOPPED = 'stopped'


class ConnectResult:
    """Outcome of a CONNECT handshake."""
    __slots__ = ('session_present', 'protocol', 'version', 'reason_code', 'reason',
                 'assigned_client_id', 'properties')

    def __init__(self, connack, version):
        properties = connack.properties or {}
        self.session_present = connack.session_present
        self.protocol = 'MQTT'
        self.version = ProtocolVersion.name(version)
        self.reason_code = connack.reason_code
        self.reason = describe(connack.reason_code, version, CONNACK)
        self.assigned_client_id = properties.get('assigned_client_identifier')
        self.properties = properties

    @property
    def success(self):
        return self.reason_code == 0

    def __repr__(self):
        return 'ConnectResult(version=%s, reason_code=%d, session_present=%s)' % (
            self.version, self.reason_code, self.session_present)


class SubscribeResult:
    """Per-filter SUBACK codes of one SUBSCRIBE, in request order."""
    __slots__ = ('packet_id', 'reason_codes', 'suback')

    def __init__(self, packet_id, reason_codes, suback=None):
        self.packet_id = packet_id
        self.reason_codes = list(reason_codes)
        self.suback = suback

    @property
    def granted_qos(self):
        """Granted QoS per filter, None where the broker refused it."""
        return [code if code < 0x80 else None for code in self.reason_codes]

    @property
    def success(self):
        return all(code < 0x80 for code in self.reason_codes)


class UnsubscribeResult:
    """Per-filter UNSUBACK codes (always empty on MQTT 3.1.1)."""
    __slots__ = ('packet_id', 'reason_codes', 'unsuback')

    def __init__(self, packet_id, reason_codes, unsuback=None):
        self.packet_id = packet_id
        self.reason_codes = list(reason_codes)
        self.unsuback = unsuback

    @property
    def success(self):
        return all(code < 0x80 for code in self.reason_codes)


class MessageStream:
    """
    Pull-based async iterator over delivered messages.

    Backed by the same queue as ``await_message``; messages consumed by
    a registered handler never reach the stream. Iteration ends when
    ``stop()`` is called, the client is stopped, or the client can no
    longer receive.

    Example:
        stream = client.messages()
        async for message in stream:
            if message.topic == 'control/quit':
                stream.stop()
    """
    __slots__ = ('_client', 'poll_interval', '_stopped')

    def __init__(self, client, poll_interval=_MAX_POLL):
        self._client = client
        self.poll_interval = poll_interval
        self._stopped = False

    def stop(self):
        self._stopped = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        while not self._stopped and not self._client.stopped:
            message = await self._client.await_message(self.poll_interval)
            if message is not None:
                return message
            if not self._client.can_receive():
                break
        raise StopAsyncIteration


class MQTTClient:
    """
    MQTT client for protocol versions 3.1.1 and 5.0.

    Example:
        client = MQTTClient(host='broker.local', protocol_version='5.0')

        @client.on_message
        def handle(message):
            print(message.topic, message.payload)

        await client.connect()
        await client.subscribe('sensors/#', qos=1)
        await client.run()
    """

    def __init__(self, config=None, transport=None, codec=None, **kwargs):
        """
        Initialize the client.

        Args:
            config: ClientConfig instance. If None, built from kwargs.
            transport: Object with the TcpTransport interface (default TcpTransport).
            codec: Codec to use instead of the one matching protocol_version.
        """
        self.config = config or ClientConfig(**kwargs)
        self.config.validate()

        self._log = get_logger('HiveLink', self.config.log_level)

        self.transport = transport or TcpTransport()
        self._codec_override = codec
        self.codec = codec or get_codec(self.config.protocol_version)

        self.session = ClientSession(self.config.client_id, self.config.clean_start,
                                     self.config.keep_alive)
        self.qos = QoSManager(self.config.qos1_dedup_size)
        self.reconnect_policy = ReconnectPolicy(
            self.config.reconnect_max_attempts, self.config.reconnect_base_delay,
            self.config.reconnect_max_delay, self.config.reconnect_jitter)
        self.stats = ClientStats()

        self.state = ClientState.DISCONNECTED
        self.server_properties = {}

        # Delivery
        self._inbound = deque()
        self._filters = TopicFilterTree()
        for topic_filter in self.config.message_filters:
            self._filters.add(topic_filter)
        self._topic_handlers = TopicFilterTree()
        self._topic_aliases = {}

        # Control flags
        self._stopped = False
        self._reconnect_pending = False
        self._reconnecting = False
        self._reconnect_due = None
        self._resubscribing = False

        # Hook callbacks
        self._on_message = None
        self._on_connect = None
        self._on_disconnect = None

    async def __aenter__(self):
        result = await self.connect()
        if not result.success:
            raise MQTTConnectRefusedError(
                'Connection refused by %s:%d: %s' % (self.config.host, self.config.port,
                                                     result.reason), result.reason_code)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    # Helper for firing hooks (sync + async compatible)

    async def _fire_hook(self, hook, *args):
        """Fire a hook callback, handling both sync and async functions.

        Args:
            hook: Callable (sync or async) or None
            *args: Arguments to pass to the hook

        Returns:
            Return value from the hook, or None if hook is None or errors
        """
        if hook is None:
            return None
        try:
            result = hook(*args)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        except Exception as e:
            self._log.error("Error in hook %s: %s", getattr(hook, '__name__', hook), e)
            return None

    # Hook decorators

    def on_message(self, func):
        """
        Decorator for delivered messages not claimed by an on_topic handler.

        While set, messages are handed to it instead of the await_message queue.

        @client.on_message
        def handler(message):
            pass
        """
        self._on_message = func
        return func

    def on_connect(self, func):
        """
        Decorator for successful connections (including reconnects).

        @client.on_connect
        def handler(result):
            pass
        """
        self._on_connect = func
        return func

    def on_disconnect(self, func):
        """
        Decorator for connection loss and disconnects.

        @client.on_disconnect
        def handler(reason_code, graceful):
            pass  # reason_code is None when the transport failed
        """
        self._on_disconnect = func
        return func

    def on_topic(self, topic_filter):
        """
        Decorator registering a handler for messages matching a filter.

        @client.on_topic('sensors/+/temperature')
        def handler(message):
            pass
        """
        def decorator(func):
            self.message_callback_add(topic_filter, func)
            return func
        return decorator

    def message_callback_add(self, topic_filter, callback):
        validate_topic_filter(topic_filter)
        self._topic_handlers.add(topic_filter, callback)

    def message_callback_remove(self, topic_filter, callback=None):
        return self._topic_handlers.remove(topic_filter, callback)

    # State

    @property
    def client_id(self):
        return self.session.client_id

    @property
    def is_connected(self):
        return self.state == ClientState.CONNECTED and self.transport.is_open()

    @property
    def stopped(self):
        return self._stopped

    def can_receive(self):
        """True while the pump can still produce packets (now or after reconnect)."""
        if self._stopped:
            return False
        return (self.transport.is_open() or self._reconnect_pending
                or self.state == ClientState.CONNECTED)

    def stop(self):
        """Make run(), message streams and the pump return."""
        self._stopped = True

    def get_stats(self):
        stats = self.stats.as_dict()
        stats['inflight'] = self.qos.get_inflight_count()
        stats['subscriptions'] = len(self.session.subscriptions)
        stats['queued_messages'] = len(self._inbound)
        return stats

    # Connection

    def _build_connect(self):
        properties = None
        if self.codec.version == ProtocolVersion.V5:
            properties = dict(self.config.connect_properties or {})
            if self.config.session_expiry is not None:
                properties['session_expiry_interval'] = self.config.session_expiry
        return Connect(self.session.client_id, self.config.keep_alive, self.config.clean_start,
                       self.config.username, self.config.password, self.config.will, properties)

    async def connect(self):
        """
        Open the transport and perform the CONNECT handshake.

        Returns:
            ConnectResult: check ``success``; a refused connection leaves
                the transport closed

        Raises:
            MQTTProtocolError: If the first packet received is not CONNACK
            MQTTTimeoutError: If no CONNACK arrives within connect_timeout
            MQTTTransportError: If the transport cannot be opened
        """
        config = self.config
        self._stopped = False
        self.state = ClientState.CONNECTING
        self.codec = self._codec_override or get_codec(config.protocol_version)
        self._topic_aliases.clear()

        try:
            await self.transport.open(config.host, config.port, config.connect_timeout)
            if config.use_tls:
                await self.transport.enable_tls(dict(config.tls_options or {}))
            await self._send(self.codec.encode(self._build_connect()), CONNECT)

            packet_type, flags, body = await self._read_frame(config.connect_timeout)
            if packet_type != CONNACK:
                raise MQTTProtocolError('Expected CONNACK, got %s' % packet_name(packet_type))
            connack = self.codec.decode(packet_type, flags, body)
        except MQTTError:
            await self.transport.close()
            self.state = ClientState.DISCONNECTED
            raise

        result = ConnectResult(connack, self.codec.version)
        if not result.success:
            self._log.warning("Connection refused by %s:%d: %s (0x%02X)",
                              config.host, config.port, result.reason, result.reason_code)
            await self.transport.close()
            self.state = ClientState.DISCONNECTED
            return result

        self.state = ClientState.CONNECTED
        self._reconnect_pending = False
        self._reconnect_due = None
        self.reconnect_policy.reset()
        self.server_properties = result.properties

        if result.assigned_client_id:
            self.session.client_id = result.assigned_client_id
        self.session.keep_alive = result.properties.get('server_keep_alive', config.keep_alive)
        self.session.reset_keep_alive()

        if not result.session_present:
            self.qos.clear_inbound()

        self._log.info("Connected to %s:%d (MQTT %s, client_id=%s, session_present=%s)",
                       config.host, config.port, result.version, self.session.client_id,
                       result.session_present)
        # A reconnect fires the hook once subscriptions are replayed
        if not self._reconnecting:
            await self._fire_hook(self._on_connect, result)
        return result

    async def disconnect(self, reason_code=0, properties=None):
        """
        Send DISCONNECT and close the transport.

        Cancels any pending auto-reconnect; the client stays disconnected
        until connect() is called again.
        """
        self._reconnect_pending = False
        self._reconnect_due = None
        if not self.transport.is_open():
            self.state = ClientState.DISCONNECTED
            return

        self.state = ClientState.DISCONNECTING
        try:
            await self._send(self.codec.encode(Disconnect(reason_code, properties)), DISCONNECT)
        finally:
            await self.transport.close()
            self.state = ClientState.DISCONNECTED

        self._log.info("Disconnected from %s:%d", self.config.host, self.config.port)
        await self._fire_hook(self._on_disconnect, reason_code, True)

    async def _connection_lost(self, reason):
        """Close the transport and arm auto-reconnect if the link was up."""
        was_connected = self.state == ClientState.CONNECTED
        await self.transport.close()
        if not was_connected:
            return

        self.state = ClientState.DISCONNECTED
        self._topic_aliases.clear()
        self._log.warning("Connection lost: %s", reason)
        if self.config.auto_reconnect:
            self._reconnect_pending = True
        await self._fire_hook(self._on_disconnect, None, False)

    async def _attempt_reconnect(self, max_wait=None):
        """
        One backoff-delayed reconnect attempt with subscription replay.

        The backoff delay is spread over calls: at most ``max_wait``
        seconds are slept per call, and the attempt is made by the call
        that reaches the due time.

        Args:
            max_wait: Longest sleep for this call, None sleeps the full delay

        Returns:
            bool: True once connected and resubscribed
        """
        policy = self.reconnect_policy
        if policy.exhausted:
            self._log.error("Giving up after %d reconnect attempts", policy.attempts)
            self._reconnect_pending = False
            self._stopped = True
            self.state = ClientState.STOPPED
            return False

        attempt = policy.attempts
        if self._reconnect_due is None:
            delay = policy.next_delay()
            self._log.info("Reconnecting in %.2fs (attempt %d/%d)",
                           delay, attempt + 1, policy.max_attempts)
            self._reconnect_due = time.monotonic() + delay

        wait = self._reconnect_due - time.monotonic()
        if max_wait is not None and wait > max_wait:
            await asyncio.sleep(max(max_wait, 0))
            return False
        await asyncio.sleep(max(wait, 0))
        self._reconnect_due = None

        self._reconnecting = True
        try:
            result = await self.connect()
            if not result.success:
                raise MQTTConnectRefusedError('Reconnect refused: %s' % result.reason,
                                              result.reason_code)
            await self._resubscribe()
            await self._retransmit(result.session_present)
        except (MQTTError, OSError) as e:
            # connect() resets the counter, so restore it before counting
            policy.attempts = attempt
            policy.record_failure()
            await self.transport.close()
            self.state = ClientState.DISCONNECTED
            self._reconnect_pending = True
            self._log.warning("Reconnect attempt %d failed: %s", policy.attempts, e)
            return False
        finally:
            self._reconnecting = False

        self.stats.reconnects += 1
        await self._fire_hook(self._on_connect, result)
        return True

    async def _resubscribe(self):
        """Replay every subscription, one SUBSCRIBE per filter."""
        self._resubscribing = True
        try:
            for sub in self.session.get_subscriptions():
                self._log.debug("Resubscribing to %s (QoS %d)", sub.topic_filter, sub.qos)
                await self.subscribe_with([(sub.topic_filter, sub.qos)], sub.options)
        finally:
            self._resubscribing = False

    async def _retransmit(self, session_present):
        """Resend unacknowledged outbound QoS packets into a resumed session."""
        if not session_present:
            return
        for packet in self.qos.pending_retransmissions():
            self._log.debug("Retransmitting %s %d", packet_name(packet.packet_type),
                            packet.packet_id)
            await self._send(self.codec.encode(packet), packet.packet_type)

    # Wire I/O

    async def _send(self, data, packet_type):
        try:
            await self.transport.write(data)
        except MQTTTransportError as e:
            await self._connection_lost(e.message)
            raise
        self.session.update_activity()
        self.stats.record_sent(data)
        self._log.packet('>>', packet_name(packet_type), data)

    async def _read_frame(self, timeout):
        """
        Read one fixed header, remaining length and body.

        Returns:
            tuple: (packet_type, flags, body)

        Raises:
            MQTTTimeoutError: If no packet starts within timeout
            MQTTTransportError: On I/O failure or a stall inside a packet
            MQTTMalformedPacketError: On an invalid remaining length
        """
        header = await self.transport.read_exact(1, timeout)

        # A started packet is finished even when the caller's timeout is tiny
        rest_timeout = None if timeout is None else max(timeout, self.config.connect_timeout)
        length_bytes = bytearray()
        try:
            while True:
                byte = (await self.transport.read_exact(1, rest_timeout))[0]
                length_bytes.append(byte)
                if not byte & 0x80:
                    break
                if len(length_bytes) >= 4:
                    raise MQTTMalformedPacketError('Remaining length exceeds 4 bytes')
            length, _ = decode_varint(length_bytes)
            body = await self.transport.read_exact(length, rest_timeout) if length else b''
        except MQTTTimeoutError:
            raise MQTTTransportError('Stalled inside a packet; stream out of sync')

        self.stats.record_received(1 + len(length_bytes) + length)
        self.session.mark_received()
        packet_type = header[0] >> 4
        self._log.packet('<<', packet_name(packet_type), header + bytes(length_bytes) + body)
        return (packet_type, header[0] & 0x0F, body)

    # Pump

    async def loop_once(self, timeout=0.1):
        """
        Read and process at most one packet.

        Reconnects first when auto-reconnect is armed and sends a
        keep-alive PINGREQ when one is due.

        Args:
            timeout: Seconds to wait for a packet

        Returns:
            bool: True if a packet was processed

        Raises:
            MQTTProtocolError: If the broker sent undecodable or invalid
                bytes; the connection is closed first
        """
        if self._stopped:
            return False

        if not self.transport.is_open():
            if self.state == ClientState.CONNECTED:
                await self._connection_lost('transport closed')
            if not self._reconnect_pending or self._reconnecting:
                return False
            if not await self._attempt_reconnect(timeout):
                return False

        try:
            await self._keep_alive()
            packet_type, flags, body = await self._read_frame(timeout)
            await self._handle_packet(packet_type, flags, body)
        except MQTTTimeoutError:
            return False
        except MQTTTransportError as e:
            await self._connection_lost(e.message)
            return False
        except MQTTProtocolError as e:
            self._log.error("Protocol error from broker: %s", e.message)
            await self._connection_lost(e.message)
            raise
        return True

    async def _keep_alive(self):
        if self.session.is_ping_overdue():
            raise MQTTTransportError('No PINGRESP within %.1fs' % (self.session.keep_alive * 1.5))
        if self.session.is_ping_due():
            await self._send(self.codec.encode_pingreq(), PINGREQ)
            self.session.ping_sent()
            self.stats.pings_sent += 1

    async def _handle_packet(self, packet_type, flags, body):
        if packet_type not in PACKET_NAMES:
            self._log.debug("Ignoring unknown packet type %d", packet_type)
            return

        packet = self.codec.decode(packet_type, flags, body)

        # Dispatch based on packet type
        if packet_type == PUBLISH:
            await self._handle_publish(packet)

        elif packet_type == PUBREL:
            await self._handle_pubrel(packet)

        elif packet_type == PUBACK:
            self.qos.handle_puback(packet.packet_id)
            self._resolve(packet)

        elif packet_type == PUBREC:
            await self._handle_pubrec(packet)

        elif packet_type == PUBCOMP:
            self.qos.handle_pubcomp(packet.packet_id)
            self._resolve(packet)

        elif packet_type == PINGRESP:
            self.session.ping_answered()

        elif packet_type in (SUBACK, UNSUBACK):
            self._resolve(packet)

        elif packet_type == DISCONNECT:
            await self._handle_disconnect(packet)

        else:
            self._log.debug("Ignoring unexpected %s", packet_name(packet_type))

    def _resolve(self, packet):
        if not self.qos.resolve(packet.packet_type, packet.packet_id, packet):
            self._log.debug("No caller waiting for %s %d",
                            packet_name(packet.packet_type), packet.packet_id)

    async def _handle_publish(self, message):
        message = self._apply_topic_alias(message)

        if message.qos == 1:
            await self._send(self.codec.encode(QoSAck(PUBACK, message.packet_id)), PUBACK)
            if self.qos.is_duplicate_qos1(message):
                self.stats.duplicates_suppressed += 1
                self._log.debug("Suppressed duplicate QoS 1 message %d", message.packet_id)
                return

        elif message.qos == 2:
            await self._send(self.codec.encode(QoSAck(PUBREC, message.packet_id)), PUBREC)
            if not self.qos.track_inbound_qos2(message):
                self.stats.duplicates_suppressed += 1
            # Delivered on PUBREL
            return

        await self._deliver(message)

    def _apply_topic_alias(self, message):
        alias = (message.properties or {}).get('topic_alias')
        if alias is None:
            return message
        if message.topic:
            self._topic_aliases[alias] = message.topic
            return message
        topic = self._topic_aliases.get(alias)
        if topic is None:
            raise MQTTProtocolError('Unknown topic alias %d' % alias, reason_code=0x94)
        message.topic = topic
        return message

    async def _handle_pubrel(self, ack):
        # PUBCOMP goes out even for an id already released (retransmitted PUBREL)
        await self._send(self.codec.encode(QoSAck(PUBCOMP, ack.packet_id)), PUBCOMP)
        message = self.qos.handle_pubrel(ack.packet_id)
        if message is not None:
            await self._deliver(message)

    async def _handle_pubrec(self, ack):
        packet_id = ack.packet_id
        if not ack.success:
            # A failing PUBREC ends the flow without PUBREL
            self.qos.release_outbound(packet_id)
            self.qos.resolve(PUBCOMP, packet_id, ack)
            return
        self.qos.handle_pubrec(packet_id)
        await self._send(self.codec.encode(QoSAck(PUBREL, packet_id)), PUBREL)

    async def _handle_disconnect(self, packet):
        reason = describe(packet.reason_code, self.codec.version, DISCONNECT)
        self._log.warning("Broker sent DISCONNECT: %s (0x%02X)", reason, packet.reason_code)
        await self.transport.close()
        self.state = ClientState.DISCONNECTED
        self._topic_aliases.clear()
        if self.config.auto_reconnect:
            self._reconnect_pending = True
        else:
            self._stopped = True
        await self._fire_hook(self._on_disconnect, packet.reason_code, False)

    async def _deliver(self, message):
        if self._filters and not self._filters.match(message.topic):
            self._log.debug("Message on %s filtered out", message.topic)
            return

        self.stats.messages_delivered += 1
        handlers = self._topic_handlers.match(message.topic) if self._topic_handlers else []
        if handlers:
            for handler in handlers:
                await self._fire_hook(handler, message)
        elif self._on_message is not None:
            await self._fire_hook(self._on_message, message)
        else:
            self._inbound.append(message)

    # Waiting

    def _require_connection(self, action):
        if not self.transport.is_open():
            raise MQTTConnectionError('Cannot %s: not connected' % action)

    async def _wait_for(self, slot, timeout, what):
        """Pump until the slot is filled or the deadline passes."""
        deadline = time.monotonic() + timeout
        while not slot.done:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise MQTTTimeoutError('Timed out waiting for %s (packet id %d)' % (
                    what, slot.packet_id))
            if self._stopped:
                raise MQTTConnectionError('Client stopped while waiting for %s' % what)
            if not self.transport.is_open():
                if self.state == ClientState.CONNECTED:
                    await self._connection_lost('transport closed')
                if self._reconnecting or not self._reconnect_pending:
                    raise MQTTConnectionError('Connection lost while waiting for %s' % what)
            await self.loop_once(min(remaining, _MAX_POLL))
        return slot.result

    # Operations

    async def publish(self, topic, payload=b'', qos=0, retain=False, properties=None):
        """
        Publish an application message.

        QoS 0 returns once written. QoS 1 waits for PUBACK; QoS 2 waits
        for PUBCOMP (PUBREL is sent automatically on PUBREC).

        Args:
            topic: str, concrete topic (no wildcards)
            payload: bytes or str (UTF-8 encoded)
            qos: 0, 1 or 2
            retain: Retain flag
            properties: MQTT 5 PUBLISH properties dict (ignored on 3.1.1)

        Returns:
            int: packet id, 0 for QoS 0

        Raises:
            ValueError: On an invalid topic or QoS
            MQTTTimeoutError: If the acknowledgement does not arrive in time
            MQTTProtocolError: If the broker rejects the message (MQTT 5)
        """
        validate_topic_name(topic)
        if qos not in (0, 1, 2):
            raise ValueError('qos must be 0, 1 or 2, got %r' % (qos,))
        self._require_connection('PUBLISH')

        if qos == 0:
            packet = Publish(topic, payload, 0, retain, properties=properties)
            await self._send(self.codec.encode(packet), PUBLISH)
            self.stats.publishes_sent += 1
            return 0

        packet_id = self.qos.next_packet_id()
        packet = Publish(topic, payload, qos, retain, packet_id=packet_id, properties=properties)
        data = self.codec.encode(packet)
        self.qos.track_outbound(packet)
        ack_type = ACK_FOR_QOS[qos]
        slot = self.qos.expect(ack_type, packet_id)
        try:
            await self._send(data, PUBLISH)
            self.stats.publishes_sent += 1
            ack = await self._wait_for(slot, self.config.ack_timeout, packet_name(ack_type))
        finally:
            self.qos.cancel(slot)
            self.qos.release_outbound(packet_id)

        if not ack.success:
            reason = describe(ack.reason_code, self.codec.version, ack.packet_type)
            raise MQTTProtocolError('PUBLISH %d to %s rejected: %s' % (packet_id, topic, reason),
                                    reason_code=ack.reason_code)
        return packet_id

    async def ping(self, timeout=5.0):
        """
        Send PINGREQ and wait for the PINGRESP.

        Returns:
            bool: True when PINGRESP arrived

        Raises:
            MQTTConnectionError: If not connected
            MQTTProtocolError: If another packet arrives first (it is
                still processed normally)
            MQTTTimeoutError: If nothing arrives within timeout
        """
        self._require_connection('PING')
        await self._send(self.codec.encode_pingreq(), PINGREQ)
        self.session.ping_sent()
        self.stats.pings_sent += 1

        packet_type, flags, body = await self._read_frame(timeout)
        if packet_type == PINGRESP:
            self.session.ping_answered()
            return True

        await self._handle_packet(packet_type, flags, body)
        raise MQTTProtocolError('Expected PINGRESP, got %s' % packet_name(packet_type))

    async def subscribe(self, topics, qos=0, options=None):
        """
        Subscribe to one filter or a list of filters at the same QoS.

        Returns:
            SubscribeResult
        """
        if isinstance(topics, str):
            topics = [topics]
        return await self.subscribe_with([(topic, qos) for topic in topics], options)

    async def subscribe_with(self, filters, options=None, properties=None):
        """
        Subscribe to (filter, qos) pairs in a single SUBSCRIBE.

        Args:
            filters: list of (topic_filter, requested_qos) tuples
            options: SubscribeOptions (MQTT 5 flags and properties)
            properties: MQTT 5 SUBSCRIBE properties, replacing those of options

        Returns:
            SubscribeResult: SUBACK codes in request order

        Raises:
            ValueError: On an empty list or invalid filter
            MQTTTimeoutError: If no SUBACK arrives within ack_timeout
        """
        if properties:
            base = options or SubscribeOptions()
            options = SubscribeOptions(base.no_local, base.retain_as_published,
                                       base.retain_handling, properties)
        filters = [(topic_filter, QoS.clamp(qos)) for topic_filter, qos in filters]
        if not filters:
            raise ValueError('subscribe requires at least one topic filter')
        for topic_filter, _ in filters:
            validate_topic_filter(topic_filter)
        self._require_connection('SUBSCRIBE')

        packet_id = self.qos.next_packet_id()
        data = self.codec.encode(Subscribe(packet_id, filters, options))
        slot = self.qos.expect(SUBACK, packet_id)
        try:
            await self._send(data, SUBSCRIBE)
            suback = await self._wait_for(slot, self.config.ack_timeout, 'SUBACK')
        finally:
            self.qos.cancel(slot)

        codes = suback.reason_codes
        for index, (topic_filter, qos) in enumerate(filters):
            code = codes[index] if index < len(codes) else 0x80
            if code >= 0x80:
                self._log.warning("Subscription to %s refused: %s (0x%02X)", topic_filter,
                                  describe(code, self.codec.version, SUBACK), code)
            elif not self._resubscribing:
                self.session.record_subscription(topic_filter, qos, options, code)

        return SubscribeResult(packet_id, codes, suback)

    async def unsubscribe(self, topics, properties=None):
        """
        Unsubscribe from one filter or a list of filters.

        Returns:
            UnsubscribeResult (codes are empty on MQTT 3.1.1)
        """
        if isinstance(topics, str):
            topics = [topics]
        topics = list(topics)
        if not topics:
            raise ValueError('unsubscribe requires at least one topic filter')
        self._require_connection('UNSUBSCRIBE')

        packet_id = self.qos.next_packet_id()
        data = self.codec.encode(Unsubscribe(packet_id, topics, properties))
        slot = self.qos.expect(UNSUBACK, packet_id)
        try:
            await self._send(data, UNSUBSCRIBE)
            unsuback = await self._wait_for(slot, self.config.ack_timeout, 'UNSUBACK')
        finally:
            self.qos.cancel(slot)

        for topic_filter in topics:
            self.session.remove_subscription(topic_filter)
        return UnsubscribeResult(packet_id, unsuback.reason_codes, unsuback)

    async def await_message(self, timeout=None):
        """
        Return the next queued message, pumping until one arrives.

        Args:
            timeout: Seconds to wait; None waits until the client can no
                longer receive, 0 polls once without blocking

        Returns:
            Publish message or None
        """
        if self._inbound:
            return self._inbound.popleft()

        if timeout == 0:
            await self.loop_once(0)
            return self._inbound.popleft() if self._inbound else None

        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._inbound:
            if not self.can_receive():
                return None
            if deadline is None:
                wait = _MAX_POLL
            else:
                wait = deadline - time.monotonic()
                if wait <= 0:
                    return None
                wait = min(wait, _MAX_POLL)
            await self.loop_once(wait)
        return self._inbound.popleft()

    def messages(self, poll_interval=_MAX_POLL):
        """Return a MessageStream over delivered messages."""
        return MessageStream(self, poll_interval)

    async def run(self, on_message=None):
        """
        Pump until stop() is called or the client can no longer receive.

        Args:
            on_message: Optional handler installed as on_message
        """
        if on_message is not None:
            self._on_message = on_message
        while not self._stopped and self.can_receive():
            await self.loop_once(_MAX_POLL)
