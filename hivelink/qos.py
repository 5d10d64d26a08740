"""
QoS state for the HiveLink client engine.

Tracks both directions of the QoS 1 and QoS 2 flows:
- QoS 1 outbound: PUBLISH -> PUBACK
- QoS 2 outbound: PUBLISH -> PUBREC -> PUBREL -> PUBCOMP
- QoS 2 inbound: PUBLISH -> PUBREC -> PUBREL -> PUBCOMP (delivery on PUBREL)
- QoS 1 inbound duplicates: recently acknowledged packet ids

and the correlation slots that let a waiting call receive the
acknowledgement packet matching its (packet type, packet id).
"""

import time
from collections import OrderedDict

from .errors import MQTTError
from .packet import PUBACK, PUBCOMP, PUBREL, Publish, QoSAck

# Acknowledgement that completes an outbound flow of each QoS
ACK_FOR_QOS = {1: PUBACK, 2: PUBCOMP}


class QoS1Outbound:
    """Track outbound QoS 1 message awaiting PUBACK."""
    __slots__ = ('packet_id', 'packet', 'retry_count', 'timestamp')

    def __init__(self, packet_id, packet):
        self.packet_id = packet_id
        self.packet = packet
        self.retry_count = 0
        self.timestamp = time.monotonic()


class QoS2Outbound:
    """Track outbound QoS 2 message through PUBREC and PUBCOMP."""
    __slots__ = ('packet_id', 'packet', 'state', 'retry_count', 'timestamp')

    AWAITING_PUBREC = 0
    AWAITING_PUBCOMP = 1

    def __init__(self, packet_id, packet):
        self.packet_id = packet_id
        self.packet = packet
        self.state = QoS2Outbound.AWAITING_PUBREC
        self.retry_count = 0
        self.timestamp = time.monotonic()


class QoS2Inbound:
    """Inbound QoS 2 message: PUBREC sent, held until PUBREL."""
    __slots__ = ('packet_id', 'message', 'timestamp')

    def __init__(self, packet_id, message):
        self.packet_id = packet_id
        self.message = message
        self.timestamp = time.monotonic()


class AckSlot:
    """Result slot for one awaited (packet type, packet id) correlation."""
    __slots__ = ('packet_type', 'packet_id', 'result', 'done')

    def __init__(self, packet_type, packet_id):
        self.packet_type = packet_type
        self.packet_id = packet_id
        self.result = None
        self.done = False

    @property
    def key(self):
        return (self.packet_type, self.packet_id)

    def set_result(self, result):
        self.result = result
        self.done = True


class QoS1SeenSet:
    """Bounded recency set of inbound QoS 1 packet ids, oldest evicted first."""
    __slots__ = ('max_size', '_ids')

    def __init__(self, max_size=256):
        self.max_size = max_size
        self._ids = OrderedDict()

    def __contains__(self, packet_id):
        return packet_id in self._ids

    def __len__(self):
        return len(self._ids)

    def add(self, packet_id):
        if packet_id in self._ids:
            self._ids.move_to_end(packet_id)
            return
        self._ids[packet_id] = True
        while len(self._ids) > self.max_size:
            self._ids.popitem(last=False)

    def clear(self):
        self._ids.clear()


class PacketIdAllocator:
    """Sequential packet identifiers 1-65535 with wraparound."""
    __slots__ = ('counter',)

    def __init__(self):
        self.counter = 0

    def next_id(self, in_use=()):
        """
        Return the next identifier not contained in ``in_use``.

        Raises:
            MQTTError: If all 65535 identifiers are in use
        """
        for _ in range(65535):
            self.counter += 1
            if self.counter > 65535:
                self.counter = 1
            if self.counter not in in_use:
                return self.counter
        raise MQTTError('No free packet identifiers')


class QoSManager:
    """In-flight QoS state and acknowledgement correlation for one client."""
    __slots__ = ('pending_qos1', 'pending_qos2_out', 'pending_qos2', 'seen_qos1',
                 '_slots', '_ids')

    def __init__(self, dedup_size=256):
        self.pending_qos1 = {}       # packet_id -> QoS1Outbound
        self.pending_qos2_out = {}   # packet_id -> QoS2Outbound
        self.pending_qos2 = {}       # packet_id -> QoS2Inbound
        self.seen_qos1 = QoS1SeenSet(dedup_size)
        self._slots = {}             # (packet_type, packet_id) -> AckSlot
        self._ids = PacketIdAllocator()

    # Packet identifiers

    def ids_in_use(self):
        used = set(self.pending_qos1)
        used.update(self.pending_qos2_out)
        used.update(packet_id for _, packet_id in self._slots)
        return used

    def next_packet_id(self):
        """Allocate an id not awaiting PUBACK, PUBREC, PUBCOMP, SUBACK or UNSUBACK."""
        return self._ids.next_id(self.ids_in_use())

    # Correlation slots

    def expect(self, packet_type, packet_id):
        """Open a result slot for an acknowledgement the caller will wait on."""
        slot = AckSlot(packet_type, packet_id)
        self._slots[slot.key] = slot
        return slot

    def resolve(self, packet_type, packet_id, result):
        """
        Hand an acknowledgement to its waiting slot.

        Returns:
            bool: True if a caller was waiting for it
        """
        slot = self._slots.pop((packet_type, packet_id), None)
        if slot is None:
            return False
        slot.set_result(result)
        return True

    def cancel(self, slot):
        if self._slots.get(slot.key) is slot:
            del self._slots[slot.key]

    def is_expected(self, packet_type, packet_id):
        return (packet_type, packet_id) in self._slots

    # Outbound

    def track_outbound(self, packet):
        """Track an outbound QoS 1/2 PUBLISH until its flow completes."""
        if packet.qos == 1:
            entry = QoS1Outbound(packet.packet_id, packet)
            self.pending_qos1[packet.packet_id] = entry
        else:
            entry = QoS2Outbound(packet.packet_id, packet)
            self.pending_qos2_out[packet.packet_id] = entry
        return entry

    def handle_puback(self, packet_id):
        """Handle PUBACK - remove QoS 1 entry."""
        if packet_id in self.pending_qos1:
            del self.pending_qos1[packet_id]
            return True
        return False

    def handle_pubrec(self, packet_id):
        """Handle PUBREC - transition QoS 2 to awaiting PUBCOMP."""
        entry = self.pending_qos2_out.get(packet_id)
        if entry is None:
            return False
        if entry.state == QoS2Outbound.AWAITING_PUBREC:
            entry.state = QoS2Outbound.AWAITING_PUBCOMP
            entry.timestamp = time.monotonic()
        return True

    def handle_pubcomp(self, packet_id):
        """Handle PUBCOMP - complete QoS 2 flow."""
        if packet_id in self.pending_qos2_out:
            del self.pending_qos2_out[packet_id]
            return True
        return False

    def release_outbound(self, packet_id):
        """Forget an outbound flow (completed, failed or abandoned)."""
        self.pending_qos1.pop(packet_id, None)
        self.pending_qos2_out.pop(packet_id, None)

    def pending_retransmissions(self):
        """
        Packets to resend after resuming a session, oldest first.

        Returns:
            list of Publish (marked dup) and PUBREL QoSAck objects
        """
        entries = list(self.pending_qos1.values()) + list(self.pending_qos2_out.values())
        entries.sort(key=lambda e: e.timestamp)
        packets = []
        for entry in entries:
            entry.retry_count += 1
            if isinstance(entry, QoS2Outbound) and entry.state == QoS2Outbound.AWAITING_PUBCOMP:
                packets.append(QoSAck(PUBREL, entry.packet_id))
            else:
                original = entry.packet
                packets.append(Publish(original.topic, original.payload, original.qos,
                                       original.retain, dup=True,
                                       packet_id=original.packet_id,
                                       properties=original.properties))
        return packets

    # Inbound

    def is_duplicate_qos1(self, message):
        """
        Record an inbound QoS 1 message and report whether it is a redelivery.

        Only a PUBLISH marked DUP whose id was recently acknowledged counts
        as a duplicate. Membership in the seen set alone is not enough: a
        PUBLISH without DUP reusing an id is a new message and is delivered.
        """
        duplicate = message.dup and message.packet_id in self.seen_qos1
        self.seen_qos1.add(message.packet_id)
        return duplicate

    def track_inbound_qos2(self, message):
        """
        Hold an inbound QoS 2 message until PUBREL.

        Returns:
            bool: False if the id was already held (retransmitted PUBLISH)
        """
        if message.packet_id in self.pending_qos2:
            return False
        self.pending_qos2[message.packet_id] = QoS2Inbound(message.packet_id, message)
        return True

    def handle_pubrel(self, packet_id):
        """Handle PUBREL - release the held message, None if already released."""
        entry = self.pending_qos2.pop(packet_id, None)
        if entry is None:
            return None
        return entry.message

    def clear_inbound(self):
        self.pending_qos2.clear()

    def get_inflight_count(self):
        """Get total number of inflight QoS messages."""
        return len(self.pending_qos1) + len(self.pending_qos2) + len(self.pending_qos2_out)
