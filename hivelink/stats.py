"""Client statistics for HiveLink."""

import time


class ClientStats:
    """Counters describing one client's traffic since creation."""
    __slots__ = (
        'packets_received', 'packets_sent',
        'bytes_received', 'bytes_sent',
        'publishes_sent', 'messages_delivered', 'duplicates_suppressed',
        'reconnects', 'pings_sent',
        'start_time'
    )

    def __init__(self):
        self.packets_received = 0
        self.packets_sent = 0
        self.bytes_received = 0
        self.bytes_sent = 0
        self.publishes_sent = 0
        self.messages_delivered = 0
        self.duplicates_suppressed = 0
        self.reconnects = 0
        self.pings_sent = 0
        self.start_time = time.monotonic()

    def record_sent(self, data):
        self.packets_sent += 1
        self.bytes_sent += len(data)

    def record_received(self, size):
        self.packets_received += 1
        self.bytes_received += size

    def get_uptime(self):
        return int(time.monotonic() - self.start_time)

    def as_dict(self):
        stats = dict((name, getattr(self, name)) for name in self.__slots__ if name != 'start_time')
        stats['uptime'] = self.get_uptime()
        return stats
