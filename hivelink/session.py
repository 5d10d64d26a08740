"""
Client session state for HiveLink.

This module holds the state that outlives a single network connection:
- The subscription set (the client's intention, replayed on reconnect)
- Keep-alive timing and the outstanding ping flag
- Reconnect backoff policy
"""

import random
import time


class Subscription:
    """One entry of the subscription set."""
    __slots__ = ('topic_filter', 'qos', 'options', 'granted_qos')

    def __init__(self, topic_filter, qos, options=None, granted_qos=None):
        self.topic_filter = topic_filter
        self.qos = qos
        self.options = options
        self.granted_qos = qos if granted_qos is None else granted_qos

    def __repr__(self):
        return 'Subscription(%r, qos=%d, granted_qos=%d)' % (
            self.topic_filter, self.qos, self.granted_qos)


class ClientSession:
    """
    Logical MQTT session of one client.

    Tracks the subscription set, keep-alive timing and ping state.
    Subscriptions are independent of the transport: they persist across
    reconnects until removed by unsubscribe.
    """

    __slots__ = (
        'client_id', 'clean_start', 'keep_alive', 'subscriptions',
        'last_activity', 'last_received', 'ping_outstanding', 'ping_sent_at',
        'clock'
    )

    def __init__(self, client_id='', clean_start=True, keep_alive=60, clock=None):
        """
        Initialize a new client session.

        Args:
            client_id: Client identifier ('' lets the broker assign one)
            clean_start: If True, the broker discards state on connect
            keep_alive: Keep-alive interval in seconds (0 disables pings)
            clock: Monotonic time source, time.monotonic by default
        """
        self.client_id = client_id
        self.clean_start = clean_start
        self.keep_alive = keep_alive
        self.subscriptions = {}  # topic_filter -> Subscription
        self.clock = clock or time.monotonic

        # Keep-alive tracking
        self.last_activity = self.clock()
        self.last_received = self.last_activity
        self.ping_outstanding = False
        self.ping_sent_at = 0.0

    # Subscription set

    def record_subscription(self, topic_filter, qos, options=None, granted_qos=None):
        sub = Subscription(topic_filter, qos, options, granted_qos)
        self.subscriptions[topic_filter] = sub
        return sub

    def remove_subscription(self, topic_filter):
        """Remove a filter from the subscription set. Returns True if present."""
        return self.subscriptions.pop(topic_filter, None) is not None

    def get_subscriptions(self):
        return list(self.subscriptions.values())

    # Keep-alive

    def update_activity(self):
        """Record that a control packet was just sent."""
        self.last_activity = self.clock()

    def mark_received(self):
        self.last_received = self.clock()

    def ping_sent(self):
        self.ping_outstanding = True
        self.ping_sent_at = self.clock()
        self.update_activity()

    def ping_answered(self):
        self.ping_outstanding = False

    def reset_keep_alive(self):
        """Start keep-alive timing afresh for a new connection."""
        self.ping_outstanding = False
        self.update_activity()
        self.mark_received()

    def is_ping_due(self, factor=0.9):
        """
        Check whether a PINGREQ should be sent now.

        Args:
            factor: Fraction of keep_alive after which to ping

        Returns:
            bool: True if keep-alive is enabled, no ping is outstanding
                and the connection has been idle long enough
        """
        if self.keep_alive == 0 or self.ping_outstanding:
            return False
        return self.clock() - self.last_activity >= self.keep_alive * factor

    def is_ping_overdue(self, factor=1.5):
        """
        Check whether an outstanding PINGREQ went unanswered too long.

        Args:
            factor: Multiplier for keep_alive

        Returns:
            bool: True if the broker should be considered unreachable
        """
        if self.keep_alive == 0 or not self.ping_outstanding:
            return False
        return self.clock() - self.ping_sent_at > self.keep_alive * factor


class ReconnectPolicy:
    """Exponential backoff with jitter and a fail-stop attempt limit."""

    __slots__ = ('max_attempts', 'base_delay', 'max_delay', 'jitter', 'attempts', 'rng')

    def __init__(self, max_attempts=5, base_delay=0.2, max_delay=5.0, jitter=0.2, rng=None):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.attempts = 0
        self.rng = rng or random.Random()

    @property
    def exhausted(self):
        return self.attempts >= self.max_attempts

    def compute_delay(self, attempt):
        """
        Backoff delay for a given attempt number.

        delay = min(max_delay, base_delay * 2^attempt), then scaled by a
        uniform factor in [1 - jitter, 1 + jitter].
        """
        delay = min(self.max_delay, self.base_delay * (2 ** attempt))
        if self.jitter > 0:
            delay *= 1.0 + self.rng.uniform(-self.jitter, self.jitter)
        return max(0.0, delay)

    def next_delay(self):
        return self.compute_delay(self.attempts)

    def record_failure(self):
        self.attempts += 1

    def reset(self):
        self.attempts = 0
