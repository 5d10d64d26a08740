"""
HiveLink Client Configuration

Connection, session, reconnect and logging options for MQTTClient.
Uses __slots__ for a fixed, documented option set.
"""

from .packet import ProtocolVersion, WillMessage


class ClientConfig:
    """Configuration parameters for a HiveLink client."""

    __slots__ = (
        'host', 'port',
        'client_id', 'keep_alive', 'clean_start',
        'username', 'password',
        'protocol_version',
        'use_tls', 'tls_options',
        'will', 'session_expiry', 'connect_properties',
        'auto_reconnect', 'reconnect_max_attempts',
        'reconnect_base_delay', 'reconnect_max_delay', 'reconnect_jitter',
        'message_filters',
        'connect_timeout', 'ack_timeout', 'qos1_dedup_size',
        'log_level'
    )

    def __init__(self, **kwargs):
        """Initialize client configuration with defaults, override with kwargs."""
        # Broker address
        self.host = 'localhost'
        self.port = 1883

        # Session
        self.client_id = ''
        self.keep_alive = 60
        self.clean_start = True
        self.username = None
        self.password = None

        # Protocol
        self.protocol_version = ProtocolVersion.V311

        # TLS
        self.use_tls = False
        self.tls_options = None

        # CONNECT extras
        self.will = None
        self.session_expiry = None
        self.connect_properties = None

        # Auto-reconnect
        self.auto_reconnect = False
        self.reconnect_max_attempts = 5
        self.reconnect_base_delay = 0.2
        self.reconnect_max_delay = 5.0
        self.reconnect_jitter = 0.2

        # Client-side delivery filters (empty delivers everything)
        self.message_filters = []

        # Timeouts and limits
        self.connect_timeout = 5.0
        self.ack_timeout = 5.0
        self.qos1_dedup_size = 256

        # Logging
        self.log_level = 'INFO'

        # Override defaults with provided kwargs
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

        self.protocol_version = ProtocolVersion.parse(self.protocol_version)
        self.message_filters = [f.strip() for f in (self.message_filters or []) if f and f.strip()]
        if self.session_expiry is not None:
            self.session_expiry = max(0, min(0xFFFFFFFF, int(self.session_expiry)))

    def copy(self, **overrides):
        """Return a new config with the given options replaced."""
        values = dict((key, getattr(self, key)) for key in self.__slots__)
        values['message_filters'] = list(self.message_filters)
        values.update(overrides)
        return ClientConfig(**values)

    @property
    def is_v5(self):
        return self.protocol_version == ProtocolVersion.V5

    def validate(self):
        """Validate configuration parameters.

        Raises:
            ValueError: If any parameter is invalid.
        """
        if not self.host:
            raise ValueError('host must not be empty')

        if not (1 <= self.port <= 65535):
            raise ValueError('port must be in range 1-65535, got %d' % self.port)

        if not isinstance(self.client_id, str):
            raise ValueError('client_id must be a string, got %r' % (self.client_id,))

        if not (0 <= self.keep_alive <= 65535):
            raise ValueError('keep_alive must be in range 0-65535, got %d' % self.keep_alive)

        if (not self.clean_start and not self.client_id
                and self.protocol_version == ProtocolVersion.V311):
            raise ValueError('client_id is required when clean_start is False on MQTT 3.1.1')

        if self.will is not None:
            if not isinstance(self.will, WillMessage):
                raise ValueError('will must be a WillMessage, got %r' % (self.will,))
            if self.will.qos not in (0, 1, 2):
                raise ValueError('will qos must be 0, 1 or 2, got %r' % (self.will.qos,))
            if not self.will.topic:
                raise ValueError('will topic must not be empty')

        if self.reconnect_max_attempts < 0:
            raise ValueError('reconnect_max_attempts must be >= 0, got %d' % self.reconnect_max_attempts)

        if self.reconnect_base_delay < 0:
            raise ValueError('reconnect_base_delay must be >= 0, got %s' % self.reconnect_base_delay)

        if self.reconnect_max_delay < self.reconnect_base_delay:
            raise ValueError('reconnect_max_delay must be >= reconnect_base_delay')

        if not (0 <= self.reconnect_jitter <= 1):
            raise ValueError('reconnect_jitter must be in range 0-1, got %s' % self.reconnect_jitter)

        if self.connect_timeout <= 0:
            raise ValueError('connect_timeout must be > 0, got %s' % self.connect_timeout)

        if self.ack_timeout <= 0:
            raise ValueError('ack_timeout must be > 0, got %s' % self.ack_timeout)

        if self.qos1_dedup_size < 1:
            raise ValueError('qos1_dedup_size must be >= 1, got %d' % self.qos1_dedup_size)

        valid_levels = ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        if self.log_level not in valid_levels:
            raise ValueError('log_level must be one of %s, got %s' % (valid_levels, self.log_level))
