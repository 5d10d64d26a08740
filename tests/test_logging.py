"""Tests for hivelink.logging module."""

import pytest
from hivelink.logging import (
    Logger, get_logger, hex_preview, DEBUG, INFO, WARNING, ERROR,
    _loggers, _LEVEL_NAMES, _NAME_LEVELS
)


class TestLoggerConstants:
    """Test logging level constants and mappings."""

    def test_level_ordering(self):
        """Test that level constants have correct ordering."""
        assert DEBUG < INFO < WARNING < ERROR

    def test_level_names_mapping(self):
        """Test _LEVEL_NAMES maps integers to display strings."""
        assert _LEVEL_NAMES[0] == 'DEBUG'
        assert _LEVEL_NAMES[2] == 'WARN'

    def test_name_levels_mapping(self):
        """Test _NAME_LEVELS maps strings to integers."""
        assert _NAME_LEVELS['WARNING'] == 2
        assert _NAME_LEVELS['ERROR'] == 3


class TestLoggerInit:
    """Test Logger initialization."""

    def test_init_with_default_level(self):
        """Test Logger initializes with INFO level by default."""
        logger = Logger('test')

        assert logger.name == 'test'
        assert logger.level == INFO

    def test_init_with_string_level(self):
        """Test Logger accepts level names."""
        assert Logger('test', level='DEBUG').level == DEBUG
        assert Logger('test', level='ERROR').level == ERROR

    def test_init_with_unknown_string_level_defaults_to_info(self):
        """Test Logger with unknown string level defaults to INFO."""
        assert Logger('test', level='LOUD').level == INFO

    def test_uses_slots(self):
        """Test Logger uses __slots__."""
        logger = Logger('test')

        with pytest.raises(AttributeError):
            logger.extra_attr = 'should fail'


class TestLoggerOutput:
    """Test Logger output formatting and level filtering."""

    def test_info_message_format(self, capsys):
        """Test info message prints with correct format."""
        logger = Logger('HiveLink', level=INFO)

        logger.info('connected')

        captured = capsys.readouterr()
        assert captured.out == '[INFO] HiveLink: connected\n'

    def test_warning_uses_warn_label(self, capsys):
        """Test warning message prints with WARN label."""
        logger = Logger('HiveLink', level=WARNING)

        logger.warning('connection lost')

        assert capsys.readouterr().out == '[WARN] HiveLink: connection lost\n'

    def test_percent_formatting(self, capsys):
        """Test message with % format arguments."""
        logger = Logger('HiveLink', level=INFO)

        logger.info('client %s on port %d', 'sensor-01', 1883)

        assert capsys.readouterr().out == '[INFO] HiveLink: client sensor-01 on port 1883\n'

    def test_message_without_args_no_formatting(self, capsys):
        """Test message without args does not attempt formatting."""
        logger = Logger('test', level=DEBUG)

        logger.debug('100% complete')

        assert capsys.readouterr().out == '[DEBUG] test: 100% complete\n'

    def test_custom_sink(self):
        """Test lines go to an injected sink instead of stdout."""
        lines = []
        logger = Logger('test', level=DEBUG, sink=lines.append)

        logger.error('boom %d', 7)

        assert lines == ['[ERROR] test: boom 7']


class TestLoggerFiltering:
    """Test Logger level filtering."""

    def test_debug_suppressed_at_info_level(self, capsys):
        """Test debug messages are suppressed when level is INFO."""
        logger = Logger('test', level=INFO)

        logger.debug('this should not appear')

        assert capsys.readouterr().out == ''

    def test_set_level_changes_filtering(self):
        """Test set_level takes effect immediately."""
        lines = []
        logger = Logger('test', level=ERROR, sink=lines.append)

        logger.info('hidden')
        logger.set_level('INFO')
        logger.info('shown')

        assert lines == ['[INFO] test: shown']


class TestPacketLogging:
    """Test raw packet logging."""

    def test_hex_preview(self):
        """Test bytes render as spaced uppercase hex."""
        assert hex_preview(b'\x10\x0c\xff') == '10 0C FF'

    def test_hex_preview_truncates(self):
        """Test long data is cut at the limit and marked."""
        preview = hex_preview(bytes(range(10)), limit=4)
        assert preview == '00 01 02 03 ...'

    def test_packet_logged_at_debug(self):
        """Test packet() writes direction, name, size and hex."""
        lines = []
        logger = Logger('test', level=DEBUG, sink=lines.append)

        logger.packet('>>', 'PINGREQ', b'\xc0\x00')

        assert lines == ['[DEBUG] test: >> PINGREQ (2 bytes): C0 00']

    def test_packet_suppressed_above_debug(self):
        """Test packet() is silent unless DEBUG is enabled."""
        lines = []
        logger = Logger('test', level=INFO, sink=lines.append)

        logger.packet('<<', 'PINGRESP', b'\xd0\x00')

        assert lines == []


class TestGetLogger:
    """Test get_logger caching."""

    def test_same_name_returns_same_logger(self):
        """Test loggers are cached per name."""
        first = get_logger('cache-test')
        second = get_logger('cache-test')

        assert first is second
        assert _loggers['cache-test'] is first

    def test_existing_logger_level_updated(self):
        """Test asking again with a new level updates the cached logger."""
        logger = get_logger('level-test', INFO)
        get_logger('level-test', 'ERROR')

        assert logger.level == ERROR
