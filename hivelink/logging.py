"""Lightweight logging for HiveLink."""

DEBUG = 0
INFO = 1
WARNING = 2
ERROR = 3

_LEVEL_NAMES = {0: 'DEBUG', 1: 'INFO', 2: 'WARN', 3: 'ERROR'}
_NAME_LEVELS = {'DEBUG': 0, 'INFO': 1, 'WARNING': 2, 'ERROR': 3}


def hex_preview(data, limit=64):
    """Render at most ``limit`` bytes as spaced hex, marking truncation."""
    shown = ' '.join('%02X' % b for b in bytes(data[:limit]))
    if len(data) > limit:
        shown += ' ...'
    return shown


class Logger:
    __slots__ = ('name', 'level', 'sink')

    def __init__(self, name, level=INFO, sink=None):
        self.name = name
        self.sink = sink or print
        self.set_level(level)

    def set_level(self, level):
        if isinstance(level, str):
            self.level = _NAME_LEVELS.get(level, INFO)
        else:
            self.level = level

    def is_enabled(self, level):
        return level >= self.level

    def _log(self, level, msg, *args):
        if level >= self.level:
            if args:
                msg = msg % args
            self.sink("[%s] %s: %s" % (_LEVEL_NAMES.get(level, '?'), self.name, msg))

    def debug(self, msg, *args):
        self._log(DEBUG, msg, *args)

    def info(self, msg, *args):
        self._log(INFO, msg, *args)

    def warning(self, msg, *args):
        self._log(WARNING, msg, *args)

    def error(self, msg, *args):
        self._log(ERROR, msg, *args)

    def packet(self, direction, name, data):
        """Log one raw control packet at DEBUG with a hex preview."""
        if self.is_enabled(DEBUG):
            self._log(DEBUG, "%s %s (%d bytes): %s", direction, name, len(data), hex_preview(data))


_loggers = {}


def get_logger(name, level=INFO):
    if name not in _loggers:
        _loggers[name] = Logger(name, level)
    else:
        _loggers[name].set_level(level)
    return _loggers[name]
