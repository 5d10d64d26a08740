"""
TCP/TLS transport for HiveLink.

Thin wrapper over asyncio streams exposing the operations the client
engine needs: open, write, read_exact, close, is_open and an in-place
TLS upgrade. All I/O failures surface as MQTTTransportError and all
expired deadlines as MQTTTimeoutError.
"""

import asyncio
import ssl

from .errors import MQTTTimeoutError, MQTTTransportError

# wait_for cancels a zero timeout before the read runs
_MIN_READ_TIMEOUT = 0.001


def build_ssl_context(options):
    """
    Build an SSLContext from a TLS options dict.

    Recognized keys: ssl_context, ca_file, ca_path, cert_file, key_file,
    verify (default True).
    """
    if options.get('ssl_context') is not None:
        return options['ssl_context']

    context = ssl.create_default_context(cafile=options.get('ca_file'),
                                         capath=options.get('ca_path'))
    if options.get('cert_file'):
        context.load_cert_chain(options['cert_file'], options.get('key_file'))
    if not options.get('verify', True):
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class TcpTransport:
    """asyncio stream transport."""

    __slots__ = ('_reader', '_writer', 'host', 'port')

    def __init__(self):
        self._reader = None
        self._writer = None
        self.host = None
        self.port = None

    async def open(self, host, port, timeout=5.0):
        """
        Open a TCP connection, closing any previous one first.

        Raises:
            MQTTTimeoutError: If the connection is not established in time
            MQTTTransportError: On any socket error
        """
        await self.close()
        self.host = host
        self.port = port
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout)
        except asyncio.TimeoutError:
            raise MQTTTimeoutError('Timed out connecting to %s:%d' % (host, port))
        except OSError as e:
            raise MQTTTransportError('Failed to connect to %s:%d: %s' % (host, port, e))

    async def enable_tls(self, options=None):
        """
        Upgrade the open connection to TLS.

        The server name for SNI and hostname checks defaults to the host
        the connection was opened to.
        """
        if not self.is_open():
            raise MQTTTransportError('Cannot enable TLS: transport not open')
        options = options or {}
        server_hostname = options.get('server_hostname') or self.host
        try:
            context = build_ssl_context(options)
            await self._writer.start_tls(context, server_hostname=server_hostname)
        except OSError as e:
            await self.close()
            raise MQTTTransportError('TLS handshake with %s failed: %s' % (server_hostname, e))

    async def write(self, data):
        """
        Write all bytes and wait for the buffer to drain.

        Returns:
            int: Number of bytes written
        """
        if not self.is_open():
            raise MQTTTransportError('Transport not open')
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (OSError, RuntimeError) as e:
            await self.close()
            raise MQTTTransportError('Write failed: %s' % e)
        return len(data)

    async def read_exact(self, length, timeout=None):
        """
        Read exactly ``length`` bytes.

        Args:
            length: Number of bytes to read
            timeout: Seconds to wait, None waits forever; 0 returns
                bytes already buffered without waiting for more

        Raises:
            MQTTTimeoutError: If the bytes do not arrive in time; bytes
                already buffered stay available for the next read
            MQTTTransportError: If the peer closed or the socket failed
        """
        if not self.is_open():
            raise MQTTTransportError('Transport not open')
        if length == 0:
            return b''
        if timeout is not None:
            timeout = max(timeout, _MIN_READ_TIMEOUT)
        try:
            return await asyncio.wait_for(self._reader.readexactly(length), timeout)
        except asyncio.TimeoutError:
            raise MQTTTimeoutError('Timed out reading %d bytes' % length)
        except asyncio.IncompleteReadError:
            await self.close()
            raise MQTTTransportError('Connection closed by peer')
        except OSError as e:
            await self.close()
            raise MQTTTransportError('Read failed: %s' % e)

    async def close(self):
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except OSError:
            pass

    def is_open(self):
        return self._writer is not None and not self._writer.is_closing()
