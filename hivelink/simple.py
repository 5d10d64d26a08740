"""Simple API for HiveLink - publish a message in one line."""

import asyncio

from .client import MQTTClient
from .config import ClientConfig
from .errors import MQTTConnectRefusedError
from .utils import generate_client_id

# Time given to a QoS 0 publish to leave the socket before DISCONNECT
QOS0_FLUSH_DELAY = 0.05


def _build_config(host, port, client_id, use_tls, options):
    if port is None:
        port = 8883 if use_tls else 1883
    return ClientConfig(host=host, port=port, client_id=client_id or generate_client_id(),
                        use_tls=use_tls, **options)


async def connect(host='localhost', port=None, client_id=None, use_tls=False,
                  transport=None, **options):
    """Connect a new client and return it.

    Args:
        host: Broker host name or address
        port: Broker port (default 8883 with TLS, 1883 without)
        client_id: Client identifier (generated "hivelink-xxxxxxxx" if None)
        use_tls: Upgrade the connection to TLS
        transport: Transport object to use instead of TCP
        **options: Any other ClientConfig option

    Raises:
        MQTTConnectRefusedError: If the broker refuses the connection
    """
    config = _build_config(host, port, client_id, use_tls, options)
    client = MQTTClient(config=config, transport=transport)
    result = await client.connect()
    if not result.success:
        raise MQTTConnectRefusedError(
            'Connection refused by %s:%d: %s' % (config.host, config.port, result.reason),
            result.reason_code)
    return client


async def publish_async(host, topic, payload=b'', qos=0, retain=False, properties=None,
                        port=None, client_id=None, use_tls=False, transport=None, **options):
    """Connect, publish one message, disconnect.

    Returns:
        int: packet id of the publish (0 for QoS 0)
    """
    client = await connect(host, port, client_id, use_tls, transport, **options)
    try:
        packet_id = await client.publish(topic, payload, qos, retain, properties)
        if qos == 0:
            await asyncio.sleep(QOS0_FLUSH_DELAY)
    finally:
        await client.disconnect()
    return packet_id


def publish(host, topic, payload=b'', qos=0, retain=False, properties=None, port=None,
            client_id=None, use_tls=False, **options):
    """Blocking one-shot publish.

    Example:
        publish('broker.local', 'sensors/temp', '21.5', qos=1)
    """
    return asyncio.run(publish_async(host, topic, payload, qos, retain, properties,
                                     port, client_id, use_tls, **options))
