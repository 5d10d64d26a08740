"""
One-Shot Publish Example
========================

Publishing with the simple API and with a long-lived client.

This example demonstrates:
- Blocking one-line publish (connect, publish, disconnect)
- QoS 1 and QoS 2 publishes on one connection
- MQTT 5 publish properties

Test commands:
    mosquitto_sub -h localhost -t 'sensor/#' -v
"""

import asyncio

from hivelink import MQTTClient, MQTTProtocolError, publish


BROKER_HOST = 'localhost'


async def publish_readings():
    client = MQTTClient(host=BROKER_HOST, protocol_version='5.0', log_level='INFO')
    result = await client.connect()
    if not result.success:
        print('[HiveLink] Connection refused: %s' % result.reason)
        return

    try:
        for i, value in enumerate((21.5, 21.7, 22.0)):
            packet_id = await client.publish('sensor/temp', str(value), qos=1 + i % 2,
                                             properties={'content_type': 'text/plain'})
            print('[HiveLink] Published %.1f (packet id %d)' % (value, packet_id))
    except MQTTProtocolError as e:
        print('[HiveLink] Broker rejected publish: %s (0x%02X)' % (e.message, e.reason_code))
    finally:
        await client.disconnect()


# Blocking one-shot publish
publish(BROKER_HOST, 'sensor/status', 'online', qos=1, retain=True)
print('[HiveLink] Status published')

asyncio.run(publish_readings())
