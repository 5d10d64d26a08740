"""
Subscribe Example
=================

Receiving messages with handlers and with a message stream.

This example demonstrates:
- Per-filter handlers registered with on_topic
- Pulling everything else from client.messages()
- Stopping the stream from inside the loop

Test commands:
    mosquitto_pub -h localhost -t 'sensor/kitchen/temp' -m '22.5'
    mosquitto_pub -h localhost -t 'control/quit' -m ''
"""

import asyncio

from hivelink import MQTTClient


async def main():
    client = MQTTClient(host='localhost', client_id='hivelink-subscriber')

    @client.on_topic('sensor/+/temp')
    def on_temperature(message):
        room = message.topic.split('/')[1]
        print('[TEMP] %s: %s' % (room, message.text))

    async with client:
        result = await client.subscribe(['sensor/#', 'control/#'], qos=1)
        print('[HiveLink] Granted QoS: %s' % result.granted_qos)

        stream = client.messages()
        async for message in stream:
            print('[MSG] %s = %s' % (message.topic, message.text))
            if message.topic == 'control/quit':
                stream.stop()


asyncio.run(main())
