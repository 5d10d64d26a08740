"""
Auto-Reconnect Example
======================

A long-running client that survives broker restarts.

This example demonstrates:
- Exponential backoff with jitter between reconnect attempts
- Subscriptions replayed automatically after reconnecting
- Persistent session (clean_start=False) with QoS 1 retransmission
- Connect/disconnect hooks for monitoring

Try restarting the broker while this runs.
"""

import asyncio

from hivelink import ClientConfig, MQTTClient


config = ClientConfig(
    host='localhost',
    client_id='hivelink-reconnect-demo',
    clean_start=False,
    keep_alive=15,
    auto_reconnect=True,
    reconnect_max_attempts=10,
    reconnect_base_delay=0.5,
    reconnect_max_delay=30.0,
    log_level='INFO'
)

client = MQTTClient(config)


@client.on_connect
def on_connect(result):
    print('[CONN] Connected (session present: %s)' % result.session_present)


@client.on_disconnect
def on_disconnect(reason_code, graceful):
    if not graceful:
        print('[DISC] Connection lost, reason %s' % reason_code)


@client.on_message
async def on_message(message):
    print('[MSG] %s = %s' % (message.topic, message.text))
    if message.topic == 'demo/ping':
        await client.publish('demo/pong', message.payload, qos=1)


async def main():
    await client.connect()
    await client.subscribe('demo/#', qos=1)
    # Returns once stop() is called or every reconnect attempt failed
    await client.run()
    print('[HiveLink] Stopped after %d reconnects' % client.get_stats()['reconnects'])


asyncio.run(main())
