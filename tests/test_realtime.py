"""
Tests for sync.realtime.RealtimeChannel with a scripted websocket.
"""
import asyncio
import json

from sync.realtime import RealtimeChannel
from sync.store import ALL_EVENTS, DELETE, INSERT, RESYNC


class FakeSocket:
    def __init__(self, incoming=()):
        self.sent = []
        self.incoming = asyncio.Queue()
        for message in incoming:
            self.incoming.put_nowait(message)
        self.closed = False

    async def send(self, raw):
        self.sent.append(json.loads(raw))

    async def recv(self):
        message = await self.incoming.get()
        if isinstance(message, Exception):
            raise message
        return json.dumps(message)

    async def close(self):
        self.closed = True


class FakeConnect:
    """Hands out the queued sockets one connection at a time"""

    def __init__(self, *sockets):
        self.sockets = list(sockets)
        self.urls = []

    def __call__(self, url):
        self.urls.append(url)
        socket = self.sockets.pop(0)

        class _Context:
            async def __aenter__(self):
                if isinstance(socket, Exception):
                    raise socket
                return socket

            async def __aexit__(self, *exc):
                return False

        return _Context()


def change(table, kind, record=None):
    return {
        "topic": "realtime:public-x",
        "event": "postgres_changes",
        "payload": {"data": {"table": table, "type": kind, "record": record}},
    }


def make_channel(connect, events=ALL_EVENTS, heartbeat_seconds=30.0):
    received = []

    async def callback(event):
        received.append(event)

    channel = RealtimeChannel(
        "wss://demo.supabase.co/realtime/v1/websocket",
        "anon-key",
        "tools",
        events,
        callback,
        heartbeat_seconds=heartbeat_seconds,
        reconnect_seconds=0.01,
        connect=connect,
    )
    return channel, received


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def test_join_message_subscribes_to_all_events():
    channel, _ = make_channel(FakeConnect())

    message = channel.join_message()

    assert message["event"] == "phx_join"
    assert message["topic"].startswith("realtime:public-tools-")
    changes = message["payload"]["config"]["postgres_changes"]
    assert changes == [{"event": "*", "schema": "public", "table": "tools"}]
    assert message["payload"]["access_token"] == "anon-key"


def test_join_message_lists_specific_events():
    channel, _ = make_channel(FakeConnect(), events=[INSERT])

    changes = channel.join_message()["payload"]["config"]["postgres_changes"]

    assert [c["event"] for c in changes] == [INSERT]


def test_socket_url_carries_key_and_protocol():
    channel, _ = make_channel(FakeConnect())

    assert channel.socket_url.endswith("?apikey=anon-key&vsn=1.0.0")


async def test_forwards_changes_and_leaves_on_close():
    socket = FakeSocket([change("tools", INSERT, {"id": 1}), change("tools", DELETE)])
    connect = FakeConnect(socket)
    channel, received = make_channel(connect)

    await channel.start()
    await wait_for(lambda: len(received) == 2)
    await channel.close()

    assert [e.kind for e in received] == [INSERT, DELETE]
    assert received[0].record == {"id": 1}
    assert socket.sent[0]["event"] == "phx_join"
    assert socket.sent[-1]["event"] == "phx_leave"
    assert socket.closed
    assert channel.closed


async def test_sends_heartbeats_while_idle():
    socket = FakeSocket()
    channel, _ = make_channel(FakeConnect(socket), heartbeat_seconds=0.01)

    await channel.start()
    await wait_for(lambda: any(m["event"] == "heartbeat" for m in socket.sent))
    await channel.close()

    heartbeat = next(m for m in socket.sent if m["event"] == "heartbeat")
    assert heartbeat["topic"] == "phoenix"


async def test_reconnect_emits_resync():
    first = FakeSocket([ConnectionResetError("dropped")])
    second = FakeSocket()
    channel, received = make_channel(FakeConnect(first, second))

    await channel.start()
    await wait_for(lambda: any(e.kind == RESYNC for e in received))
    await channel.close()

    assert [m["event"] for m in second.sent][0] == "phx_join"


async def test_failed_connect_is_retried_without_resync():
    socket = FakeSocket([change("tools", INSERT)])
    channel, received = make_channel(FakeConnect(OSError("refused"), socket))

    await channel.start()
    await wait_for(lambda: len(received) == 1)
    await channel.close()

    assert received[0].kind == INSERT


async def test_server_close_of_own_topic_reconnects():
    first = FakeSocket()
    second = FakeSocket()
    channel, received = make_channel(FakeConnect(first, second))
    first.incoming.put_nowait({"topic": channel.topic, "event": "phx_close", "payload": {}})

    await channel.start()
    await wait_for(lambda: any(e.kind == RESYNC for e in received))
    await channel.close()


async def test_close_is_idempotent_and_notifies_owner():
    forgotten = []
    channel = RealtimeChannel(
        "wss://x", "k", "tools", ALL_EVENTS, lambda e: None,
        connect=FakeConnect(FakeSocket()), on_close=forgotten.append,
    )

    await channel.start()
    await channel.close()
    await channel.close()

    assert forgotten == [channel]


async def test_frames_that_are_not_objects_are_skipped():
    # A change frame without a readable payload still invalidates as a resync
    socket = FakeSocket([["not", "an", "object"], {"event": "postgres_changes", "payload": "odd"},
                         change("tools", INSERT, {"id": 2})])
    channel, received = make_channel(FakeConnect(socket))

    await channel.start()
    await wait_for(lambda: any(e.kind == INSERT for e in received))
    await channel.close()

    assert [e.kind for e in received] == [RESYNC, INSERT]


async def test_unexpected_reader_error_reconnects():
    first = FakeSocket([RuntimeError("decoder blew up")])
    second = FakeSocket([change("tools", DELETE)])
    channel, received = make_channel(FakeConnect(first, second))

    await channel.start()
    await wait_for(lambda: any(e.kind == DELETE for e in received))
    await channel.close()

    assert [e.kind for e in received] == [RESYNC, DELETE]
    assert second.sent[0]["event"] == "phx_join"
