"""Server tests over real TCP connections."""
# std imports
import asyncio

# 3rd party
import pytest

# local
from roomchat.building import Building
from roomchat.message import (
    Go,
    Kick,
    Alive,
    Login,
    Public,
    LeftRoom,
    EnterRoom,
    KeepAlive,
    LoggedOut,
    EnteredRoom,
    ListedDoors,
    PublicBroadcast,
)
from roomchat.tests.accessories import (
    FakeClock,
    login,
    connect,
    make_building,
    create_server,
    next_message,
)

# keepalive monitor that never fires during a test
QUIET = {"keepalive_interval": 3600}


@pytest.mark.asyncio
async def test_server_is_serving(bind_host):
    async with create_server(make_building("lobby"), host=bind_host, **QUIET) as server:
        assert server.is_serving()
        assert server.port > 0
        assert server.sockets
    assert not server.is_serving()


@pytest.mark.asyncio
async def test_lobby_and_kitchen(bind_host):
    """Two users meet in the lobby, then one walks into the kitchen."""
    building = make_building("lobby", "kitchen")
    async with create_server(building, host=bind_host, **QUIET) as server:
        alice = await connect(server, bind_host)
        assert await alice.login("alice", "wonderland") is True
        assert await next_message(alice) == EnteredRoom("lobby", ["alice"])

        bob = await connect(server, bind_host)
        assert await bob.login("bob", "builder") is True
        assert await next_message(bob) == EnteredRoom("lobby", ["alice", "bob"])
        assert await next_message(alice) == EnterRoom("bob")

        await bob.list_doors()
        assert await next_message(bob) == ListedDoors(["kitchen"])

        await bob.go("kitchen")
        assert await next_message(bob) == EnteredRoom("kitchen", ["bob"])
        assert await next_message(alice) == LeftRoom("bob", "kitchen")
        assert building["lobby"].member_names() == ["alice"]
        assert building["kitchen"].member_names() == ["bob"]

        await alice.close()
        await bob.close()


@pytest.mark.asyncio
async def test_public_includes_sender(bind_host):
    async with create_server(make_building("lobby"), host=bind_host, **QUIET) as server:
        alice = await login(server, "alice", bind_host)
        bob = await login(server, "bob", bind_host)
        assert await next_message(alice) == EnterRoom("bob")

        await alice.public("hello")
        assert await next_message(alice) == PublicBroadcast("alice", "hello")
        assert await next_message(bob) == PublicBroadcast("alice", "hello")

        await alice.close()
        await bob.close()


@pytest.mark.asyncio
async def test_go_without_door(bind_host):
    building = make_building("lobby", "kitchen")
    building.build_room("attic")
    async with create_server(building, host=bind_host, **QUIET) as server:
        alice = await login(server, "alice", bind_host)
        bob = await login(server, "bob", bind_host)
        assert await next_message(alice) == EnterRoom("bob")

        await alice.go("attic")
        await alice.go("lobby")
        await alice.public("still here")

        # nothing was sent for either Go, the next message is the public one.
        assert await next_message(alice) == PublicBroadcast("alice", "still here")
        assert await next_message(bob) == PublicBroadcast("alice", "still here")
        assert building["lobby"].member_names() == ["alice", "bob"]

        await alice.close()
        await bob.close()


@pytest.mark.asyncio
async def test_duplicate_login_evicts(bind_host):
    building = make_building("lobby")
    async with create_server(building, host=bind_host, **QUIET) as server:
        bob = await login(server, "bob", bind_host)
        first = await login(server, "alice", bind_host)
        assert await next_message(bob) == EnterRoom("alice")

        second = await connect(server, bind_host)
        assert await second.login("alice", "wonderland") is True
        assert await next_message(second) == EnteredRoom("lobby", ["bob", "alice"])

        kick = await next_message(first)
        assert isinstance(kick, Kick)
        assert "lobby" in kick.text
        assert await next_message(first) is None

        assert await next_message(bob) == LeftRoom("alice", None)
        assert await next_message(bob) == EnterRoom("alice")
        assert building["lobby"].member_names() == ["bob", "alice"]

        # the evicted connection leaving does not disturb the new one.
        await first.close()
        await second.public("hi")
        assert await next_message(bob) == PublicBroadcast("alice", "hi")

        await second.close()
        await bob.close()


@pytest.mark.asyncio
async def test_login_wrong_then_ok(bind_host):
    async with create_server(make_building("lobby"), host=bind_host, **QUIET) as server:
        client = await connect(server, bind_host)
        assert await client.login("alice", "builder") is False
        assert await client.login("alice", "wonderland") is True
        assert await next_message(client) == EnteredRoom("lobby", ["alice"])
        await client.close()


@pytest.mark.asyncio
async def test_unauthorized_kicked(bind_host):
    building = make_building("lobby")
    async with create_server(building, host=bind_host, **QUIET) as server:
        bob = await login(server, "bob", bind_host)
        client = await connect(server, bind_host)

        await client.public("let me in")

        kick = await next_message(client)
        assert isinstance(kick, Kick)
        assert "Public" in kick.text
        assert await next_message(client) is None
        assert building["lobby"].member_names() == ["bob"]

        await bob.public("anyone?")
        assert await next_message(bob) == PublicBroadcast("bob", "anyone?")

        await client.close()
        await bob.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("line", [
    b"garbage\n",
    b'{"type":"Shout","text":"hi"}\n',
    b'["Login"]\n',
])
async def test_malformed_kicked(bind_host, line):
    building = make_building("lobby")
    async with create_server(building, host=bind_host, **QUIET) as server:
        bob = await login(server, "bob", bind_host)
        alice = await login(server, "alice", bind_host)
        assert await next_message(bob) == EnterRoom("alice")

        alice.writer.write(line)
        await alice.writer.drain()

        kick = await next_message(alice)
        assert isinstance(kick, Kick)
        assert kick.text.startswith("Malformed message")
        assert await next_message(alice) is None
        assert await next_message(bob) == LeftRoom("alice", None)

        await alice.close()
        await bob.close()


@pytest.mark.asyncio
async def test_logout(bind_host):
    building = make_building("lobby")
    async with create_server(building, host=bind_host, **QUIET) as server:
        bob = await login(server, "bob", bind_host)
        alice = await login(server, "alice", bind_host)
        assert await next_message(bob) == EnterRoom("alice")

        await alice.logout()

        assert await next_message(alice) == LoggedOut()
        assert await next_message(alice) is None
        assert await next_message(bob) == LeftRoom("alice", None)

        # the LeftRoom is not repeated when the connection is torn down.
        await bob.public("bye")
        assert await next_message(bob) == PublicBroadcast("bob", "bye")

        await alice.close()
        await bob.close()


@pytest.mark.asyncio
async def test_disconnect_leaves_room(bind_host):
    building = make_building("lobby")
    async with create_server(building, host=bind_host, **QUIET) as server:
        bob = await login(server, "bob", bind_host)
        alice = await login(server, "alice", bind_host)
        assert await next_message(bob) == EnterRoom("alice")

        await alice.close()

        assert await next_message(bob) == LeftRoom("alice", None)
        assert building["lobby"].member_names() == ["bob"]
        await bob.close()


@pytest.mark.asyncio
async def test_no_start_room_refused(bind_host):
    async with create_server(Building(), host=bind_host, **QUIET) as server:
        client = await connect(server, bind_host)
        assert await next_message(client) is None
        await client.close()


@pytest.mark.asyncio
async def test_ping_idle(bind_host):
    clock = FakeClock(0.0)
    building = make_building("lobby")
    async with create_server(building, host=bind_host, clock=clock, **QUIET) as server:
        alice = await login(server, "alice", bind_host)
        stranger = await connect(server, bind_host)

        # strictly more than keepalive_idle seconds.
        assert await server.ping_idle(now=60.0) == 0
        assert await server.ping_idle(now=60.5) == 1
        assert await next_message(alice) == KeepAlive()

        # answering refreshes liveness.
        clock.now = 100.0
        await alice.send_message(Alive())
        await alice.public("sync")
        assert await next_message(alice) == PublicBroadcast("alice", "sync")
        assert await server.ping_idle(now=150.0) == 0
        assert await server.ping_idle(now=160.5) == 1
        assert await next_message(alice) == KeepAlive()

        # connections not logged in are never pinged.
        stranger_msg = asyncio.ensure_future(stranger.recv_message())
        await asyncio.sleep(0.05)
        assert not stranger_msg.done()
        stranger_msg.cancel()

        await alice.close()
        await stranger.close()


@pytest.mark.asyncio
async def test_keepalive_monitor(bind_host):
    async with create_server(
        make_building("lobby"),
        host=bind_host,
        keepalive_interval=0.05,
        keepalive_idle=0.0,
    ) as server:
        alice = await login(server, "alice", bind_host)
        assert await next_message(alice) == KeepAlive()
        await alice.close()


@pytest.mark.asyncio
async def test_client_listen_answers_keepalive(bind_host):
    clock = FakeClock(0.0)
    async with create_server(
        make_building("lobby"), host=bind_host, clock=clock, **QUIET
    ) as server:
        alice = await login(server, "alice", bind_host)
        received = []
        listener = asyncio.ensure_future(alice.listen(on_message=received.append))

        clock.now = 100.0
        assert await server.ping_idle() == 1

        # listener replies Alive, so a later sweep finds alice active.
        for _ in range(100):
            await asyncio.sleep(0.01)
            if server.connections[0].idle() == 0.0:
                break
        assert await server.ping_idle() == 0

        await alice.logout()
        last = await asyncio.wait_for(listener, 1.0)
        assert last == LoggedOut()
        assert received == [LoggedOut()]
        await alice.close()


@pytest.mark.asyncio
async def test_close_disconnects_clients(bind_host):
    async with create_server(make_building("lobby"), host=bind_host, **QUIET) as server:
        alice = await login(server, "alice", bind_host)
        server.close()
        assert await next_message(alice) is None
        await asyncio.wait_for(server.wait_closed(), 1.0)
        assert not server.is_serving()
    await alice.close()


@pytest.mark.asyncio
async def test_login_message_repeated_ignored(bind_host):
    async with create_server(make_building("lobby"), host=bind_host, **QUIET) as server:
        alice = await login(server, "alice", bind_host)
        await alice.send_message(Login("bob", "builder"))
        await alice.send_message(Go(None))
        await alice.send_message(Public("me again"))
        assert await next_message(alice) == PublicBroadcast("alice", "me again")
        await alice.close()


@pytest.mark.asyncio
async def test_serve_forever_until_close(bind_host):
    async with create_server(make_building("lobby"), host=bind_host, **QUIET) as server:
        serving = asyncio.ensure_future(server.serve_forever())
        await asyncio.sleep(0.05)
        assert not serving.done()
        server.close()
        await asyncio.wait_for(serving, 1.0)


@pytest.mark.asyncio
async def test_member_not_reading(bind_host):
    """A member that stops reading is dropped, its room carries on."""
    building = make_building("lobby")
    async with create_server(
        building, host=bind_host, write_limit=2**16, **QUIET
    ) as server:
        alice = await login(server, "alice", bind_host)
        bob = await login(server, "bob", bind_host)

        # alice reads nothing from here on, bob reads everything.
        left = asyncio.Event()

        def on_message(msg):
            if msg == LeftRoom("alice", None):
                left.set()

        listener = asyncio.ensure_future(bob.listen(on_message))
        text = "x" * 30000
        for _ in range(4000):
            if left.is_set():
                break
            await bob.public(text)
            await asyncio.sleep(0)
        await asyncio.wait_for(left.wait(), 5.0)
        assert building["lobby"].member_names() == ["bob"]

        # the room, and the keepalive sweep, are not held up.
        carol = await asyncio.wait_for(login(server, "carol", bind_host), 3.0)
        assert await asyncio.wait_for(server.ping_idle(), 3.0) == 0

        await bob.logout()
        await asyncio.wait_for(listener, 5.0)
        await carol.close()
        await bob.close()
        await alice.close()
