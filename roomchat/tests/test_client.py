"""Tests for roomchat.client.ChatClient, over an in-memory stream."""
# std imports
import asyncio
import sys

# 3rd party
import pytest

# local
from roomchat import message
from roomchat.client import ChatClient, _get_argument_parser, _transform_args
from roomchat.errors import DecodeError, InvalidCommand, ProtocolViolation
from roomchat.message import (
    Go,
    Alive,
    Login,
    Logout,
    Public,
    LoginOK,
    KeepAlive,
    ListDoors,
    LoggedOut,
    LoginWrong,
    EnterRoom,
    PublicBroadcast,
)
from roomchat.tests.accessories import MockWriter


def make_client(*replies, eof=True):
    """Return client reading *replies*, writing into a :class:`MockWriter`."""
    reader = asyncio.StreamReader()
    for reply in replies:
        if isinstance(reply, bytes):
            reader.feed_data(reply)
        else:
            reader.feed_data(message.encode(reply).encode("utf-8") + b"\n")
    if eof:
        reader.feed_eof()
    return ChatClient(reader, MockWriter())


@pytest.mark.asyncio
async def test_login_ok():
    client = make_client(LoginOK())
    assert await client.login("alice", "wonderland") is True
    assert client.logged_in
    assert client.user_name == "alice"
    assert client.writer.messages == [Login("alice", "wonderland")]


@pytest.mark.asyncio
async def test_login_already_logged_in():
    client = make_client(LoginOK())
    await client.login("alice", "wonderland")
    client.writer.clear()
    assert await client.login("alice", "wonderland") is None
    assert client.writer.messages == []


@pytest.mark.asyncio
async def test_login_wrong():
    client = make_client(LoginWrong())
    assert await client.login("alice", "nope") is False
    assert not client.logged_in


@pytest.mark.asyncio
async def test_login_unexpected_reply():
    client = make_client(EnterRoom("bob"))
    with pytest.raises(ProtocolViolation):
        await client.login("alice", "wonderland")


@pytest.mark.asyncio
async def test_login_eof():
    client = make_client()
    with pytest.raises(ProtocolViolation):
        await client.login("alice", "wonderland")


@pytest.mark.asyncio
async def test_recv_malformed():
    client = make_client(b"{nope\n")
    with pytest.raises(DecodeError):
        await client.recv_message()


@pytest.mark.asyncio
async def test_requests():
    client = make_client()
    await client.public("hi")
    await client.go("kitchen")
    await client.list_doors()
    await client.logout()
    assert client.writer.messages == [Public("hi"), Go("kitchen"), ListDoors(), Logout()]


@pytest.mark.asyncio
async def test_listen_answers_keepalive():
    client = make_client(
        KeepAlive(), PublicBroadcast("bob", "hi"), KeepAlive(), LoggedOut(),
        PublicBroadcast("bob", "never read"),
    )
    received = []
    last = await client.listen(on_message=received.append)
    assert last == LoggedOut()
    assert received == [PublicBroadcast("bob", "hi"), LoggedOut()]
    assert client.writer.messages == [Alive(), Alive()]


@pytest.mark.asyncio
async def test_listen_coroutine_callback():
    client = make_client(PublicBroadcast("bob", "hi"))
    received = []

    async def on_message(msg):
        await asyncio.sleep(0)
        received.append(msg)

    assert await client.listen(on_message) == PublicBroadcast("bob", "hi")
    assert received == [PublicBroadcast("bob", "hi")]


@pytest.mark.asyncio
async def test_listen_eof():
    assert await make_client().listen() is None


@pytest.mark.asyncio
@pytest.mark.parametrize("line, expected", [
    ("hello, world", [Public("hello, world")]),
    ("/go kitchen", [Go("kitchen")]),
    ("/go   living_room", [Go("living_room")]),
    ("/list_doors", [ListDoors()]),
    ("/list-doors", [ListDoors()]),
    ("/logout", [Logout()]),
    ("not /a command", [Public("not /a command")]),
])
async def test_run_command(line, expected):
    client = make_client()
    await client.run_command(line)
    assert client.writer.messages == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("line", [
    "/shout hi",
    "/go",
    "/public a,b",
    "/logout now",
    "/login alice,wonderland",
    "/close",
])
async def test_run_command_invalid(line):
    client = make_client()
    with pytest.raises(InvalidCommand):
        await client.run_command(line)
    assert client.writer.messages == []


def test_argument_parser(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["roomchat-client", "localhost", "6666", "alice", "secret"])
    kwargs = _transform_args(_get_argument_parser().parse_args())
    assert kwargs["host"] == "localhost"
    assert kwargs["port"] == 6666
    assert kwargs["user_name"] == "alice"
    assert kwargs["password"] == "secret"
    assert kwargs["loglevel"] == "warn"
    assert kwargs["logfile"] is None
