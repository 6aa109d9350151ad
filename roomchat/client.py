#!/usr/bin/env python3
"""
Chat Client API for the 'roomchat' python package.

The ``main`` function is wired to the command line tool by name
roomchat-client.  After login, each line of standard input is either a
command, ``/command arg1,arg2``, or said to the current room::

    /list_doors
    /go kitchen
    hello, world!
    /logout
"""
# std imports
import argparse
import asyncio
import inspect
import re
import sys

# local
from . import accessories
from .connection import MessageStream
from .errors import InvalidCommand, ProtocolViolation
from .message import (
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
)

__all__ = ("ChatClient", "open_connection", "run_client")

_RE_COMMAND = re.compile(r"^/([\w-]+)\s*(.*)$")


class ChatClient(MessageStream):
    """Client side of a chat server connection."""

    #: Commands available to :meth:`run_command`.
    COMMANDS = ("public", "go", "list_doors", "logout")

    def __init__(self, reader, writer, log=None):
        super().__init__(reader, writer, log=log)
        self.user_name = None
        self.logged_in = False

    async def login(self, user_name, password):
        """
        Login as *user_name* and wait for the reply.

        :returns: ``True`` when access was granted, ``False`` when denied,
            ``None`` without sending anything when already logged in.
        :raises ProtocolViolation: on any other reply.
        """
        if self.logged_in:
            return None
        self.user_name = user_name
        await self.send_message(Login(user_name, password))
        result = await self.recv_message()
        if isinstance(result, LoginOK):
            self.logged_in = True
            return True
        if isinstance(result, LoginWrong):
            return False
        if result is None:
            raise ProtocolViolation("Connection closed before login was answered.")
        raise ProtocolViolation(f"Didn't expect message '{type(result).__name__}'.")

    async def public(self, text):
        await self.send_message(Public(text))

    async def go(self, room_name):
        await self.send_message(Go(room_name))

    async def list_doors(self):
        await self.send_message(ListDoors())

    async def logout(self):
        await self.send_message(Logout())

    async def listen(self, on_message=None):
        """
        Receive messages until :class:`~.LoggedOut` or end of stream.

        :class:`~.KeepAlive` is answered with :class:`~.Alive`, every other
        message is passed to *on_message*, which may be a coroutine
        function.

        :returns: the last message received, or ``None``.
        """
        last = None
        while True:
            msg = await self.recv_message()
            if msg is None:
                break
            last = msg
            if isinstance(msg, KeepAlive):
                await self.send_message(Alive())
                continue
            if on_message is not None:
                result = on_message(msg)
                if inspect.isawaitable(result):
                    await result
            if isinstance(msg, LoggedOut):
                break
        return last

    async def run_command(self, line):
        """
        Execute one line of user input.

        A line of form ``/command arg1,arg2`` calls the client method of that
        name, ``-`` in a name is read as ``_``.  Anything else is sent as
        :class:`~.Public` text.

        :raises InvalidCommand: for an unknown command or wrong arguments.
        """
        match = _RE_COMMAND.match(line)
        if match is None:
            await self.public(line)
            return
        name, argline = match.groups()
        name = name.replace("-", "_")
        if name not in self.COMMANDS:
            raise InvalidCommand(f"Unknown command '/{name}'")
        method = getattr(self, name)
        args = argline.split(",") if argline else []
        try:
            inspect.signature(method).bind(*args)
        except TypeError as exc:
            raise InvalidCommand(f"/{name}: {exc}") from exc
        await method(*args)


async def open_connection(host=None, port=6666, *, log=None, limit=2**16):
    """
    Connect to a chat server.

    :param str host: Remote Internet TCP Server host.
    :param int port: Remote Internet host TCP port.
    :param int limit: The buffer limit for reader stream.
    :return ChatClient: connected, not yet logged in.
    """
    reader, writer = await asyncio.open_connection(host, port, limit=limit)
    return ChatClient(reader, writer, log=log)


async def _make_stdin_reader():
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    loop = asyncio.get_event_loop()
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


async def _read_commands(client, stdin):
    while True:
        line = await stdin.readline()
        if not line:
            await client.logout()
            return
        line = line.decode("utf-8", "replace").rstrip("\r\n")
        if not line.strip():
            continue
        try:
            await client.run_command(line)
        except InvalidCommand as exc:
            print(f"Caught: {exc}", file=sys.stderr)


async def run_client():
    """Command-line 'roomchat-client' entry point, via setuptools."""
    kwargs = _transform_args(_get_argument_parser().parse_args())
    config_msg = "Client configuration: {key_values}".format(
        key_values=accessories.format_config(kwargs)
    )
    log = accessories.make_logger(
        name="roomchat.client",
        loglevel=kwargs["loglevel"],
        logfile=kwargs["logfile"],
        logfmt=kwargs["logfmt"],
    )
    log.debug(config_msg)

    client = await open_connection(kwargs["host"], kwargs["port"], log=log)
    try:
        if not await client.login(kwargs["user_name"], kwargs["password"]):
            print("Login failed!")
            return 1
        print("Logged in.")
        stdin = await _make_stdin_reader()
        listener = asyncio.ensure_future(client.listen(on_message=print))
        commands = asyncio.ensure_future(_read_commands(client, stdin))
        await asyncio.wait({listener, commands}, return_when=asyncio.FIRST_COMPLETED)
        if commands.done():
            commands.result()
        else:
            commands.cancel()
        last = await listener
        return 0 if isinstance(last, LoggedOut) else 1
    finally:
        await client.close()


def _get_argument_parser():
    parser = argparse.ArgumentParser(
        description="Multi-room chat client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("host", action="store", help="hostname")
    parser.add_argument("port", type=int, help="port number")
    parser.add_argument("user_name", help="login name")
    parser.add_argument("password", help="login password")
    parser.add_argument("--loglevel", default="warn", help="log level")
    parser.add_argument(
        "--logfmt", default=accessories.DEFAULT_LOGFMT, help="log format"
    )
    parser.add_argument("--logfile", help="filepath")
    return parser


def _transform_args(args):
    return {
        "host": args.host,
        "port": args.port,
        "user_name": args.user_name,
        "password": args.password,
        "loglevel": args.loglevel,
        "logfile": args.logfile,
        "logfmt": args.logfmt,
    }


def main():
    sys.exit(asyncio.run(run_client()))


if __name__ == "__main__":
    main()
