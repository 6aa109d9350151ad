"""
The ``main`` function here is wired to the command line tool by name
roomchat-server.  If this server's PID receives the SIGTERM signal, it
attempts to shutdown gracefully.

The :class:`ChatServer` class accepts connections into a :class:`~.Building`,
running one task per connection, and a monitor task that sends
:class:`~.KeepAlive` to every room member idle for longer than
``keepalive_idle`` seconds.
"""

# std imports
import collections
import argparse
import asyncio
import logging
import signal
import time

# local
from . import accessories
from .auth import Authenticator, load_logins
from .errors import DecodeError, BuildingConstructionError
from .message import KeepAlive
from .handler import ConnectionHandler
from .building import load_building, make_demo_building
from .connection import Connection

__all__ = ("ChatServer", "create_server", "run_server", "parse_server_args")

CONFIG = collections.namedtuple(
    "CONFIG",
    [
        "host",
        "port",
        "loglevel",
        "logfile",
        "logfmt",
        "building",
        "passwd",
        "keepalive_interval",
        "keepalive_idle",
    ],
)(
    host="localhost",
    port=6666,
    loglevel="info",
    logfile=None,
    logfmt=accessories.DEFAULT_LOGFMT,
    building=None,
    passwd=None,
    keepalive_interval=1.0,
    keepalive_idle=60.0,
)
logger = logging.getLogger("roomchat.server")


class ChatServer:
    """
    Chat server driving the rooms of a building.

    :param Building building: rooms served.
    :param Authenticator authenticator: login check, the demo logins of
        :class:`~.Authenticator` when unspecified.
    :param float keepalive_interval: seconds between two sweeps of the
        keepalive monitor.
    :param float keepalive_idle: seconds without any message received after
        which a room member is sent :class:`~.KeepAlive`, once per sweep.
    :param int write_limit: bytes of unsent output after which a connection
        that does not read is dropped.
    :param float drain_timeout: seconds a direct reply may take to be sent
        before its connection is dropped.
    """

    def __init__(
        self,
        building,
        authenticator=None,
        keepalive_interval=CONFIG.keepalive_interval,
        keepalive_idle=CONFIG.keepalive_idle,
        log=None,
        clock=time.monotonic,
        write_limit=Connection.WRITE_LIMIT,
        drain_timeout=Connection.DRAIN_TIMEOUT,
    ):
        self.building = building
        self.authenticator = authenticator or Authenticator()
        self.keepalive_interval = keepalive_interval
        self.keepalive_idle = keepalive_idle
        self.log = log or logger
        self._clock = clock
        self.write_limit = write_limit
        self.drain_timeout = drain_timeout
        self._server = None
        self._monitor = None
        self._connections = set()
        self._workers = set()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.close()
        await self.wait_closed()

    @property
    def connections(self):
        """List of live connections, logged in or not."""
        return list(self._connections)

    @property
    def sockets(self):
        return self._server.sockets if self._server is not None else ()

    @property
    def port(self):
        """Bound TCP port, useful when started with port 0."""
        return self.sockets[0].getsockname()[1]

    def is_serving(self):
        return self._server is not None and self._server.is_serving()

    async def start(self, host=None, port=CONFIG.port):
        """Bind *host* and *port*, and begin the keepalive monitor."""
        self._server = await asyncio.start_server(self.handle_connection, host, port)
        self._monitor = asyncio.ensure_future(self._monitor_loop())
        return self

    def accept(self, reader, writer):
        """Return new :class:`~.Connection` bound to the start room."""
        connection = Connection(
            reader,
            writer,
            self.building.start_room(),
            log=self.log,
            clock=self._clock,
            write_limit=self.write_limit,
            drain_timeout=self.drain_timeout,
        )
        self._connections.add(connection)
        return connection

    async def handle_connection(self, reader, writer):
        """
        Worker of one client connection.

        Reads one line at a time, feeding it to the connection's
        :class:`~.ConnectionHandler`, until end of stream or until the
        connection is closed.  The connection always leaves its room.
        """
        task = asyncio.current_task()
        self._workers.add(task)
        try:
            connection = self.accept(reader, writer)
        except BuildingConstructionError as exc:
            self.log.error("Refusing connection: %s", exc)
            writer.close()
            self._workers.discard(task)
            return

        self.log.info("Accepting connection from '%s'.", connection)
        handler = ConnectionHandler(connection, self.authenticator, log=self.log)
        try:
            while not connection.is_closing():
                line = await connection.read_line()
                if not line:
                    break
                await handler.process_line(line)
        except DecodeError as exc:
            await handler.kick(f"Malformed message: {exc}")
        except ConnectionError as exc:
            self.log.info("Connection lost for %s: %s", connection, exc)
        except Exception:
            self.log.exception("Error processing messages of %s", connection)
        finally:
            self.log.info("Closing connection from '%s'.", connection)
            self._connections.discard(connection)
            try:
                await connection.close()
            finally:
                self._workers.discard(task)

    async def ping_idle(self, now=None):
        """
        Send :class:`~.KeepAlive` to every idle room member.

        :returns: number of connections pinged.
        """
        now = self._clock() if now is None else now
        pinged = 0
        for room in self.building:
            for connection in await room.snapshot():
                if connection.idle(now) <= self.keepalive_idle:
                    continue
                try:
                    connection.write_message(KeepAlive())
                except ConnectionError as exc:
                    self.log.info("Keepalive failed for %s: %s", connection, exc)
                    connection.force_close()
                else:
                    pinged += 1
        return pinged

    def close(self):
        """Stop listening, and close every connection."""
        if self._monitor is not None:
            self._monitor.cancel()
        if self._server is not None:
            self._server.close()
        for connection in list(self._connections):
            connection.force_close()

    async def serve_forever(self):
        """Serve until :meth:`close` is called, then wait for shutdown."""
        await self.wait_closed()

    async def wait_closed(self):
        if self._monitor is not None:
            await asyncio.gather(self._monitor, return_exceptions=True)
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        if self._server is not None:
            await self._server.wait_closed()

    async def _monitor_loop(self):
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                pinged = await self.ping_idle()
            except Exception:
                self.log.exception("Keepalive sweep failed")
            else:
                if pinged:
                    self.log.debug("Sent keepalive to %d connection(s)", pinged)


async def create_server(building, authenticator=None, host=None, port=CONFIG.port, **kwds):
    """
    Create and start a chat server.

    :param Building building: rooms served.
    :param Authenticator authenticator: login check.
    :param str host: bind address, all interfaces when ``None``.
    :param int port: bind port, ``0`` selects any unused port.
    :param kwds: further keyword arguments of :class:`ChatServer`.
    :return ChatServer: started server.
    """
    server = ChatServer(building, authenticator, **kwds)
    return await server.start(host, port)


def parse_server_args():
    parser = argparse.ArgumentParser(
        description="Multi-room chat server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("host", nargs="?", default=CONFIG.host, help="bind address")
    parser.add_argument(
        "port", nargs="?", type=int, default=CONFIG.port, help="bind port"
    )
    parser.add_argument("--loglevel", default=CONFIG.loglevel, help="level name")
    parser.add_argument("--logfile", default=CONFIG.logfile, help="filepath")
    parser.add_argument("--logfmt", default=CONFIG.logfmt, help="log format")
    parser.add_argument(
        "--building",
        default=CONFIG.building,
        help="building layout JSON file (demo building when unset)",
    )
    parser.add_argument(
        "--passwd",
        default=CONFIG.passwd,
        help="file of user:password lines (demo logins when unset)",
    )
    parser.add_argument(
        "--keepalive-interval",
        type=float,
        default=CONFIG.keepalive_interval,
        help="seconds between idle checks",
    )
    parser.add_argument(
        "--keepalive-idle",
        type=float,
        default=CONFIG.keepalive_idle,
        help="idle seconds before keepalive is sent",
    )
    return vars(parser.parse_args())


async def run_server(
    host=CONFIG.host,
    port=CONFIG.port,
    loglevel=CONFIG.loglevel,
    logfile=CONFIG.logfile,
    logfmt=CONFIG.logfmt,
    building=CONFIG.building,
    passwd=CONFIG.passwd,
    keepalive_interval=CONFIG.keepalive_interval,
    keepalive_idle=CONFIG.keepalive_idle,
):
    """
    Program entry point for server daemon.

    This function configures a logger and creates a chat server for the
    given keyword arguments, serving forever, completing only upon receipt of
    SIGTERM.
    """
    log = accessories.make_logger(
        name="roomchat.server", loglevel=loglevel, logfile=logfile, logfmt=logfmt
    )

    # log all function arguments.
    _locals = locals()
    log.debug(
        "Server configuration: %s",
        accessories.format_config({field: _locals[field] for field in CONFIG._fields}),
    )

    the_building = load_building(building, log=log) if building else make_demo_building(log=log)
    authenticator = Authenticator(load_logins(passwd) if passwd else None)

    loop = asyncio.get_event_loop()

    # bind
    server = await create_server(
        the_building,
        authenticator,
        host,
        port,
        keepalive_interval=keepalive_interval,
        keepalive_idle=keepalive_idle,
        log=log,
    )

    # SIGTERM cases server to gracefully stop
    loop.add_signal_handler(signal.SIGTERM, server.close)

    log.info("Now accepting connections on '%s:%s'.", host, server.port)

    # await completion of server stop
    try:
        await server.serve_forever()
    finally:
        # remove signal handler on stop
        loop.remove_signal_handler(signal.SIGTERM)

    log.info("Server stop.")


def main():
    asyncio.run(run_server(**parse_server_args()))


if __name__ == "__main__":
    main()
