"""Module provides classes MessageStream and Connection."""

# std imports
import asyncio
import logging
import time

# local
from . import message
from .errors import DecodeError

__all__ = ("MessageStream", "Connection")

logger = logging.getLogger("roomchat.connection")


class MessageStream:
    """
    Protocol messages over an asyncio ``(reader, writer)`` stream pair.

    Each message is written as one line of JSON, see :mod:`roomchat.message`.
    """

    def __init__(self, reader, writer, log=None):
        self.reader = reader
        self.writer = writer
        self.log = log or logger

    def write_message(self, msg):
        """Encode and write *msg* into the transport buffer."""
        line = message.encode(msg)
        self.log.debug("Send: %s", line)
        self.writer.write(line.encode("utf-8") + b"\n")

    async def send_message(self, msg):
        """Encode and write *msg*, waiting for the transport to drain."""
        self.write_message(msg)
        await self.writer.drain()

    async def read_line(self):
        """
        Read one raw protocol line.

        :returns: bytes, empty at end of stream.
        :raises DecodeError: when the line exceeds the stream buffer limit.
        """
        try:
            return await self.reader.readline()
        except ValueError as exc:
            raise DecodeError(f"Message line too long: {exc}") from exc

    async def recv_message(self):
        """
        Read and decode the next message.

        :returns: Message instance, or ``None`` at end of stream.
        :raises DecodeError: when the line received is malformed.
        """
        line = await self.read_line()
        if not line:
            return None
        self.log.debug("Recv: %s", line.rstrip(b"\r\n").decode("utf-8", "replace"))
        return message.decode(line)

    async def close(self):
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError as exc:
            self.log.debug("Error closing %s: %s", self, exc)


class Connection(MessageStream):
    """
    Server side of one client connection.

    Messages to a connection are written without waiting for the peer, so
    that a room may deliver them while holding its lock.  A peer that lets
    more than *write_limit* bytes pile up unsent is disconnected, as is one
    that does not accept a direct reply within *drain_timeout* seconds.

    :param room: Room the connection starts in.  The connection becomes a
        member of that room only after a successful login.
    :param clock: Function returning a monotonic time, in seconds.
    """

    #: default limit of bytes buffered for a peer that does not read
    WRITE_LIMIT = 2**20
    #: default seconds to wait for a direct reply to be sent
    DRAIN_TIMEOUT = 10.0

    def __init__(
        self,
        reader,
        writer,
        room,
        log=None,
        clock=time.monotonic,
        write_limit=WRITE_LIMIT,
        drain_timeout=DRAIN_TIMEOUT,
    ):
        super().__init__(reader, writer, log=log)
        #: current room, never None
        self.room = room
        #: set by a successful login
        self.user_name = None
        self.write_limit = write_limit
        self.drain_timeout = drain_timeout
        self._clock = clock
        self._closing = False
        self._closed = False
        peer = writer.get_extra_info("peername") or ("unknown", 0)
        self.peer = "{0}:{1}".format(*peer[:2])
        self.alive()

    def __str__(self):
        if self.user_name:
            return f"{self.user_name}@{self.peer}"
        return self.peer

    def __repr__(self):
        return f"<Connection {self} room={self.room.name!r} closing={self._closing}>"

    @property
    def authorized(self):
        """Whether a login succeeded for this connection."""
        return self.user_name is not None

    @property
    def buffered(self):
        """Number of bytes written but not yet sent to the peer."""
        transport = getattr(self.writer, "transport", None)
        return transport.get_write_buffer_size() if transport is not None else 0

    def alive(self):
        """Refresh liveness timestamp."""
        self.last_alive = self._clock()

    def idle(self, now=None):
        """Seconds elapsed since the last sign of life."""
        return (self._clock() if now is None else now) - self.last_alive

    def is_closing(self):
        return self._closing

    def write_message(self, msg):
        """
        Write *msg* without waiting for the peer to receive it.

        The connection is closed when its unsent output exceeds
        :attr:`write_limit`.
        """
        if self._closing:
            self.log.debug("Not sending to closing connection %s: %r", self, msg)
            return
        super().write_message(msg)
        if self.buffered > self.write_limit:
            self.log.warning(
                "Dropping %s, %d bytes unsent exceed limit of %d",
                self, self.buffered, self.write_limit,
            )
            self.force_close()

    async def send_message(self, msg):
        """Write *msg*, and wait at most :attr:`drain_timeout` for it to be sent."""
        self.write_message(msg)
        if self._closing:
            return
        try:
            await asyncio.wait_for(self.writer.drain(), self.drain_timeout)
        except asyncio.TimeoutError:
            self.log.warning("Dropping %s, no progress sending for %ss", self, self.drain_timeout)
            self.force_close()

    async def move(self, room_name):
        """
        Move through the door of the current room into *room_name*.

        :returns: ``False`` when the current room has no such door, or the
            connection was closed on its way.
        """
        new_room = self.room.find_door(room_name)
        if new_room is None or self._closing:
            return False
        await self.room.remove_connection(self, room_name)
        if self._closing:
            return False
        await new_room.add_connection(self)
        self.room = new_room
        return True

    def force_close(self):
        """
        Close the stream, without waiting.

        The pending read of the connection's worker receives end of stream,
        which then calls :meth:`close`.  Output the peer did not accept yet
        is discarded.  Calling this more than once has no further effect.
        """
        if self._closing:
            return
        self._closing = True
        transport = getattr(self.writer, "transport", None)
        if transport is not None and self.buffered:
            self.log.debug("Abort of %s, %d bytes unsent", self, self.buffered)
            transport.abort()
        else:
            self.log.debug("Force close of %s", self)
        self.writer.close()

    async def close(self):
        """Remove connection from its room, and close the stream, once."""
        if self._closed:
            return
        self._closed = self._closing = True
        try:
            await self.room.remove_connection(self)
        finally:
            await super().close()
