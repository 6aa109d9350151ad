"""
Protocol state machine of a server connection.

A connection begins ``UNAUTHENTICATED``: the only message accepted is
:class:`~.Login`, anything else is answered with :class:`~.Kick` and the
connection is closed.  After a successful login it is ``AUTHENTICATED`` and
room related messages are delegated to the connection's current room.  A
closed connection is ``CLOSED`` and processes nothing further.
"""

# std imports
import enum
import logging

# local
from . import message
from .message import (
    Go,
    Kick,
    Alive,
    Login,
    Logout,
    Public,
    LoginOK,
    ListDoors,
    LoggedOut,
    LoginWrong,
)

__all__ = ("ConnectionHandler", "HandlerState")

logger = logging.getLogger("roomchat.handler")


class HandlerState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class ConnectionHandler:
    """Process the messages received by one :class:`~.Connection`."""

    def __init__(self, connection, authenticator, log=None):
        self.connection = connection
        self.authenticator = authenticator
        self.log = log or logger
        self.state = HandlerState.UNAUTHENTICATED
        self._dispatch = {
            Alive: self._on_alive,
            Logout: self._on_logout,
            Go: self._on_room_message,
            ListDoors: self._on_room_message,
            Public: self._on_room_message,
        }

    async def process_line(self, line):
        """
        Decode and process one line received from the client.

        :raises DecodeError: when the line is malformed.
        """
        msg = message.decode(line)
        self.connection.alive()
        await self.process(msg)

    async def process(self, msg):
        """Process message *msg* received from the client."""
        if self.connection.is_closing():
            self.state = HandlerState.CLOSED
        if self.state is HandlerState.CLOSED:
            self.log.debug("Ignoring %r for closed connection %s", msg, self.connection)
            return

        self.log.debug("Proc: %r from %s", msg, self.connection)
        if isinstance(msg, Login):
            await self._on_login(msg)
        elif self.state is HandlerState.UNAUTHENTICATED:
            await self.kick(f"Unauthorized connections aren't allowed to send '{type(msg).__name__}'!")
        else:
            handler = self._dispatch.get(type(msg))
            if handler is None:
                self.log.warning("Didn't expect message from %s: %r", self.connection, msg)
            else:
                await handler(msg)

        if self.connection.is_closing():
            self.state = HandlerState.CLOSED

    async def _on_login(self, msg):
        if self.state is HandlerState.AUTHENTICATED:
            self.log.warning("%s is already logged in, ignoring %r", self.connection, msg)
            return
        if not self.authenticator.allowed(msg.user_name, msg.password):
            self.log.info("Login failed for %r from %s", msg.user_name, self.connection)
            await self.connection.send_message(LoginWrong())
            return
        self.connection.user_name = msg.user_name
        await self.connection.send_message(LoginOK())
        if self.connection.is_closing():
            return
        self.state = HandlerState.AUTHENTICATED
        self.log.info("%s logged in", self.connection)
        await self.connection.room.add_connection(self.connection)

    async def _on_alive(self, msg):
        self.connection.alive()

    async def _on_logout(self, msg):
        await self.connection.room.remove_connection(self.connection)
        await self.connection.send_message(LoggedOut())
        self.log.info("%s logged out", self.connection)
        self.connection.force_close()

    async def _on_room_message(self, msg):
        await self.connection.room.process(self.connection, msg)

    async def kick(self, reason):
        """Send :class:`~.Kick` for *reason*, and close the connection."""
        self.log.warning("Kicking %s: %s", self.connection, reason)
        try:
            await self.connection.send_message(Kick(reason))
        except ConnectionError as exc:
            self.log.debug("Kick not delivered to %s: %s", self.connection, exc)
        finally:
            self.connection.force_close()
            self.state = HandlerState.CLOSED
