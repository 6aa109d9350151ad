"""
Chat protocol messages and their line encoding.

Every message is one JSON object on one line.  The object carries a
discriminator key, ``"type"``, naming the message kind, and the fields
declared by that kind::

    {"type":"Login","user_name":"alice","password":"secret"}
    {"type":"EnteredRoom","room_name":"lobby","users":["alice","bob"]}

The set of kinds is closed: :data:`MESSAGE_TYPES` maps each discriminator
to its class, and :func:`decode` refuses anything else.
"""

from __future__ import annotations

# std imports
import json
import dataclasses
from typing import Any

# local
from .errors import DecodeError

__all__ = (
    "Message",
    "Login",
    "LoginOK",
    "LoginWrong",
    "KeepAlive",
    "Alive",
    "Logout",
    "LoggedOut",
    "Kick",
    "Public",
    "PublicBroadcast",
    "EnterRoom",
    "EnteredRoom",
    "LeftRoom",
    "Go",
    "ListDoors",
    "ListedDoors",
    "MESSAGE_TYPES",
    "TYPE_KEY",
    "encode",
    "decode",
)

#: Name of the JSON key holding the message kind.
TYPE_KEY = "type"


@dataclasses.dataclass(frozen=True)
class Message:
    """Base class of all protocol messages."""

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        """Return the declared field names, in declaration order."""
        return tuple(f.name for f in dataclasses.fields(cls))

    def to_dict(self) -> dict[str, Any]:
        """Return mapping of discriminator and field values."""
        data: dict[str, Any] = {TYPE_KEY: type(self).__name__}
        for name in self.field_names():
            value = getattr(self, name)
            data[name] = list(value) if isinstance(value, tuple) else value
        return data


def _as_tuple(instance: Message, name: str) -> None:
    # list fields are stored as tuples.
    value = getattr(instance, name)
    if value is not None and not isinstance(value, tuple):
        object.__setattr__(instance, name, tuple(value))


@dataclasses.dataclass(frozen=True)
class Login(Message):
    """C->S: Login as ``user_name`` with ``password``."""

    user_name: str | None = None
    password: str | None = None

    def __repr__(self) -> str:
        return f"Login(user_name={self.user_name!r}, password='***')"


@dataclasses.dataclass(frozen=True)
class LoginOK(Message):
    """S->C: Access was granted."""

    def __str__(self) -> str:
        return "Logged in."


@dataclasses.dataclass(frozen=True)
class LoginWrong(Message):
    """S->C: Access was denied."""

    def __str__(self) -> str:
        return "Login failed!"


@dataclasses.dataclass(frozen=True)
class KeepAlive(Message):
    """S->C: The server expects the client to respond with :class:`Alive`."""


@dataclasses.dataclass(frozen=True)
class Alive(Message):
    """C->S: Response to :class:`KeepAlive`."""


@dataclasses.dataclass(frozen=True)
class Logout(Message):
    """C->S: Tell the server to disconnect this user."""


@dataclasses.dataclass(frozen=True)
class LoggedOut(Message):
    """S->C: Response to :class:`Logout`, sent before disconnection."""

    def __str__(self) -> str:
        return "Bye."


@dataclasses.dataclass(frozen=True)
class Kick(Message):
    """S->C: The server is closing this connection, ``text`` is the reason."""

    text: str | None = None

    def __str__(self) -> str:
        return f"Kicked: {self.text}"


@dataclasses.dataclass(frozen=True)
class Public(Message):
    """C->S: Say ``text`` to everybody in the current room."""

    text: str | None = None


@dataclasses.dataclass(frozen=True)
class PublicBroadcast(Message):
    """S->C: Public message of ``user_name``, relayed to the whole room."""

    user_name: str | None = None
    text: str | None = None

    def __str__(self) -> str:
        return f"{self.user_name}: {self.text}"


@dataclasses.dataclass(frozen=True)
class EnterRoom(Message):
    """S->C: User ``user_name`` has just entered the room."""

    user_name: str | None = None

    def __str__(self) -> str:
        return f"{self.user_name} enters the room."


@dataclasses.dataclass(frozen=True)
class EnteredRoom(Message):
    """
    S->C: Entering room ``room_name`` was successful.

    ``users`` holds the names of all users in the room at this time,
    including the receiver.
    """

    room_name: str | None = None
    users: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        _as_tuple(self, "users")

    def __str__(self) -> str:
        return "You're in the {0}, together with {1}.".format(
            self.room_name, ", ".join(self.users or ())
        )


@dataclasses.dataclass(frozen=True)
class LeftRoom(Message):
    """
    S->C: User ``user_name`` left the room.

    When the user went into an adjacent room, ``to_room`` names it,
    otherwise the user left the server and ``to_room`` is ``None``.
    """

    user_name: str | None = None
    to_room: str | None = None

    def __str__(self) -> str:
        if self.to_room:
            return f"{self.user_name} has just left the room, and went to the {self.to_room}."
        return f"{self.user_name} has just left the room."


@dataclasses.dataclass(frozen=True)
class Go(Message):
    """C->S: Move through the door into room ``room_name``."""

    room_name: str | None = None


@dataclasses.dataclass(frozen=True)
class ListDoors(Message):
    """C->S: List the doors of the current room."""


@dataclasses.dataclass(frozen=True)
class ListedDoors(Message):
    """S->C: Names of the rooms adjacent to the current room."""

    doors: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        _as_tuple(self, "doors")

    def __str__(self) -> str:
        return "doors = {{ {0} }}".format(", ".join(self.doors or ()))


#: Closed registry of every message kind, keyed by discriminator.
MESSAGE_TYPES: dict[str, type[Message]] = {
    cls.__name__: cls
    for cls in (
        Login,
        LoginOK,
        LoginWrong,
        KeepAlive,
        Alive,
        Logout,
        LoggedOut,
        Kick,
        Public,
        PublicBroadcast,
        EnterRoom,
        EnteredRoom,
        LeftRoom,
        Go,
        ListDoors,
        ListedDoors,
    )
}


def encode(msg: Message) -> str:
    """
    Encode a message as a single line of JSON.

    :param msg: Message to encode.
    :returns: JSON text without line terminator.
    """
    return json.dumps(msg.to_dict(), separators=(",", ":"), ensure_ascii=False)


def decode(line: str | bytes) -> Message:
    """
    Decode one protocol line.

    Fields missing from the line are ``None``, unknown fields are ignored.

    :param line: JSON text, with or without trailing line terminator.
    :returns: Message instance of the kind named by the discriminator.
    :raises DecodeError: If the line is not a JSON object of a known kind.
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Message line is not UTF-8: {exc}") from exc
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Invalid JSON in message line: {exc}") from exc
    except RecursionError as exc:
        raise DecodeError(f"Message line nested too deeply: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"Message line is not a JSON object: {line.strip()!r}")

    kind = data.get(TYPE_KEY)
    msg_cls = MESSAGE_TYPES.get(kind) if isinstance(kind, str) else None
    if msg_cls is None:
        raise DecodeError(f"Unknown message type: {kind!r}")
    try:
        return msg_cls(**{name: data.get(name) for name in msg_cls.field_names()})
    except TypeError as exc:
        # list fields given a non-iterable value
        raise DecodeError(f"Invalid fields for {kind}: {exc}") from exc
