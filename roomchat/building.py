"""
Rooms, doors, and the building holding them.

A :class:`Building` is a registry of uniquely named :class:`Room` objects.
Rooms are linked by symmetric doors, and hold the connections of the users
currently inside them, keyed by user name.  All membership changes and
broadcasts of a room are serialized by the room's own :class:`asyncio.Lock`.
"""

from __future__ import annotations

# std imports
import json
import random
import asyncio
import logging
from typing import Any, Callable, Iterator

# local
from .errors import BuildingConstructionError
from .message import (
    Go,
    Kick,
    Public,
    LeftRoom,
    EnterRoom,
    ListDoors,
    EnteredRoom,
    ListedDoors,
    PublicBroadcast,
)

__all__ = ("Room", "Building", "load_building", "make_demo_building")

logger = logging.getLogger("roomchat.building")


class Room:
    """A named location holding chat membership and doors to other rooms."""

    def __init__(self, name: str, log: logging.Logger | None = None) -> None:
        self.name = name
        self.log = log or logger
        #: guards membership and every broadcast to it
        self.lock = asyncio.Lock()
        self._doors: list[Room] = []
        self._connections: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"<Room {self.name!r} users={len(self._connections)} doors={len(self._doors)}>"

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._connections.values()))

    @property
    def doors(self) -> tuple[Room, ...]:
        """Rooms adjacent to this one."""
        return tuple(self._doors)

    def door_names(self) -> list[str]:
        return [room.name for room in self._doors]

    def member_names(self) -> list[str]:
        return list(self._connections)

    def has_connection(self, connection) -> bool:
        return self._connections.get(connection.user_name) is connection

    async def snapshot(self) -> list[Any]:
        """Return list of current member connections, taken under the lock."""
        async with self.lock:
            return list(self._connections.values())

    def add_door(self, room: Room) -> None:
        """
        Add a door between this room and *room*, in both directions.

        Adding a door to the room itself, or a door that already exists,
        does nothing.
        """
        if room is self or room in self._doors:
            return
        self._doors.append(room)
        room.add_door(self)

    def find_door(self, room_name: str) -> Room | None:
        """Return the adjacent room named *room_name*, or ``None``."""
        for room in self._doors:
            if room.name == room_name:
                return room
        return None

    async def add_connection(self, connection) -> Room:
        """
        Admit *connection* into this room.

        A connection already present under the same user name is kicked
        and closed first.  Current members are told about the entrant by
        :class:`~.EnterRoom`, the entrant receives :class:`~.EnteredRoom`
        listing every member, itself included.
        """
        async with self.lock:
            previous = self._connections.get(connection.user_name)
            if previous is not None and previous is not connection:
                self._deliver(
                    previous,
                    Kick(f"Logged out because you're entering room '{self.name}' again!"),
                )
                del self._connections[previous.user_name]
                previous.force_close()
                self.log.info("%s re-entered %s, closed %s", connection.user_name, self.name, previous)
                self._broadcast(LeftRoom(previous.user_name, None))

            self._broadcast(EnterRoom(connection.user_name))
            self._connections[connection.user_name] = connection
            self._deliver(connection, EnteredRoom(self.name, self.member_names()))
        self.log.debug("%s entered %s", connection.user_name, self.name)
        return self

    async def remove_connection(self, connection, to_room: str | None = None) -> bool:
        """
        Remove *connection* from this room.

        Remaining members receive :class:`~.LeftRoom`, carrying *to_room*
        when the user walked through a door.

        :returns: ``False`` when *connection* was not a member.
        """
        async with self.lock:
            if not self.has_connection(connection):
                return False
            del self._connections[connection.user_name]
            self._broadcast(LeftRoom(connection.user_name, to_room))
        self.log.debug("%s left %s", connection.user_name, self.name)
        return True

    async def process(self, connection, msg) -> Room:
        """Process room related *msg*, received from *connection*."""
        if isinstance(msg, Public):
            async with self.lock:
                self._broadcast(PublicBroadcast(connection.user_name, msg.text))
        elif isinstance(msg, ListDoors):
            await connection.send_message(ListedDoors(self.door_names()))
        elif isinstance(msg, Go):
            if not await connection.move(msg.room_name):
                self.log.debug("Couldn't move %s from %s: %r", connection.user_name, self.name, msg)
        else:
            self.log.warning("Didn't expect message in room %s: %r", self.name, msg)
        return self

    # private methods, caller must hold the lock.  Nothing is awaited while
    # delivering, a member that does not read is dropped by its connection.

    def _broadcast(self, msg) -> None:
        for connection in list(self._connections.values()):
            self._deliver(connection, msg)

    def _deliver(self, connection, msg) -> None:
        try:
            connection.write_message(msg)
        except ConnectionError as exc:
            self.log.info("Dropping %s in %s: %s", connection, self.name, exc)
            connection.force_close()


class Building:
    """
    Registry of uniquely named rooms.

    :param start_room_selector: Callable returning the name of the room a
        new connection starts in.  It is called for every new connection.
        The default selects a random room.
    """

    def __init__(
        self,
        start_room_selector: Callable[[], str | None] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.log = log or logger
        self.rooms: dict[str, Room] = {}
        self._select_start_room = start_room_selector or self._random_room_name

    def __repr__(self) -> str:
        return f"<Building rooms={sorted(self.rooms)}>"

    def __getitem__(self, room_name: str) -> Room:
        return self.rooms[room_name]

    def __contains__(self, room_name: str) -> bool:
        return room_name in self.rooms

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self.rooms.values()))

    def __len__(self) -> int:
        return len(self.rooms)

    def build_room(self, room_name: str) -> Room:
        """
        Build another room named *room_name* and return it.

        :raises BuildingConstructionError: If the name is already taken.
        """
        if room_name in self.rooms:
            raise BuildingConstructionError(f"Room {room_name} already part of building!")
        room = self.rooms[room_name] = Room(room_name, log=self.log)
        return room

    def room_by_name(self, room_name: str) -> Room | None:
        return self.rooms.get(room_name)

    def connect(self, room_name: str, other_name: str) -> None:
        """Add a door between the two rooms named."""
        for name in (room_name, other_name):
            if name not in self.rooms:
                raise BuildingConstructionError(f"Room {name} is not part of building!")
        self.rooms[room_name].add_door(self.rooms[other_name])

    def start_room(self) -> Room:
        """
        Return the room a new connection starts in.

        :raises BuildingConstructionError: If the building has no rooms, or
            the selector names a room that does not exist.
        """
        if not self.rooms:
            raise BuildingConstructionError("Building has no rooms!")
        room_name = self._select_start_room()
        room = self.rooms.get(room_name)
        if room is None:
            raise BuildingConstructionError(f"Start room {room_name!r} is not part of building!")
        return room

    def _random_room_name(self) -> str | None:
        if not self.rooms:
            return None
        return random.choice(list(self.rooms))


def load_building(path: str, log: logging.Logger | None = None) -> Building:
    """
    Load a building layout from JSON file.

    The file maps each room to the names of its adjacent rooms, and may
    name a fixed start room::

        {"start_room": "lobby",
         "rooms": {"lobby": ["kitchen"], "kitchen": ["balcony"]}}

    Rooms only named as a door target are built as well.  Without
    ``start_room``, new connections start in a random room.

    :param path: Path to layout JSON file.
    :raises BuildingConstructionError: If the layout is malformed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise BuildingConstructionError(f"Cannot read building layout {path}: {exc}") from exc

    rooms = data.get("rooms") if isinstance(data, dict) else None
    if not isinstance(rooms, dict) or not rooms:
        raise BuildingConstructionError(f"Building layout {path} has no rooms")

    start = data.get("start_room")
    building = Building((lambda: start) if start else None, log=log)
    for room_name, doors in rooms.items():
        if not isinstance(doors, list):
            raise BuildingConstructionError(f"Doors of room {room_name} must be a list")
        for name in [room_name] + [str(other_name) for other_name in doors]:
            if name not in building:
                building.build_room(name)
    for room_name, doors in rooms.items():
        for other_name in doors:
            building.connect(room_name, str(other_name))
    if start and start not in building:
        raise BuildingConstructionError(f"Start room {start} is not part of building!")
    return building


def make_demo_building(log: logging.Logger | None = None) -> Building:
    """Return the demo building, starting every connection in the lobby."""
    building = Building(lambda: "lobby", log=log)
    for room_name in ("lobby", "kitchen", "balcony", "living_room", "toilet"):
        building.build_room(room_name)
    building.connect("lobby", "living_room")
    building.connect("living_room", "toilet")
    building.connect("living_room", "kitchen")
    building.connect("kitchen", "balcony")
    building.connect("balcony", "living_room")
    return building
