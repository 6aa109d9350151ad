"""Exceptions raised by the roomchat package."""

__all__ = (
    "ChatError",
    "DecodeError",
    "ProtocolViolation",
    "InvalidCommand",
    "BuildingConstructionError",
)


class ChatError(Exception):
    """Base class of all roomchat errors."""


class DecodeError(ChatError, ValueError):
    """A protocol line could not be decoded to a known message."""


class ProtocolViolation(ChatError):
    """A peer sent a message that is not allowed at this point."""


class BuildingConstructionError(ChatError):
    """A building or room layout could not be constructed."""


class InvalidCommand(ChatError):
    """A client command line names an unknown command or wrong arguments."""
