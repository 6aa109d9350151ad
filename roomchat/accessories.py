"""Accessory functions shared by the command line tools."""
# std imports
import importlib.metadata
import logging

__all__ = ("get_version", "make_logger", "format_config", "DEFAULT_LOGFMT")

#: log format of the command line tools
DEFAULT_LOGFMT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_version():
    try:
        return importlib.metadata.version("roomchat")
    except importlib.metadata.PackageNotFoundError:
        return "0.0.0"


def make_logger(name, loglevel="info", logfile=None, logfmt=DEFAULT_LOGFMT):
    """
    Configure logging of a command line tool, and return logger *name*.

    The root logger is set to *loglevel*.  Output goes to *logfile* when
    given, otherwise to standard error.  A root logger that already has
    handlers keeps them.

    :raises ValueError: for an unknown level name.
    """
    level = logging.getLevelName(loglevel.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {loglevel!r}")
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        if logfile:
            handler = logging.FileHandler(logfile, encoding="utf-8")
        else:
            handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(logfmt))
        root.addHandler(handler)
    return logging.getLogger(name)


def format_config(config, hidden=("password",)):
    """Return ``key=value`` pairs of *config*, masking the values of *hidden* keys."""
    return " ".join(
        f"{key}={'***' if key in hidden else value!r}" for key, value in config.items()
    )
