"""roomchat: an asyncio multi-room chat server and client."""
# pylint: disable=wildcard-import,undefined-variable
from .errors import *           # noqa
from .message import *          # noqa
from .auth import *             # noqa
from .building import *         # noqa
from .connection import *       # noqa
from .handler import *          # noqa
from .server import *           # noqa
from .client import *           # noqa
from .accessories import get_version as __get_version

__all__ = (
    errors.__all__ +
    message.__all__ +
    auth.__all__ +
    building.__all__ +
    connection.__all__ +
    handler.__all__ +
    server.__all__ +
    client.__all__
)  # noqa

__license__ = 'ISC'
__version__ = __get_version()
