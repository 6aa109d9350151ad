"""User name and password checks."""
# std imports
import hmac

__all__ = ("Authenticator", "load_logins", "DEFAULT_LOGINS")

#: logins of the demo server
DEFAULT_LOGINS = {
    "flori": "test",
    "alter": "ego",
}


class Authenticator:
    """
    Password check against a mapping of user names to passwords.

    :param dict logins: user name to password mapping, :data:`DEFAULT_LOGINS`
        when unspecified.
    """

    def __init__(self, logins=None):
        self._logins = dict(DEFAULT_LOGINS if logins is None else logins)

    def allowed(self, user_name, password):
        """Return whether *password* is correct for *user_name*."""
        if not isinstance(user_name, str) or not isinstance(password, str):
            return False
        expected = self._logins.get(user_name)
        if expected is None:
            return False
        return hmac.compare_digest(expected.encode("utf-8"), password.encode("utf-8"))


def load_logins(path):
    """
    Read logins from file of ``user:password`` lines.

    Blank lines and lines starting with ``#`` are skipped.

    :raises ValueError: for a line without ``:`` separator or user name.
    """
    logins = {}
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.rstrip("\r\n")
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            user_name, sep, password = line.partition(":")
            if not sep or not user_name.strip():
                raise ValueError(f"{path}:{lineno}: expected 'user:password'")
            logins[user_name.strip()] = password
    return logins
