import hmac
from types import MappingProxyType
from fileserver.config import StartupError

DELIMITER = ":"


def parse_users(lines):
    """
    Build the credential table from 'user:password' lines.
    Lines without the delimiter are skipped; the first occurrence of a user wins.
    """
    users = {}
    for line in lines:
        line = line.rstrip("\r\n")
        if DELIMITER not in line:
            continue
        username, password = line.split(DELIMITER, 1)
        if not username or username in users:
            continue
        users[username] = password
    return MappingProxyType(users)


def load_users(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_users(f)
    except (OSError, UnicodeDecodeError) as e:
        raise StartupError(f"Failed to open password file: {path} ({e})") from e


def verify_password(users, username, password):
    """Literal comparison. The password may carry surrogate-escaped bytes from the wire."""
    stored = users.get(username)
    if stored is None:
        return False
    return hmac.compare_digest(
        stored.encode("utf-8", errors="surrogateescape"),
        password.encode("utf-8", errors="surrogateescape"),
    )
