import os
import select
import socket

BUFFER_SIZE = 65536
PUT_ERROR_WAIT = 0.2        # Seconds to wait for an immediate PUT rejection
GET_TRAILER = b"\n.\n"
TERMINATOR = "."

# Basic protocol I/O ----------------------------------------------------------------------------------------------------------

def get_response(sock):
    """Read a single response line (without the newline)."""
    data = bytearray()
    while True:
        byte = sock.recv(1)
        if not byte:
            if not data:
                raise ConnectionError("Connection closed by server.")
            break
        if byte == b"\n":
            break
        data.extend(byte)
    return data.decode("utf-8", errors="replace")


def send(sock, command):
    """Send a command line and return the one-line response."""
    sock.sendall(f"{command}\n".encode())
    return get_response(sock)


def connect_to_server(host, port, user, password):
    """Connect and log in. Returns (success, socket, transcript)."""
    try:
        sock = socket.create_connection((host, int(port)))
    except (OSError, ValueError) as e:
        return False, None, str(e)

    try:
        welcome = get_response(sock)
        resp_user = send(sock, f"USER {user} {password}")
    except OSError as e:
        sock.close()
        return False, None, str(e)

    if not resp_user.startswith("200"):
        sock.close()
        return False, None, f"{welcome}\n{resp_user}"
    return True, sock, f"{welcome}\n{resp_user}"

# Commands --------------------------------------------------------------------------------------------------------------------

def cmd_PING(sock):
    return send(sock, "PING")


def parse_listing(lines):
    """Turn 'name - size' lines into (name, size) tuples."""
    entries = []
    for line in lines:
        name, sep, size = line.rpartition(" - ")
        if not sep:
            continue
        try:
            entries.append((name, int(size)))
        except ValueError:
            continue
    return entries


def cmd_LIST(sock):
    """Returns (True, [(name, size), ...]) or (False, error_line)."""
    sock.sendall(b"LIST\n")
    lines = []
    while True:
        line = get_response(sock)
        if line == TERMINATOR:
            break
        if not lines and line.startswith(("4", "5")) and " - " not in line:
            return False, line
        lines.append(line)
    return True, parse_listing(lines)


def fetch_file(sock, remote_name):
    """Retrieve a file's bytes. Returns (True, content) or (False, error_line)."""
    # Single-line answers the server gives instead of a payload
    errors = (
        f"404 File {remote_name} not found.\n".encode(),
        b"500 Internal server error.\n",
        b"400 Invalid command. Use: GET <filename>\n",
    )

    sock.sendall(f"GET {remote_name}\n".encode())
    data = bytearray()
    while True:
        chunk = sock.recv(BUFFER_SIZE)
        if not chunk:
            return False, "Connection closed during transfer."
        data.extend(chunk)
        if data in errors:
            return False, data.decode().strip()
        if data.endswith(GET_TRAILER):
            break
    return True, bytes(data[:-len(GET_TRAILER)])


def cmd_GET(sock, remote_name, local_path=None):
    """Download a file. Returns (success, message)."""
    if local_path is None:
        os.makedirs("Downloads", exist_ok=True)
        local_path = os.path.join("Downloads", remote_name)

    success, content = fetch_file(sock, remote_name)
    if not success:
        return False, content

    os.makedirs(os.path.dirname(os.path.abspath(local_path)), exist_ok=True)
    with open(local_path, "wb") as f:
        f.write(content)
    return True, f"File downloaded: {local_path} ({len(content)} bytes)"


def upload_bytes(sock, remote_name, content):
    """
    Send content as remote_name. Returns (success, server_response).
    The terminator must start a line, so content not ending in a newline gets one.
    """
    if not remote_name or any(c.isspace() for c in remote_name):
        return False, "Remote filename cannot be empty or contain whitespace."
    if content and not content.endswith(b"\n"):
        content += b"\n"

    sock.sendall(f"PUT {remote_name}\n".encode())
    # The server answers right away only when it cannot open the target
    readable, _, _ = select.select([sock], [], [], PUT_ERROR_WAIT)
    if readable:
        return False, get_response(sock)

    sock.sendall(content)
    sock.sendall(b".\n")
    response = get_response(sock)
    return response.startswith("200"), response


def cmd_PUT(sock, local_path, remote_name=None):
    """Upload a local file. Returns (success, server_response)."""
    remote_name = remote_name or os.path.basename(local_path)
    with open(local_path, "rb") as f:
        content = f.read()
    return upload_bytes(sock, remote_name, content)


def cmd_DEL(sock, remote_name):
    response = send(sock, f"DEL {remote_name}")
    return response.startswith("200"), response


def cmd_QUIT(sock):
    try:
        return send(sock, "QUIT")
    finally:
        try:
            sock.close()
        except OSError:
            pass
