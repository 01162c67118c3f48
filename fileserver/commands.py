from fileserver.users import verify_password

MAX_FAILED_ATTEMPTS = 3     # Failed USER attempts before the connection is closed
BUFFER_SIZE = 65536         # Read size for sockets and files

GREETING = "Welcome to Sahar's file server.\n"
GOODBYE = "Goodbye!\n"
SHUTDOWN_NOTICE = "Server is shutting down. Goodbye!\n"
TERMINATOR = ".\n"
GET_TRAILER = b"\n.\n"

UNAUTHORIZED = "401 Unauthorized access. Please login first using USER <username> <password>.\n"
INVALID_COMMAND = "400 Invalid command.\n"
INVALID_LOGIN_FORMAT = "400 Invalid format. Use: USER <username> <password>\n"
USER_NOT_FOUND = "400 User not found. Please try with another user.\n"
TOO_MANY_ATTEMPTS = "ERROR: Too many failed login attempts. Closing connection.\n"
CANNOT_SAVE = "400 File can not save on server side.\n"
INTERNAL_ERROR = "500 Internal server error.\n"


def printable(text):
    """Escape undecodable or non-ASCII characters of client input for operator output."""
    return text.encode("ascii", errors="backslashreplace").decode("ascii")


def filename_argument(cmd, args, session):
    """Return the single filename argument, or reply with the usage line and return None."""
    if len(args) != 1:
        session.send(f"400 Invalid command. Use: {cmd} <filename>\n")
        print(f"[SESSION] Invalid {cmd} command from {session.client_addr}")
        return None
    return args[0]

# --- AUTHENTICATION ---

def USER(args, session):
    """
    Returns True when the connection must be closed (too many failed attempts).
    """
    if len(args) != 2:
        session.send(INVALID_LOGIN_FORMAT)
        print(f"[SESSION] Invalid login format from {session.client_addr}")
        return False

    username, password = args
    if verify_password(session.server.users, username, password):
        session.login(username)
        session.send(f"200 User {username} granted to access.\n")
        print(f"[SESSION] User {printable(username)} authenticated from {session.client_addr}")
        return False

    session.failed_attempts += 1
    session.send(USER_NOT_FOUND)
    print(f"[SESSION] User {printable(username)} not found ({session.failed_attempts}/{MAX_FAILED_ATTEMPTS})")
    if session.failed_attempts >= MAX_FAILED_ATTEMPTS:
        session.send(TOO_MANY_ATTEMPTS)
        print(f"[SESSION] Too many failed login attempts from {session.client_addr}. Closing connection.")
        return True
    return False

# --- BASIC COMMANDS ---

def PING(session):
    session.send("PONG\n")


def LIST(session):
    try:
        entries = session.server.store.list()
    except OSError as e:
        print(f"[ERROR][SESSION] Failed to list directory: {printable(str(e))}")
        session.send(INTERNAL_ERROR)
        return
    # Built in full before sending so the listing is a single snapshot
    lines = [f"{name} - {size}\n" for name, size in entries]
    lines.append(TERMINATOR)
    session.send("".join(lines))
    print(f"[SESSION] Listed {len(entries)} files for {session.username}")

# --- FILE TRANSFER ---

def GET(args, session):
    filename = filename_argument("GET", args, session)
    if filename is None:
        return
    store = session.server.store

    if not store.exists(filename):
        session.send(f"404 File {filename} not found.\n")
        print(f"[SESSION] File not found: {printable(filename)}")
        return

    try:
        f = store.open_read(filename)
    except FileNotFoundError:
        session.send(f"404 File {filename} not found.\n")
        return
    except OSError as e:
        print(f"[ERROR][SESSION] Failed to open file {printable(filename)}: {printable(str(e))}")
        session.send(INTERNAL_ERROR)
        return

    sent = 0
    with f:
        while True:
            try:
                chunk = f.read(BUFFER_SIZE)
            except OSError as e:
                print(f"[ERROR][SESSION] Failed reading {printable(filename)} after {sent} bytes: {printable(str(e))}")
                break
            if not chunk:
                break
            session.send(chunk)
            sent += len(chunk)
    session.send(GET_TRAILER)
    print(f"[SESSION] File {printable(filename)} sent ({sent} bytes).")


def PUT(args, session):
    filename = filename_argument("PUT", args, session)
    if filename is None:
        return
    try:
        f = session.server.store.open_write(filename)
    except OSError as e:
        print(f"[ERROR][SESSION] Failed to open file for writing {printable(filename)}: {printable(str(e))}")
        session.send(CANNOT_SAVE)
        return
    session.begin_upload(filename, f)
    print(f"[SESSION] Receiving file {printable(filename)} from {session.username}")


def finish_PUT(session):
    """Called once the terminator line of an upload has been consumed."""
    filename, total_bytes, failed = session.end_upload()
    if failed:
        session.send(CANNOT_SAVE)
        print(f"[ERROR][SESSION] File {printable(filename)} could not be saved.")
        return
    session.send(f"200 {total_bytes} Byte {filename} file retrieved by server and was saved.\n")
    print(f"[SESSION] File {printable(filename)} saved. {total_bytes} bytes transferred.")


def DEL(args, session):
    filename = filename_argument("DEL", args, session)
    if filename is None:
        return
    store = session.server.store

    if not store.exists(filename):
        session.send(f"404 File {filename} not on the server.\n")
        print(f"[SESSION] File not found: {printable(filename)}")
        return

    try:
        store.delete(filename)
    except FileNotFoundError:
        session.send(f"404 File {filename} not on the server.\n")
        return
    except OSError as e:
        print(f"[ERROR][SESSION] Failed to delete file {printable(filename)}: {printable(str(e))}")
        session.send(INTERNAL_ERROR)
        return

    session.send(f"200 File {filename} deleted.\n")
    print(f"[SESSION] File {printable(filename)} deleted.")
