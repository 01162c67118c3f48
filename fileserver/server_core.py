import socket
import signal
import threading
import fileserver.commands as command
from fileserver.commands import BUFFER_SIZE
from fileserver.config import StartupError
from fileserver.paths import FileStore
from fileserver.registry import ConnectionRegistry

# Session states
UNAUTH = "UNAUTH"
AUTH = "AUTH"
PUT_PAYLOAD = "PUT_PAYLOAD"
TERMINATING = "TERMINATING"

ACCEPT_TIMEOUT = 1.0        # Seconds between checks of the shutdown flag
LISTEN_BACKLOG = 5
MAX_LINE_LENGTH = 8192      # Longest command line accepted outside an upload
SEND_LOCK_TIMEOUT = 1.0

TERMINATOR_LINES = (b".\n",)
PARTIAL_TERMINATORS = (b".",)


class Session: # One connected client
    def __init__(self, client_socket, client_addr, server):
        self.client_socket = client_socket
        self.client_addr = client_addr
        self.server = server
        self.state = UNAUTH
        self.authenticated = False
        self.username = None
        self.failed_attempts = 0
        self.recv_buffer = bytearray()
        self.send_lock = threading.Lock()
        # Upload in progress
        self.upload_name = None
        self.upload_file = None
        self.upload_bytes = 0
        self.upload_failed = False
        self.at_line_start = True

    # --- STATE TRANSITIONS ---

    def login(self, username):
        self.username = username
        self.authenticated = True
        self.state = AUTH

    def begin_upload(self, filename, f):
        self.upload_name = filename
        self.upload_file = f
        self.upload_bytes = 0
        self.upload_failed = False
        self.at_line_start = True
        self.state = PUT_PAYLOAD

    def end_upload(self):
        """Close the upload file and return (filename, bytes_written, failed)."""
        result = (self.upload_name, self.upload_bytes, self.upload_failed)
        try:
            self.upload_file.close()
        except OSError as e:
            print(f"[ERROR][SESSION] Failed to close {command.printable(self.upload_name)}: {command.printable(str(e))}")
            result = (self.upload_name, self.upload_bytes, True)
        self.upload_name = None
        self.upload_file = None
        self.state = AUTH
        return result

    # --- SOCKET I/O ---

    def send(self, data):
        if isinstance(data, str):
            data = data.encode("utf-8", errors="surrogateescape")
        with self.send_lock:
            self.client_socket.sendall(data)

    def read_more(self):
        """Append the next chunk from the socket to the buffer. False on EOF."""
        data = self.client_socket.recv(BUFFER_SIZE)
        if not data:
            return False
        self.recv_buffer.extend(data)
        return True

    def notify_shutdown(self):
        if self.send_lock.acquire(timeout=SEND_LOCK_TIMEOUT):
            try:
                self.client_socket.sendall(command.SHUTDOWN_NOTICE.encode())
            except OSError:
                pass
            finally:
                self.send_lock.release()
        self.close()

    def close(self):
        try:
            self.client_socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.client_socket.close()
        except OSError:
            pass

    # --- FRAMING ---

    def next_line(self):
        """Pop one complete line (without its terminator) from the buffer, or None."""
        index = self.recv_buffer.find(b"\n")
        if index < 0:
            return None
        line = bytes(self.recv_buffer[:index])
        del self.recv_buffer[:index + 1]
        if line.endswith(b"\r"):
            line = line[:-1]
        return line

    def feed_payload(self):
        """
        Move buffered upload bytes into the open file.
        Returns True once the terminator line has been consumed.
        """
        while self.recv_buffer:
            index = self.recv_buffer.find(b"\n")
            if index < 0:
                if self.at_line_start and self.recv_buffer in PARTIAL_TERMINATORS:
                    # Might still become the terminator line
                    return False
                self.write_payload(bytes(self.recv_buffer))
                self.recv_buffer.clear()
                self.at_line_start = False
                return False
            line = bytes(self.recv_buffer[:index + 1])
            del self.recv_buffer[:index + 1]
            if self.at_line_start and line in TERMINATOR_LINES:
                return True
            self.write_payload(line)
            self.at_line_start = True
        return False

    def write_payload(self, data):
        if self.upload_failed:
            return
        try:
            self.upload_file.write(data)
            self.upload_bytes += len(data)
        except OSError as e:
            print(f"[ERROR][SESSION] Failed writing {command.printable(self.upload_name)}: {command.printable(str(e))}")
            self.upload_failed = True

# --- PARSING AND CONTROL ---

def handle_command_line(line, session):
    """
    Returns True if the connection must end, False otherwise.
    Updates the session according to the command.
    """
    text = line.decode("utf-8", errors="surrogateescape")
    parts = text.split()
    cmd = parts[0].upper() if parts else ""
    args = parts[1:]

    if cmd == "USER":
        shown = command.printable(args[0]) if args else ""
        print(f"[SESSION] Command received from {session.client_addr}: USER {shown}")
    else:
        print(f"[SESSION] Command received from {session.client_addr}: {command.printable(text.strip())}")

    if cmd == "QUIT":
        session.send(command.GOODBYE)
        return True

    if not session.authenticated:
        if cmd == "USER":
            return command.USER(args, session)
        session.send(command.UNAUTHORIZED)
        return False

    if cmd == "PING":
        command.PING(session)
    elif cmd == "LIST":
        command.LIST(session)
    elif cmd == "GET":
        command.GET(args, session)
    elif cmd == "PUT":
        command.PUT(args, session)
    elif cmd == "DEL":
        command.DEL(args, session)
    else:
        session.send(command.INVALID_COMMAND)
    return False


def run_session(session):
    """
    Drive one client until it quits or its socket closes.
    Shutdown reaches the loop through the socket, after the notice is sent.
    """
    server = session.server
    while session.state != TERMINATING:
        if session.state == PUT_PAYLOAD:
            if session.feed_payload():
                command.finish_PUT(session)
                continue
        else:
            line = session.next_line()
            if line is not None:
                if handle_command_line(line, session):
                    session.state = TERMINATING
                continue
            if len(session.recv_buffer) > MAX_LINE_LENGTH:
                print(f"[ERROR][SESSION] Command line too long from {session.client_addr}")
                break
        if not session.read_more():
            if server.running:
                print(f"[SESSION] Client {session.client_addr} disconnected.")
            break


def handle_client(session):
    server = session.server
    address = session.client_addr
    print(f"[SESSION] Connection established from {address}")
    try:
        session.send(command.GREETING)
        run_session(session)
    except OSError as e:
        if server.running:
            print(f"[ERROR][SESSION] Connection error with {address}: {e}")
    except Exception as e:
        # A faulty client must never take the server down
        print(f"[ERROR][SESSION] Error in client handler {address}: {e}")
    finally:
        if session.state == PUT_PAYLOAD:
            filename, total_bytes, _ = session.end_upload()
            print(f"[SESSION] Upload of {command.printable(filename)} interrupted after {total_bytes} bytes.")
        session.state = TERMINATING
        server.registry.remove(session)
        session.close()
        print(f"[SESSION] Connection closed with {address}")


class Server:
    def __init__(self, config, users, store=None, registry=None):
        self.config = config
        self.users = users
        self.store = store if store is not None else FileStore(config.root_directory)
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.server_socket = None
        self.stop_event = threading.Event()
        self.threads = []

    @property
    def running(self):
        return not self.stop_event.is_set()

    @property
    def address(self):
        return self.server_socket.getsockname()

    def bind(self):
        server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            server_socket.bind((self.config.host, self.config.port))
            server_socket.listen(LISTEN_BACKLOG)
        except OSError as e:
            server_socket.close()
            raise StartupError(f"Failed to bind socket to port {self.config.port}. ({e})") from e
        server_socket.settimeout(ACCEPT_TIMEOUT)
        self.server_socket = server_socket
        print(f"[CORE] Socket successfully bound to port {self.address[1]}.")
        return self.address

    def serve_forever(self):
        if self.server_socket is None:
            self.bind()
        host, port = self.address[:2]
        print(f"[CORE] Server is listening on {host}:{port}.")
        try:
            while self.running:
                try:
                    client_socket, address = self.server_socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self.running:
                        break
                    print(f"[ERROR][CORE] Failed to accept incoming connection: {e}")
                    continue
                self.accept_client(client_socket, address)
        finally:
            self.drain()

    def accept_client(self, client_socket, address):
        session = Session(client_socket, address, self)
        try:
            client_socket.setblocking(True)
            client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as e:
            print(f"[ERROR][CORE] Connection from {address} failed during setup: {e}")
            session.close()
            return
        if not self.registry.add(session):
            print(f"[ERROR][CORE] Maximum number of client connections reached. Rejecting {address}.")
            session.close()
            return
        print(f"[CORE] Accepted incoming connection from {address} ({self.registry.size()} active).")
        t = threading.Thread(target=handle_client, args=(session,), daemon=True)
        try:
            t.start()
        except RuntimeError as e:
            print(f"[ERROR][CORE] Could not start session for {address}: {e}")
            self.registry.remove(session)
            session.close()
            return
        self.threads = [thread for thread in self.threads if thread.is_alive()]
        self.threads.append(t)

    def shutdown(self):
        """Request a stop. Only sets a flag, so it is safe from a signal handler."""
        self.stop_event.set()

    def drain(self):
        self.stop_event.set()
        print("[CORE] Shutting down server...")
        for session in self.registry.snapshot():
            session.notify_shutdown()
        if self.server_socket is not None:
            try:
                self.server_socket.close()
            except OSError:
                pass
        for t in self.threads:
            t.join()
        self.threads = []
        print("[CORE] Server stopped.")

    def install_signal_handlers(self):
        def handle_signal(signum, frame):
            self.shutdown()

        signal.signal(signal.SIGINT, handle_signal)
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, handle_signal)
