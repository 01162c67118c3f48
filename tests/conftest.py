"""Shared fixtures: a live server on an ephemeral port and a line-reading client."""

import socket
import threading
import time

import pytest

from fileserver.config import Config
from fileserver.registry import ConnectionRegistry
from fileserver.server_core import Server
from fileserver.users import load_users

GREETING = "Welcome to Sahar's file server.\n"
USERS = "alice:wonder\nbob:builder\n"


class LineClient:
    """Minimal protocol client that keeps its own receive buffer."""

    def __init__(self, address, timeout=5.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self.buffer = b""

    def send(self, data):
        if isinstance(data, str):
            data = data.encode()
        self.sock.sendall(data)

    def _fill(self):
        chunk = self.sock.recv(65536)
        if not chunk:
            raise EOFError("connection closed")
        self.buffer += chunk

    def read_line(self):
        while b"\n" not in self.buffer:
            self._fill()
        line, _, self.buffer = self.buffer.partition(b"\n")
        return line.decode() + "\n"

    def read_until(self, terminator):
        while terminator not in self.buffer:
            self._fill()
        index = self.buffer.index(terminator) + len(terminator)
        data, self.buffer = self.buffer[:index], self.buffer[index:]
        return data

    def command(self, line):
        self.send(line + "\n")
        return self.read_line()

    def is_closed(self):
        """True once the server has closed the connection."""
        if self.buffer:
            return False
        try:
            return self.sock.recv(1) == b""
        except ConnectionResetError:
            return True

    def close(self):
        try:
            self.sock.close()
        except OSError:
            pass


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def root_dir(tmp_path):
    path = tmp_path / "files"
    path.mkdir()
    return path


@pytest.fixture
def users_file(tmp_path):
    path = tmp_path / "users.txt"
    path.write_text(USERS, encoding="utf-8")
    return path


@pytest.fixture
def make_server(root_dir, users_file):
    """Factory starting servers in background threads; all are stopped at teardown."""
    started = []

    def start(capacity=None):
        config = Config(
            root_directory=str(root_dir),
            port=0,
            credentials_path=str(users_file),
            host="127.0.0.1",
        )
        registry = ConnectionRegistry(capacity) if capacity is not None else None
        server = Server(config, load_users(config.credentials_path), registry=registry)
        server.bind()
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        started.append((server, thread))
        return server

    yield start

    for server, thread in started:
        server.shutdown()
        thread.join(timeout=10)


@pytest.fixture
def server(make_server):
    return make_server()


@pytest.fixture
def connect(server):
    """Factory for clients whose greeting has already been consumed."""
    clients = []

    def open_client(user=None, password=None):
        client = LineClient(server.address)
        clients.append(client)
        assert client.read_line() == GREETING
        if user is not None:
            assert client.command(f"USER {user} {password}") == f"200 User {user} granted to access.\n"
        return client

    yield open_client

    for client in clients:
        client.close()


@pytest.fixture
def alice(connect):
    return connect("alice", "wonder")
