import threading

MAX_CLIENTS = 100


class ConnectionRegistry:
    """Live sessions, bounded by a capacity. The lock is never held during I/O."""

    def __init__(self, capacity=MAX_CLIENTS):
        self.capacity = capacity
        self.sessions = set()
        self.lock = threading.Lock()

    def add(self, session):
        with self.lock:
            if len(self.sessions) >= self.capacity:
                return False
            self.sessions.add(session)
            return True

    def remove(self, session):
        with self.lock:
            self.sessions.discard(session)

    def snapshot(self):
        with self.lock:
            return list(self.sessions)

    def size(self):
        with self.lock:
            return len(self.sessions)
