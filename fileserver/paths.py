import os


def is_valid_filename(name):
    """
    Check that a name is a single, plain path component inside the root.
    Returns (is_valid, error_message).
    """
    if not name or not name.strip():
        return False, "Filename cannot be empty"

    if name in (".", ".."):
        return False, "Filename cannot be a relative directory reference"

    for char in ("/", "\\", "\x00"):
        if char in name:
            return False, f"Character {char!r} is not allowed"

    if os.sep in name or (os.altsep and os.altsep in name):
        return False, "Path separators are not allowed"

    return True, "Valid"


class FileStore:
    """Flat file storage over a single root directory."""

    def __init__(self, root):
        self.root = os.path.abspath(root)

    def path_for(self, name):
        """
        Return the absolute path for name inside the root.
        Raises PermissionError if the name is not a single component of the root.
        """
        is_valid, error_msg = is_valid_filename(name)
        if not is_valid:
            raise PermissionError(f"{error_msg}: {name!r}")
        candidate = os.path.abspath(os.path.join(self.root, name))
        if os.path.dirname(candidate) != self.root:
            raise PermissionError(f"Access outside of server root: {name!r}")
        return candidate

    def list(self):
        """Snapshot of (name, size) for every regular file, sorted by name."""
        entries = []
        with os.scandir(self.root) as it:
            for entry in it:
                try:
                    if not entry.is_file():
                        continue
                    entries.append((entry.name, entry.stat().st_size))
                except FileNotFoundError:
                    # Removed by another client while scanning
                    continue
        entries.sort()
        return entries

    def exists(self, name):
        try:
            return os.path.isfile(self.path_for(name))
        except PermissionError:
            return False

    def open_read(self, name):
        return open(self.path_for(name), "rb")

    def open_write(self, name):
        return open(self.path_for(name), "wb")

    def read(self, name):
        with self.open_read(name) as f:
            return f.read()

    def write(self, name, data):
        with self.open_write(name) as f:
            f.write(data)
        return len(data)

    def delete(self, name):
        os.remove(self.path_for(name))
