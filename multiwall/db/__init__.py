from multiwall.db.file_db import JsonFileStore, StorageError
from multiwall.db.snapshot import load_snapshot

__all__ = ["JsonFileStore", "StorageError", "load_snapshot"]
