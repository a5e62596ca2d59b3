from biosync.db.models import KeyValueEntry

__all__ = [
    "KeyValueEntry",
]
