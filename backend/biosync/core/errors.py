from __future__ import annotations

from typing import Any


class BioSyncError(Exception):
    """Base class for domain errors raised by the services layer."""


class ValidationError(BioSyncError):
    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in self.errors.items()))


class NotFoundError(BioSyncError):
    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class AttachmentTooLargeError(BioSyncError):
    def __init__(self, file_name: str | None, byte_size: int, max_bytes: int):
        self.file_name = file_name
        self.byte_size = byte_size
        self.max_bytes = max_bytes
        super().__init__(
            f"Attachment {file_name or '<unnamed>'} is {byte_size} bytes; "
            f"limit is {max_bytes} bytes"
        )


class PersistenceError(BioSyncError):
    """Durable store read/write failure.

    ``result`` carries the in-memory outcome of a mutation whose write failed,
    so callers can keep serving it for the rest of the session.
    """

    def __init__(self, message: str, *, result: Any = None):
        self.result = result
        super().__init__(message)


class AdvisoryServiceError(BioSyncError):
    def __init__(self, message: str, *, rate_limited: bool = False):
        self.rate_limited = rate_limited
        super().__init__(message)
