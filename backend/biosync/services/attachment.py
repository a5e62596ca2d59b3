from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass
from typing import Protocol

from biosync.core.errors import AttachmentTooLargeError, ValidationError

MAX_ATTACHMENT_BYTES = 2 * 1024 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class AttachmentSource(Protocol):
    """The subset of ``fastapi.UploadFile`` the encoder relies on."""

    filename: str | None
    content_type: str | None
    size: int | None

    async def read(self, size: int = -1) -> bytes: ...


@dataclass
class EncodedAttachment:
    file_name: str
    file_data: str
    content_type: str
    byte_size: int

    @property
    def kind(self) -> str:
        if self.content_type.startswith("image/"):
            return "image"
        if self.content_type == "application/pdf":
            return "pdf"
        return "file"


def resolve_content_type(file_name: str, declared: str | None) -> str:
    if declared and declared != DEFAULT_CONTENT_TYPE:
        return declared.split(";", 1)[0].strip().lower()
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or DEFAULT_CONTENT_TYPE


def to_data_url(payload: bytes, content_type: str) -> str:
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


async def encode_attachment(
    upload: AttachmentSource,
    *,
    max_bytes: int = MAX_ATTACHMENT_BYTES,
) -> EncodedAttachment:
    file_name = (upload.filename or "").strip()
    if not file_name:
        raise ValidationError({"file": "Attachment must have a file name"})

    declared_size = getattr(upload, "size", None)
    if declared_size is not None and declared_size > max_bytes:
        raise AttachmentTooLargeError(file_name, declared_size, max_bytes)

    # Read one byte past the ceiling so an undeclared oversize payload is caught
    # without buffering all of it.
    payload = await upload.read(max_bytes + 1)
    if len(payload) > max_bytes:
        raise AttachmentTooLargeError(file_name, declared_size or len(payload), max_bytes)

    content_type = resolve_content_type(file_name, upload.content_type)
    return EncodedAttachment(
        file_name=file_name,
        file_data=to_data_url(payload, content_type),
        content_type=content_type,
        byte_size=len(payload),
    )
