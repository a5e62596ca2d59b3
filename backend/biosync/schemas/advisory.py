from __future__ import annotations

from pydantic import BaseModel

from biosync.core.enums import AdvisorySource


class AdvisoryRead(BaseModel):
    text: str
    lines: list[str]
    source: AdvisorySource
