from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from biosync.core.config import get_settings


settings = get_settings()


def client_key(request: Request) -> str:
    device_id = request.headers.get("x-device-id")
    if device_id:
        return f"device:{device_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=client_key, headers_enabled=True, enabled=settings.rate_limit_enabled)
