from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from pydantic import ValidationError as SchemaValidationError

from biosync.api.deps import get_profile_service
from biosync.core.config import Settings, get_settings
from biosync.core.enums import Theme
from biosync.core.errors import PersistenceError
from biosync.core.rate_limit import limiter
from biosync.schemas.profile import ThemeRead, ThemeUpdate
from biosync.services.profile import ProfileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/preferences", tags=["preferences"])
settings = get_settings()


@router.get("/theme", response_model=ThemeRead)
@limiter.limit(settings.rate_limit_read)
def get_theme(
    request: Request,
    response: Response,
    profiles: ProfileService = Depends(get_profile_service),
    cfg: Settings = Depends(get_settings),
):
    return ThemeRead(theme=profiles.get_theme(default=Theme(cfg.default_theme)))


@router.put("/theme", response_model=ThemeRead)
@limiter.limit(settings.rate_limit_mutating)
def set_theme(
    request: Request,
    response: Response,
    payload: dict = Body(...),
    profiles: ProfileService = Depends(get_profile_service),
):
    try:
        parsed_payload = ThemeUpdate.model_validate(payload)
    except SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors()) from exc

    try:
        theme = profiles.set_theme(parsed_payload.theme)
    except PersistenceError as exc:
        logger.warning("Theme preference not persisted: %s", exc)
        theme = parsed_payload.theme
    return ThemeRead(theme=theme)
