from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response, status
from pydantic import ValidationError as SchemaValidationError

from biosync.api.deps import get_advisory_client, get_profile_service
from biosync.core.config import Settings, get_settings
from biosync.core.errors import PersistenceError, ValidationError
from biosync.core.rate_limit import limiter
from biosync.schemas.advisory import AdvisoryRead
from biosync.schemas.profile import ProfileRead, RescueUrlRead, UserHealthData
from biosync.services.advisory import AdvisoryClient
from biosync.services.profile import ProfileService, bmi_category, build_rescue_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["profile"])
settings = get_settings()


def _require_profile(profiles: ProfileService) -> UserHealthData:
    profile = profiles.load()
    if profile is None:
        raise HTTPException(status_code=404, detail="No profile registered")
    return profile


@router.get("", response_model=ProfileRead)
@limiter.limit(settings.rate_limit_read)
def get_profile(
    request: Request,
    response: Response,
    profiles: ProfileService = Depends(get_profile_service),
):
    profile = _require_profile(profiles)
    return ProfileRead(profile=profile, bmi_category=bmi_category(profile.bmi))


@router.put("", response_model=ProfileRead)
@limiter.limit(settings.rate_limit_mutating)
def save_profile(
    request: Request,
    response: Response,
    payload: dict = Body(...),
    profiles: ProfileService = Depends(get_profile_service),
):
    try:
        parsed_payload = UserHealthData.model_validate(payload)
    except SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors()) from exc

    persisted = True
    try:
        stored = profiles.save(parsed_payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc
    except PersistenceError as exc:
        stored, persisted = exc.result, False

    return ProfileRead(profile=stored, bmi_category=bmi_category(stored.bmi), persisted=persisted)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(settings.rate_limit_mutating)
def clear_profile(
    request: Request,
    response: Response,
    profiles: ProfileService = Depends(get_profile_service),
):
    try:
        profiles.clear()
    except PersistenceError as exc:
        logger.warning("Profile clear failed: %s", exc)
        raise HTTPException(status_code=503, detail="Profile could not be cleared") from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/rescue-url", response_model=RescueUrlRead)
@limiter.limit(settings.rate_limit_read)
def get_rescue_url(
    request: Request,
    response: Response,
    profiles: ProfileService = Depends(get_profile_service),
    cfg: Settings = Depends(get_settings),
):
    profile = _require_profile(profiles)
    return RescueUrlRead(url=build_rescue_url(profile, cfg.rescue_base_url))


@router.get("/insight", response_model=AdvisoryRead)
@limiter.limit(settings.rate_limit_read)
async def get_health_insight(
    request: Request,
    response: Response,
    profiles: ProfileService = Depends(get_profile_service),
    advisory: AdvisoryClient = Depends(get_advisory_client),
):
    profile = _require_profile(profiles)
    result = await advisory.health_insight(profile)
    return AdvisoryRead(text=result.text, lines=result.lines, source=result.source)
