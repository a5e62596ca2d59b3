from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, Request, Response, UploadFile, status
from pydantic import ValidationError as SchemaValidationError

from biosync.api.deps import get_advisory_client, get_timeline_store
from biosync.core.config import Settings, get_settings
from biosync.core.enums import SortOrder
from biosync.core.errors import AttachmentTooLargeError, NotFoundError, PersistenceError, ValidationError
from biosync.core.rate_limit import limiter
from biosync.schemas.advisory import AdvisoryRead
from biosync.schemas.timeline import (
    AttachmentRead,
    SortOrderUpdate,
    TimelineEventDraft,
    TimelineMutationResponse,
    TimelineRead,
)
from biosync.services.advisory import AdvisoryClient
from biosync.services.attachment import encode_attachment
from biosync.services.timeline import TimelineStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/timeline", tags=["timeline"])
settings = get_settings()


def _parse_draft(payload: dict) -> TimelineEventDraft:
    try:
        return TimelineEventDraft.model_validate(payload)
    except SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors()) from exc


@router.get("", response_model=TimelineRead)
@limiter.limit(settings.rate_limit_read)
def get_timeline(
    request: Request,
    response: Response,
    category: str = Query(default="All", max_length=32),
    search: str = Query(default="", max_length=200),
    sort: SortOrder | None = Query(default=None),
    store: TimelineStore = Depends(get_timeline_store),
):
    try:
        events = store.view(category, search, sort)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Unknown category: {category}") from exc

    return TimelineRead(
        events=events,
        total=len(events),
        category=category,
        search=search,
        sort=sort or store.sort_order,
        last_sync=store.last_sync,
    )


@router.post("", response_model=TimelineMutationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_mutating)
def create_timeline_event(
    request: Request,
    response: Response,
    payload: dict = Body(...),
    store: TimelineStore = Depends(get_timeline_store),
):
    draft = _parse_draft(payload)
    persisted = True
    try:
        event = store.create(draft)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc
    except PersistenceError as exc:
        logger.warning("Timeline event kept in memory only: %s", exc)
        event, persisted = exc.result, False

    return TimelineMutationResponse(event=event, last_sync=store.last_sync, persisted=persisted)


@router.get("/summary", response_model=AdvisoryRead)
@limiter.limit(settings.rate_limit_read)
async def get_timeline_summary(
    request: Request,
    response: Response,
    store: TimelineStore = Depends(get_timeline_store),
    advisory: AdvisoryClient = Depends(get_advisory_client),
):
    result = await advisory.current_summary(store.events)
    return AdvisoryRead(text=result.text, lines=result.lines, source=result.source)


@router.put("/sort-order", response_model=SortOrderUpdate)
@limiter.limit(settings.rate_limit_mutating)
def set_sort_order(
    request: Request,
    response: Response,
    payload: dict = Body(...),
    store: TimelineStore = Depends(get_timeline_store),
):
    try:
        parsed_payload = SortOrderUpdate.model_validate(payload)
    except SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors()) from exc

    store.set_sort_order(parsed_payload.sort)
    return SortOrderUpdate(sort=store.sort_order)


@router.post("/attachments", response_model=AttachmentRead)
@limiter.limit(settings.rate_limit_mutating)
async def encode_timeline_attachment(
    request: Request,
    response: Response,
    file: UploadFile = File(...),
    cfg: Settings = Depends(get_settings),
):
    try:
        encoded = await encode_attachment(file, max_bytes=cfg.max_attachment_bytes)
    except AttachmentTooLargeError as exc:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Please limit attachments to {cfg.max_attachment_bytes // (1024 * 1024)}MB.",
        ) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc
    finally:
        await file.close()

    return AttachmentRead(
        file_name=encoded.file_name,
        file_data=encoded.file_data,
        content_type=encoded.content_type,
        kind=encoded.kind,
        byte_size=encoded.byte_size,
    )


@router.put("/{event_id}", response_model=TimelineMutationResponse)
@limiter.limit(settings.rate_limit_mutating)
def update_timeline_event(
    request: Request,
    response: Response,
    event_id: str,
    payload: dict = Body(...),
    store: TimelineStore = Depends(get_timeline_store),
):
    draft = _parse_draft(payload)
    persisted = True
    try:
        event = store.update(event_id, draft)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Timeline event not found") from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors) from exc
    except PersistenceError as exc:
        logger.warning("Timeline update kept in memory only: %s", exc)
        event, persisted = exc.result, False

    return TimelineMutationResponse(event=event, last_sync=store.last_sync, persisted=persisted)


@router.delete("/{event_id}", response_model=TimelineMutationResponse)
@limiter.limit(settings.rate_limit_mutating)
def delete_timeline_event(
    request: Request,
    response: Response,
    event_id: str,
    confirm: bool = Query(default=False),
    store: TimelineStore = Depends(get_timeline_store),
):
    if not confirm:
        raise HTTPException(status_code=400, detail="Deletion must be confirmed with confirm=true")

    persisted = True
    try:
        removed = store.delete(event_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Timeline event not found") from exc
    except PersistenceError as exc:
        logger.warning("Timeline deletion kept in memory only: %s", exc)
        removed, persisted = exc.result, False

    return TimelineMutationResponse(event=removed, last_sync=store.last_sync, persisted=persisted)
