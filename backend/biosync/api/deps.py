from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from biosync.core.config import Settings
from biosync.services.advisory import AdvisoryClient
from biosync.services.profile import ProfileService
from biosync.services.storage import KeyValueStore, TimelineRepository
from biosync.services.timeline import TimelineStore


@dataclass
class AppServices:
    timeline: TimelineStore
    advisory: AdvisoryClient
    profiles: ProfileService


def build_services(
    settings: Settings,
    session_factory: Callable[[], Session],
    *,
    advisory: AdvisoryClient | None = None,
) -> AppServices:
    kv = KeyValueStore(session_factory)
    timeline = TimelineStore(TimelineRepository(kv))
    timeline.load()

    advisory = advisory or AdvisoryClient.from_settings(settings)
    advisory.watch(timeline)

    return AppServices(
        timeline=timeline,
        advisory=advisory,
        profiles=ProfileService(kv, timeline),
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_timeline_store(services: AppServices = Depends(get_services)) -> TimelineStore:
    return services.timeline


def get_advisory_client(services: AppServices = Depends(get_services)) -> AdvisoryClient:
    return services.advisory


def get_profile_service(services: AppServices = Depends(get_services)) -> ProfileService:
    return services.profiles
