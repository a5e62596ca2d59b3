from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from biosync.core.errors import PersistenceError
from biosync.db.models import KeyValueEntry
from biosync.schemas.timeline import TimelineEvent

logger = logging.getLogger(__name__)

PROFILE_KEY = "biosync_health_data"
TIMELINE_KEY = "biosync_timeline"
TIMELINE_SYNC_KEY = "biosync_timeline_last_updated"
THEME_KEY = "biosync_theme"

_events_adapter = TypeAdapter(list[TimelineEvent])


class KeyValueStore:
    """String slots in the durable store. Every call is its own transaction."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get(self, key: str) -> str | None:
        try:
            with self._session_factory() as db:
                return db.scalar(select(KeyValueEntry.value).where(KeyValueEntry.key == key))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read {key}") from exc

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, str]) -> None:
        try:
            with self._session_factory() as db:
                for key, value in values.items():
                    entry = db.get(KeyValueEntry, key)
                    if entry is None:
                        db.add(KeyValueEntry(key=key, value=value))
                    else:
                        entry.value = value
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to write {', '.join(values)}") from exc

    def remove(self, *keys: str) -> None:
        if not keys:
            return
        try:
            with self._session_factory() as db:
                db.execute(delete(KeyValueEntry).where(KeyValueEntry.key.in_(keys)))
                db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to remove {', '.join(keys)}") from exc


class TimelineRepository:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def read(self) -> tuple[list[TimelineEvent], str | None]:
        marker = self.kv.get(TIMELINE_SYNC_KEY)
        raw = self.kv.get(TIMELINE_KEY)
        if raw is None:
            return [], marker
        try:
            events = _events_adapter.validate_python(json.loads(raw))
        except (ValueError, SchemaValidationError) as exc:
            raise PersistenceError("Stored timeline is corrupt") from exc
        return events, marker

    def write(self, events: list[TimelineEvent], marker: str | None) -> None:
        payload = json.dumps([event.model_dump(mode="json") for event in events])
        values = {TIMELINE_KEY: payload}
        if marker is not None:
            values[TIMELINE_SYNC_KEY] = marker
        self.kv.set_many(values)
