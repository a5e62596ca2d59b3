from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from uuid import uuid4

from pydantic import ValidationError as SchemaValidationError

from biosync.core.enums import SortOrder, TimelineCategory
from biosync.core.errors import NotFoundError, PersistenceError, ValidationError
from biosync.schemas.timeline import TimelineEvent, TimelineEventDraft
from biosync.services.storage import TimelineRepository

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Record"
ALL_CATEGORIES = "All"

TimelineListener = Callable[[list[TimelineEvent]], None]


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as e.g. ``Oct 9, 2026 - 03:04 PM``."""
    return f"{moment:%b} {moment.day}, {moment.year} - {moment:%I:%M %p}"


def sort_events(events: list[TimelineEvent], order: SortOrder) -> list[TimelineEvent]:
    # sorted() keeps equal dates in their held order for both directions.
    return sorted(events, key=lambda event: event.date, reverse=order == SortOrder.DESC)


def _coerce_category(category: TimelineCategory | str | None) -> TimelineCategory | None:
    if category is None or isinstance(category, TimelineCategory):
        return category
    if category.strip().lower() == ALL_CATEGORIES.lower():
        return None
    return TimelineCategory(category)


def _build_event(fields: dict) -> TimelineEvent:
    try:
        return TimelineEvent.model_validate(fields)
    except SchemaValidationError as exc:
        raise ValidationError(
            {".".join(str(part) for part in err["loc"]) or "event": err["msg"] for err in exc.errors()}
        ) from exc


class TimelineStore:
    """Owns the CareChain event collection and keeps it mirrored in the durable store.

    The held collection is re-sorted on every create/update using whichever
    sort order is active at that moment, so the persisted order follows the
    last sort order a write happened under.
    """

    def __init__(
        self,
        repository: TimelineRepository,
        *,
        clock: Callable[[], datetime] = datetime.now,
        sort_order: SortOrder = SortOrder.DESC,
    ):
        self._repository = repository
        self._clock = clock
        self._events: list[TimelineEvent] = []
        self._last_sync: str | None = None
        self._listeners: list[TimelineListener] = []
        # Held across each mutate-and-commit.
        self._lock = threading.RLock()
        self.sort_order = sort_order

    @property
    def events(self) -> list[TimelineEvent]:
        return list(self._events)

    @property
    def last_sync(self) -> str | None:
        return self._last_sync

    def load(self) -> None:
        try:
            events, marker = self._repository.read()
        except PersistenceError:
            logger.warning("Stored timeline could not be read; starting empty", exc_info=True)
            events, marker = [], None
        self._events = events
        self._last_sync = marker
        logger.info("Timeline loaded with %s events", len(events))

    def subscribe(self, listener: TimelineListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_sort_order(self, order: SortOrder | str) -> None:
        self.sort_order = SortOrder(order)

    def get(self, event_id: str) -> TimelineEvent:
        for event in self._events:
            if event.id == event_id:
                return event
        raise NotFoundError("Timeline event", event_id)

    def create(self, draft: TimelineEventDraft | None = None) -> TimelineEvent:
        fields = draft.model_dump(exclude_none=True) if draft else {}
        with self._lock:
            now = self._clock()
            timestamp = format_timestamp(now)
            event = _build_event(
                {
                    "id": str(uuid4()),
                    "date": fields.get("date") or now.date(),
                    "category": fields.get("category") or TimelineCategory.LABS,
                    "title": fields.get("title") or DEFAULT_TITLE,
                    "summary": fields.get("summary") or "",
                    "notes": fields.get("notes") or "",
                    "file_name": fields.get("file_name"),
                    "file_data": fields.get("file_data"),
                    "last_modified": timestamp,
                }
            )
            self._events = sort_events([event, *self._events], self.sort_order)
            self._last_sync = timestamp
            return self._commit(event)

    def update(self, event_id: str, draft: TimelineEventDraft) -> TimelineEvent:
        changes = draft.model_dump(exclude_unset=True)
        for required in ("date", "category", "title"):
            if changes.get(required) is None:
                changes.pop(required, None)
        for text_field in ("summary", "notes"):
            if text_field in changes and changes[text_field] is None:
                changes[text_field] = ""

        with self._lock:
            current = self.get(event_id)
            timestamp = format_timestamp(self._clock())
            updated = _build_event(
                {**current.model_dump(), **changes, "id": current.id, "last_modified": timestamp}
            )
            merged = [updated if event.id == event_id else event for event in self._events]
            self._events = sort_events(merged, self.sort_order)
            self._last_sync = timestamp
            return self._commit(updated)

    def delete(self, event_id: str) -> TimelineEvent:
        with self._lock:
            removed = self.get(event_id)
            self._events = [event for event in self._events if event.id != event_id]
            self._last_sync = format_timestamp(self._clock())
            return self._commit(removed)

    def reset(self) -> None:
        with self._lock:
            self._events = []
            self._last_sync = None
            self._publish()

    def view(
        self,
        category: TimelineCategory | str | None = ALL_CATEGORIES,
        search_term: str | None = "",
        sort_order: SortOrder | str | None = None,
    ) -> list[TimelineEvent]:
        wanted = _coerce_category(category)
        needle = (search_term or "").lower()
        order = SortOrder(sort_order) if sort_order is not None else self.sort_order

        def matches(event: TimelineEvent) -> bool:
            if wanted is not None and event.category != wanted:
                return False
            if not needle:
                return True
            return any(needle in (text or "").lower() for text in (event.title, event.summary, event.notes))

        selected = [event.model_copy() for event in self._events if matches(event)]
        return sort_events(selected, order)

    def _commit(self, result: TimelineEvent) -> TimelineEvent:
        failure: PersistenceError | None = None
        try:
            self._repository.write(self._events, self._last_sync)
        except PersistenceError as exc:
            logger.warning("Timeline write failed; keeping in-memory state: %s", exc)
            failure = exc
        self._publish()
        if failure is not None:
            raise PersistenceError(str(failure), result=result) from failure
        return result

    def _publish(self) -> None:
        snapshot = self.events
        for listener in list(self._listeners):
            listener(snapshot)
