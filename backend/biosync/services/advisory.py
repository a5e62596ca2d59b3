from __future__ import annotations

import asyncio
import logging
import re
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Protocol

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from biosync.core.config import Settings
from biosync.core.enums import AdvisorySource, TimelineCategory
from biosync.core.errors import AdvisoryServiceError
from biosync.schemas.profile import UserHealthData
from biosync.schemas.timeline import TimelineEvent

logger = logging.getLogger(__name__)

BULLET = "•"
EXPECTED_LINES = 3
EMPTY_TIMELINE_SUMMARY = "• No records logged\n• Timeline empty\n• Log a new event"

_BULLET_PREFIX = re.compile(r"^\s*(?:[•\-\*]|\d+[.)])\s*")
_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")

Sleep = Callable[[float], Awaitable[None]]


def strip_bullet(line: str) -> str:
    return _BULLET_PREFIX.sub("", line).strip()


def display_lines(text: str) -> list[str]:
    return [strip_bullet(line) for line in text.splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# Local heuristics


def _is_meaningful(value: str | None) -> bool:
    return bool(value) and value.strip().lower() != "none"


def local_insight_lines(profile: UserHealthData) -> list[str]:
    lines: list[str] = []
    if _is_meaningful(profile.allergies):
        lines.append(f"{BULLET} ALERT: {profile.allergies.upper()} ALLERGY")
    else:
        lines.append(f"{BULLET} NO KNOWN DRUG ALLERGIES")

    if _is_meaningful(profile.chronic_diseases):
        first_condition = profile.chronic_diseases.split(",")[0].strip()
        lines.append(f"{BULLET} MONITOR: {first_condition.upper()}")
    else:
        lines.append(f"{BULLET} STABLE CHRONIC HISTORY")

    lines.append(f"{BULLET} VERIFY IDENTITY VIA QR SCAN")
    return lines[:EXPECTED_LINES]


def local_insight(profile: UserHealthData) -> str:
    return "\n".join(local_insight_lines(profile))


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def local_summary(events: Sequence[TimelineEvent]) -> str:
    counts = {category: 0 for category in TimelineCategory}
    for event in events:
        counts[event.category] += 1

    labs = counts[TimelineCategory.LABS]
    surgeries = counts[TimelineCategory.SURGERIES]
    prescriptions = counts[TimelineCategory.PRESCRIPTIONS]
    lines = [
        f"{BULLET} {labs} Lab {_plural(labs, 'Result')} logged" if labs else f"{BULLET} No recent lab records",
        f"{BULLET} {surgeries} Surgery {_plural(surgeries, 'record')} found"
        if surgeries
        else f"{BULLET} No recent surgeries",
        f"{BULLET} {prescriptions} Active {_plural(prescriptions, 'prescription')}"
        if prescriptions
        else f"{BULLET} No active prescriptions",
    ]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Prompts and cache keys


def build_insight_prompt(profile: UserHealthData) -> str:
    return (
        "Act as an Emergency Medicine Specialist. Based on the profile below, provide 3 critical "
        "ACTION-ORIENTED bullets for paramedics or responders.\n"
        'Use direct, punchy commands (e.g., "Check glucose", "Avoid Ibuprofen").\n\n'
        f"Profile: {profile.full_name}, Blood: {profile.blood_group or 'Unknown'}, "
        f"Allergies: {profile.allergies}, Chronic: {profile.chronic_diseases}\n\n"
        "Output exactly 3 short lines."
    )


def build_summary_prompt(events: Sequence[TimelineEvent]) -> str:
    records = ", ".join(f"{event.category.value}: {event.title}" for event in events)
    return (
        "Review these medical records and provide a 'Current Health Snapshot'.\n"
        "STRICT REQUIREMENT: Provide EXACTLY 3 punchy, one-line bullet points.\n\n"
        f"Records: {records}"
    )


def insight_cache_key(profile: UserHealthData) -> str:
    return (
        f"insight_{profile.full_name}_{profile.blood_group}_"
        f"{profile.allergies}_{profile.chronic_diseases}"
    )


def summary_cache_key(events: Sequence[TimelineEvent]) -> str:
    # max() returns the first of equally dated events in held order.
    most_recent = max(events, key=lambda event: event.date)
    return f"summary_{len(events)}_{most_recent.id}"


def normalize_response(raw: str | None) -> str:
    text = _CODE_FENCE.sub("", (raw or "").strip())
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if len(lines) < EXPECTED_LINES:
        raise AdvisoryServiceError(f"Expected {EXPECTED_LINES} lines, got {len(lines)}")
    return "\n".join(lines[:EXPECTED_LINES])


# ---------------------------------------------------------------------------
# Retry policy, cache, generator


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 1
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        for _ in range(self.max_retries):
            yield delay
            delay *= self.backoff_multiplier

    async def run(
        self,
        fn: Callable[[], Awaitable[str]],
        *,
        is_retryable: Callable[[BaseException], bool],
        sleep: Sleep = asyncio.sleep,
    ) -> str:
        delays = self.delays()
        while True:
            try:
                return await fn()
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                delay = next(delays, None)
                if delay is None:
                    raise
                logger.info("Advisory call rate limited; retrying in %.1fs", delay)
                await sleep(delay)


class AdvisoryCache:
    """Session memo of advisory texts. ``max_entries=None`` never evicts."""

    def __init__(self, max_entries: int | None = None):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, str] = OrderedDict()

    def get(self, key: str) -> str | None:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: str) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def is_rate_limited(exc: BaseException) -> bool:
    if isinstance(exc, AdvisoryServiceError):
        return exc.rate_limited
    if isinstance(exc, genai_errors.APIError):
        return exc.code == 429 or exc.status == "RESOURCE_EXHAUSTED"
    for attr in ("status", "status_code", "code"):
        if getattr(exc, attr, None) == 429:
            return True
    text = f"{type(exc).__name__} {exc}".upper()
    return "429" in text or "RESOURCE_EXHAUSTED" in text


class TextGenerator(Protocol):
    async def generate(self, prompt: str, *, temperature: float) -> str: ...


class GeminiTextGenerator:
    def __init__(self, *, api_key: str | None, model_name: str):
        self._api_key = api_key
        self._model_name = model_name
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if not self._api_key:
            raise AdvisoryServiceError("Gemini API key not configured")
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def generate(self, prompt: str, *, temperature: float) -> str:
        client = self._get_client()
        response = await client.aio.models.generate_content(
            model=self._model_name,
            contents=prompt,
            config=genai_types.GenerateContentConfig(temperature=temperature, candidate_count=1),
        )
        # .text is None when the candidate was blocked or carries no parts
        return (response.text or "").strip()


# ---------------------------------------------------------------------------
# Client


@dataclass
class AdvisoryResult:
    text: str
    source: AdvisorySource

    @property
    def lines(self) -> list[str]:
        return display_lines(self.text)


class AdvisoryClient:
    """Produces the 3-bullet health insight and CareChain snapshot.

    Never raises for service trouble: every failure path ends in the local
    heuristic, and every computed text is memoised under its cache key.
    """

    def __init__(
        self,
        generator: TextGenerator | None,
        *,
        cache: AdvisoryCache | None = None,
        retry_policy: RetryPolicy | None = None,
        temperature: float = 0.1,
        sleep: Sleep = asyncio.sleep,
    ):
        self.generator = generator
        self.cache = cache if cache is not None else AdvisoryCache()
        self.retry_policy = retry_policy or RetryPolicy()
        self.temperature = temperature
        self._sleep = sleep
        self.latest_summary: AdvisoryResult | None = None
        self._summary_stale = True
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdvisoryClient":
        return cls(
            GeminiTextGenerator(api_key=settings.gemini_api_key, model_name=settings.gemini_model_name),
            cache=AdvisoryCache(settings.advisory_cache_max_entries),
            retry_policy=RetryPolicy(
                max_retries=settings.advisory_max_retries,
                initial_delay=settings.advisory_initial_delay_seconds,
                backoff_multiplier=settings.advisory_backoff_multiplier,
            ),
            temperature=settings.advisory_temperature,
        )

    async def health_insight(self, profile: UserHealthData) -> AdvisoryResult:
        key = insight_cache_key(profile)
        cached = self.cache.get(key)
        if cached is not None:
            return AdvisoryResult(cached, AdvisorySource.CACHE)

        text, source = await self._generate(
            build_insight_prompt(profile), lambda: local_insight(profile), purpose="insight"
        )
        self.cache.set(key, text)
        return AdvisoryResult(text, source)

    async def timeline_summary(self, events: Sequence[TimelineEvent]) -> AdvisoryResult:
        if not events:
            return AdvisoryResult(EMPTY_TIMELINE_SUMMARY, AdvisorySource.EMPTY)

        key = summary_cache_key(events)
        cached = self.cache.get(key)
        if cached is not None:
            return AdvisoryResult(cached, AdvisorySource.CACHE)

        snapshot = list(events)
        text, source = await self._generate(
            build_summary_prompt(snapshot), lambda: local_summary(snapshot), purpose="summary"
        )
        self.cache.set(key, text)
        return AdvisoryResult(text, source)

    async def _generate(
        self, prompt: str, fallback: Callable[[], str], *, purpose: str
    ) -> tuple[str, AdvisorySource]:
        if self.generator is None:
            return fallback(), AdvisorySource.FALLBACK

        generator = self.generator
        try:
            raw = await self.retry_policy.run(
                lambda: generator.generate(prompt, temperature=self.temperature),
                is_retryable=is_rate_limited,
                sleep=self._sleep,
            )
            return normalize_response(raw), AdvisorySource.EXTERNAL
        except Exception as exc:
            logger.warning("Advisory %s fallback active: %s", purpose, exc)
            return fallback(), AdvisorySource.FALLBACK

    # -- timeline subscription ------------------------------------------------

    def watch(self, store) -> None:
        """Recompute the CareChain summary whenever ``store`` publishes a change."""
        self.unwatch()
        self._unsubscribe = store.subscribe(self._on_timeline_changed)

    def unwatch(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def summary_stale(self) -> bool:
        return self._summary_stale

    def _on_timeline_changed(self, events: list[TimelineEvent]) -> None:
        self._summary_stale = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop in this thread: the next current_summary() call recomputes.
            return
        task = loop.create_task(self._refresh_summary(events))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh_summary(self, events: Sequence[TimelineEvent]) -> AdvisoryResult:
        result = await self.timeline_summary(events)
        self.latest_summary = result
        self._summary_stale = False
        return result

    async def current_summary(self, events: Sequence[TimelineEvent]) -> AdvisoryResult:
        if self.latest_summary is None or self._summary_stale:
            return await self._refresh_summary(events)
        return self.latest_summary

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
