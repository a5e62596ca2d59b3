from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone
from urllib.parse import urlencode

from pydantic import ValidationError as SchemaValidationError

from biosync.core.enums import Theme
from biosync.core.errors import PersistenceError, ValidationError
from biosync.schemas.profile import UserHealthData
from biosync.services.storage import (
    PROFILE_KEY,
    THEME_KEY,
    TIMELINE_KEY,
    TIMELINE_SYNC_KEY,
    KeyValueStore,
)
from biosync.services.timeline import TimelineStore

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10


def calculate_bmi(height_cm: float | None, weight_kg: float | None) -> float | None:
    if not height_cm or not weight_kg or height_cm <= 0 or weight_kg <= 0:
        return None
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)


def bmi_category(bmi: float | None) -> str | None:
    if not bmi:
        return None
    if bmi < 18.5:
        return "Underweight"
    if bmi < 25:
        return "Normal"
    if bmi < 30:
        return "Overweight"
    return "Obese"


def validate_profile(profile: UserHealthData) -> None:
    errors: dict[str, str] = {}
    if not profile.full_name.strip():
        errors["full_name"] = "Full name is required"
    digits = re.sub(r"\D", "", profile.emergency_contact or "")
    if len(digits) < MIN_PHONE_DIGITS:
        errors["emergency_contact"] = "Enter a valid 10-digit phone number"
    if errors:
        raise ValidationError(errors)


def _or(value, placeholder: str) -> str:
    # Falsy values (0, "", None) all take the placeholder.
    if not value:
        return placeholder
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_rescue_url(profile: UserHealthData, base_url: str) -> str:
    """URL encoded into the emergency QR code; the rescue page reads these keys."""
    params = {
        "n": _or(profile.full_name, "Unknown"),
        "a": _or(profile.age, "N/A"),
        "g": _or(profile.gender, "N/A"),
        "bg": _or(profile.blood_group, "--"),
        "al": _or(profile.allergies, "None"),
        "cc": _or(profile.chronic_diseases, "None"),
        "m": _or(profile.current_medications, "None"),
        "s": _or(profile.past_surgeries, "None"),
        "ec": profile.emergency_contact or "",
        "ht": _or(profile.height, "N/A"),
        "wt": _or(profile.weight, "N/A"),
        "bmi": _or(profile.bmi, "N/A"),
        "alc": _or(profile.alcohol_use, "No"),
        "drg": _or(profile.drug_use, "No"),
        "pnd": _or(profile.painkiller_dependence, "No"),
        "smk": _or(profile.smoking_tobacco, "No"),
    }
    base = base_url.replace("index.html", "").rstrip("/")
    return f"{base}/rescue.html?{urlencode(params)}"


class ProfileService:
    def __init__(
        self,
        kv: KeyValueStore,
        timeline: TimelineStore,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.kv = kv
        self.timeline = timeline
        self._clock = clock

    def load(self) -> UserHealthData | None:
        try:
            raw = self.kv.get(PROFILE_KEY)
        except PersistenceError:
            logger.warning("Profile could not be read", exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return UserHealthData.model_validate_json(raw)
        except SchemaValidationError:
            logger.warning("Stored profile is corrupt; ignoring it")
            return None

    def save(self, profile: UserHealthData) -> UserHealthData:
        validate_profile(profile)
        stored = profile.model_copy(
            update={
                "bmi": calculate_bmi(profile.height, profile.weight),
                "last_updated": self._clock().isoformat(),
            }
        )
        try:
            self.kv.set(PROFILE_KEY, stored.model_dump_json())
        except PersistenceError as exc:
            logger.warning("Profile write failed: %s", exc)
            raise PersistenceError(str(exc), result=stored) from exc
        return stored

    def clear(self) -> None:
        """Remove the profile and, with it, the whole CareChain timeline."""
        self.kv.remove(PROFILE_KEY, TIMELINE_KEY, TIMELINE_SYNC_KEY)
        self.timeline.reset()
        logger.info("Profile and timeline cleared")

    def get_theme(self, default: Theme = Theme.DARK) -> Theme:
        try:
            raw = self.kv.get(THEME_KEY)
        except PersistenceError:
            logger.warning("Theme preference could not be read", exc_info=True)
            return default
        try:
            return Theme(raw) if raw else default
        except ValueError:
            return default

    def set_theme(self, theme: Theme) -> Theme:
        self.kv.set(THEME_KEY, Theme(theme).value)
        return Theme(theme)
