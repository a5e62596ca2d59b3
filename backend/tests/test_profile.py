from __future__ import annotations

from datetime import date, datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from biosync.core.enums import Theme
from biosync.core.errors import PersistenceError, ValidationError
from biosync.db.session import SessionLocal
from biosync.schemas.profile import UserHealthData
from biosync.schemas.timeline import TimelineEventDraft
from biosync.services.profile import (
    ProfileService,
    bmi_category,
    build_rescue_url,
    calculate_bmi,
    validate_profile,
)
from biosync.services.storage import PROFILE_KEY, TIMELINE_KEY, TIMELINE_SYNC_KEY, KeyValueStore


def _profile(**overrides) -> UserHealthData:
    fields = {
        "full_name": "Asha Rao",
        "age": 34,
        "gender": "Female",
        "blood_group": "O+",
        "allergies": "Penicillin",
        "chronic_diseases": "Asthma",
        "current_medications": "Salbutamol",
        "emergency_contact": "+1 (555) 010-2030",
        "height": 165,
        "weight": 60,
        "alcohol_use": "Former",
    }
    fields.update(overrides)
    return UserHealthData(**fields)


@pytest.fixture()
def profiles(kv, store) -> ProfileService:
    return ProfileService(kv, store, clock=lambda: datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))


def test_calculate_bmi():
    assert calculate_bmi(165, 60) == 22.0
    assert calculate_bmi(180, 95) == 29.3
    assert calculate_bmi(None, 60) is None
    assert calculate_bmi(170, 0) is None


@pytest.mark.parametrize(
    ("bmi", "label"),
    [(None, None), (17.9, "Underweight"), (18.5, "Normal"), (24.9, "Normal"), (25.0, "Overweight"), (30.0, "Obese")],
)
def test_bmi_category(bmi, label):
    assert bmi_category(bmi) == label


def test_validate_profile_reports_all_fields():
    with pytest.raises(ValidationError) as exc_info:
        validate_profile(_profile(full_name="  ", emergency_contact="555-01"))
    assert set(exc_info.value.errors) == {"full_name", "emergency_contact"}


def test_save_stamps_and_derives_bmi(profiles, kv):
    stored = profiles.save(_profile())

    assert stored.bmi == 22.0
    assert stored.last_updated == "2026-10-19T12:00:00+00:00"
    assert profiles.load().model_dump() == stored.model_dump()
    assert kv.get(PROFILE_KEY) is not None


def test_save_rejects_invalid_profile(profiles, kv):
    with pytest.raises(ValidationError):
        profiles.save(_profile(emergency_contact="12345"))
    assert kv.get(PROFILE_KEY) is None


def test_load_ignores_corrupt_profile(profiles, kv):
    kv.set(PROFILE_KEY, "{broken")
    assert profiles.load() is None


def test_clear_cascades_to_timeline(profiles, store, kv):
    profiles.save(_profile())
    store.create(TimelineEventDraft(title="CBC panel", date=date(2026, 1, 1)))
    assert kv.get(TIMELINE_KEY) is not None

    profiles.clear()

    assert kv.get(PROFILE_KEY) is None
    assert kv.get(TIMELINE_KEY) is None
    assert kv.get(TIMELINE_SYNC_KEY) is None
    assert store.events == []
    assert store.last_sync is None
    assert profiles.load() is None


def test_clear_failure_surfaces_persistence_error(store):
    class BrokenStore(KeyValueStore):
        def remove(self, *keys):
            raise PersistenceError("locked")

    service = ProfileService(BrokenStore(SessionLocal), store)
    with pytest.raises(PersistenceError):
        service.clear()


def test_rescue_url_uses_short_keys_and_placeholders():
    url = build_rescue_url(UserHealthData(full_name="", emergency_contact=""), "https://biosync.example/index.html")
    parsed = urlparse(url)
    params = {key: values[0] for key, values in parse_qs(parsed.query, keep_blank_values=True).items()}

    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://biosync.example/rescue.html"
    assert params == {
        "n": "Unknown",
        "a": "N/A",
        "g": "N/A",
        "bg": "--",
        "al": "None",
        "cc": "None",
        "m": "None",
        "s": "None",
        "ec": "",
        "ht": "N/A",
        "wt": "N/A",
        "bmi": "N/A",
        "alc": "No",
        "drg": "No",
        "pnd": "No",
        "smk": "No",
    }


def test_rescue_url_carries_profile_values():
    profile = _profile(bmi=22.0)
    params = parse_qs(urlparse(build_rescue_url(profile, "https://biosync.example/")).query)

    assert params["n"] == ["Asha Rao"]
    assert params["bg"] == ["O+"]
    assert params["a"] == ["34"]
    assert params["ht"] == ["165"]
    assert params["bmi"] == ["22"]
    assert params["alc"] == ["Former"]
    assert params["drg"] == ["No"]


def test_theme_preference_round_trip(profiles, kv):
    assert profiles.get_theme() == Theme.DARK
    profiles.set_theme(Theme.LIGHT)
    assert profiles.get_theme() == Theme.LIGHT

    kv.set("biosync_theme", "sepia")
    assert profiles.get_theme() == Theme.DARK
