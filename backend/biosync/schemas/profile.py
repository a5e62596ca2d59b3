from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from biosync.core.enums import BloodGroup, DependenceStatus, Theme, UsageStatus


class UserHealthData(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    full_name: str = ""
    age: int | None = Field(default=None, ge=0, le=150)
    gender: str | None = Field(default=None, max_length=32)
    blood_group: BloodGroup | None = None
    allergies: str = ""
    chronic_diseases: str = ""
    current_medications: str = ""
    past_surgeries: str | None = None
    emergency_contact: str = ""
    height: float | None = Field(default=None, gt=0, le=300)
    weight: float | None = Field(default=None, gt=0, le=700)
    bmi: float | None = None
    profile_image: str | None = None
    alcohol_use: UsageStatus | None = None
    drug_use: UsageStatus | None = None
    painkiller_dependence: DependenceStatus | None = None
    smoking_tobacco: UsageStatus | None = None
    last_updated: str | None = None


class ProfileRead(BaseModel):
    profile: UserHealthData
    bmi_category: str | None = None
    persisted: bool = True


class RescueUrlRead(BaseModel):
    url: str


class ThemeRead(BaseModel):
    theme: Theme


class ThemeUpdate(BaseModel):
    theme: Theme
