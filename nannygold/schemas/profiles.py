"""Pydantic schemas for profile save API"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from nannygold.db.models import HomeSize, LivingArrangement


class ProfileFields(BaseModel):
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, pattern=r"^\+?[0-9 ]{9,20}$")


class ClientFields(BaseModel):
    home_size: HomeSize | None = None
    number_of_children: int = Field(default=0, ge=0, le=20)
    other_dependents: int = Field(default=0, ge=0, le=20)
    location: str | None = Field(None, max_length=255)

    @field_validator("home_size", mode="before")
    @classmethod
    def normalize_home_size(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_").replace(" ", "_")
        return v


class PreferenceFields(BaseModel):
    living_arrangement: LivingArrangement | None = None
    required_skills: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    extra_preferences: dict[str, Any] = Field(default_factory=dict)


class NannyFields(BaseModel):
    experience_level: str | None = Field(None, max_length=50)
    is_available: bool = True
    service_categories: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    living_arrangements: list[str] = Field(default_factory=list)
    hourly_rate: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    monthly_rate: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)


class ClientProfileSave(BaseModel):
    profile: ProfileFields = Field(default_factory=ProfileFields)
    client: ClientFields = Field(default_factory=ClientFields)
    preferences: PreferenceFields = Field(default_factory=PreferenceFields)


class NannyProfileSave(BaseModel):
    profile: ProfileFields = Field(default_factory=ProfileFields)
    nanny: NannyFields = Field(default_factory=NannyFields)


class ClientProfileResponse(BaseModel):
    id: UUID
    home_size: HomeSize | None
    number_of_children: int
    other_dependents: int
    location: str | None

    model_config = {"from_attributes": True}


class NannyProfileResponse(BaseModel):
    id: UUID
    experience_level: str | None
    is_available: bool
    service_categories: list[str]
    skills: list[str]
    living_arrangements: list[str]
    hourly_rate: Decimal | None
    monthly_rate: Decimal | None

    model_config = {"from_attributes": True}
