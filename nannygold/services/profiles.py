"""Profile saves that span the profile, role and preference tables"""

import logging
import re
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.db.models import (
    Client,
    ClientPreferences,
    LivingArrangement,
    Nanny,
    UserProfile,
    UserRole,
)
from nannygold.errors import ConflictError, PermissionDeniedError, ValidationError
from nannygold.services.revenue import normalize_home_size, to_money

logger = logging.getLogger(__name__)

# South African numbers: +27 or a leading 0, then nine digits
PHONE_PATTERN = re.compile(r"^(\+27|0)[0-9]{9}$")

PROFILE_FIELDS = ("first_name", "last_name", "email", "phone")
CLIENT_FIELDS = ("home_size", "number_of_children", "other_dependents", "location")
PREFERENCE_FIELDS = ("living_arrangement", "required_skills", "languages", "extra_preferences")
NANNY_FIELDS = (
    "experience_level",
    "is_available",
    "service_categories",
    "skills",
    "living_arrangements",
    "hourly_rate",
    "monthly_rate",
)


def _present(value: Any) -> bool:
    """Blank strings and None never overwrite stored values"""
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def sanitize_phone(phone: str) -> str:
    cleaned = re.sub(r"\s+", "", phone).strip()
    if not PHONE_PATTERN.match(cleaned):
        raise ValidationError(
            f"Invalid phone format: {phone}. Must be 10 digits starting with 0 or +27."
        )
    return cleaned


class ProfileService:
    """Saves a user's profile and role rows in a single transaction"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _upsert_profile(
        self,
        user_id: uuid.UUID,
        role: UserRole,
        fields: dict[str, Any],
    ) -> UserProfile:
        profile = await self.db.get(UserProfile, user_id)
        if profile is None:
            profile = UserProfile(id=user_id, role=role)
            self.db.add(profile)
        elif profile.role is not role:
            raise PermissionDeniedError(f"Profile belongs to a {profile.role.value}, not a {role.value}")

        for name in PROFILE_FIELDS:
            value = fields.get(name)
            if not _present(value):
                continue
            if name == "phone":
                value = sanitize_phone(value)
            setattr(profile, name, value)
        return profile

    async def _commit(self, user_id: uuid.UUID, kind: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(f"Could not save {kind} profile: a unique value is already in use") from e
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(f"Rolled back {kind} profile save for {user_id}", exc_info=True)
            raise

    async def save_client_profile(
        self,
        user_id: uuid.UUID,
        profile_fields: dict[str, Any],
        client_fields: dict[str, Any],
        preference_fields: dict[str, Any],
    ) -> Client:
        """
        Write profile, client and preference rows atomically

        Validation failures raise before anything is flushed; a database
        failure rolls every table back together.
        """
        try:
            await self._upsert_profile(user_id, UserRole.CLIENT, profile_fields)

            client = await self.db.get(Client, user_id)
            if client is None:
                client = Client(id=user_id, number_of_children=0, other_dependents=0)
                self.db.add(client)
            for name in CLIENT_FIELDS:
                value = client_fields.get(name)
                if not _present(value):
                    continue
                if name == "home_size":
                    value = normalize_home_size(value)
                setattr(client, name, value)

            preferences = (await self.db.execute(
                select(ClientPreferences).where(ClientPreferences.client_id == user_id)
            )).scalar_one_or_none()
            if preferences is None:
                preferences = ClientPreferences(
                    client_id=user_id,
                    required_skills=[],
                    languages=[],
                    extra_preferences={},
                )
                self.db.add(preferences)
            for name in PREFERENCE_FIELDS:
                value = preference_fields.get(name)
                if not _present(value):
                    continue
                if name == "living_arrangement":
                    value = LivingArrangement(value)
                setattr(preferences, name, value)
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("Could not save client profile: a unique value is already in use") from e
        except (ValidationError, PermissionDeniedError, ValueError) as e:
            await self.db.rollback()
            if isinstance(e, ValueError):
                raise ValidationError(str(e)) from e
            raise

        await self._commit(user_id, "client")
        await self.db.refresh(client)
        logger.info(f"Saved client profile {user_id}")
        return client

    async def save_nanny_profile(
        self,
        user_id: uuid.UUID,
        profile_fields: dict[str, Any],
        nanny_fields: dict[str, Any],
    ) -> Nanny:
        try:
            await self._upsert_profile(user_id, UserRole.NANNY, profile_fields)

            nanny = await self.db.get(Nanny, user_id)
            if nanny is None:
                nanny = Nanny(
                    id=user_id,
                    service_categories=[],
                    admin_assigned_categories=[],
                    skills=[],
                    living_arrangements=[],
                )
                self.db.add(nanny)
            for name in NANNY_FIELDS:
                value = nanny_fields.get(name)
                if not _present(value):
                    continue
                if name in ("hourly_rate", "monthly_rate"):
                    value = to_money(value)
                    if value < 0:
                        raise ValidationError(f"{name} must be zero or greater")
                setattr(nanny, name, value)
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("Could not save nanny profile: a unique value is already in use") from e
        except (ValidationError, PermissionDeniedError):
            await self.db.rollback()
            raise

        await self._commit(user_id, "nanny")
        await self.db.refresh(nanny)
        logger.info(f"Saved nanny profile {user_id}")
        return nanny
