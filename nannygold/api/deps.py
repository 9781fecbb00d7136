"""Request identity and service dependencies"""

import uuid
from dataclasses import dataclass

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.db.database import get_db
from nannygold.db.models import UserRole
from nannygold.errors import PermissionDeniedError, ValidationError
from nannygold.services.gateway import PaystackGateway
from nannygold.services.notifications import NotificationService
from nannygold.services.payments import PaymentService


@dataclass(frozen=True)
class CurrentUser:
    user_id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


async def get_current_user(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> CurrentUser:
    """Identity forwarded by the upstream auth proxy; tokens are verified there"""
    if not x_user_id or not x_user_role:
        raise PermissionDeniedError("Missing caller identity", status_code=401)
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError as e:
        raise ValidationError("X-User-Id must be a UUID") from e
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError as e:
        raise ValidationError(f"Unknown role: {x_user_role}") from e
    return CurrentUser(user_id=user_id, role=role)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user


def get_gateway() -> PaystackGateway:
    return PaystackGateway()


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateway: PaystackGateway = Depends(get_gateway),
) -> PaymentService:
    return PaymentService(db, gateway=gateway)
