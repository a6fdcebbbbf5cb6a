"""User registration, login and profile management."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.enums import UserRole
from carpool.domain.errors import Conflict, NotFound, Unauthorized, ValidationError
from carpool.infrastructure.models import UserModel
from carpool.infrastructure.repositories import RatingRepository, UserRepository
from carpool.infrastructure.security import (
    create_access_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

PROFILE_UPDATABLE = {
    "name", "phone", "profile_photo", "role",
    "driver_license", "vehicle_make", "vehicle_model", "vehicle_year",
    "license_plate", "insurance_proof",
}
PROFILE_REQUIRED = ("name", "phone", "role")


class AccountService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.ratings = RatingRepository(session)

    async def register(
        self,
        *,
        email: str,
        phone: str,
        password: str,
        name: str,
        role: Optional[UserRole] = None,
    ) -> tuple[UserModel, str]:
        email = email.lower()
        if await self.users.find_by_email_or_phone(email, phone):
            raise Conflict("User with this email or phone already exists")

        user = await self.users.create(
            UserModel(
                email=email,
                phone=phone,
                password_hash=hash_password(password),
                name=name,
                role=role or UserRole.RIDER,
                rating_sum=0,
                rating_count=0,
                total_rides=0,
            )
        )
        logger.info("User %s registered as %s", user.id, UserRole(user.role).value)
        return user, create_access_token(user.id, user.email)

    async def login(self, email: str, password: str) -> tuple[UserModel, str]:
        user = await self.users.get_by_email(email.lower())
        if not user or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid credentials")
        return user, create_access_token(user.id, user.email)

    async def get(self, user_id: int) -> UserModel:
        user = await self.users.get_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def update_profile(self, user_id: int, changes: dict[str, Any]) -> UserModel:
        user = await self.get(user_id)
        unknown = set(changes) - PROFILE_UPDATABLE
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        cleared = sorted(k for k in PROFILE_REQUIRED if k in changes and changes[k] is None)
        if cleared:
            raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")
        if "phone" in changes and changes["phone"] != user.phone:
            clash = await self.users.find_by_email_or_phone(user.email, changes["phone"])
            if clash and clash.id != user.id:
                raise Conflict("Phone number already in use")
        for key, value in changes.items():
            setattr(user, key, value)
        return user

    async def ratings_summary(self, user_id: int) -> dict[str, Any]:
        """Ratings received by *user_id* with the derived average."""
        user = await self.get(user_id)
        ratings = await self.ratings.list_for_ratee(user_id)
        return {
            "ratings": ratings,
            "average_rating": user.rating,
            "total_ratings": user.rating_count,
            "total_rides": user.total_rides,
        }
