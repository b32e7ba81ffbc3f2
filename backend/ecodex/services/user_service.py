"""
EcoDex Backend - User Service
===============================

What:  Profile creation and progression lookup.
Who:   Called by /api/users route handlers.

Progression columns (experience, level, discovery_count) are written only by
DiscoveryLedger; this service reads them.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecodex.exceptions import InputValidationError, NotFoundError, PersistenceError
from ecodex.models.discovery import Discovery
from ecodex.models.user import User
from ecodex.schemas.user import UserCreate, UserProgressResponse

logger = logging.getLogger(__name__)


class UserService:
    """Stateless; receives the session per call."""

    async def create_user(self, db: AsyncSession, data: UserCreate) -> UserProgressResponse:
        """
        Create a profile at level 1 with no experience.

        Raises:
            InputValidationError: Email already registered
            PersistenceError: Insert failed
        """
        existing = await db.scalar(select(User.id).where(User.email == data.email))
        if existing is not None:
            raise InputValidationError(
                message="A user with this email already exists.",
                field="email",
            )

        user = User(name=data.name.strip(), email=data.email)
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent signup for the same email
            await db.rollback()
            raise InputValidationError(
                message="A user with this email already exists.",
                field="email",
            ) from e
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error creating user: %s", str(e), exc_info=True)
            raise PersistenceError(
                message="Could not create the user. Please try again.",
                stage="user_create",
            ) from e

        logger.info("User created: %s", user.id)
        return self._to_response(user, [])

    async def get_progress(self, db: AsyncSession, user_id: uuid.UUID) -> UserProgressResponse:
        """
        Profile, experience, level and discovery ids (oldest first).

        Raises:
            NotFoundError: Unknown user
        """
        try:
            user = await db.get(User, user_id)
            if user is None:
                raise NotFoundError(resource="user", resource_id=str(user_id))

            result = await db.execute(
                select(Discovery.id)
                .where(Discovery.user_id == user_id)
                .order_by(Discovery.discovered_at)
            )
            discovery_ids = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error fetching user %s: %s", user_id, str(e))
            raise PersistenceError(
                message="Could not retrieve your progress. Please try again.",
                stage="user_lookup",
            ) from e

        return self._to_response(user, discovery_ids)

    @staticmethod
    def _to_response(user: User, discovery_ids: list) -> UserProgressResponse:
        return UserProgressResponse(
            id=user.id,
            name=user.name,
            email=user.email,
            experience=user.experience,
            level=user.level,
            discovery_count=user.discovery_count,
            discoveries=discovery_ids,
            created_at=user.created_at,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
user_service = UserService()
