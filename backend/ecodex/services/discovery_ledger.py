"""
EcoDex Backend - Discovery Ledger
===================================

What:  Records a discovery and updates the user's progression atomically.
Why:   The entry insert and the experience/level update must both happen or
       neither. A half-applied write would award XP for a missing entry or
       store an entry that never counted.
How:   One transaction per discovery:
           lock user row → novelty check → insert entry → update progress → commit
       Any SQLAlchemy failure rolls back and raises PersistenceError naming
       the stage that failed.
Who:   DiscoveryPipeline.identify(), last step.

Concurrency:
    Two identify runs for the same user and species must not both see
    "no previous entry" and both be awarded the first-discovery bonus.
    Runs for one user are serialized:
        - in-process by a per-user asyncio.Lock
        - across worker processes by SELECT ... FOR UPDATE on the user row,
          taken before the novelty check (PostgreSQL; SQLite ignores it and
          relies on its single-writer lock)
    Runs for different users proceed independently.
"""

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecodex.exceptions import NotFoundError, PersistenceError
from ecodex.models.discovery import Discovery
from ecodex.models.user import User
from ecodex.schemas.discovery import Location, SpeciesDescription
from ecodex.services.image_normalizer import NormalizedImage
from ecodex.services.rarity import (
    DEFAULT_CONSERVATION_STATUS,
    experience_for_rarity,
    experience_gained,
    level_for_experience,
)

logger = logging.getLogger(__name__)


@dataclass
class LedgerResult:
    """Outcome of one committed discovery."""

    entry: Discovery
    xp_gained: int
    is_first_discovery: bool
    new_level: int
    total_xp: int


class DiscoveryLedger:
    """
    Persists discoveries and user progression.

    The ledger owns its transaction: record_discovery() commits on success
    and rolls back on failure.
    """

    def __init__(self):
        # Locks live only while some run for that user holds or awaits them
        self._locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def record_discovery(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        species: SpeciesDescription,
        rarity: str,
        image: NormalizedImage,
        location: Optional[Location] = None,
        confidence: Optional[str] = None,
    ) -> LedgerResult:
        """
        Store one discovery and award its experience.

        Steps:
            1. progress_lookup: lock and load the user row
            2. novelty_check:   any entry with this scientific name for this user?
            3. entry_create:    insert the entry with its fixed experience_points
            4. progress_update: experience += xp_gained, recompute level,
                                increment discovery_count
            5. commit

        Raises:
            NotFoundError: The user does not exist. Nothing is written.
            PersistenceError: A storage step failed. `stage` names it and
                `persisted` tells whether the rollback is known to have succeeded.
        """
        lock = self._lock_for(user_id)
        async with lock:
            stage = "progress_lookup"
            entry_flushed = False
            try:
                result = await db.execute(
                    select(User)
                    .where(User.id == user_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                user = result.scalar_one_or_none()
                if user is None:
                    raise NotFoundError(resource="user", resource_id=str(user_id))

                stage = "novelty_check"
                previous = await db.scalar(
                    select(func.count(Discovery.id)).where(
                        Discovery.user_id == user_id,
                        Discovery.scientific_name == species.scientific_name,
                    )
                )
                is_first = not previous

                experience_points = experience_for_rarity(rarity)
                xp_gained = experience_gained(experience_points, is_first)

                stage = "entry_create"
                entry = Discovery(
                    user_id=user_id,
                    name=species.name,
                    scientific_name=species.scientific_name,
                    description=species.description,
                    type=species.type,
                    habitat=species.habitat,
                    region=species.region,
                    rarity=rarity,
                    conservation_status=species.conservation_status or DEFAULT_CONSERVATION_STATUS,
                    image=image.normalized_base64,
                    original_image=image.original_base64,
                    stats=species.stats.model_dump(),
                    abilities=[a.model_dump() for a in species.abilities],
                    fun_facts=list(species.fun_facts),
                    experience_points=experience_points,
                    is_first_discovery=is_first,
                    confidence=confidence,
                    latitude=location.latitude if location else None,
                    longitude=location.longitude if location else None,
                    address=location.address if location else None,
                )
                db.add(entry)
                await db.flush()
                entry_flushed = True

                stage = "progress_update"
                user.experience += xp_gained
                user.level = level_for_experience(user.experience)
                user.discovery_count += 1
                await db.flush()

                stage = "commit"
                await db.commit()

            except SQLAlchemyError as e:
                persisted = PersistenceError.NOTHING
                try:
                    await db.rollback()
                except SQLAlchemyError as rollback_error:
                    logger.error(
                        "Rollback failed after %s error for user %s: %s",
                        stage,
                        user_id,
                        str(rollback_error),
                    )
                    if entry_flushed:
                        persisted = PersistenceError.UNKNOWN

                logger.error(
                    "Discovery ledger failed at stage=%s for user %s (persisted=%s): %s",
                    stage,
                    user_id,
                    persisted,
                    str(e),
                    exc_info=True,
                )
                raise PersistenceError(
                    stage=stage,
                    persisted=persisted,
                    context={"error_type": type(e).__name__},
                ) from e

        logger.info(
            "Discovery %s recorded for user %s: %s (%s) first=%s xp=+%d total=%d level=%d",
            entry.id,
            user_id,
            entry.scientific_name,
            rarity,
            is_first,
            xp_gained,
            user.experience,
            user.level,
        )

        return LedgerResult(
            entry=entry,
            xp_gained=xp_gained,
            is_first_discovery=is_first,
            new_level=user.level,
            total_xp=user.experience,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
# Shared so every request sees the same per-user locks.
discovery_ledger = DiscoveryLedger()
