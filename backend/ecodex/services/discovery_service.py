"""
EcoDex Backend - Discovery Service (Collection Queries)
=========================================================

What:  Read-side operations over a user's discoveries: paginated listing,
       single-entry lookup and collection statistics.
Why:   Separates read queries from the write path (DiscoveryLedger), so the
       ledger stays focused on its single transaction.
Who:   Called by /api/ecodex/entries and /api/ecodex/stats route handlers.

Scoping:
    Every query filters on user_id. An entry owned by someone else is
    reported as not found, never as forbidden, so ids cannot be probed.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import asc, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecodex.exceptions import InputValidationError, NotFoundError, PersistenceError
from ecodex.models.discovery import Discovery
from ecodex.schemas.discovery import (
    DiscoveryListItem,
    DiscoveryListResponse,
    DiscoveryResponse,
    DiscoveryStatsResponse,
)

logger = logging.getLogger(__name__)

RECENT_ENTRIES_LIMIT = 5


class DiscoveryService:
    """Stateless query layer; receives the session per call."""

    async def get_entry(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        entry_id: uuid.UUID,
    ) -> DiscoveryResponse:
        """
        Retrieve one discovery owned by the caller.

        Raises:
            NotFoundError: No such entry for this user (→ 404)
            PersistenceError: Query execution failed (→ 500)
        """
        try:
            result = await db.execute(
                select(Discovery).where(
                    Discovery.id == entry_id,
                    Discovery.user_id == user_id,
                )
            )
            entry = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error fetching discovery %s: %s", entry_id, str(e))
            raise PersistenceError(
                message="Could not retrieve the discovery. Please try again.",
                stage="entry_lookup",
                context={"entry_id": str(entry_id)},
            ) from e

        if entry is None:
            raise NotFoundError(resource="discovery", resource_id=str(entry_id))
        return DiscoveryResponse.from_model(entry)

    async def list_entries(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 20,
        cursor: Optional[str] = None,
        species_type: Optional[str] = None,
        rarity: Optional[str] = None,
        sort: str = "discovered_at_desc",
    ) -> DiscoveryListResponse:
        """
        List the caller's discoveries with cursor-based pagination.

        Pagination Strategy (Cursor-Based):
            - Cursor: ISO datetime of the last item on the previous page
            - Descending: WHERE discovered_at < :cursor; ascending: > :cursor
            - Fetch limit + 1 rows to compute has_more without a second scan

        Query plan (default sort):
            SELECT ... FROM discoveries WHERE user_id = :uid AND discovered_at < :cursor
            ORDER BY discovered_at DESC LIMIT :limit + 1
            → idx_discoveries_user_discovered_at

        Raises:
            InputValidationError: Cursor is not an ISO datetime
            PersistenceError: Query execution failed
        """
        cursor_dt = None
        if cursor:
            try:
                cursor_dt = datetime.fromisoformat(cursor)
            except ValueError:
                raise InputValidationError(
                    message="Invalid pagination cursor.",
                    field="cursor",
                    context={"cursor": cursor},
                ) from None

        filters = [Discovery.user_id == user_id]
        if species_type:
            filters.append(Discovery.type == species_type)
        if rarity:
            filters.append(Discovery.rarity == rarity)

        ascending = sort == "discovered_at_asc"
        query = select(Discovery).where(*filters)
        if cursor_dt is not None:
            if ascending:
                query = query.where(Discovery.discovered_at > cursor_dt)
            else:
                query = query.where(Discovery.discovered_at < cursor_dt)
        order = asc(Discovery.discovered_at) if ascending else desc(Discovery.discovered_at)
        query = query.order_by(order).limit(limit + 1)

        try:
            result = await db.execute(query)
            entries = list(result.scalars().all())

            # Total ignores the cursor: it counts the whole filtered collection
            total_count = await db.scalar(select(func.count(Discovery.id)).where(*filters)) or 0
        except SQLAlchemyError as e:
            logger.error("Database error listing discoveries: %s", str(e), exc_info=True)
            raise PersistenceError(
                message="Could not retrieve discoveries. Please try again.",
                stage="entry_list",
                context={"error_type": type(e).__name__},
            ) from e

        has_more = len(entries) > limit
        if has_more:
            entries = entries[:limit]

        next_cursor = None
        if has_more and entries:
            next_cursor = entries[-1].discovered_at.isoformat()

        return DiscoveryListResponse(
            entries=[DiscoveryListItem.model_validate(e) for e in entries],
            total_count=total_count,
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def get_stats(self, db: AsyncSession, user_id: uuid.UUID) -> DiscoveryStatsResponse:
        """Collection totals by type and rarity, plus the most recent entries."""
        try:
            type_rows = await db.execute(
                select(Discovery.type, func.count(Discovery.id))
                .where(Discovery.user_id == user_id)
                .group_by(Discovery.type)
            )
            by_type = {t: n for t, n in type_rows.all()}

            rarity_rows = await db.execute(
                select(Discovery.rarity, func.count(Discovery.id))
                .where(Discovery.user_id == user_id)
                .group_by(Discovery.rarity)
            )
            by_rarity = {r: n for r, n in rarity_rows.all()}

            recent = await db.execute(
                select(Discovery)
                .where(Discovery.user_id == user_id)
                .order_by(desc(Discovery.discovered_at))
                .limit(RECENT_ENTRIES_LIMIT)
            )
            recent_entries = list(recent.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error computing stats for user %s: %s", user_id, str(e))
            raise PersistenceError(
                message="Could not compute collection statistics. Please try again.",
                stage="stats",
                context={"error_type": type(e).__name__},
            ) from e

        return DiscoveryStatsResponse(
            total_entries=sum(by_type.values()),
            by_type=by_type,
            by_rarity=by_rarity,
            recent_entries=[DiscoveryListItem.model_validate(e) for e in recent_entries],
        )


# ── Singleton Instance ────────────────────────────────────────────────────
discovery_service = DiscoveryService()
