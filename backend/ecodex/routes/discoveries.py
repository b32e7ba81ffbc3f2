"""
EcoDex Backend - Discovery Collection Route Handlers
======================================================

What:  GET /api/ecodex/entries (list), GET /api/ecodex/entries/{id} (detail)
       and GET /api/ecodex/stats (summary) for the calling user.
How:   Extract query parameters, delegate to DiscoveryService, return JSON.

Caching:
    GET /entries/{id} is cacheable (private, 1 hour): entries are immutable.
"""

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ecodex.auth import get_current_user_id
from ecodex.database import get_db_session
from ecodex.schemas.common import ErrorResponse
from ecodex.schemas.discovery import (
    DiscoveryListResponse,
    DiscoveryResponse,
    DiscoveryStatsResponse,
)
from ecodex.services.discovery_service import discovery_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ecodex", tags=["Discoveries"])


@router.get(
    "/entries",
    response_model=DiscoveryListResponse,
    responses={
        200: {"description": "Paginated list of discoveries", "model": DiscoveryListResponse},
        400: {"description": "Invalid cursor", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="List the caller's discoveries",
)
async def list_entries(
    response: Response,
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    cursor: str | None = Query(
        default=None,
        description="ISO 8601 discovered_at of the last item from the previous page",
    ),
    type: Literal["plant", "animal"] | None = Query(default=None, description="Filter by species type"),
    rarity: Literal["common", "uncommon", "rare", "epic", "legendary"] | None = Query(
        default=None, description="Filter by rarity tier",
    ),
    sort: Literal["discovered_at_desc", "discovered_at_asc"] = Query(default="discovered_at_desc"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> DiscoveryListResponse:
    """
    Example client usage (infinite scroll):
        Page 1: GET /api/ecodex/entries?limit=20
        Page 2: GET /api/ecodex/entries?limit=20&cursor=2024-01-15T12:00:00+00:00
    """
    result = await discovery_service.list_entries(
        db,
        user_id=user_id,
        limit=limit,
        cursor=cursor,
        species_type=type,
        rarity=rarity,
        sort=sort,
    )
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/entries/{entry_id}",
    response_model=DiscoveryResponse,
    responses={
        200: {"description": "Full discovery entry", "model": DiscoveryResponse},
        404: {"description": "Entry not found", "model": ErrorResponse},
    },
    summary="Get one of the caller's discoveries",
)
async def get_entry(
    entry_id: uuid.UUID,
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> DiscoveryResponse:
    result = await discovery_service.get_entry(db, user_id=user_id, entry_id=entry_id)
    # Entries never change after creation
    response.headers["Cache-Control"] = "private, max-age=3600"
    return result


@router.get(
    "/stats",
    response_model=DiscoveryStatsResponse,
    summary="Collection summary for the caller",
)
async def get_stats(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> DiscoveryStatsResponse:
    return await discovery_service.get_stats(db, user_id=user_id)
