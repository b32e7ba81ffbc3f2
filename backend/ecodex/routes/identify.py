"""
EcoDex Backend - Identify & Chat Route Handlers
=================================================

What:  POST /api/ecodex/identify (photo → discovery) and
       POST /api/ecodex/chat (companion ecologist).
How:   Read the multipart form, hand the bytes to DiscoveryPipeline, return
       its response. Errors propagate to the global handlers in main.py.
Who:   Called by the mobile client's camera and chat screens.

Request Flow (identify):
    1. Client sends multipart/form-data: `image` plus optional location fields
    2. Pipeline validates, normalizes, asks the oracle, parses, classifies,
       records the discovery
    3. 201 Created with IdentifyResponse
"""

import logging
import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ecodex.auth import get_current_user_id
from ecodex.database import get_db_session
from ecodex.schemas.common import ErrorResponse
from ecodex.schemas.discovery import ChatResponse, IdentifyResponse, Location
from ecodex.services.discovery_pipeline import discovery_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ecodex", tags=["Identify"])


UPLOAD_CHUNK_SIZE = 64 * 1024


async def _read_upload(upload: UploadFile | None, limit: int) -> tuple[bytes | None, str | None]:
    """
    Read the upload in chunks, stopping one byte past `limit`.

    Anything longer than `limit` is rejected by the pipeline's size check,
    so the rest of the stream is never read.
    """
    if upload is None:
        return None, None
    buffer = bytearray()
    try:
        while len(buffer) <= limit:
            chunk = await upload.read(min(UPLOAD_CHUNK_SIZE, limit + 1 - len(buffer)))
            if not chunk:
                break
            buffer.extend(chunk)
        return bytes(buffer), upload.content_type
    finally:
        await upload.close()


@router.post(
    "/identify",
    status_code=201,
    response_model=IdentifyResponse,
    responses={
        201: {"description": "Species identified and recorded", "model": IdentifyResponse},
        400: {"description": "Missing, invalid or unreadable image", "model": ErrorResponse},
        404: {"description": "Unknown user", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
        500: {"description": "Discovery could not be saved", "model": ErrorResponse},
        502: {"description": "Oracle reply could not be understood", "model": ErrorResponse},
        503: {"description": "Species oracle unavailable", "model": ErrorResponse},
    },
    summary="Identify a plant or animal and add it to the EcoDex",
    description=(
        "Upload a photo (max 10MB). The species is identified by the oracle, "
        "assigned a rarity tier and recorded as a discovery. First discoveries "
        "of a species earn double experience."
    ),
)
async def identify(
    image: UploadFile | None = File(default=None, description="Photo of a plant or animal"),
    latitude: float | None = Form(default=None, ge=-90, le=90),
    longitude: float | None = Form(default=None, ge=-180, le=180),
    address: str | None = Form(default=None, max_length=500),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> IdentifyResponse:
    content, content_type = await _read_upload(image, discovery_pipeline.max_file_size)

    logger.info(
        "Received identify request: user=%s, filename=%s, size=%d bytes",
        user_id,
        image.filename if image else None,
        len(content or b""),
    )

    location = None
    if latitude is not None or longitude is not None or address:
        location = Location(latitude=latitude, longitude=longitude, address=address)

    return await discovery_pipeline.identify(
        db,
        user_id=user_id,
        image_bytes=content,
        content_type=content_type,
        location=location,
    )


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={
        200: {"description": "Companion reply", "model": ChatResponse},
        400: {"description": "Neither message nor image supplied", "model": ErrorResponse},
        502: {"description": "Empty companion reply", "model": ErrorResponse},
        503: {"description": "Oracle unavailable", "model": ErrorResponse},
    },
    summary="Ask the companion ecologist a question",
)
async def chat(
    message: str | None = Form(default=None, max_length=4000),
    image: UploadFile | None = File(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> ChatResponse:
    """Text-only or image-plus-text chat. No conversation state is kept."""
    content, content_type = await _read_upload(image, discovery_pipeline.max_file_size)
    logger.info("Received chat request: user=%s, has_image=%s", user_id, content is not None)
    return await discovery_pipeline.chat(
        message=message,
        image_bytes=content,
        content_type=content_type,
    )
