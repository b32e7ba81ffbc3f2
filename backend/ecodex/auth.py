"""
EcoDex Backend - Caller Identity
==================================

What:  FastAPI dependency resolving the calling user's id.
How:   The upstream auth gateway authenticates the caller and forwards the
       user id in the X-User-ID header. The value is trusted as-is; this
       service only checks that it is a UUID.
"""

import uuid

from fastapi import Header

from ecodex.exceptions import InputValidationError


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, description="Caller's user id, set by the auth gateway"),
) -> uuid.UUID:
    if not x_user_id:
        raise InputValidationError(message="Missing X-User-ID header.", field="X-User-ID")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise InputValidationError(
            message="X-User-ID header must be a UUID.",
            field="X-User-ID",
        ) from None
