"""
EcoDex Backend - User Schemas
===============================

What:  Request/response models for user profiles and progression.
"""

import uuid
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field, field_validator


class UserCreate(BaseModel):
    """Body of POST /api/users."""
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Invalid email address")
        return v


class UserProgressResponse(BaseModel):
    """
    A user's profile and progression.

    discoveries lists the user's discovery ids, oldest first.
    """
    id: uuid.UUID
    name: str
    email: str
    experience: int
    level: int
    discovery_count: int
    discoveries: List[uuid.UUID] = Field(default_factory=list)
    created_at: datetime
