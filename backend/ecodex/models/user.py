"""
EcoDex Backend - User SQLAlchemy Model
========================================

What:  ORM model for the `users` table: profile plus progression state.
How:   Inherits from SQLAlchemy's DeclarativeBase; Alembic reads this for migrations.
Who:   Created by UserService; progression columns are mutated only by
       DiscoveryLedger.

Progression Columns:
    - experience: non-negative, never decreases
    - level: floor(experience / 100) + 1, rewritten together with experience
    - discovery_count: number of discoveries linked to this user, incremented in
      the same transaction that inserts the discovery

    The user's ordered discovery list is the set of `discoveries` rows whose
    user_id points here, ordered by discovered_at.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from ecodex.database import Base


class User(Base):
    """A player profile and its progression totals."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier, supplied to the API by the auth gateway",
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    experience: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Total experience points earned from discoveries",
    )

    level: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default=text("1"),
        comment="Derived from experience: floor(experience / 100) + 1",
    )

    discovery_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("experience >= 0", name="ck_users_experience_non_negative"),
        CheckConstraint("level >= 1", name="ck_users_level_positive"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, level={self.level}, experience={self.experience})>"
