"""
EcoDex Backend - Discovery SQLAlchemy Model
=============================================

What:  ORM model representing the `discoveries` table: one row per confirmed
       species identification.
Why:   Every successful identify run persists exactly one row here; rows are
       never updated or deleted by the discovery pipeline.
Who:   Inserted by DiscoveryLedger; read by DiscoveryService for listing,
       detail and statistics.

Table Design:
    - image / original_image: base64 text of the normalized JPEG and the
      original upload, immutable once written
    - stats / abilities / fun_facts: JSON documents as returned by the oracle
    - experience_points: assigned once from the rarity table at insert time
    - is_first_discovery: fixed at insert time from the novelty check

Indexes:
    (user_id, discovered_at DESC): the caller's collection, newest first
    (user_id, scientific_name):    novelty check on every identify run
    (type, rarity):                collection filters
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ecodex.database import Base


class Discovery(Base):
    """
    A single discovery entry in a user's EcoDex.

    Lifecycle:
        Created once by DiscoveryLedger.record_discovery(); immutable afterwards.
    """

    __tablename__ = "discoveries"

    # ── Identity ──────────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owning user, immutable after creation",
    )

    # ── Species Description ───────────────────────────────────────────────
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    scientific_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Deduplication key for first-discovery detection",
    )

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # 'plant' | 'animal'
    type: Mapped[str] = mapped_column(String(10), nullable=False)

    habitat: Mapped[str] = mapped_column(Text, nullable=False, default="")
    region: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # ── Classification ────────────────────────────────────────────────────
    rarity: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="common",
        comment="common, uncommon, rare, epic, legendary",
    )

    conservation_status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="least_concern",
        server_default=text("'least_concern'"),
    )

    # ── Media (base64) ────────────────────────────────────────────────────
    image: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Normalized JPEG, base64 encoded",
    )
    original_image: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Original upload, base64 encoded",
    )

    # ── Structured Facts ──────────────────────────────────────────────────
    stats: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    abilities: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    fun_facts: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # ── Gamification ──────────────────────────────────────────────────────
    experience_points: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Rarity XP value, assigned once at creation",
    )

    is_first_discovery: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Oracle self-report as free text, informational only
    confidence: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Location (caller supplied) ────────────────────────────────────────
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    discovered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_discoveries_user_discovered_at", "user_id", discovered_at.desc()),
        Index("idx_discoveries_user_scientific_name", "user_id", "scientific_name"),
        Index("idx_discoveries_type_rarity", "type", "rarity"),
        CheckConstraint("type IN ('plant', 'animal')", name="ck_discoveries_type"),
        CheckConstraint(
            "rarity IN ('common', 'uncommon', 'rare', 'epic', 'legendary')",
            name="ck_discoveries_rarity",
        ),
        CheckConstraint(
            "conservation_status IN ('least_concern', 'near_threatened', 'vulnerable', "
            "'endangered', 'critically_endangered', 'extinct')",
            name="ck_discoveries_conservation_status",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Discovery(id={self.id}, scientific_name='{self.scientific_name}', "
            f"rarity='{self.rarity}', first={self.is_first_discovery})>"
        )
