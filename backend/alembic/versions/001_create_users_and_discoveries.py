"""Create users and discoveries tables

Revision ID: 001
Revises: None
Create Date: 2024-06-01 00:00:00.000000+00:00

What:  Creates `users` (profile + progression) and `discoveries` (one row per
       identified species) with the indexes used by the novelty check and
       the collection queries.

Rollback: downgrade() drops both tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "experience",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Total experience points earned from discoveries",
        ),
        sa.Column(
            "level",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("1"),
            comment="Derived from experience: floor(experience / 100) + 1",
        ),
        sa.Column("discovery_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("experience >= 0", name="ck_users_experience_non_negative"),
        sa.CheckConstraint("level >= 1", name="ck_users_level_positive"),
    )

    op.create_table(
        "discoveries",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "scientific_name",
            sa.String(255),
            nullable=False,
            comment="Novelty key, compared exactly after whitespace stripping",
        ),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("habitat", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("region", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("rarity", sa.String(20), nullable=False),
        sa.Column(
            "conservation_status",
            sa.String(30),
            nullable=False,
            server_default=sa.text("'least_concern'"),
        ),
        sa.Column("image", sa.Text(), nullable=False, comment="Normalized JPEG, base64 encoded"),
        sa.Column("original_image", sa.Text(), nullable=False, comment="Original upload, base64 encoded"),
        sa.Column("stats", sa.JSON(), nullable=False),
        sa.Column("abilities", sa.JSON(), nullable=False),
        sa.Column("fun_facts", sa.JSON(), nullable=False),
        sa.Column(
            "experience_points",
            sa.Integer(),
            nullable=False,
            comment="Rarity XP value, assigned once at creation",
        ),
        sa.Column("is_first_discovery", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("confidence", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column(
            "discovered_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("type IN ('plant', 'animal')", name="ck_discoveries_type"),
        sa.CheckConstraint(
            "rarity IN ('common', 'uncommon', 'rare', 'epic', 'legendary')",
            name="ck_discoveries_rarity",
        ),
        sa.CheckConstraint(
            "conservation_status IN ('least_concern', 'near_threatened', 'vulnerable', "
            "'endangered', 'critically_endangered', 'extinct')",
            name="ck_discoveries_conservation_status",
        ),
    )

    # Collection listing, newest first
    op.create_index(
        "idx_discoveries_user_discovered_at",
        "discoveries",
        ["user_id", sa.text("discovered_at DESC")],
    )
    # Novelty check on every identify run
    op.create_index(
        "idx_discoveries_user_scientific_name",
        "discoveries",
        ["user_id", "scientific_name"],
    )
    op.create_index("idx_discoveries_type_rarity", "discoveries", ["type", "rarity"])


def downgrade() -> None:
    op.drop_index("idx_discoveries_type_rarity", table_name="discoveries")
    op.drop_index("idx_discoveries_user_scientific_name", table_name="discoveries")
    op.drop_index("idx_discoveries_user_discovered_at", table_name="discoveries")
    op.drop_table("discoveries")
    op.drop_table("users")
