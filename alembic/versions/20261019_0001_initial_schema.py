"""Initial schema: guilds, memberships, permission overrides, events and rosters.

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from guild_planner.models.permission import PERMISSIONS


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS: dict[str, tuple[str, ...]] = {
    "guild_role": ("admin", "officer", "member", "trial", "pending"),
    "event_kind": ("event", "siege"),
}


def upgrade() -> None:
    bind = op.get_bind()
    for enum_name, values in ENUMS.items():
        sa.Enum(*values, name=enum_name).create(bind, checkfirst=True)

    guild_role = postgresql.ENUM(*ENUMS["guild_role"], name="guild_role", create_type=False)
    event_kind = postgresql.ENUM(*ENUMS["event_kind"], name="event_kind", create_type=False)
    permission_keys = ", ".join(f"'{key}'" for key in PERMISSIONS)

    op.create_table(
        "guilds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "guild_memberships",
        sa.Column("guild_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", guild_role, nullable=False, server_default="pending"),
        sa.Column("is_creator", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["guild_id"], ["guilds.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("guild_id", "user_id"),
    )

    op.create_table(
        "guild_permission_overrides",
        sa.Column("guild_id", sa.Integer(), nullable=False),
        sa.Column("role", guild_role, nullable=False),
        sa.Column("permission_key", sa.String(length=50), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["guild_id"], ["guilds.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("guild_id", "role", "permission_key"),
        sa.CheckConstraint(
            f"permission_key IN ({permission_keys})",
            name="ck_guild_permission_overrides_permission_key",
        ),
    )

    op.create_table(
        "guild_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("guild_id", sa.Integer(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("kind", event_kind, nullable=False, server_default="event"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_attendees", sa.Integer(), nullable=True),
        sa.Column("combined_pool_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("combined_pool_max", sa.Integer(), nullable=True),
        sa.Column("combined_pool_slots", sa.JSON(), nullable=False),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["guild_id"], ["guilds.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_guild_events_guild_id", "guild_events", ["guild_id"])

    op.create_table(
        "event_role_slots",
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("role_slot", sa.String(length=50), nullable=False),
        sa.Column("minimum", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("maximum", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["guild_events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("event_id", "role_slot"),
    )

    op.create_table(
        "roster_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("character_id", sa.Integer(), nullable=True),
        sa.Column("role_slot", sa.String(length=50), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["event_id"], ["guild_events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_roster_entries_event_user"),
    )
    op.create_index("ix_roster_entries_event_id", "roster_entries", ["event_id"])


def downgrade() -> None:
    op.drop_index("ix_roster_entries_event_id", table_name="roster_entries")
    op.drop_table("roster_entries")
    op.drop_table("event_role_slots")
    op.drop_index("ix_guild_events_guild_id", table_name="guild_events")
    op.drop_table("guild_events")
    op.drop_table("guild_permission_overrides")
    op.drop_table("guild_memberships")
    op.drop_table("guilds")

    bind = op.get_bind()
    for enum_name, values in reversed(list(ENUMS.items())):
        sa.Enum(*values, name=enum_name).drop(bind, checkfirst=True)
