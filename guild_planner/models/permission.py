"""Static permission catalog and per-guild overrides.

The catalog and the default grant sets are process-wide constants; they are
wrapped in read-only mappings so every guild and request shares them without
being able to mutate them. Guild-specific exceptions live in the
``guild_permission_overrides`` table and are layered on top at resolve time.
"""

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from guild_planner.models.guild import GuildRole


class PermissionCategory(str, Enum):
    characters = "characters"
    guild_bank = "guild_bank"
    events = "events"
    parties = "parties"
    siege = "siege"
    ships = "ships"
    announcements = "announcements"
    recruitment = "recruitment"
    settings = "settings"


class PermissionKey(str, Enum):
    characters_create = "characters_create"
    characters_read_all = "characters_read_all"
    characters_edit_own = "characters_edit_own"
    characters_edit_any = "characters_edit_any"
    characters_delete_own = "characters_delete_own"
    characters_delete_any = "characters_delete_any"
    guild_bank_deposit = "guild_bank_deposit"
    guild_bank_withdraw = "guild_bank_withdraw"
    guild_bank_view_history = "guild_bank_view_history"
    guild_bank_manage = "guild_bank_manage"
    events_create = "events_create"
    events_read = "events_read"
    events_edit_own = "events_edit_own"
    events_edit_any = "events_edit_any"
    events_delete_own = "events_delete_own"
    events_delete_any = "events_delete_any"
    events_rsvp = "events_rsvp"
    parties_create = "parties_create"
    parties_read = "parties_read"
    parties_edit_own = "parties_edit_own"
    parties_edit_any = "parties_edit_any"
    parties_delete_own = "parties_delete_own"
    parties_delete_any = "parties_delete_any"
    siege_view_rosters = "siege_view_rosters"
    siege_edit_rosters = "siege_edit_rosters"
    siege_create_event = "siege_create_event"
    ships_create = "ships_create"
    ships_edit_own = "ships_edit_own"
    ships_edit_any = "ships_edit_any"
    ships_delete_own = "ships_delete_own"
    ships_delete_any = "ships_delete_any"
    announcements_create = "announcements_create"
    announcements_edit = "announcements_edit"
    announcements_delete = "announcements_delete"
    recruitment_manage = "recruitment_manage"
    settings_edit = "settings_edit"
    settings_edit_roles = "settings_edit_roles"
    settings_view_permissions = "settings_view_permissions"


class Permission(BaseModel):
    """Catalog entry. ``name`` and ``description`` are presentation only."""

    model_config = ConfigDict(frozen=True)

    id: str
    category: PermissionCategory
    name: str
    description: str


def _entry(key: PermissionKey, category: PermissionCategory, name: str, description: str) -> tuple[str, Permission]:
    return key.value, Permission(id=key.value, category=category, name=name, description=description)


_C = PermissionCategory
_K = PermissionKey

PERMISSIONS: Mapping[str, Permission] = MappingProxyType(dict([
    _entry(_K.characters_create, _C.characters, "Create Character", "Create a new character"),
    _entry(_K.characters_read_all, _C.characters, "View All Characters", "View all characters in the guild"),
    _entry(_K.characters_edit_own, _C.characters, "Edit Own Character", "Edit your own characters"),
    _entry(_K.characters_edit_any, _C.characters, "Edit Any Character", "Edit other members' characters"),
    _entry(_K.characters_delete_own, _C.characters, "Delete Own Character", "Delete your own characters"),
    _entry(_K.characters_delete_any, _C.characters, "Delete Any Character", "Delete other members' characters"),
    _entry(_K.guild_bank_deposit, _C.guild_bank, "Deposit to Guild Bank", "Deposit items to the guild bank"),
    _entry(_K.guild_bank_withdraw, _C.guild_bank, "Withdraw from Guild Bank", "Withdraw items from the guild bank"),
    _entry(_K.guild_bank_view_history, _C.guild_bank, "View Bank History", "View bank transaction history"),
    _entry(_K.guild_bank_manage, _C.guild_bank, "Manage Guild Bank", "Full management of guild bank including settings"),
    _entry(_K.events_create, _C.events, "Create Event", "Create new events"),
    _entry(_K.events_read, _C.events, "View Events", "View all events"),
    _entry(_K.events_edit_own, _C.events, "Edit Own Event", "Edit events you created"),
    _entry(_K.events_edit_any, _C.events, "Edit Any Event", "Edit other members' events"),
    _entry(_K.events_delete_own, _C.events, "Delete Own Event", "Delete events you created"),
    _entry(_K.events_delete_any, _C.events, "Delete Any Event", "Delete other members' events"),
    _entry(_K.events_rsvp, _C.events, "RSVP to Events", "Respond to event invitations"),
    _entry(_K.parties_create, _C.parties, "Create Party", "Create new parties"),
    _entry(_K.parties_read, _C.parties, "View Parties", "View all parties"),
    _entry(_K.parties_edit_own, _C.parties, "Edit Own Party", "Edit parties you created"),
    _entry(_K.parties_edit_any, _C.parties, "Edit Any Party", "Edit other members' parties"),
    _entry(_K.parties_delete_own, _C.parties, "Delete Own Party", "Delete parties you created"),
    _entry(_K.parties_delete_any, _C.parties, "Delete Any Party", "Delete other members' parties"),
    _entry(_K.siege_view_rosters, _C.siege, "View Siege Rosters", "View siege rosters"),
    _entry(_K.siege_edit_rosters, _C.siege, "Edit Siege Rosters", "Edit siege rosters"),
    _entry(_K.siege_create_event, _C.siege, "Create Siege Event", "Create new siege events"),
    _entry(_K.ships_create, _C.ships, "Add Ships", "Add ships to characters"),
    _entry(_K.ships_edit_own, _C.ships, "Edit Own Ships", "Edit ships on your own characters"),
    _entry(_K.ships_edit_any, _C.ships, "Edit Any Ships", "Edit ships on any character"),
    _entry(_K.ships_delete_own, _C.ships, "Delete Own Ships", "Delete ships from your own characters"),
    _entry(_K.ships_delete_any, _C.ships, "Delete Any Ships", "Delete ships from any character"),
    _entry(_K.announcements_create, _C.announcements, "Create Announcement", "Create new announcements"),
    _entry(_K.announcements_edit, _C.announcements, "Edit Announcement", "Edit existing announcements"),
    _entry(_K.announcements_delete, _C.announcements, "Delete Announcement", "Delete announcements"),
    _entry(_K.recruitment_manage, _C.recruitment, "Manage Recruitment", "Manage recruitment applications and messages"),
    _entry(_K.settings_edit, _C.settings, "Edit Guild Settings", "Edit guild general settings"),
    _entry(_K.settings_edit_roles, _C.settings, "Manage Roles", "Change member roles"),
    _entry(_K.settings_view_permissions, _C.settings, "View Permissions", "View the guild's permission structure"),
]))


def _grant(*keys: PermissionKey) -> frozenset[str]:
    return frozenset(key.value for key in keys)


# Admin holds the whole catalog, pending holds nothing. For every "own" grant a
# lower role holds, the next role up holds the same grant or its "any" form.
DEFAULT_ROLE_PERMISSIONS: Mapping[GuildRole, frozenset[str]] = MappingProxyType({
    GuildRole.admin: frozenset(PERMISSIONS),
    GuildRole.officer: _grant(
        _K.characters_create,
        _K.characters_edit_any,
        _K.characters_delete_any,
        _K.guild_bank_deposit,
        _K.guild_bank_withdraw,
        _K.guild_bank_manage,
        _K.events_create,
        _K.events_edit_any,
        _K.events_delete_any,
        _K.events_rsvp,
        _K.parties_create,
        _K.parties_edit_any,
        _K.parties_delete_any,
        _K.siege_create_event,
        _K.siege_edit_rosters,
        _K.ships_create,
        _K.ships_edit_any,
        _K.ships_delete_any,
        _K.announcements_create,
        _K.announcements_edit,
        _K.announcements_delete,
        _K.recruitment_manage,
        _K.settings_edit_roles,
    ),
    GuildRole.member: _grant(
        _K.characters_create,
        _K.characters_edit_own,
        _K.characters_delete_own,
        _K.guild_bank_deposit,
        _K.guild_bank_withdraw,
        _K.events_create,
        _K.events_edit_own,
        _K.events_delete_own,
        _K.events_rsvp,
        _K.parties_create,
        _K.parties_edit_own,
        _K.parties_delete_own,
        _K.siege_create_event,
        _K.siege_edit_rosters,
        _K.ships_create,
        _K.ships_edit_own,
        _K.ships_delete_own,
        _K.announcements_create,
    ),
    GuildRole.trial: _grant(
        _K.characters_create,
        _K.events_rsvp,
        _K.ships_create,
        _K.ships_edit_own,
        _K.ships_delete_own,
    ),
    GuildRole.pending: frozenset(),
})


_PERMISSION_KEYS_SQL = ", ".join(f"'{key}'" for key in PERMISSIONS)


class GuildPermissionOverride(SQLModel, table=True):
    """Per-guild, per-role exception to a permission's default grant."""

    __tablename__ = "guild_permission_overrides"
    __table_args__ = (
        CheckConstraint(
            f"permission_key IN ({_PERMISSION_KEYS_SQL})",
            name="ck_guild_permission_overrides_permission_key",
        ),
    )

    guild_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("guilds.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    role: GuildRole = Field(
        sa_column=Column(
            SQLEnum(GuildRole, name="guild_role"),
            primary_key=True,
        ),
    )
    permission_key: str = Field(
        sa_column=Column(String(length=50), primary_key=True),
    )
    enabled: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default="true"),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
