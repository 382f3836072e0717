"""Import all models for Alembic or metadata creation."""

from guild_planner.models.guild import Guild, GuildMembership
from guild_planner.models.permission import GuildPermissionOverride
from guild_planner.models.event import EventRoleSlot, GuildEvent, RosterEntry

__all__ = [
    "Guild",
    "GuildMembership",
    "GuildPermissionOverride",
    "GuildEvent",
    "EventRoleSlot",
    "RosterEntry",
]
