"""
Shared test utilities and factories.

Re-exports the factories and in-memory collaborators for convenient imports:
    from guild_planner.testing import create_guild, InMemoryRosterStore
"""

from guild_planner.testing.factories import (
    create_event,
    create_guild,
    create_guild_membership,
    create_permission_override,
    create_roster_entry,
    next_user_id,
)
from guild_planner.testing.memory import (
    InMemoryInstanceLookup,
    InMemoryMembershipLookup,
    InMemoryOverrideStore,
    InMemoryRosterStore,
)

__all__ = [
    "create_event",
    "create_guild",
    "create_guild_membership",
    "create_permission_override",
    "create_roster_entry",
    "next_user_id",
    "InMemoryInstanceLookup",
    "InMemoryMembershipLookup",
    "InMemoryOverrideStore",
    "InMemoryRosterStore",
]
