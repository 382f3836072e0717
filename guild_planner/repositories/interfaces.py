from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from guild_planner.models.event import RosterEntry
from guild_planner.models.guild import GuildRole
from guild_planner.schemas.permission import MembershipFact
from guild_planner.schemas.roster import RosterInstance


class MembershipLookup(ABC):
    @abstractmethod
    async def get_membership(self, guild_id: int, user_id: int) -> Optional[MembershipFact]:
        """Return the user's membership in the guild, or None when they have none."""


class OverrideStore(ABC):
    @abstractmethod
    async def get_overrides(self, guild_id: int, role: GuildRole) -> Optional[dict[str, bool]]:
        """Return the guild's override map for a role, or None when nothing is overridden."""


class RosterStore(ABC):
    @abstractmethod
    async def list_entries(self, instance_id: int) -> list[RosterEntry]:
        """Current entries of an instance, at most one per user."""

    @abstractmethod
    async def upsert_entry(self, entry: RosterEntry) -> RosterEntry:
        """Write the entry, replacing any existing one for the same (instance, user)."""

    @abstractmethod
    async def delete_entry(self, instance_id: int, user_id: int) -> bool:
        """Remove the user's entry. Returns False when there was nothing to remove."""


class InstanceLookup(ABC):
    @abstractmethod
    async def get_instance(self, instance_id: int) -> Optional[RosterInstance]:
        """Load an event or siege with its signup requirement."""
