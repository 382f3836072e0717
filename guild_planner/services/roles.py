from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from guild_planner.models.guild import GuildRole

ROLE_RANK: Mapping[GuildRole, int] = MappingProxyType({
    GuildRole.admin: 5,
    GuildRole.officer: 4,
    GuildRole.member: 3,
    GuildRole.trial: 2,
    GuildRole.pending: 1,
})


def rank(role: GuildRole | str) -> int:
    return ROLE_RANK[GuildRole(role)]


def can_manage(actor_role: GuildRole | str, target_role: GuildRole | str) -> bool:
    """Strictly greater rank; no role manages its own rank, admins included."""
    return rank(actor_role) > rank(target_role)


def roles_by_rank() -> list[GuildRole]:
    """All roles, highest rank first."""
    return sorted(ROLE_RANK, key=ROLE_RANK.__getitem__, reverse=True)


def manageable_roles(actor_role: GuildRole | str) -> list[GuildRole]:
    """Roles the actor may assign or act on, highest first."""
    return [role for role in roles_by_rank() if can_manage(actor_role, role)]


def is_approved(role: GuildRole | str) -> bool:
    return rank(role) > rank(GuildRole.pending)
