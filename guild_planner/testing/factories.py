"""
Test data factories for creating database models.

This module provides factory functions for creating test instances of database models
with sensible defaults. Each factory function can accept overrides for any field.
Users live outside this package, so user ids are plain integers handed out by
``next_user_id``.
"""

from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any

from sqlmodel.ext.asyncio.session import AsyncSession

from guild_planner.models.event import EventKind, EventRoleSlot, GuildEvent, RosterEntry
from guild_planner.models.guild import Guild, GuildMembership, GuildRole
from guild_planner.models.permission import GuildPermissionOverride

_user_ids = count(1000)


def next_user_id() -> int:
    return next(_user_ids)


async def create_guild(
    session: AsyncSession,
    creator_id: int | None = None,
    commit: bool = True,
    **overrides: Any,
) -> Guild:
    """
    Create a test guild with sensible defaults.

    The creator is not made a member; use ``create_guild_membership`` with
    ``is_creator=True`` when a test needs one.

    Example:
        guild = await create_guild(session, name="Test Guild")
    """
    defaults = {
        "name": f"Test Guild {datetime.now(timezone.utc).timestamp()}",
        "description": "A test guild",
        "created_by_user_id": creator_id if creator_id is not None else next_user_id(),
    }

    guild = Guild(**{**defaults, **overrides})
    session.add(guild)

    if commit:
        await session.commit()
        await session.refresh(guild)
    else:
        await session.flush()

    return guild


async def create_guild_membership(
    session: AsyncSession,
    guild: Guild | None = None,
    user_id: int | None = None,
    role: GuildRole = GuildRole.member,
    commit: bool = True,
    **overrides: Any,
) -> GuildMembership:
    """
    Create a guild membership, approved unless the role is pending.

    Example:
        membership = await create_guild_membership(session, guild=guild, role=GuildRole.officer)
    """
    if guild is None:
        guild = await create_guild(session, commit=commit)

    defaults = {
        "guild_id": guild.id,
        "user_id": user_id if user_id is not None else next_user_id(),
        "role": role,
        "approved_at": None if role == GuildRole.pending else datetime.now(timezone.utc),
    }

    membership = GuildMembership(**{**defaults, **overrides})
    session.add(membership)

    if commit:
        await session.commit()
        await session.refresh(membership)
    else:
        await session.flush()

    return membership


async def create_permission_override(
    session: AsyncSession,
    guild: Guild,
    role: GuildRole,
    permission_key: str,
    enabled: bool,
    commit: bool = True,
) -> GuildPermissionOverride:
    override = GuildPermissionOverride(
        guild_id=guild.id,
        role=role,
        permission_key=permission_key,
        enabled=enabled,
    )
    session.add(override)

    if commit:
        await session.commit()
        await session.refresh(override)
    else:
        await session.flush()

    return override


async def create_event(
    session: AsyncSession,
    guild: Guild | None = None,
    slots: dict[str, tuple[int, int | None]] | None = None,
    commit: bool = True,
    **overrides: Any,
) -> GuildEvent:
    """
    Create an event (or siege, with ``kind=EventKind.siege``) and its role-slots.

    Args:
        slots: role_slot -> (minimum, maximum)

    Example:
        event = await create_event(session, guild=guild, slots={"tank": (1, 2)}, max_attendees=10)
    """
    if guild is None:
        guild = await create_guild(session, commit=commit)

    defaults = {
        "guild_id": guild.id,
        "created_by_user_id": guild.created_by_user_id,
        "kind": EventKind.event,
        "title": "Test Raid",
        "starts_at": datetime.now(timezone.utc) + timedelta(days=1),
    }

    event = GuildEvent(**{**defaults, **overrides})
    session.add(event)
    await session.flush()

    for role_slot, (minimum, maximum) in (slots or {}).items():
        session.add(
            EventRoleSlot(event_id=event.id, role_slot=role_slot, minimum=minimum, maximum=maximum)
        )

    if commit:
        await session.commit()
        await session.refresh(event)
    else:
        await session.flush()

    return event


async def create_roster_entry(
    session: AsyncSession,
    event: GuildEvent,
    user_id: int | None = None,
    role_slot: str | None = None,
    status: str = "attending",
    commit: bool = True,
    **overrides: Any,
) -> RosterEntry:
    defaults = {
        "event_id": event.id,
        "user_id": user_id if user_id is not None else next_user_id(),
        "role_slot": role_slot,
        "status": status,
    }

    entry = RosterEntry(**{**defaults, **overrides})
    session.add(entry)

    if commit:
        await session.commit()
        await session.refresh(entry)
    else:
        await session.flush()

    return entry
