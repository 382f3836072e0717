from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional, Union

from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from guild_planner.core.messages import GuildMessages, PermissionMessages
from guild_planner.models.event import (
    DEFAULT_COMBINED_POOL_SLOTS,
    EventKind,
    EventRoleSlot,
    GuildEvent,
    RosterEntry,
)
from guild_planner.models.guild import Guild, GuildMembership, GuildRole
from guild_planner.models.permission import GuildPermissionOverride, PermissionKey
from guild_planner.repositories.sql import SqlMembershipLookup, SqlOverrideStore
from guild_planner.schemas.permission import DecisionReason, MembershipFact, PermissionDecision
from guild_planner.schemas.roster import RoleSlotRequirement
from guild_planner.services.exceptions import InvariantViolation
from guild_planner.services.ownership import authorize_record_action
from guild_planner.services.permissions import is_known_permission, resolve
from guild_planner.services.roles import can_manage, rank

logger = logging.getLogger(__name__)

MembershipOutcome = Union[GuildMembership, PermissionDecision]
OverrideOutcome = Union[GuildPermissionOverride, PermissionDecision]
EventOutcome = Union[GuildEvent, PermissionDecision]

APPROVABLE_ROLES = frozenset({GuildRole.trial, GuildRole.member})

CREATE_PERMISSION: dict[EventKind, PermissionKey] = {
    EventKind.event: PermissionKey.events_create,
    EventKind.siege: PermissionKey.siege_create_event,
}


async def get_guild(session: AsyncSession, guild_id: int) -> Guild:
    stmt = select(Guild).where(Guild.id == guild_id)
    result = await session.exec(stmt)
    guild = result.one_or_none()
    if not guild:
        raise ValueError(GuildMessages.GUILD_NOT_FOUND)
    return guild


async def get_membership(
    session: AsyncSession,
    *,
    guild_id: int,
    user_id: int,
) -> GuildMembership | None:
    stmt = select(GuildMembership).where(
        GuildMembership.guild_id == guild_id,
        GuildMembership.user_id == user_id,
    )
    result = await session.exec(stmt)
    rows = result.all()
    if len(rows) > 1:
        raise InvariantViolation(f"User {user_id} has {len(rows)} memberships in guild {guild_id}")
    return rows[0] if rows else None


async def list_memberships(session: AsyncSession, *, guild_id: int) -> list[GuildMembership]:
    stmt = (
        select(GuildMembership)
        .where(GuildMembership.guild_id == guild_id)
        .order_by(GuildMembership.joined_at.asc(), GuildMembership.user_id.asc())
    )
    result = await session.exec(stmt)
    return list(result.all())


async def _actor_context(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
) -> tuple[Optional[GuildMembership], Optional[dict[str, bool]]]:
    actor = await get_membership(session, guild_id=guild_id, user_id=actor_id)
    if actor is None:
        return None, None
    overrides = await SqlOverrideStore(session).get_overrides(guild_id, actor.role)
    return actor, overrides


def _deny(reason: DecisionReason, message: str, **context) -> PermissionDecision:
    logger.warning("%s (%s)", message, ", ".join(f"{key}={value}" for key, value in context.items()))
    return PermissionDecision.deny(reason)


async def create_guild(
    session: AsyncSession,
    *,
    name: str,
    creator_id: int,
    description: str | None = None,
) -> Guild:
    now = datetime.now(timezone.utc)
    guild = Guild(
        name=name.strip(),
        description=description.strip() if description and description.strip() else None,
        created_by_user_id=creator_id,
        created_at=now,
        updated_at=now,
    )
    session.add(guild)
    await session.flush()
    session.add(
        GuildMembership(
            guild_id=guild.id,
            user_id=creator_id,
            role=GuildRole.admin,
            is_creator=True,
            approved_at=now,
            joined_at=now,
        )
    )
    await session.flush()
    logger.info("Guild %s created by user %s", guild.id, creator_id)
    return guild


async def apply_for_membership(
    session: AsyncSession,
    *,
    guild_id: int,
    user_id: int,
) -> GuildMembership:
    await get_guild(session, guild_id)
    existing = await get_membership(session, guild_id=guild_id, user_id=user_id)
    if existing is not None:
        raise ValueError(GuildMessages.MEMBERSHIP_EXISTS)
    membership = GuildMembership(guild_id=guild_id, user_id=user_id, role=GuildRole.pending)
    session.add(membership)
    await session.flush()
    logger.info("User %s applied to guild %s", user_id, guild_id)
    return membership


async def approve_membership(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    user_id: int,
    role: GuildRole = GuildRole.member,
) -> MembershipOutcome:
    """Admit a pending applicant as trial or member."""
    if role not in APPROVABLE_ROLES:
        raise ValueError(GuildMessages.APPROVAL_ROLE_INVALID)

    actor, overrides = await _actor_context(session, guild_id=guild_id, actor_id=actor_id)
    if actor is None:
        return _deny(DecisionReason.not_member, GuildMessages.NOT_GUILD_MEMBER, guild=guild_id, user=actor_id)
    if not resolve(actor.role, PermissionKey.recruitment_manage, overrides):
        return _deny(DecisionReason.permission_denied, PermissionMessages.PERMISSION_DENIED, guild=guild_id, user=actor_id)

    membership = await get_membership(session, guild_id=guild_id, user_id=user_id)
    if membership is None:
        return _deny(DecisionReason.not_found, GuildMessages.MEMBERSHIP_NOT_FOUND, guild=guild_id, user=user_id)
    if membership.role != GuildRole.pending:
        raise ValueError(GuildMessages.MEMBERSHIP_NOT_PENDING)
    if not can_manage(actor.role, role):
        return _deny(DecisionReason.hierarchy, GuildMessages.CANNOT_MANAGE_ROLE, guild=guild_id, user=actor_id)

    membership.role = role
    membership.approved_at = datetime.now(timezone.utc)
    session.add(membership)
    await session.flush()
    logger.info("User %s approved into guild %s as %s by %s", user_id, guild_id, role.value, actor_id)
    return membership


async def change_member_role(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    user_id: int,
    role: GuildRole,
) -> MembershipOutcome:
    """Move a member to another role.

    The actor must out-rank both the member's current role and the new one,
    so nobody can promote to or past their own rank. The guild creator's
    role never changes.
    """
    actor, overrides = await _actor_context(session, guild_id=guild_id, actor_id=actor_id)
    if actor is None:
        return _deny(DecisionReason.not_member, GuildMessages.NOT_GUILD_MEMBER, guild=guild_id, user=actor_id)
    if not resolve(actor.role, PermissionKey.settings_edit_roles, overrides):
        return _deny(DecisionReason.permission_denied, PermissionMessages.PERMISSION_DENIED, guild=guild_id, user=actor_id)

    membership = await get_membership(session, guild_id=guild_id, user_id=user_id)
    if membership is None:
        return _deny(DecisionReason.not_found, GuildMessages.MEMBERSHIP_NOT_FOUND, guild=guild_id, user=user_id)
    if membership.is_creator:
        return _deny(DecisionReason.hierarchy, GuildMessages.CANNOT_CHANGE_CREATOR, guild=guild_id, user=user_id)
    if not can_manage(actor.role, membership.role) or not can_manage(actor.role, role):
        return _deny(DecisionReason.hierarchy, GuildMessages.CANNOT_MANAGE_ROLE, guild=guild_id, user=actor_id)

    if membership.role == role:
        return membership
    previous = membership.role
    membership.role = role
    if role == GuildRole.pending:
        membership.approved_at = None
    elif membership.approved_at is None:
        membership.approved_at = datetime.now(timezone.utc)
    session.add(membership)
    await session.flush()
    logger.info(
        "User %s in guild %s moved %s -> %s by %s", user_id, guild_id, previous.value, role.value, actor_id
    )
    return membership


async def remove_member(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    user_id: int,
) -> PermissionDecision:
    """Remove a membership, or reject an application.

    Leaving on your own is always allowed except for the creator. Removing
    someone else needs ``settings_edit_roles`` (``recruitment_manage`` for a
    pending applicant) and a strictly higher rank.
    """
    membership = await get_membership(session, guild_id=guild_id, user_id=user_id)
    if membership is None:
        return _deny(DecisionReason.not_found, GuildMessages.MEMBERSHIP_NOT_FOUND, guild=guild_id, user=user_id)
    if membership.is_creator:
        return _deny(DecisionReason.hierarchy, GuildMessages.CANNOT_CHANGE_CREATOR, guild=guild_id, user=user_id)

    if actor_id != user_id:
        actor, overrides = await _actor_context(session, guild_id=guild_id, actor_id=actor_id)
        if actor is None:
            return _deny(DecisionReason.not_member, GuildMessages.NOT_GUILD_MEMBER, guild=guild_id, user=actor_id)
        needed = (
            PermissionKey.recruitment_manage
            if membership.role == GuildRole.pending
            else PermissionKey.settings_edit_roles
        )
        if not resolve(actor.role, needed, overrides):
            return _deny(DecisionReason.permission_denied, PermissionMessages.PERMISSION_DENIED, guild=guild_id, user=actor_id)
        if not can_manage(actor.role, membership.role):
            return _deny(DecisionReason.hierarchy, GuildMessages.CANNOT_MANAGE_ROLE, guild=guild_id, user=actor_id)

    await session.exec(
        delete(GuildMembership).where(
            GuildMembership.guild_id == guild_id,
            GuildMembership.user_id == user_id,
        )
    )
    await session.flush()
    logger.info("User %s removed from guild %s by %s", user_id, guild_id, actor_id)
    return PermissionDecision.allow()


async def _require_override_admin(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    role: GuildRole,
) -> PermissionDecision:
    actor, overrides = await _actor_context(session, guild_id=guild_id, actor_id=actor_id)
    if actor is None:
        return _deny(DecisionReason.not_member, GuildMessages.NOT_GUILD_MEMBER, guild=guild_id, user=actor_id)
    if rank(actor.role) != rank(GuildRole.admin) or not resolve(
        actor.role, PermissionKey.settings_edit_roles, overrides
    ):
        return _deny(DecisionReason.permission_denied, GuildMessages.ADMIN_REQUIRED, guild=guild_id, user=actor_id)
    if not can_manage(actor.role, role):
        return _deny(DecisionReason.hierarchy, GuildMessages.CANNOT_MANAGE_ROLE, guild=guild_id, user=actor_id)
    return PermissionDecision.allow()


async def list_permission_overrides(
    session: AsyncSession,
    *,
    guild_id: int,
    role: GuildRole | None = None,
) -> list[GuildPermissionOverride]:
    stmt = select(GuildPermissionOverride).where(GuildPermissionOverride.guild_id == guild_id)
    if role is not None:
        stmt = stmt.where(GuildPermissionOverride.role == role)
    stmt = stmt.order_by(GuildPermissionOverride.role, GuildPermissionOverride.permission_key)
    result = await session.exec(stmt)
    return list(result.all())


async def set_permission_override(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    role: GuildRole,
    permission_key: PermissionKey | str,
    enabled: bool,
) -> OverrideOutcome:
    key = permission_key.value if isinstance(permission_key, PermissionKey) else permission_key
    if not is_known_permission(key):
        raise ValueError(PermissionMessages.UNKNOWN_PERMISSION)
    decision = await _require_override_admin(session, guild_id=guild_id, actor_id=actor_id, role=role)
    if not decision.allowed:
        return decision

    stmt = select(GuildPermissionOverride).where(
        GuildPermissionOverride.guild_id == guild_id,
        GuildPermissionOverride.role == role,
        GuildPermissionOverride.permission_key == key,
    )
    result = await session.exec(stmt)
    override = result.one_or_none()
    now = datetime.now(timezone.utc)
    if override is None:
        override = GuildPermissionOverride(
            guild_id=guild_id,
            role=role,
            permission_key=key,
            enabled=enabled,
            updated_at=now,
        )
    else:
        override.enabled = enabled
        override.updated_at = now
    session.add(override)
    await session.flush()
    logger.info(
        "Override set guild=%s role=%s permission=%s enabled=%s by=%s",
        guild_id,
        role.value,
        key,
        enabled,
        actor_id,
    )
    return override


async def clear_permission_override(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    role: GuildRole,
    permission_key: PermissionKey | str,
) -> PermissionDecision:
    """Drop an override so the permission falls back to its default grant."""
    key = permission_key.value if isinstance(permission_key, PermissionKey) else permission_key
    decision = await _require_override_admin(session, guild_id=guild_id, actor_id=actor_id, role=role)
    if not decision.allowed:
        return decision
    await session.exec(
        delete(GuildPermissionOverride).where(
            GuildPermissionOverride.guild_id == guild_id,
            GuildPermissionOverride.role == role,
            GuildPermissionOverride.permission_key == key,
        )
    )
    await session.flush()
    logger.info("Override cleared guild=%s role=%s permission=%s by=%s", guild_id, role.value, key, actor_id)
    return decision


async def create_event(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    title: str,
    starts_at: datetime,
    kind: EventKind = EventKind.event,
    description: str | None = None,
    ends_at: datetime | None = None,
    slots: dict[str, RoleSlotRequirement] | None = None,
    max_attendees: int | None = None,
    combined_pool_max: int | None = None,
    combined_pool_slots: list[str] | None = None,
) -> EventOutcome:
    """Schedule an event or siege with its role-slot requirements.

    Passing ``combined_pool_max`` or ``combined_pool_slots`` enables the
    combined pool; the pooled slots default to ranged and melee DPS.
    """
    kind = EventKind(kind)
    actor, overrides = await _actor_context(session, guild_id=guild_id, actor_id=actor_id)
    if actor is None:
        return _deny(DecisionReason.not_member, GuildMessages.NOT_GUILD_MEMBER, guild=guild_id, user=actor_id)
    if not resolve(actor.role, CREATE_PERMISSION[kind], overrides):
        return _deny(DecisionReason.permission_denied, PermissionMessages.PERMISSION_DENIED, guild=guild_id, user=actor_id)

    pool_enabled = combined_pool_max is not None or combined_pool_slots is not None
    pool_slots = list(combined_pool_slots or DEFAULT_COMBINED_POOL_SLOTS)
    if pool_enabled and len(set(pool_slots)) != 2:
        raise ValueError("A combined pool merges exactly two role-slots")

    now = datetime.now(timezone.utc)
    event = GuildEvent(
        guild_id=guild_id,
        created_by_user_id=actor_id,
        kind=kind,
        title=title.strip(),
        description=description,
        starts_at=starts_at,
        ends_at=ends_at,
        max_attendees=max_attendees,
        combined_pool_enabled=pool_enabled,
        combined_pool_max=combined_pool_max,
        combined_pool_slots=pool_slots,
        created_at=now,
        updated_at=now,
    )
    session.add(event)
    await session.flush()
    for role_slot, requirement in (slots or {}).items():
        session.add(
            EventRoleSlot(
                event_id=event.id,
                role_slot=role_slot,
                minimum=requirement.minimum,
                maximum=requirement.maximum,
            )
        )
    await session.flush()
    logger.info("%s %s created in guild %s by %s", kind.value.capitalize(), event.id, guild_id, actor_id)
    return event


async def _get_event(session: AsyncSession, *, guild_id: int, event_id: int) -> GuildEvent | None:
    stmt = select(GuildEvent).where(GuildEvent.id == event_id, GuildEvent.guild_id == guild_id)
    result = await session.exec(stmt)
    return result.one_or_none()


async def cancel_event(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    event_id: int,
) -> EventOutcome:
    """Close an event to new signups. Existing entries stay."""
    event = await _get_event(session, guild_id=guild_id, event_id=event_id)
    actor, overrides = await _actor_context(session, guild_id=guild_id, actor_id=actor_id)
    decision = await authorize_record_action(
        SqlMembershipLookup(session),
        guild_id=guild_id,
        actor_id=actor_id,
        record=event,
        own_permission=PermissionKey.events_edit_own,
        any_permission=PermissionKey.events_edit_any,
        overrides=overrides,
        actor=MembershipFact.model_validate(actor) if actor else None,
        owner_attribute="created_by_user_id",
    )
    if not decision.allowed:
        return _deny(decision.reason, "Event action denied", guild=guild_id, event=event_id, user=actor_id)
    if not event.is_cancelled:
        event.is_cancelled = True
        event.updated_at = datetime.now(timezone.utc)
        session.add(event)
        await session.flush()
        logger.info("Event %s cancelled by %s", event.id, actor_id)
    return event


async def delete_event(
    session: AsyncSession,
    *,
    guild_id: int,
    actor_id: int,
    event_id: int,
) -> PermissionDecision:
    event = await _get_event(session, guild_id=guild_id, event_id=event_id)
    actor, overrides = await _actor_context(session, guild_id=guild_id, actor_id=actor_id)
    decision = await authorize_record_action(
        SqlMembershipLookup(session),
        guild_id=guild_id,
        actor_id=actor_id,
        record=event,
        own_permission=PermissionKey.events_delete_own,
        any_permission=PermissionKey.events_delete_any,
        overrides=overrides,
        actor=MembershipFact.model_validate(actor) if actor else None,
        owner_attribute="created_by_user_id",
    )
    if not decision.allowed:
        return _deny(decision.reason, "Event action denied", guild=guild_id, event=event_id, user=actor_id)
    await session.exec(delete(RosterEntry).where(RosterEntry.event_id == event_id))
    await session.exec(delete(EventRoleSlot).where(EventRoleSlot.event_id == event_id))
    await session.exec(delete(GuildEvent).where(GuildEvent.id == event_id))
    await session.flush()
    logger.info("Event %s deleted by %s", event_id, actor_id)
    return decision


async def delete_guild(session: AsyncSession, *, guild: Guild, actor_id: int) -> PermissionDecision:
    """Delete a guild and everything scoped to it. Admins with settings_edit only."""
    actor, overrides = await _actor_context(session, guild_id=guild.id, actor_id=actor_id)
    if actor is None:
        return _deny(DecisionReason.not_member, GuildMessages.NOT_GUILD_MEMBER, guild=guild.id, user=actor_id)
    if rank(actor.role) != rank(GuildRole.admin) or not resolve(
        actor.role, PermissionKey.settings_edit, overrides
    ):
        return _deny(DecisionReason.permission_denied, GuildMessages.ADMIN_REQUIRED, guild=guild.id, user=actor_id)

    event_ids = [
        row for row in (await session.exec(select(GuildEvent.id).where(GuildEvent.guild_id == guild.id))).all()
    ]
    if event_ids:
        await session.exec(delete(RosterEntry).where(RosterEntry.event_id.in_(event_ids)))
        await session.exec(delete(EventRoleSlot).where(EventRoleSlot.event_id.in_(event_ids)))
        await session.exec(delete(GuildEvent).where(GuildEvent.id.in_(event_ids)))

    await session.exec(delete(GuildPermissionOverride).where(GuildPermissionOverride.guild_id == guild.id))
    await session.exec(delete(GuildMembership).where(GuildMembership.guild_id == guild.id))
    guild_id = guild.id
    await session.delete(guild)
    await session.flush()
    logger.info("Guild %s deleted by %s", guild_id, actor_id)
    return PermissionDecision.allow()
