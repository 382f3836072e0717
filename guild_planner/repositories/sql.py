from __future__ import annotations

from typing import Optional

from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from guild_planner.models.event import EventRoleSlot, GuildEvent, RosterEntry
from guild_planner.models.guild import GuildMembership, GuildRole
from guild_planner.models.permission import GuildPermissionOverride
from guild_planner.repositories.interfaces import (
    InstanceLookup,
    MembershipLookup,
    OverrideStore,
    RosterStore,
)
from guild_planner.schemas.permission import MembershipFact
from guild_planner.schemas.roster import (
    CombinedPool,
    RoleSlotRequirement,
    RosterInstance,
    SignupRequirement,
)
from guild_planner.services.exceptions import InvariantViolation
from guild_planner.services.permissions import validate_overrides

# Writes flush only; the session owner decides when to commit.


class SqlMembershipLookup(MembershipLookup):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_membership(self, guild_id: int, user_id: int) -> Optional[MembershipFact]:
        stmt = select(GuildMembership).where(
            GuildMembership.guild_id == guild_id,
            GuildMembership.user_id == user_id,
        )
        result = await self.session.exec(stmt)
        rows = result.all()
        if len(rows) > 1:
            raise InvariantViolation(
                f"User {user_id} has {len(rows)} memberships in guild {guild_id}"
            )
        if not rows:
            return None
        return MembershipFact.model_validate(rows[0])


class SqlOverrideStore(OverrideStore):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_overrides(self, guild_id: int, role: GuildRole) -> Optional[dict[str, bool]]:
        stmt = select(GuildPermissionOverride).where(
            GuildPermissionOverride.guild_id == guild_id,
            GuildPermissionOverride.role == role,
        )
        result = await self.session.exec(stmt)
        rows = result.all()
        if not rows:
            return None
        return validate_overrides({row.permission_key: row.enabled for row in rows})


class SqlRosterStore(RosterStore):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_entries(self, instance_id: int) -> list[RosterEntry]:
        stmt = (
            select(RosterEntry)
            .where(RosterEntry.event_id == instance_id)
            .order_by(RosterEntry.responded_at.asc(), RosterEntry.id.asc())
        )
        result = await self.session.exec(stmt)
        entries = list(result.all())
        seen: set[int] = set()
        for entry in entries:
            if entry.user_id in seen:
                raise InvariantViolation(
                    f"User {entry.user_id} has more than one roster entry on event {instance_id}"
                )
            seen.add(entry.user_id)
        return entries

    async def upsert_entry(self, entry: RosterEntry) -> RosterEntry:
        stmt = select(RosterEntry).where(
            RosterEntry.event_id == entry.event_id,
            RosterEntry.user_id == entry.user_id,
        )
        result = await self.session.exec(stmt)
        existing = result.one_or_none()
        if existing is None:
            row = RosterEntry(
                event_id=entry.event_id,
                user_id=entry.user_id,
                character_id=entry.character_id,
                role_slot=entry.role_slot,
                status=entry.status,
                note=entry.note,
                responded_at=entry.responded_at,
                confirmed_at=entry.confirmed_at,
                checked_in_at=entry.checked_in_at,
            )
            self.session.add(row)
        else:
            row = existing
            row.character_id = entry.character_id
            row.role_slot = entry.role_slot
            row.status = entry.status
            row.note = entry.note
            row.responded_at = entry.responded_at
            row.confirmed_at = entry.confirmed_at
            row.checked_in_at = entry.checked_in_at
            self.session.add(row)
        await self.session.flush()
        return row

    async def delete_entry(self, instance_id: int, user_id: int) -> bool:
        result = await self.session.exec(
            delete(RosterEntry).where(
                RosterEntry.event_id == instance_id,
                RosterEntry.user_id == user_id,
            )
        )
        await self.session.flush()
        return bool(result.rowcount)


class SqlInstanceLookup(InstanceLookup):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_instance(self, instance_id: int) -> Optional[RosterInstance]:
        result = await self.session.exec(select(GuildEvent).where(GuildEvent.id == instance_id))
        event = result.one_or_none()
        if event is None:
            return None
        slot_result = await self.session.exec(
            select(EventRoleSlot).where(EventRoleSlot.event_id == instance_id)
        )
        slots = {
            slot.role_slot: RoleSlotRequirement(minimum=slot.minimum, maximum=slot.maximum)
            for slot in slot_result.all()
        }
        pool = None
        if event.combined_pool_enabled:
            pool = CombinedPool(
                slots=frozenset(event.combined_pool_slots),
                maximum=event.combined_pool_max,
            )
        return RosterInstance(
            id=event.id,
            guild_id=event.guild_id,
            kind=event.kind,
            is_cancelled=event.is_cancelled,
            created_by_user_id=event.created_by_user_id,
            requirement=SignupRequirement(
                slots=slots,
                combined_pool=pool,
                max_attendees=event.max_attendees,
            ),
        )
