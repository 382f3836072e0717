from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import AsyncIterator, Optional, Union

from guild_planner.core.config import Settings, get_settings
from guild_planner.models.event import EventKind, RosterEntry, RsvpStatus, SiegeStatus
from guild_planner.models.permission import PermissionKey
from guild_planner.repositories.interfaces import (
    InstanceLookup,
    MembershipLookup,
    OverrideStore,
    RosterStore,
)
from guild_planner.schemas.permission import DecisionReason, MembershipFact, PermissionDecision
from guild_planner.schemas.roster import (
    AggregateCounts,
    CapacityError,
    RosterEntryRead,
    RosterInstance,
    SignupResult,
    WithdrawResult,
)
from guild_planner.services import roster as engine
from guild_planner.services.ownership import authorize_record_action
from guild_planner.services.permissions import resolve_any

logger = logging.getLogger(__name__)

SignupOutcome = Union[SignupResult, PermissionDecision, CapacityError]
WithdrawOutcome = Union[WithdrawResult, PermissionDecision]
CountsOutcome = Union[AggregateCounts, PermissionDecision]

# (own, any) permission pairs per instance kind.
ENTRY_PERMISSIONS: dict[EventKind, tuple[PermissionKey, PermissionKey]] = {
    EventKind.event: (PermissionKey.events_rsvp, PermissionKey.events_edit_any),
    EventKind.siege: (PermissionKey.events_rsvp, PermissionKey.siege_edit_rosters),
}
CHECK_IN_PERMISSIONS: tuple[PermissionKey, PermissionKey] = (
    PermissionKey.siege_edit_rosters,
    PermissionKey.siege_edit_rosters,
)

DEFAULT_STATUS: dict[EventKind, str] = {
    EventKind.event: RsvpStatus.attending.value,
    EventKind.siege: SiegeStatus.signed_up.value,
}


class _Owner:
    """Stand-in record for the gate: the entry being written belongs to user_id."""

    __slots__ = ("user_id",)

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id


class RosterService:
    """Signups, withdrawals and siege check-ins against one store set.

    Every operation runs the same pipeline and stops at the first failure:
    instance lookup, actor membership, permission, ownership gate, closed
    instance, capacity, write, refreshed counts. Failures come back as
    ``PermissionDecision`` or ``CapacityError`` values.
    """

    def __init__(
        self,
        *,
        memberships: MembershipLookup,
        overrides: OverrideStore,
        rosters: RosterStore,
        instances: InstanceLookup,
        settings: Optional[Settings] = None,
    ) -> None:
        self.memberships = memberships
        self.overrides = overrides
        self.rosters = rosters
        self.instances = instances
        self.settings = settings or get_settings()
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def _write_guard(self, instance_id: int) -> AsyncIterator[None]:
        if self.settings.ROSTER_SERIALIZE_WRITES:
            async with self._locks[instance_id]:
                yield
        else:
            yield

    async def _authorize(
        self,
        instance: RosterInstance,
        actor_id: int,
        target_user_id: int,
        permissions: tuple[PermissionKey, PermissionKey],
    ) -> PermissionDecision:
        actor: Optional[MembershipFact] = await self.memberships.get_membership(
            instance.guild_id, actor_id
        )
        if actor is None:
            logger.warning(
                "Roster action denied: user %s is not a member of guild %s",
                actor_id,
                instance.guild_id,
            )
            return PermissionDecision.deny(DecisionReason.not_member)

        overrides = await self.overrides.get_overrides(instance.guild_id, actor.role)
        own_permission, any_permission = permissions
        if not resolve_any(actor.role, [own_permission, any_permission], overrides):
            logger.warning(
                "Roster action denied: role %s lacks %s/%s in guild %s",
                actor.role.value,
                own_permission.value,
                any_permission.value,
                instance.guild_id,
            )
            return PermissionDecision.deny(DecisionReason.permission_denied)

        decision = await authorize_record_action(
            self.memberships,
            guild_id=instance.guild_id,
            actor_id=actor_id,
            record=_Owner(target_user_id),
            own_permission=own_permission,
            any_permission=any_permission,
            overrides=overrides,
            actor=actor,
            capped_categories=self.settings.HIERARCHY_CAPPED_CATEGORIES,
        )
        if not decision.allowed:
            logger.warning(
                "Roster action denied on instance %s: actor=%s target=%s reason=%s",
                instance.id,
                actor_id,
                target_user_id,
                decision.reason.value if decision.reason else None,
            )
        return decision

    async def _load(self, instance_id: int) -> Optional[RosterInstance]:
        instance = await self.instances.get_instance(instance_id)
        if instance is None:
            logger.warning("Roster action on missing instance %s", instance_id)
        return instance

    async def signup(
        self,
        instance_id: int,
        actor_id: int,
        role_slot: Optional[str],
        status: Optional[str] = None,
        *,
        target_user_id: Optional[int] = None,
        character_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> SignupOutcome:
        """Create or replace the target's entry on an instance.

        Siege entries always (re)enter as ``signed_up``; confirming and
        checking in go through :meth:`update_siege_status`.
        """
        instance = await self._load(instance_id)
        if instance is None:
            return PermissionDecision.deny(DecisionReason.not_found)

        kind = instance.kind
        status = status or DEFAULT_STATUS[kind]
        engine.validate_status(kind, status)
        if kind == EventKind.siege and status != SiegeStatus.signed_up.value:
            raise ValueError("Siege signups always start as signed_up")
        engine.validate_role_slot(kind, instance.requirement, role_slot)

        target = target_user_id if target_user_id is not None else actor_id
        decision = await self._authorize(instance, actor_id, target, ENTRY_PERMISSIONS[kind])
        if not decision.allowed:
            return decision

        if instance.is_cancelled:
            logger.warning("Signup refused: instance %s is cancelled", instance.id)
            return PermissionDecision.deny(DecisionReason.instance_closed)

        async with self._write_guard(instance.id):
            entries = await self.rosters.list_entries(instance.id)
            error = engine.check_capacity(
                instance.requirement,
                entries,
                kind,
                user_id=target,
                role_slot=role_slot,
                status=status,
            )
            if error is not None:
                logger.warning(
                    "Signup refused on instance %s: %s %s at %s/%s",
                    instance.id,
                    error.scope.value,
                    error.role_slot,
                    error.current,
                    error.limit,
                )
                return error

            now = datetime.now(timezone.utc)
            prior = engine.find_entry(entries, target)
            keep_progress = (
                kind == EventKind.siege and prior is not None and prior.role_slot == role_slot
            )
            if keep_progress:
                entry = engine.clone_entry(
                    prior,
                    character_id=character_id,
                    note=note,
                    responded_at=now,
                )
            else:
                entry = RosterEntry(
                    event_id=instance.id,
                    user_id=target,
                    character_id=character_id,
                    role_slot=role_slot,
                    status=status,
                    note=note,
                    responded_at=now,
                )
            saved = await self.rosters.upsert_entry(entry)

        logger.info(
            "Roster entry saved instance=%s user=%s slot=%s status=%s by=%s",
            instance.id,
            target,
            saved.role_slot,
            saved.status,
            actor_id,
        )
        counts = engine.aggregate_counts(
            instance.requirement, engine.replace_entry(entries, saved), kind
        )
        return SignupResult(entry=RosterEntryRead.model_validate(saved), counts=counts)

    async def withdraw(
        self,
        instance_id: int,
        actor_id: int,
        target_user_id: Optional[int] = None,
    ) -> WithdrawOutcome:
        """Remove the target's entry. Withdrawing twice is a no-op."""
        instance = await self._load(instance_id)
        if instance is None:
            return PermissionDecision.deny(DecisionReason.not_found)

        target = target_user_id if target_user_id is not None else actor_id
        decision = await self._authorize(
            instance, actor_id, target, ENTRY_PERMISSIONS[instance.kind]
        )
        if not decision.allowed:
            return decision

        async with self._write_guard(instance.id):
            entries = await self.rosters.list_entries(instance.id)
            removed = False
            if engine.find_entry(entries, target) is not None:
                removed = await self.rosters.delete_entry(instance.id, target)

        if removed:
            logger.info(
                "Roster entry removed instance=%s user=%s by=%s", instance.id, target, actor_id
            )
        counts = engine.aggregate_counts(
            instance.requirement, engine.remove_entry(entries, target), instance.kind
        )
        return WithdrawResult(removed=removed, counts=counts)

    async def update_siege_status(
        self,
        instance_id: int,
        actor_id: int,
        target_user_id: int,
        status: str,
    ) -> SignupOutcome:
        """Move a siege entry forward: signed_up, then confirmed, then checked_in."""
        instance = await self._load(instance_id)
        if instance is None:
            return PermissionDecision.deny(DecisionReason.not_found)
        if instance.kind != EventKind.siege:
            raise ValueError("Status transitions only apply to sieges")
        engine.validate_status(instance.kind, status)

        permissions = (
            CHECK_IN_PERMISSIONS
            if status == SiegeStatus.checked_in.value
            else ENTRY_PERMISSIONS[EventKind.siege]
        )
        async with self._write_guard(instance.id):
            entries = await self.rosters.list_entries(instance.id)
            entry = engine.find_entry(entries, target_user_id)
            if entry is None:
                return PermissionDecision.deny(DecisionReason.not_found)

            decision = await self._authorize(instance, actor_id, target_user_id, permissions)
            if not decision.allowed:
                return decision

            if instance.is_cancelled:
                logger.warning("Status change refused: instance %s is cancelled", instance.id)
                return PermissionDecision.deny(DecisionReason.instance_closed)

            if not engine.can_transition(entry.status, status):
                logger.warning(
                    "Status change refused on instance %s: %s -> %s",
                    instance.id,
                    entry.status,
                    status,
                )
                return PermissionDecision.deny(DecisionReason.invalid_transition)

            updated = engine.apply_siege_status(entry, status, datetime.now(timezone.utc))
            saved = await self.rosters.upsert_entry(updated)

        logger.info(
            "Siege status updated instance=%s user=%s %s -> %s by=%s",
            instance.id,
            target_user_id,
            entry.status,
            saved.status,
            actor_id,
        )
        counts = engine.aggregate_counts(
            instance.requirement, engine.replace_entry(entries, saved), instance.kind
        )
        return SignupResult(entry=RosterEntryRead.model_validate(saved), counts=counts)

    async def counts(self, instance_id: int) -> CountsOutcome:
        instance = await self._load(instance_id)
        if instance is None:
            return PermissionDecision.deny(DecisionReason.not_found)
        entries = await self.rosters.list_entries(instance.id)
        return engine.aggregate_counts(instance.requirement, entries, instance.kind)
