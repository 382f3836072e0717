"""Capacity arithmetic for event and siege rosters.

Everything here works on an in-memory snapshot of an instance's entries and
never touches storage. An actor holds at most one entry per instance, so
before comparing a count to a limit the actor's own counted entry is taken
out of the bucket it sits in: changing your answer is never blocked by your
previous answer.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from guild_planner.models.event import (
    EventKind,
    EventRole,
    RosterEntry,
    RsvpStatus,
    SiegeRole,
    SiegeStatus,
)
from guild_planner.schemas.roster import (
    AggregateCounts,
    CapacityError,
    CapacityScope,
    PoolCounts,
    SignupRequirement,
    SlotCounts,
)
from guild_planner.services.exceptions import InvariantViolation

STATUSES: dict[EventKind, tuple[str, ...]] = {
    EventKind.event: tuple(status.value for status in RsvpStatus),
    EventKind.siege: tuple(status.value for status in SiegeStatus),
}

# Statuses that occupy a seat. Declined never does.
COUNTED_STATUSES: dict[EventKind, frozenset[str]] = {
    EventKind.event: frozenset({RsvpStatus.attending.value, RsvpStatus.maybe.value}),
    EventKind.siege: frozenset(STATUSES[EventKind.siege]),
}

# Statuses whose entry is refused when the seat is full. Maybe still
# occupies a seat but never needs a free one.
CAPACITY_CHECKED: dict[EventKind, frozenset[str]] = {
    EventKind.event: frozenset({RsvpStatus.attending.value}),
    EventKind.siege: frozenset({SiegeStatus.signed_up.value}),
}

ROLE_SLOTS: dict[EventKind, tuple[str, ...]] = {
    EventKind.event: tuple(role.value for role in EventRole),
    EventKind.siege: tuple(role.value for role in SiegeRole),
}

SIEGE_ORDER: tuple[str, ...] = STATUSES[EventKind.siege]


def _kind(kind: EventKind | str) -> EventKind:
    return EventKind(kind)


def is_counted(kind: EventKind | str, status: str) -> bool:
    return status in COUNTED_STATUSES[_kind(kind)]


def is_capacity_checked(kind: EventKind | str, status: str) -> bool:
    return status in CAPACITY_CHECKED[_kind(kind)]


def validate_status(kind: EventKind | str, status: str) -> str:
    if status not in STATUSES[_kind(kind)]:
        raise ValueError(f"Invalid status {status!r} for {_kind(kind).value}")
    return status


def validate_role_slot(
    kind: EventKind | str,
    requirement: SignupRequirement,
    role_slot: Optional[str],
) -> Optional[str]:
    """Accept the kind's known slots plus any slot the instance declares."""
    if role_slot is None:
        return None
    if role_slot in ROLE_SLOTS[_kind(kind)] or role_slot in requirement.slots:
        return role_slot
    raise ValueError(f"Unknown role slot {role_slot!r} for {_kind(kind).value}")


def find_entry(entries: Iterable[RosterEntry], user_id: int) -> Optional[RosterEntry]:
    found = [entry for entry in entries if entry.user_id == user_id]
    if len(found) > 1:
        raise InvariantViolation(f"User {user_id} has {len(found)} entries on one roster")
    return found[0] if found else None


def occupancy(
    entries: Iterable[RosterEntry],
    kind: EventKind | str,
    role_slots: Optional[Iterable[str]] = None,
    *,
    exclude_user_id: Optional[int] = None,
) -> int:
    """Counted entries, optionally limited to a set of role-slots.

    ``role_slots=None`` counts the whole instance, slotless entries included.
    """
    counted = COUNTED_STATUSES[_kind(kind)]
    wanted = set(role_slots) if role_slots is not None else None
    total = 0
    for entry in entries:
        if entry.status not in counted:
            continue
        if exclude_user_id is not None and entry.user_id == exclude_user_id:
            continue
        if wanted is not None and entry.role_slot not in wanted:
            continue
        total += 1
    return total


def slot_limit(
    requirement: SignupRequirement,
    role_slot: str,
) -> tuple[Optional[int], frozenset[str], CapacityScope]:
    """The maximum governing ``role_slot`` and the bucket it applies to.

    A pooled slot is governed only by the pool maximum; its own maximum is
    ignored while the pool is enabled.
    """
    pool = requirement.pool_for(role_slot)
    if pool is not None:
        return pool.maximum, pool.slots, CapacityScope.pool
    return requirement.slot(role_slot).maximum, frozenset({role_slot}), CapacityScope.role_slot


def is_minimum_met(
    requirement: SignupRequirement,
    entries: Iterable[RosterEntry],
    kind: EventKind | str,
    role_slot: str,
) -> bool:
    minimum = requirement.slot(role_slot).minimum
    if minimum == 0:
        return True
    return occupancy(entries, kind, [role_slot]) >= minimum


def is_at_max(
    requirement: SignupRequirement,
    entries: Iterable[RosterEntry],
    kind: EventKind | str,
    role_slot: str,
) -> bool:
    limit, bucket, _ = slot_limit(requirement, role_slot)
    if limit is None:
        return False
    return occupancy(entries, kind, bucket) >= limit


def is_instance_full(
    requirement: SignupRequirement,
    entries: Iterable[RosterEntry],
    kind: EventKind | str,
) -> bool:
    if requirement.max_attendees is None:
        return False
    return occupancy(entries, kind) >= requirement.max_attendees


def check_capacity(
    requirement: SignupRequirement,
    entries: Sequence[RosterEntry],
    kind: EventKind | str,
    *,
    user_id: int,
    role_slot: Optional[str],
    status: str,
) -> Optional[CapacityError]:
    """Would writing this answer overflow a limit? None means it fits.

    Only attending (signed_up for sieges) is checked. The slot or pool limit is checked
    before the instance limit; the first violation is returned.
    """
    if not is_capacity_checked(kind, status):
        return None

    prior = find_entry(entries, user_id)
    prior_counted = prior is not None and is_counted(kind, prior.status)

    if role_slot is not None:
        limit, bucket, scope = slot_limit(requirement, role_slot)
        if limit is not None:
            current = occupancy(entries, kind, bucket)
            if prior_counted and prior.role_slot in bucket:
                current -= 1
            if current >= limit:
                return CapacityError(role_slot=role_slot, limit=limit, current=current, scope=scope)

    if requirement.max_attendees is not None:
        current = occupancy(entries, kind)
        if prior_counted:
            current -= 1
        if current >= requirement.max_attendees:
            return CapacityError(
                role_slot=role_slot,
                limit=requirement.max_attendees,
                current=current,
                scope=CapacityScope.instance,
            )
    return None


def can_transition(current: str, target: str) -> bool:
    """Siege entries move one step forward at a time; staying put is a no-op."""
    if current not in SIEGE_ORDER or target not in SIEGE_ORDER:
        return False
    return SIEGE_ORDER.index(target) - SIEGE_ORDER.index(current) in (0, 1)


def apply_siege_status(entry: RosterEntry, status: str, now: datetime) -> RosterEntry:
    """Copy of ``entry`` moved to ``status``, stamping the state it enters."""
    updated = clone_entry(entry)
    if status == entry.status:
        return updated
    updated.status = status
    if status == SiegeStatus.confirmed.value and updated.confirmed_at is None:
        updated.confirmed_at = now
    if status == SiegeStatus.checked_in.value and updated.checked_in_at is None:
        updated.checked_in_at = now
    return updated


def clone_entry(entry: RosterEntry, **changes) -> RosterEntry:
    data = {
        "id": entry.id,
        "event_id": entry.event_id,
        "user_id": entry.user_id,
        "character_id": entry.character_id,
        "role_slot": entry.role_slot,
        "status": entry.status,
        "note": entry.note,
        "responded_at": entry.responded_at,
        "confirmed_at": entry.confirmed_at,
        "checked_in_at": entry.checked_in_at,
    }
    data.update(changes)
    return RosterEntry(**data)


def replace_entry(entries: Iterable[RosterEntry], entry: RosterEntry) -> list[RosterEntry]:
    """Snapshot with the user's entry swapped for ``entry``."""
    kept = [existing for existing in entries if existing.user_id != entry.user_id]
    kept.append(entry)
    return kept


def remove_entry(entries: Iterable[RosterEntry], user_id: int) -> list[RosterEntry]:
    return [existing for existing in entries if existing.user_id != user_id]


def aggregate_counts(
    requirement: SignupRequirement,
    entries: Sequence[RosterEntry],
    kind: EventKind | str,
) -> AggregateCounts:
    kind = _kind(kind)
    statuses = STATUSES[kind]

    slot_names: list[str] = list(requirement.slots)
    for entry in entries:
        if entry.role_slot is not None and entry.role_slot not in slot_names:
            slot_names.append(entry.role_slot)
    pool = requirement.combined_pool
    if pool is not None:
        for name in sorted(pool.slots):
            if name not in slot_names:
                slot_names.append(name)

    slots: dict[str, SlotCounts] = {}
    for name in slot_names:
        counts = {status: 0 for status in statuses}
        for entry in entries:
            if entry.role_slot == name and entry.status in counts:
                counts[entry.status] += 1
        slot_requirement = requirement.slot(name)
        limit, _, scope = slot_limit(requirement, name)
        slots[name] = SlotCounts(
            role_slot=name,
            counts=counts,
            occupancy=occupancy(entries, kind, [name]),
            minimum=slot_requirement.minimum,
            maximum=limit,
            pooled=scope == CapacityScope.pool,
            minimum_met=is_minimum_met(requirement, entries, kind, name),
            at_max=is_at_max(requirement, entries, kind, name),
        )

    pool_counts = None
    if pool is not None:
        pool_occupancy = occupancy(entries, kind, pool.slots)
        pool_counts = PoolCounts(
            slots=sorted(pool.slots),
            occupancy=pool_occupancy,
            maximum=pool.maximum,
            at_max=pool.maximum is not None and pool_occupancy >= pool.maximum,
        )

    totals = {status: 0 for status in statuses}
    for entry in entries:
        if entry.status in totals:
            totals[entry.status] += 1

    return AggregateCounts(
        slots=slots,
        pool=pool_counts,
        totals=totals,
        occupancy=occupancy(entries, kind),
        max_attendees=requirement.max_attendees,
        is_full=is_instance_full(requirement, entries, kind),
    )
