from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from guild_planner.models.event import EventKind


class RoleSlotRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    minimum: int = Field(default=0, ge=0)
    # None means unbounded
    maximum: Optional[int] = Field(default=None, ge=0)


class CombinedPool(BaseModel):
    """Two role-slots sharing one maximum in place of their own maxima."""

    model_config = ConfigDict(frozen=True)

    slots: frozenset[str]
    maximum: Optional[int] = Field(default=None, ge=0)

    @field_validator("slots")
    @classmethod
    def require_two_slots(cls, value: frozenset[str]) -> frozenset[str]:
        if len(value) != 2:
            raise ValueError("A combined pool merges exactly two role-slots")
        return value


class SignupRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    slots: dict[str, RoleSlotRequirement] = Field(default_factory=dict)
    combined_pool: Optional[CombinedPool] = None
    max_attendees: Optional[int] = Field(default=None, ge=0)

    def slot(self, role_slot: str) -> RoleSlotRequirement:
        return self.slots.get(role_slot) or RoleSlotRequirement()

    def pool_for(self, role_slot: str | None) -> CombinedPool | None:
        if role_slot is None or self.combined_pool is None:
            return None
        if role_slot in self.combined_pool.slots:
            return self.combined_pool
        return None


class RosterInstance(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    guild_id: int
    kind: EventKind
    is_cancelled: bool = False
    created_by_user_id: Optional[int] = None
    requirement: SignupRequirement = Field(default_factory=SignupRequirement)


class CapacityScope(str, Enum):
    role_slot = "role_slot"
    pool = "pool"
    instance = "instance"


class CapacityError(BaseModel):
    model_config = ConfigDict(frozen=True)

    role_slot: Optional[str]
    limit: int
    current: int
    scope: CapacityScope = CapacityScope.role_slot


class SlotCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    role_slot: str
    counts: dict[str, int]
    occupancy: int
    minimum: int
    maximum: Optional[int]
    pooled: bool = False
    minimum_met: bool
    at_max: bool


class PoolCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    slots: list[str]
    occupancy: int
    maximum: Optional[int]
    at_max: bool


class AggregateCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    slots: dict[str, SlotCounts]
    pool: Optional[PoolCounts] = None
    totals: dict[str, int]
    occupancy: int
    max_attendees: Optional[int]
    is_full: bool


class RosterEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    event_id: int
    user_id: int
    character_id: Optional[int] = None
    role_slot: Optional[str] = None
    status: str
    note: Optional[str] = None
    responded_at: datetime
    confirmed_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None


class SignupResult(BaseModel):
    entry: RosterEntryRead
    counts: AggregateCounts


class WithdrawResult(BaseModel):
    removed: bool
    counts: AggregateCounts
