from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from guild_planner.models.guild import GuildRole
from guild_planner.models.permission import PermissionCategory


class DecisionReason(str, Enum):
    not_member = "not_member"
    not_found = "not_found"
    permission_denied = "permission_denied"
    hierarchy = "hierarchy"
    unknown_target = "unknown_target"
    invalid_transition = "invalid_transition"
    instance_closed = "instance_closed"


class PermissionDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: Optional[DecisionReason] = None

    @classmethod
    def allow(cls) -> PermissionDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DecisionReason) -> PermissionDecision:
        return cls(allowed=False, reason=reason)


class MembershipFact(BaseModel):
    """What the engine needs to know about one user's place in one guild."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    role: GuildRole
    is_creator: bool = False
    approved_at: Optional[datetime] = None


class EffectivePermission(BaseModel):
    id: str
    category: PermissionCategory
    granted: bool
    default: bool
    overridden: bool
