from __future__ import annotations

from typing import TypeVar, Union

from fastapi import HTTPException, status

from guild_planner.core.messages import GuildMessages, PermissionMessages, RosterMessages
from guild_planner.schemas.permission import DecisionReason, MembershipFact, PermissionDecision
from guild_planner.schemas.roster import CapacityError, CapacityScope
from guild_planner.services.roles import is_approved

T = TypeVar("T")

_DECISION_ERRORS: dict[DecisionReason, tuple[int, str]] = {
    DecisionReason.not_member: (status.HTTP_403_FORBIDDEN, GuildMessages.NOT_GUILD_MEMBER),
    DecisionReason.not_found: (status.HTTP_404_NOT_FOUND, RosterMessages.ENTRY_NOT_FOUND),
    DecisionReason.permission_denied: (status.HTTP_403_FORBIDDEN, PermissionMessages.PERMISSION_DENIED),
    DecisionReason.hierarchy: (status.HTTP_403_FORBIDDEN, PermissionMessages.HIERARCHY),
    DecisionReason.unknown_target: (status.HTTP_403_FORBIDDEN, PermissionMessages.UNKNOWN_TARGET),
    DecisionReason.invalid_transition: (status.HTTP_409_CONFLICT, RosterMessages.INVALID_TRANSITION),
    DecisionReason.instance_closed: (status.HTTP_409_CONFLICT, RosterMessages.INSTANCE_CLOSED),
}

_CAPACITY_MESSAGES: dict[CapacityScope, str] = {
    CapacityScope.role_slot: RosterMessages.ROLE_FULL,
    CapacityScope.pool: RosterMessages.POOL_FULL,
    CapacityScope.instance: RosterMessages.EVENT_FULL,
}


def raise_for_decision(decision: PermissionDecision, *, not_found_detail: str | None = None) -> None:
    if decision.allowed:
        return
    status_code, detail = _DECISION_ERRORS.get(
        decision.reason,
        (status.HTTP_403_FORBIDDEN, PermissionMessages.PERMISSION_DENIED),
    )
    if decision.reason == DecisionReason.not_found and not_found_detail:
        detail = not_found_detail
    raise HTTPException(status_code=status_code, detail=detail)


def raise_for_capacity(error: CapacityError) -> None:
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=_CAPACITY_MESSAGES[error.scope],
    )


def raise_for_outcome(
    outcome: Union[T, PermissionDecision, CapacityError],
    *,
    not_found_detail: str | None = None,
) -> T:
    """Unwrap a service result, raising the matching HTTP error on failure."""
    if isinstance(outcome, CapacityError):
        raise_for_capacity(outcome)
    if isinstance(outcome, PermissionDecision):
        raise_for_decision(outcome, not_found_detail=not_found_detail)
    return outcome


def require_approved_membership(membership: MembershipFact | None) -> MembershipFact:
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=GuildMessages.NOT_GUILD_MEMBER,
        )
    if not is_approved(membership.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=PermissionMessages.PERMISSION_DENIED,
        )
    return membership
