"""Own-vs-any checks for actions on a record that belongs to someone.

Most mutating permissions come in pairs: ``<category>_<action>_own`` covers
records the actor owns, ``<category>_<action>_any`` covers everyone's. An
"any" grant is further capped by rank: it only reaches records owned by
members the actor strictly out-ranks, so an officer holding
``characters_edit_any`` still cannot edit another officer's or an admin's
character.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from guild_planner.core.config import get_settings
from guild_planner.models.guild import GuildRole
from guild_planner.models.permission import PermissionKey
from guild_planner.repositories.interfaces import MembershipLookup
from guild_planner.schemas.permission import DecisionReason, MembershipFact, PermissionDecision
from guild_planner.services.permissions import Overrides, permission_category, resolve
from guild_planner.services.roles import can_manage

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def can_act_on_record(
    actor_role: GuildRole | str,
    record_owner_id: Optional[int],
    actor_id: int,
    own_permission: PermissionKey | str,
    any_permission: PermissionKey | str,
    overrides: Overrides | None = None,
) -> bool:
    """Plain own/any check, without the rank cap on "any" grants."""
    if resolve(actor_role, any_permission, overrides):
        return True
    if resolve(actor_role, own_permission, overrides) and record_owner_id == actor_id:
        return True
    return False


def requires_hierarchy_check(
    any_permission: PermissionKey | str,
    capped_categories: Optional[Iterable[str]] = _UNSET,
) -> bool:
    if capped_categories is _UNSET:
        capped_categories = get_settings().HIERARCHY_CAPPED_CATEGORIES
    if capped_categories is None:
        return True
    category = permission_category(any_permission)
    return category is not None and category.value in set(capped_categories)


def check_record_access(
    actor: MembershipFact,
    actor_id: int,
    record_owner_id: Optional[int],
    own_permission: PermissionKey | str,
    any_permission: PermissionKey | str,
    *,
    overrides: Overrides | None = None,
    target: Optional[MembershipFact] = _UNSET,
    capped_categories: Optional[Iterable[str]] = _UNSET,
) -> PermissionDecision:
    """Full gate decision once the target's membership (if needed) is known.

    ``target`` is the record owner's membership in the same guild. Pass None
    when the owner has none; leave it unset when the caller knows the
    record is the actor's own.
    """
    acting_on_other = record_owner_id != actor_id

    if resolve(actor.role, any_permission, overrides):
        if not acting_on_other or not requires_hierarchy_check(any_permission, capped_categories):
            return PermissionDecision.allow()
        if target is _UNSET:
            raise ValueError("Target membership is required when acting on another member's record")
        if target is None:
            return PermissionDecision.deny(DecisionReason.unknown_target)
        if not can_manage(actor.role, target.role):
            return PermissionDecision.deny(DecisionReason.hierarchy)
        return PermissionDecision.allow()

    if not acting_on_other and resolve(actor.role, own_permission, overrides):
        return PermissionDecision.allow()
    return PermissionDecision.deny(DecisionReason.permission_denied)


async def authorize_record_action(
    memberships: MembershipLookup,
    *,
    guild_id: int,
    actor_id: int,
    record: Any,
    own_permission: PermissionKey | str,
    any_permission: PermissionKey | str,
    overrides: Overrides | None = None,
    actor: Optional[MembershipFact] = None,
    owner_attribute: str = "user_id",
    capped_categories: Optional[Iterable[str]] = _UNSET,
) -> PermissionDecision:
    """Gate an action on ``record`` for ``actor_id`` inside ``guild_id``.

    The record's owner is read from ``owner_attribute``. A missing record is
    reported as ``not_found`` before any permission is evaluated.
    """
    if record is None:
        return PermissionDecision.deny(DecisionReason.not_found)

    if actor is None:
        actor = await memberships.get_membership(guild_id, actor_id)
    if actor is None:
        return PermissionDecision.deny(DecisionReason.not_member)

    record_owner_id = getattr(record, owner_attribute, None)
    target: Optional[MembershipFact] = _UNSET
    if record_owner_id != actor_id and resolve(actor.role, any_permission, overrides):
        if requires_hierarchy_check(any_permission, capped_categories):
            target = (
                await memberships.get_membership(guild_id, record_owner_id)
                if record_owner_id is not None
                else None
            )

    decision = check_record_access(
        actor,
        actor_id,
        record_owner_id,
        own_permission,
        any_permission,
        overrides=overrides,
        target=target,
        capped_categories=capped_categories,
    )
    logger.debug(
        "Record access guild=%s actor=%s owner=%s own=%s any=%s allowed=%s reason=%s",
        guild_id,
        actor_id,
        record_owner_id,
        own_permission,
        any_permission,
        decision.allowed,
        decision.reason,
    )
    return decision
