"""Tests for own-vs-any record checks.

Uses SimpleNamespace stand-ins for loaded records and an in-memory
membership lookup for the record owners.
"""

from types import SimpleNamespace

import pytest

from guild_planner.models.guild import GuildRole
from guild_planner.schemas.permission import DecisionReason, MembershipFact
from guild_planner.services.ownership import (
    authorize_record_action,
    can_act_on_record,
    check_record_access,
    requires_hierarchy_check,
)
from guild_planner.testing import InMemoryMembershipLookup

GUILD_ID = 7


def _member(role: GuildRole) -> MembershipFact:
    return MembershipFact(role=role)


def _character(owner_id: int | None) -> SimpleNamespace:
    return SimpleNamespace(id=99, user_id=owner_id)


# ---------------------------------------------------------------------------
# can_act_on_record
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_member_can_edit_own_record():
    assert can_act_on_record(GuildRole.member, 1, 1, "characters_edit_own", "characters_edit_any") is True


@pytest.mark.unit
def test_member_cannot_edit_someone_elses_record():
    assert can_act_on_record(GuildRole.member, 2, 1, "characters_edit_own", "characters_edit_any") is False


@pytest.mark.unit
def test_officer_can_edit_any_record():
    assert can_act_on_record(GuildRole.officer, 2, 1, "characters_edit_own", "characters_edit_any") is True


@pytest.mark.unit
def test_own_grant_does_not_cover_unowned_record():
    assert can_act_on_record(GuildRole.member, None, 1, "characters_edit_own", "characters_edit_any") is False


@pytest.mark.unit
def test_overrides_feed_into_ownership_check():
    overrides = {"characters_edit_own": False}
    assert (
        can_act_on_record(GuildRole.member, 1, 1, "characters_edit_own", "characters_edit_any", overrides)
        is False
    )


# ---------------------------------------------------------------------------
# check_record_access (rank cap on "any")
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_officer_any_grant_reaches_lower_ranks():
    decision = check_record_access(
        _member(GuildRole.officer),
        1,
        2,
        "characters_edit_own",
        "characters_edit_any",
        target=_member(GuildRole.member),
        capped_categories=None,
    )
    assert decision.allowed


@pytest.mark.unit
@pytest.mark.parametrize("target_role", [GuildRole.officer, GuildRole.admin])
def test_officer_any_grant_stops_at_equal_or_higher_rank(target_role: GuildRole):
    decision = check_record_access(
        _member(GuildRole.officer),
        1,
        2,
        "characters_edit_own",
        "characters_edit_any",
        target=_member(target_role),
        capped_categories=None,
    )
    assert not decision.allowed
    assert decision.reason == DecisionReason.hierarchy


@pytest.mark.unit
def test_target_without_membership_is_unknown():
    decision = check_record_access(
        _member(GuildRole.admin),
        1,
        2,
        "characters_edit_own",
        "characters_edit_any",
        target=None,
        capped_categories=None,
    )
    assert decision.reason == DecisionReason.unknown_target


@pytest.mark.unit
def test_any_grant_on_own_record_skips_target_lookup():
    decision = check_record_access(
        _member(GuildRole.admin),
        1,
        1,
        "characters_edit_own",
        "characters_edit_any",
        capped_categories=None,
    )
    assert decision.allowed


@pytest.mark.unit
def test_uncapped_category_ignores_rank():
    decision = check_record_access(
        _member(GuildRole.officer),
        1,
        2,
        "characters_edit_own",
        "characters_edit_any",
        capped_categories=["events"],
    )
    assert decision.allowed


@pytest.mark.unit
def test_missing_target_when_required_is_a_programming_error():
    with pytest.raises(ValueError):
        check_record_access(
            _member(GuildRole.officer),
            1,
            2,
            "characters_edit_own",
            "characters_edit_any",
            capped_categories=None,
        )


@pytest.mark.unit
def test_without_either_grant_access_is_denied():
    decision = check_record_access(
        _member(GuildRole.pending), 1, 1, "characters_edit_own", "characters_edit_any"
    )
    assert decision.reason == DecisionReason.permission_denied


@pytest.mark.unit
def test_requires_hierarchy_check_by_category():
    assert requires_hierarchy_check("characters_edit_any", None) is True
    assert requires_hierarchy_check("characters_edit_any", ["characters"]) is True
    assert requires_hierarchy_check("characters_edit_any", ["ships"]) is False


# ---------------------------------------------------------------------------
# authorize_record_action
# ---------------------------------------------------------------------------


@pytest.mark.unit
async def test_missing_record_is_not_found_before_membership():
    memberships = InMemoryMembershipLookup()

    decision = await authorize_record_action(
        memberships,
        guild_id=GUILD_ID,
        actor_id=1,
        record=None,
        own_permission="characters_edit_own",
        any_permission="characters_edit_any",
    )

    assert decision.reason == DecisionReason.not_found
    assert memberships.calls == []


@pytest.mark.unit
async def test_non_member_actor_is_rejected():
    decision = await authorize_record_action(
        InMemoryMembershipLookup(),
        guild_id=GUILD_ID,
        actor_id=1,
        record=_character(1),
        own_permission="characters_edit_own",
        any_permission="characters_edit_any",
    )
    assert decision.reason == DecisionReason.not_member


@pytest.mark.unit
async def test_officer_edits_member_character():
    memberships = InMemoryMembershipLookup()
    memberships.add(GUILD_ID, 1, GuildRole.officer)
    memberships.add(GUILD_ID, 2, GuildRole.member)

    decision = await authorize_record_action(
        memberships,
        guild_id=GUILD_ID,
        actor_id=1,
        record=_character(2),
        own_permission="characters_edit_own",
        any_permission="characters_edit_any",
        capped_categories=None,
    )

    assert decision.allowed
    assert memberships.calls == [(GUILD_ID, 1), (GUILD_ID, 2)]


@pytest.mark.unit
async def test_officer_cannot_edit_admin_character():
    memberships = InMemoryMembershipLookup()
    memberships.add(GUILD_ID, 1, GuildRole.officer)
    memberships.add(GUILD_ID, 2, GuildRole.admin)

    decision = await authorize_record_action(
        memberships,
        guild_id=GUILD_ID,
        actor_id=1,
        record=_character(2),
        own_permission="characters_edit_own",
        any_permission="characters_edit_any",
        capped_categories=None,
    )

    assert decision.reason == DecisionReason.hierarchy


@pytest.mark.unit
async def test_owner_outside_guild_is_unknown_target():
    memberships = InMemoryMembershipLookup()
    memberships.add(GUILD_ID, 1, GuildRole.admin)

    decision = await authorize_record_action(
        memberships,
        guild_id=GUILD_ID,
        actor_id=1,
        record=_character(2),
        own_permission="characters_edit_own",
        any_permission="characters_edit_any",
        capped_categories=None,
    )

    assert decision.reason == DecisionReason.unknown_target


@pytest.mark.unit
async def test_member_own_record_needs_no_owner_lookup():
    memberships = InMemoryMembershipLookup()
    memberships.add(GUILD_ID, 1, GuildRole.member)

    decision = await authorize_record_action(
        memberships,
        guild_id=GUILD_ID,
        actor_id=1,
        record=_character(1),
        own_permission="characters_edit_own",
        any_permission="characters_edit_any",
        capped_categories=None,
    )

    assert decision.allowed
    assert memberships.calls == [(GUILD_ID, 1)]


@pytest.mark.unit
async def test_owner_attribute_selects_owner_field():
    memberships = InMemoryMembershipLookup()
    memberships.add(GUILD_ID, 1, GuildRole.member)
    event = SimpleNamespace(id=5, created_by_user_id=1)

    decision = await authorize_record_action(
        memberships,
        guild_id=GUILD_ID,
        actor_id=1,
        record=event,
        own_permission="events_edit_own",
        any_permission="events_edit_any",
        owner_attribute="created_by_user_id",
        capped_categories=None,
    )

    assert decision.allowed
