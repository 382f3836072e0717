"""Tests for the permission resolver and the static catalog.

Tests cover:
- Default grants per role, with and without overrides
- all/any resolution over lists, including the empty list
- Catalog helpers (categories, own/any pairs, effective matrix)
- Shape of the default grant sets
"""

import pytest

from guild_planner.models.guild import GuildRole
from guild_planner.models.permission import (
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSIONS,
    PermissionCategory,
    PermissionKey,
)
from guild_planner.services.exceptions import InvariantViolation
from guild_planner.services.permissions import (
    all_categories,
    default_permissions,
    effective_permissions,
    is_known_permission,
    permissions_for_category,
    resolve,
    resolve_all,
    resolve_any,
    scoped_permissions,
    validate_overrides,
)
from guild_planner.services.roles import rank


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize("role", list(GuildRole))
def test_resolve_without_overrides_matches_defaults(role: GuildRole):
    for permission_id in PERMISSIONS:
        assert resolve(role, permission_id) == (permission_id in DEFAULT_ROLE_PERMISSIONS[role])


@pytest.mark.unit
def test_admin_holds_every_permission():
    assert all(resolve(GuildRole.admin, permission_id) for permission_id in PERMISSIONS)


@pytest.mark.unit
def test_pending_holds_no_permission():
    assert not any(resolve(GuildRole.pending, permission_id) for permission_id in PERMISSIONS)


@pytest.mark.unit
def test_override_replaces_default_for_that_permission_only():
    overrides = {"events_create": False}

    assert resolve(GuildRole.member, "events_create") is True
    assert resolve(GuildRole.member, "events_create", overrides) is False
    assert resolve(GuildRole.member, "events_delete_own", overrides) is True


@pytest.mark.unit
def test_override_can_grant_a_permission_the_role_lacks():
    assert resolve(GuildRole.trial, PermissionKey.parties_create) is False
    assert resolve(GuildRole.trial, PermissionKey.parties_create, {"parties_create": True}) is True


@pytest.mark.unit
def test_empty_override_map_behaves_like_none():
    assert resolve(GuildRole.member, "events_create", {}) is True


@pytest.mark.unit
def test_unknown_permission_resolves_false_even_for_admin():
    assert resolve(GuildRole.admin, "dragons_tame") is False
    assert resolve(GuildRole.admin, "dragons_tame", {"dragons_tame": True}) is False
    assert is_known_permission("dragons_tame") is False


@pytest.mark.unit
def test_resolve_accepts_enum_and_string_ids():
    assert resolve("officer", PermissionKey.siege_edit_rosters) is True
    assert resolve(GuildRole.officer, "siege_edit_rosters") is True


# ---------------------------------------------------------------------------
# resolve_all / resolve_any
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_resolve_all_and_any_on_empty_list():
    assert resolve_all(GuildRole.pending, []) is True
    assert resolve_any(GuildRole.admin, []) is False


@pytest.mark.unit
def test_resolve_all_requires_every_permission():
    assert resolve_all(GuildRole.member, ["events_create", "events_rsvp"]) is True
    assert resolve_all(GuildRole.member, ["events_create", "events_edit_any"]) is False


@pytest.mark.unit
def test_resolve_any_needs_one_permission():
    assert resolve_any(GuildRole.trial, ["events_edit_any", "events_rsvp"]) is True
    assert resolve_any(GuildRole.trial, ["events_edit_any", "events_create"]) is False


@pytest.mark.unit
def test_resolve_any_respects_overrides():
    overrides = {"events_rsvp": False}
    assert resolve_any(GuildRole.trial, ["events_rsvp"], overrides) is False


# ---------------------------------------------------------------------------
# validate_overrides
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_validate_overrides_rejects_unknown_keys():
    with pytest.raises(InvariantViolation, match="dragons_tame"):
        validate_overrides({"events_create": True, "dragons_tame": True})


@pytest.mark.unit
def test_validate_overrides_rejects_non_boolean_values():
    with pytest.raises(InvariantViolation, match="events_create"):
        validate_overrides({"events_create": "yes"})


@pytest.mark.unit
def test_validate_overrides_passes_through_valid_maps():
    assert validate_overrides(None) is None
    assert validate_overrides({"events_create": False}) == {"events_create": False}


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_catalog_size_and_categories():
    assert len(PERMISSIONS) == 38
    assert all_categories() == list(PermissionCategory)
    assert sum(len(permissions_for_category(category)) for category in all_categories()) == 38


@pytest.mark.unit
def test_catalog_ids_match_their_keys():
    for key, permission in PERMISSIONS.items():
        assert permission.id == key
        assert key.startswith(permission.category.value)


@pytest.mark.unit
def test_permissions_for_category_keeps_catalog_order():
    ids = [permission.id for permission in permissions_for_category("siege")]
    assert ids == ["siege_view_rosters", "siege_edit_rosters", "siege_create_event"]


@pytest.mark.unit
def test_default_permissions_lists_role_grants():
    ids = {permission.id for permission in default_permissions(GuildRole.trial)}
    assert ids == {
        "characters_create",
        "events_rsvp",
        "ships_create",
        "ships_edit_own",
        "ships_delete_own",
    }
    assert default_permissions(GuildRole.pending) == []


@pytest.mark.unit
def test_effective_permissions_marks_overridden_rows():
    rows = {row.id: row for row in effective_permissions(GuildRole.member, {"events_create": False})}

    assert len(rows) == 38
    assert rows["events_create"].granted is False
    assert rows["events_create"].default is True
    assert rows["events_create"].overridden is True
    assert rows["events_rsvp"].granted is True
    assert rows["events_rsvp"].overridden is False


@pytest.mark.unit
def test_scoped_permissions_returns_own_any_pair():
    assert scoped_permissions("characters", "edit") == ("characters_edit_own", "characters_edit_any")
    assert scoped_permissions(PermissionCategory.ships, "delete") == ("ships_delete_own", "ships_delete_any")
    with pytest.raises(ValueError):
        scoped_permissions("guild_bank", "edit")


# ---------------------------------------------------------------------------
# Default grant set shape
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_every_own_grant_is_covered_one_rank_up():
    roles = sorted(GuildRole, key=rank)
    for lower, higher in zip(roles, roles[1:]):
        for permission_id in DEFAULT_ROLE_PERMISSIONS[lower]:
            if not permission_id.endswith("_own"):
                continue
            any_id = permission_id[: -len("_own")] + "_any"
            higher_grants = DEFAULT_ROLE_PERMISSIONS[higher]
            assert permission_id in higher_grants or any_id in higher_grants, (lower, higher, permission_id)


@pytest.mark.unit
def test_default_grants_only_reference_catalog_ids():
    for grants in DEFAULT_ROLE_PERMISSIONS.values():
        assert grants <= set(PERMISSIONS)


@pytest.mark.unit
def test_every_approved_role_can_rsvp():
    for role in (GuildRole.officer, GuildRole.member, GuildRole.trial):
        assert resolve(role, "events_rsvp") is True
