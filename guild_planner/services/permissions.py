"""Default role grants layered under per-guild overrides.

Resolution is a two-layer lookup: an override for the exact permission id
wins, anything else falls through to the role's default grant set. The
override map is never merged into a full copy, so permissions added to the
catalog later resolve to their defaults without touching stored overrides.

Every function here is pure. Callers fetch the override map once per
(guild, role) and pass it in.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from guild_planner.models.guild import GuildRole
from guild_planner.models.permission import (
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSIONS,
    Permission,
    PermissionCategory,
    PermissionKey,
)
from guild_planner.schemas.permission import EffectivePermission
from guild_planner.services.exceptions import InvariantViolation

Overrides = Mapping[str, bool]


def _key(permission_id: PermissionKey | str) -> str:
    return permission_id.value if isinstance(permission_id, PermissionKey) else permission_id


def is_known_permission(permission_id: PermissionKey | str) -> bool:
    return _key(permission_id) in PERMISSIONS


def resolve(
    role: GuildRole | str,
    permission_id: PermissionKey | str,
    overrides: Overrides | None = None,
) -> bool:
    key = _key(permission_id)
    if key not in PERMISSIONS:
        return False
    if overrides is not None and key in overrides:
        return bool(overrides[key])
    return key in DEFAULT_ROLE_PERMISSIONS[GuildRole(role)]


def resolve_all(
    role: GuildRole | str,
    permission_ids: Iterable[PermissionKey | str],
    overrides: Overrides | None = None,
) -> bool:
    """True when every id resolves; vacuously true for no ids."""
    return all(resolve(role, permission_id, overrides) for permission_id in permission_ids)


def resolve_any(
    role: GuildRole | str,
    permission_ids: Iterable[PermissionKey | str],
    overrides: Overrides | None = None,
) -> bool:
    """True when at least one id resolves; false for no ids."""
    return any(resolve(role, permission_id, overrides) for permission_id in permission_ids)


def validate_overrides(overrides: Mapping[str, object] | None) -> dict[str, bool] | None:
    """Check a stored override map against the catalog.

    Raises:
        InvariantViolation: a key is not a catalog id or a value is not a bool.
    """
    if overrides is None:
        return None
    unknown = sorted(key for key in overrides if key not in PERMISSIONS)
    if unknown:
        raise InvariantViolation(f"Override references unknown permission ids: {', '.join(unknown)}")
    invalid = sorted(key for key, value in overrides.items() if not isinstance(value, bool))
    if invalid:
        raise InvariantViolation(f"Override values must be booleans: {', '.join(invalid)}")
    return dict(overrides)


def permission_category(permission_id: PermissionKey | str) -> PermissionCategory | None:
    permission = PERMISSIONS.get(_key(permission_id))
    return permission.category if permission else None


def permissions_for_category(category: PermissionCategory | str) -> list[Permission]:
    wanted = PermissionCategory(category)
    return [permission for permission in PERMISSIONS.values() if permission.category == wanted]


def all_categories() -> list[PermissionCategory]:
    """Categories in catalog order."""
    seen: list[PermissionCategory] = []
    for permission in PERMISSIONS.values():
        if permission.category not in seen:
            seen.append(permission.category)
    return seen


def default_permissions(role: GuildRole | str) -> list[Permission]:
    granted = DEFAULT_ROLE_PERMISSIONS[GuildRole(role)]
    return [permission for permission in PERMISSIONS.values() if permission.id in granted]


def effective_permissions(
    role: GuildRole | str,
    overrides: Overrides | None = None,
) -> list[EffectivePermission]:
    """Every catalog entry with its resolved value, for the permissions screen."""
    defaults = DEFAULT_ROLE_PERMISSIONS[GuildRole(role)]
    rows: list[EffectivePermission] = []
    for permission in PERMISSIONS.values():
        overridden = overrides is not None and permission.id in overrides
        rows.append(
            EffectivePermission(
                id=permission.id,
                category=permission.category,
                granted=resolve(role, permission.id, overrides),
                default=permission.id in defaults,
                overridden=overridden,
            )
        )
    return rows


def scoped_permissions(category: PermissionCategory | str, action: str) -> tuple[str, str]:
    """Return the ("own", "any") permission ids for a category action.

    ``scoped_permissions("characters", "edit")`` gives
    ``("characters_edit_own", "characters_edit_any")``.
    """
    prefix = f"{PermissionCategory(category).value}_{action}"
    own, any_ = f"{prefix}_own", f"{prefix}_any"
    if own not in PERMISSIONS or any_ not in PERMISSIONS:
        raise ValueError(f"No own/any permission pair for {prefix}")
    return own, any_
