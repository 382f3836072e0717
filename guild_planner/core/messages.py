"""User-facing detail strings for HTTP errors raised by the access layer.

The engine itself only returns reason codes; these constants are what a
hosting application shows when it converts a denial into a response.
"""


class GuildMessages:
    GUILD_NOT_FOUND = "Guild not found"
    NOT_GUILD_MEMBER = "You are not a member of this guild"
    MEMBERSHIP_NOT_FOUND = "Membership not found"
    MEMBERSHIP_EXISTS = "User is already a member of this guild"
    MEMBERSHIP_NOT_PENDING = "Membership is not awaiting approval"
    APPROVAL_ROLE_INVALID = "Approved members must be trial or member"
    CANNOT_MANAGE_ROLE = "You cannot manage members of this role"
    CANNOT_CHANGE_CREATOR = "The guild creator cannot be demoted or removed"
    ADMIN_REQUIRED = "Guild admin role required"


class PermissionMessages:
    PERMISSION_DENIED = "You do not have permission to do this"
    HIERARCHY = "You can only act on records of lower-ranked members"
    UNKNOWN_TARGET = "The owner of this record is not a member of this guild"
    UNKNOWN_PERMISSION = "Unknown permission"


class RosterMessages:
    INSTANCE_NOT_FOUND = "Event not found"
    ENTRY_NOT_FOUND = "Signup not found"
    INSTANCE_CLOSED = "This event is no longer accepting signups"
    ROLE_FULL = "This role is already full"
    POOL_FULL = "The combined role pool is already full"
    EVENT_FULL = "This event is already full"
    INVALID_STATUS = "Status is not valid for this kind of event"
    INVALID_TRANSITION = "Roster status can only move forward"
