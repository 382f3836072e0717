from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlmodel import Enum as SQLEnum, Field, SQLModel


class EventKind(str, Enum):
    event = "event"
    siege = "siege"


class RsvpStatus(str, Enum):
    attending = "attending"
    maybe = "maybe"
    declined = "declined"


class SiegeStatus(str, Enum):
    signed_up = "signed_up"
    confirmed = "confirmed"
    checked_in = "checked_in"


class EventRole(str, Enum):
    tank = "tank"
    cleric = "cleric"
    bard = "bard"
    ranged_dps = "ranged_dps"
    melee_dps = "melee_dps"


class SiegeRole(str, Enum):
    frontline = "frontline"
    ranged = "ranged"
    healer = "healer"
    siege_operator = "siege_operator"
    scout = "scout"
    reserve = "reserve"


DEFAULT_COMBINED_POOL_SLOTS: list[str] = [EventRole.ranged_dps.value, EventRole.melee_dps.value]


class GuildEvent(SQLModel, table=True):
    """A time-boxed instance members sign up for: a general event or a siege."""

    __tablename__ = "guild_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    guild_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("guilds.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    created_by_user_id: Optional[int] = Field(default=None)
    kind: EventKind = Field(
        default=EventKind.event,
        sa_column=Column(
            SQLEnum(EventKind, name="event_kind"),
            nullable=False,
            server_default=EventKind.event.value,
        ),
    )
    title: str = Field(nullable=False, max_length=255)
    description: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    starts_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    ends_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    max_attendees: Optional[int] = Field(default=None, nullable=True)
    combined_pool_enabled: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="false"),
    )
    combined_pool_max: Optional[int] = Field(default=None, nullable=True)
    combined_pool_slots: List[str] = Field(
        default_factory=lambda: list(DEFAULT_COMBINED_POOL_SLOTS),
        sa_column=Column(JSON, nullable=False),
    )
    is_cancelled: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="false"),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class EventRoleSlot(SQLModel, table=True):
    """Headcount demand for one role-slot of an event."""

    __tablename__ = "event_role_slots"

    event_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("guild_events.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    role_slot: str = Field(
        sa_column=Column(String(length=50), primary_key=True),
    )
    minimum: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    maximum: Optional[int] = Field(default=None, nullable=True)


class RosterEntry(SQLModel, table=True):
    """An actor's answer for one event. At most one row per (event, user)."""

    __tablename__ = "roster_entries"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_roster_entries_event_user"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("guild_events.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    user_id: int = Field(nullable=False)
    character_id: Optional[int] = Field(default=None, nullable=True)
    role_slot: Optional[str] = Field(
        default=None,
        sa_column=Column(String(length=50), nullable=True),
    )
    status: str = Field(
        sa_column=Column(String(length=20), nullable=False),
    )
    note: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )
    responded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    confirmed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    checked_in_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
