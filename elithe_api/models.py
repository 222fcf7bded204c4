from __future__ import annotations

"""
Core data models: member profiles, events with their meeting points (PEs),
PE templates, attendance confirmations with their check-in credential, and
the append-only system log.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from .database import Base


class Member(Base):
    __tablename__ = "members"
    """
    Club member profile. The id is the identity provider subject; the core only
    reads the profile and bumps the participation counters.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    role: Mapped[str] = mapped_column(String(16), default="member", nullable=False)
    current_motorcycle: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    participation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reward_tiers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class PeTemplate(Base):
    __tablename__ = "pe_templates"
    """Reusable meeting point preset an admin can pick when building an event."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Event(Base):
    __tablename__ = "events"
    """
    A ride (rolê). At most one event is active at a time; see
    ``elithe_api.routers.events.activate_event``.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    event_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)
    maps_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    signup_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tolls: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    banner_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    meeting_points: Mapped[list["MeetingPoint"]] = relationship(
        "MeetingPoint",
        back_populates="event",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MeetingPoint.id",
    )

    __table_args__ = (
        Index("ix_events_active", "active"),
    )


class MeetingPoint(Base):
    __tablename__ = "meeting_points"
    """Ponto de encontro (PE) for a specific event."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    time: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    template_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("pe_templates.id", ondelete="SET NULL"), nullable=True
    )

    event: Mapped[Event] = relationship(Event, back_populates="meeting_points")


class Confirmation(Base):
    __tablename__ = "confirmations"
    """
    A member's attendance confirmation for an event.

    The payload and derived flags are written once at creation. Only ``token``
    (set right after creation) and ``checked_in_at`` (null -> timestamp, once)
    change afterwards.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id", ondelete="CASCADE"), index=True)
    member_id: Mapped[str] = mapped_column(String(36), ForeignKey("members.id", ondelete="CASCADE"), index=True)
    motorcycle: Mapped[str] = mapped_column(String(255), nullable=False)
    meeting_point: Mapped[str] = mapped_column(String(255), nullable=False)
    new_bike: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    birthday_window: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reward_tier_snapshot: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    event: Mapped[Event] = relationship(Event, lazy="joined")
    member: Mapped[Member] = relationship(Member, lazy="joined")

    __table_args__ = (
        UniqueConstraint("event_id", "member_id", name="uq_confirmation_event_member"),
        Index("ix_confirmations_checked_in_at", "checked_in_at"),
    )


class SystemLog(Base):
    __tablename__ = "system_log"
    """Append-only application log for check-ins and credential issuance."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
