from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from services.scheduler.lifecycle.meeting import InvitationStatus, MeetingStatus
from services.scheduler.models.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IsoDateTime(TypeDecorator):
    """Datetime stored as ISO-8601 text so the UTC offset (or its absence) survives any backend."""

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return value.isoformat()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return datetime.fromisoformat(value)


class MeetingRecord(Base):
    __tablename__ = "scheduler_meetings"
    id = Column(String(36), primary_key=True)
    organizer_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    join_token = Column(String(64), unique=True)
    date_range_start = Column(Date, nullable=False)
    date_range_end = Column(Date, nullable=False)
    window_start = Column(Time, nullable=False)
    window_end = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    timezone = Column(String(64))
    status: Mapped[MeetingStatus] = mapped_column(
        Enum(MeetingStatus), default=MeetingStatus.pending, nullable=False
    )
    scheduled_date = Column(Date)
    scheduled_start = Column(IsoDateTime)
    scheduled_end = Column(IsoDateTime)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(IsoDateTime, default=utcnow)
    updated_at = Column(IsoDateTime, default=utcnow)

    participants = relationship(
        "ParticipantRecord",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="ParticipantRecord.participant_id",
    )
    busy_intervals = relationship(
        "BusyIntervalRecord",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="BusyIntervalRecord.start",
    )


class ParticipantRecord(Base):
    __tablename__ = "scheduler_participants"
    id = Column(Integer, primary_key=True, autoincrement=True)
    meeting_id = Column(
        String(36),
        ForeignKey("scheduler_meetings.id", ondelete="CASCADE"),
        nullable=False,
    )
    participant_id = Column(String(255), nullable=False, index=True)
    invitation_token = Column(String(64), unique=True, nullable=False)
    status: Mapped[InvitationStatus] = mapped_column(
        Enum(InvitationStatus), default=InvitationStatus.pending, nullable=False
    )
    has_responded = Column(Boolean, default=False, nullable=False)
    invited_at = Column(IsoDateTime)
    responded_at = Column(IsoDateTime)

    meeting = relationship("MeetingRecord", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("meeting_id", "participant_id", name="_meeting_participant_uc"),
    )


class BusyIntervalRecord(Base):
    """A busy interval owned by a participant, or by the organizer when participant_id is NULL."""

    __tablename__ = "scheduler_busy_intervals"
    id = Column(Integer, primary_key=True, autoincrement=True)
    meeting_id = Column(
        String(36),
        ForeignKey("scheduler_meetings.id", ondelete="CASCADE"),
        nullable=False,
    )
    participant_id = Column(String(255))
    start = Column(IsoDateTime, nullable=False)
    end = Column(IsoDateTime, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    meeting = relationship("MeetingRecord", back_populates="busy_intervals")
