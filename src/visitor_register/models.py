"""
SQLAlchemy ORM models for the Visitor Register.
Entities: Entry.
"""

import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    String,
    DateTime,
)
from sqlalchemy.orm import declarative_base

from .identifiers import generate_id

Base = declarative_base()


class EntryStatus(str, Enum):
    """Lifecycle state of an entry."""
    ENTERED = "entered"
    EXITED = "exited"


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


# PUBLIC_INTERFACE
class Entry(Base):
    """
    Entry model.
    One visitor's check-in/check-out record. `id` is the QR payload.
    """
    __tablename__ = "entries"

    id = Column(String(36), primary_key=True, default=generate_id)
    number = Column(String(16), nullable=False, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    phone_number = Column(String, nullable=True)
    whom_to_meet = Column(String, nullable=True)
    purpose = Column(String, nullable=True)
    badge_tag = Column(String, nullable=True, unique=True, index=True)
    status = Column(String(16), nullable=False, default=EntryStatus.ENTERED.value)
    entry_time = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    exit_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    __table_args__ = (
        CheckConstraint("status IN ('entered', 'exited')", name="status_check"),
    )

    def __repr__(self):
        return f"<Entry(id={self.id}, number={self.number}, status={self.status})>"

    @property
    def is_exited(self) -> bool:
        return self.status == EntryStatus.EXITED.value
