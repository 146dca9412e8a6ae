"""
Event model with ticket inventory tracking.

Key design decisions:
- `available_tickets` is denormalized (equals capacity minus confirmed tickets)
  so availability checks never aggregate over bookings
- `version` column enables compare-and-swap updates for concurrent booking
- Prices are integer minor currency units
- CHECK constraints are the final safety net against overselling
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
)
from sqlalchemy.orm import relationship

from eventbooking.db.base import Base, TimestampMixin

event_tags = Table(
    "event_tags",
    Base.metadata,
    Column("event_id", Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name})>"


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name={self.name})>"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=False, default="")
    venue_info = Column(String(255), nullable=False, default="")
    price_minor = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False)
    available_tickets = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    bookings = relationship("Booking", back_populates="event", lazy="raise")

    __table_args__ = (
        CheckConstraint("available_tickets >= 0", name="check_available_tickets_non_negative"),
        CheckConstraint("capacity >= 0", name="check_capacity_non_negative"),
        CheckConstraint("available_tickets <= capacity", name="check_available_lte_capacity"),
        CheckConstraint("price_minor >= 0", name="check_price_non_negative"),
        Index("ix_events_active_available", "is_active", "available_tickets"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, available={self.available_tickets}/{self.capacity})>"
