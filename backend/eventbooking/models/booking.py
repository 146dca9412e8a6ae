"""
Booking model representing a user's tickets for an event.

Key design decisions:
- Status field allows cancellation without deleting records
- user_id is an opaque external identity, not a foreign key
- A user may hold several bookings for the same event
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from eventbooking.db.base import Base, TimestampMixin


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String(450), nullable=False, index=True)
    ticket_count = Column(Integer, nullable=False)
    total_price_minor = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="confirmed")  # confirmed, cancelled
    booking_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    event = relationship("Event", back_populates="bookings", lazy="raise")

    __table_args__ = (
        CheckConstraint("ticket_count > 0", name="check_booking_ticket_count_positive"),
        CheckConstraint("total_price_minor >= 0", name="check_booking_total_non_negative"),
        CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_booking_status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"
