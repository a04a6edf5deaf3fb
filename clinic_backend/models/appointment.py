"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, Time

from clinic_backend.database import Base

STATUS_SCHEDULED = 'scheduled'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})


class Appointment(Base):
    """Represents a booked appointment and its lifecycle state."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slot_date = Column(Date, nullable=False)
    slot_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default=STATUS_SCHEDULED)
    cancellation_reason = Column(String)
    consultation_summary = Column(Text)
    seen = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
