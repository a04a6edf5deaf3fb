"""Doctor model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from clinic_backend.database import Base

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
NO_DAY_OFF = 'None'
DAY_OFF_CHOICES = (NO_DAY_OFF,) + WEEKDAYS

# Values of Doctor.last_auto_toggle. None means the flag was last set by hand.
AUTO_TOGGLE_OFF = 'off'
AUTO_TOGGLE_ON = 'on'


class Doctor(Base):
    """Represents a doctor and their current bookable state."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    speciality = Column(String)
    about = Column(Text)
    fees = Column(Integer)
    day_off = Column(String, nullable=False, default=NO_DAY_OFF)
    available = Column(Boolean, nullable=False, default=True)
    last_auto_toggle = Column(String)
    last_auto_toggle_at = Column(DateTime)
    archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime)
    version_id = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}
