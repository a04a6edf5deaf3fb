"""User model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from clinic_backend.database import Base

ROLE_PATIENT = 'patient'
ROLE_ADMIN = 'admin'


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    role = Column(String, default=ROLE_PATIENT)  # patient/admin
    archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime)
