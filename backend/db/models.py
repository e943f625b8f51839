from datetime import datetime
from sqlalchemy import (
    Column, Integer, Text, Boolean, ForeignKey, Index,
    DateTime,
)
from sqlalchemy.orm import relationship
from db.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, unique=True, nullable=False)
    username_normalized = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    display_name = Column(Text, nullable=False)
    role = Column(Text, nullable=False, default="senior")  # senior | family
    token_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    senior_state = relationship("SeniorState", back_populates="user", uselist=False, cascade="all, delete-orphan")
    check_ins = relationship("CheckIn", back_populates="user", cascade="all, delete-orphan")


class SeniorState(Base):
    __tablename__ = "senior_state"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    last_check_in = Column(DateTime)
    vacation_mode = Column(Boolean, nullable=False, default=False)
    check_in_schedules = Column(Text)  # JSON array, e.g. ["9:00 AM", "6:00 PM"]
    # NULL means the field was never written for this senior.
    brain_games_enabled = Column(Boolean, nullable=True)
    health_quiz_enabled = Column(Boolean, nullable=True)
    current_streak = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="senior_state")


class CheckIn(Base):
    __tablename__ = "check_ins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    mood = Column(Text)
    sleep = Column(Text)
    energy = Column(Text)
    medication = Column(Text)
    brain_exercise_completed = Column(Boolean, nullable=False, default=False)
    scheduled_count = Column(Integer, nullable=False, default=1)
    scheduled_for = Column(Text)  # JSON array of schedule slots
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="check_ins")

    __table_args__ = (
        Index("idx_check_ins_user_timestamp", "user_id", "timestamp"),
    )
