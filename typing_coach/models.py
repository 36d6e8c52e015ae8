from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


class PracticeSession(Base):
    __tablename__ = 'practice_sessions'

    id = Column(Integer, primary_key=True)
    session_id = Column(String(36), unique=True, nullable=False)
    drill_type = Column(String(100))
    target_wpm = Column(Float, nullable=False)
    final_wpm = Column(Float, default=0.0)
    accuracy_raw = Column(Float)
    accuracy_adjusted = Column(Float)
    error_rate = Column(Float)
    correction_ratio = Column(Float)
    consistency = Column(Float)
    error_count = Column(Integer, default=0)
    correction_count = Column(Integer, default=0)
    error_patterns = Column(JSON, default=dict)  # "expected->typed" -> count
    started_at_ms = Column(Float, nullable=False)  # engine clock, not wall time
    ended_at_ms = Column(Float)
    paused_intervals = Column(JSON, default=list)
    level_id = Column(String(50))  # difficulty level the session was practised at
    created_at = Column(DateTime, default=utcnow)


class KeystrokeRecord(Base):
    __tablename__ = 'keystrokes'

    id = Column(Integer, primary_key=True)
    session_id = Column(String(36), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # arrival order within the session
    key = Column(String(20), nullable=False)
    expected = Column(String(20))  # NULL when the caller gave no expected char
    is_correct = Column(Boolean, nullable=False)
    line_no = Column(Integer)
    column_no = Column(Integer)
    timestamp_ms = Column(Float, nullable=False)
    time_delta = Column(Float)  # ms since previous keystroke
