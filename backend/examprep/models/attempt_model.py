from examprep.db import Base
from sqlalchemy import Column, Integer, Float, Boolean, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from fastapi_users_db_sqlalchemy.generics import GUID
from datetime import datetime
import enum


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProctoringEventType(str, enum.Enum):
    TAB_SWITCH = "tab_switch"
    FULLSCREEN_EXIT = "fullscreen_exit"
    SCREENSHOT = "screenshot"
    FACE_DETECTION = "face_detection"
    MULTIPLE_FACES = "multiple_faces"
    HEARTBEAT = "heartbeat"


class Attempt(Base):
    __tablename__ = "test_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    test_id = Column(Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
    # back-filled once the session row exists
    session_id = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default=AttemptStatus.IN_PROGRESS.value, index=True)

    start_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    # last-activity marker, touched by every autosave
    end_time = Column(DateTime, nullable=True)
    submit_time = Column(DateTime, nullable=True)

    total_marks_obtained = Column(Float, nullable=True)
    percentage = Column(Float, nullable=True)
    correct_answers = Column(Integer, nullable=True)
    incorrect_answers = Column(Integer, nullable=True)
    unanswered = Column(Integer, nullable=True)
    total_possible = Column(Float, nullable=True)
    is_passed = Column(Boolean, nullable=True)
    auto_submitted = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="attempts")
    test = relationship("Test")
    answers = relationship("AttemptAnswer", back_populates="attempt", cascade="all, delete-orphan", passive_deletes=True)
    session = relationship("TestSession", back_populates="attempt", uselist=False, cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatus.COMPLETED.value


class TestSession(Base):
    __tablename__ = "test_sessions"
    __test__ = False

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("test_attempts.id", ondelete="CASCADE"), nullable=False, unique=True)
    session_token = Column(String(128), nullable=False, unique=True, index=True)
    session_start = Column(DateTime, default=datetime.utcnow, nullable=False)
    session_end = Column(DateTime, nullable=True)

    # monotonic, only ever incremented
    tab_switches = Column(Integer, default=0, nullable=False)
    screenshot_count = Column(Integer, default=0, nullable=False)
    violation_count = Column(Integer, default=0, nullable=False)

    attempt = relationship("Attempt", back_populates="session")
    events = relationship("ProctoringEvent", back_populates="session", order_by="ProctoringEvent.id")


class AttemptAnswer(Base):
    __tablename__ = "attempt_answers"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_attempt_question"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(Integer, ForeignKey("test_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    selected_option_id = Column(Integer, nullable=True)
    answer_text = Column(Text, nullable=True)
    time_spent_seconds = Column(Integer, default=0, nullable=False)
    answered_at = Column(DateTime, default=datetime.utcnow)

    # filled in by grading only
    marks_obtained = Column(Float, nullable=True)
    is_correct = Column(Boolean, nullable=True)

    attempt = relationship("Attempt", back_populates="answers")


class ProctoringEvent(Base):
    __tablename__ = "proctoring_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    test_session_id = Column(Integer, ForeignKey("test_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String, nullable=False)
    event_details = Column(JSON, nullable=True)
    severity = Column(String, nullable=False, default="low")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    session = relationship("TestSession", back_populates="events")


class LeaderboardEntry(Base):
    __tablename__ = "leaderboards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    test_id = Column(Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    attempt_id = Column(Integer, ForeignKey("test_attempts.id", ondelete="SET NULL"), nullable=True)
    rank_position = Column(Integer, nullable=True)
    score = Column(Float, nullable=False, default=0)
    completion_time_seconds = Column(Integer, nullable=True)
    attempt_date = Column(DateTime, default=datetime.utcnow, nullable=False)
