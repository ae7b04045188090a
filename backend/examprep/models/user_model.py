from examprep.db import Base
from sqlalchemy import Column, String, Enum as SQLAlchemyEnum
from sqlalchemy.orm import relationship
from fastapi_users.db import SQLAlchemyBaseUserTableUUID
import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    STUDENT = "student"


class User(SQLAlchemyBaseUserTableUUID, Base):
    """Account row managed by fastapi-users; id/email/hashed_password/is_active come from the base table."""
    __tablename__ = "users"

    full_name = Column(String, nullable=True)
    role = Column(SQLAlchemyEnum(UserRole), default=UserRole.STUDENT, nullable=False)

    subscriptions = relationship("UserSubscription", back_populates="user", lazy="noload")
    attempts = relationship("Attempt", back_populates="user", lazy="noload")
