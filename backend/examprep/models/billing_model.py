from examprep.db import Base
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from fastapi_users_db_sqlalchemy.generics import GUID
from datetime import datetime


class PaymentPlan(Base):
    """
    Subscription plan. Attempt quotas live in ``features``::

        {"full_size_tests": {"attempts": 90}, "chapter_tests": {"attempts": -1}}

    ``-1`` means unlimited.
    """
    __tablename__ = "payment_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_name = Column(String, nullable=False, unique=True)
    price = Column(Float, nullable=False, default=0)
    validity_days = Column(Integer, nullable=False, default=0)
    features = Column(JSON, nullable=True, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("payment_plans.id"), nullable=False)
    status = Column(String, nullable=False, default="active")
    start_date = Column(DateTime, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=True)

    plan = relationship("PaymentPlan")
    user = relationship("User", back_populates="subscriptions")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    test_id = Column(Integer, ForeignKey("tests.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Float, nullable=False, default=0)
    transaction_status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow)
