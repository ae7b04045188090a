from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.billing_model import PaymentPlan, UserSubscription, Transaction
from ..models.attempt_model import Attempt
from ..models.test_model import Test, TestCategory, TestType

UNLIMITED = -1
FREE_PLAN_NAME = "Free"
DEFAULT_MOCK_ATTEMPTS = 3
DEFAULT_CHAPTER_ATTEMPTS = 10


@dataclass(frozen=True)
class TestLimit:
    category: TestCategory
    limit: int
    used: int
    remaining: int

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def exhausted(self) -> bool:
        return not self.unlimited and self.remaining <= 0


def _attempts_from(features: dict | None, key: str, default: int) -> int:
    try:
        value = ((features or {}).get(key) or {}).get("attempts")
        return int(value) if value is not None else default
    except (AttributeError, TypeError, ValueError):
        return default


async def _active_plan_features(session: AsyncSession, user_id) -> dict | None:
    now = datetime.utcnow()
    stmt = (
        select(PaymentPlan.features)
        .join(UserSubscription, UserSubscription.plan_id == PaymentPlan.id)
        .where(
            UserSubscription.user_id == user_id,
            UserSubscription.status == "active",
            (UserSubscription.end_date == None) | (UserSubscription.end_date >= now),  # noqa: E711
        )
        .order_by(UserSubscription.end_date.desc())
        .limit(1)
    )
    res = await session.execute(stmt)
    row = res.first()
    if row is not None:
        return row[0] or {}

    res = await session.execute(select(PaymentPlan.features).where(PaymentPlan.plan_name == FREE_PLAN_NAME).limit(1))
    row = res.first()
    return (row[0] or {}) if row is not None else None


async def _count_attempts(session: AsyncSession, user_id, test_types) -> int:
    stmt = (
        select(func.count(Attempt.id))
        .join(Test, Test.id == Attempt.test_id)
        .where(Attempt.user_id == user_id, Test.test_type.in_(test_types))
    )
    res = await session.execute(stmt)
    return int(res.scalar_one() or 0)


def _limit(category: TestCategory, limit: int, used: int) -> TestLimit:
    remaining = max(limit - used, 0) if limit != UNLIMITED else UNLIMITED
    return TestLimit(category=category, limit=limit, used=used, remaining=remaining)


async def get_user_test_limits(session: AsyncSession, user_id) -> Dict[TestCategory, TestLimit]:
    """
    Attempt quota per test category for a user.

    Limits come from the user's newest active subscription, else the Free plan:
    ``full_size_tests.attempts`` for mock, ``chapter_tests.attempts`` for chapter
    and subject. Usage counts every attempt the user has on tests of that kind.
    """
    features = await _active_plan_features(session, user_id)
    mock_limit = _attempts_from(features, "full_size_tests", DEFAULT_MOCK_ATTEMPTS)
    chapter_limit = _attempts_from(features, "chapter_tests", DEFAULT_CHAPTER_ATTEMPTS)

    mock_used = await _count_attempts(session, user_id, [TestType.MOCK.value, TestType.ASSESSMENT.value])
    chapter_used = await _count_attempts(session, user_id, [TestType.PRACTICE.value])

    return {
        TestCategory.MOCK: _limit(TestCategory.MOCK, mock_limit, mock_used),
        TestCategory.CHAPTER: _limit(TestCategory.CHAPTER, chapter_limit, chapter_used),
        TestCategory.SUBJECT: _limit(TestCategory.SUBJECT, chapter_limit, chapter_used),
    }


async def has_successful_payment(session: AsyncSession, user_id, test_id: int) -> bool:
    stmt = (
        select(Transaction.id)
        .where(
            Transaction.user_id == user_id,
            Transaction.test_id == test_id,
            Transaction.transaction_status == "success",
        )
        .limit(1)
    )
    res = await session.execute(stmt)
    return res.first() is not None
