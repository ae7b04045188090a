"""
Test-session orchestration: create -> autosave* -> submit, plus proctoring
events and status reads.

Each public coroutine takes the request's ``AsyncSession`` and commits its own
unit of work. Failures are raised as ``examprep.exceptions`` errors.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import NotFoundError, ForbiddenError, PaymentRequiredError, ValidationFailedError
from ..models.attempt_model import (
    Attempt,
    AttemptAnswer,
    AttemptStatus,
    LeaderboardEntry,
    ProctoringEvent,
    TestSession,
)
from ..models.test_model import Test, TestQuestion
from . import proctoring_service
from .entitlement_service import get_user_test_limits, has_successful_payment
from .grading_service import AnswerRecord, GradeResult, correct_option_map, grade_submission, is_passed
from .question_service import resolve_test_questions, get_marking_schemes, get_options_for_questions

logger = logging.getLogger(__name__)


def _to_naive_utc(dt: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC. Naive input is assumed to be UTC already."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _utcnow() -> datetime:
    return _to_naive_utc(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# eligibility
# ---------------------------------------------------------------------------

async def _get_published_test(session: AsyncSession, test_id: int) -> Test:
    res = await session.execute(select(Test).where(Test.id == test_id, Test.is_published == True))  # noqa: E712
    test = res.scalar_one_or_none()
    if not test:
        raise NotFoundError("Test not found")
    return test


async def check_eligibility(session: AsyncSession, user, test_id: int) -> Test:
    """Run the create-session preconditions in order; first failure wins."""
    test = await _get_published_test(session, test_id)

    now = _utcnow()
    if test.start_time and test.start_time > now:
        raise ForbiddenError("Test not started", reason="not_started", startTime=test.start_time.isoformat())
    if test.end_time and test.end_time < now:
        raise ForbiddenError("Test expired", reason="expired", endTime=test.end_time.isoformat())

    if not test.is_free and not await has_successful_payment(session, user.id, test.id):
        raise PaymentRequiredError("Payment required", reason="payment_required", price=test.price)

    limits = await get_user_test_limits(session, user.id)
    limit = limits.get(test.category)
    if limit is not None and limit.exhausted:
        category = test.category.value
        raise ForbiddenError(
            f"You have reached your limit for {category} tests. Upgrade your plan to continue.",
            reason="limitReached",
            limitReached=True,
            testType=category,
            limit=limit.limit,
            used=limit.used,
            upgradeRequired=True,
        )
    return test


async def check_test_access(session: AsyncSession, user, test_id: int) -> dict:
    """Non-throwing access probe for the test detail page."""
    test = await _get_published_test(session, test_id)
    now = _utcnow()
    out = {"has_access": True, "reason": None}

    if not test.is_free and not await has_successful_payment(session, user.id, test.id):
        out.update(has_access=False, reason="payment_required", price=test.price)
    if test.start_time and test.start_time > now:
        out.update(has_access=False, reason="not_started", start_time=test.start_time)
    if test.end_time and test.end_time < now:
        out.update(has_access=False, reason="expired", end_time=test.end_time)
    return out


# ---------------------------------------------------------------------------
# attempt bookkeeping
# ---------------------------------------------------------------------------

async def _delete_in_progress(session: AsyncSession, user_id, test_id: int, keep_attempt_id: Optional[int] = None) -> List[int]:
    """Remove stale in-progress attempts (and their sessions/answers/events) for one user+test."""
    stmt = select(Attempt.id).where(
        Attempt.user_id == user_id,
        Attempt.test_id == test_id,
        Attempt.status == AttemptStatus.IN_PROGRESS.value,
    )
    if keep_attempt_id is not None:
        stmt = stmt.where(Attempt.id != keep_attempt_id)
    res = await session.execute(stmt)
    stale_ids = list(res.scalars().all())
    if not stale_ids:
        return []

    logger.warning("Reclaiming %d stale in-progress attempt(s) %s for user_id=%s test_id=%s", len(stale_ids), stale_ids, user_id, test_id)
    session_ids = select(TestSession.id).where(TestSession.attempt_id.in_(stale_ids))
    await session.execute(delete(ProctoringEvent).where(ProctoringEvent.test_session_id.in_(session_ids)))
    await session.execute(delete(TestSession).where(TestSession.attempt_id.in_(stale_ids)))
    await session.execute(delete(AttemptAnswer).where(AttemptAnswer.attempt_id.in_(stale_ids)))
    await session.execute(delete(Attempt).where(Attempt.id.in_(stale_ids)).execution_options(synchronize_session=False))
    return stale_ids


async def _resolve_owned_attempt(session: AsyncSession, token: str, user) -> Tuple[TestSession, Attempt]:
    test_session = await proctoring_service.get_session_by_token(session, token)
    if not test_session:
        raise NotFoundError("Session not found")
    attempt = await session.get(Attempt, test_session.attempt_id)
    if not attempt:
        raise NotFoundError("Attempt not found")
    if attempt.user_id != user.id:
        raise ForbiddenError("Not allowed", reason="not_owner")
    return test_session, attempt


def _test_summary(test: Test) -> dict:
    return {
        "test_id": test.id,
        "name": test.name,
        "duration_minutes": test.duration_minutes,
        "total_questions": test.total_questions,
        "total_marks": test.total_marks,
    }


def _result_from_attempt(attempt: Attempt) -> dict:
    return {
        "attempt_id": attempt.id,
        "score": attempt.total_marks_obtained or 0,
        "percentage": round(attempt.percentage or 0, 2),
        "correct": attempt.correct_answers or 0,
        "incorrect": attempt.incorrect_answers or 0,
        "unanswered": attempt.unanswered or 0,
        "total_possible": attempt.total_possible or 0,
        "is_passed": attempt.is_passed,
    }


# ---------------------------------------------------------------------------
# operations
# ---------------------------------------------------------------------------

async def create_session(session: AsyncSession, user, test_id: int) -> dict:
    test = await check_eligibility(session, user, test_id)

    # one in_progress attempt per (user, test): duplicate create calls reclaim the older row
    await _delete_in_progress(session, user.id, test.id)

    now = _utcnow()
    attempt = Attempt(user_id=user.id, test_id=test.id, start_time=now, status=AttemptStatus.IN_PROGRESS.value)
    session.add(attempt)
    await session.flush()

    token = proctoring_service.generate_session_token()
    test_session = TestSession(attempt_id=attempt.id, session_token=token, session_start=now)
    session.add(test_session)
    await session.flush()

    attempt.session_id = test_session.id
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.exception("Failed to create attempt/session for user_id=%s test_id=%s", user.id, test.id)
        raise

    questions = await resolve_test_questions(session, test.id)
    logger.info("Session created attempt_id=%s test_id=%s questions=%d", attempt.id, test.id, len(questions))

    return {
        "session_token": token,
        "attempt_id": attempt.id,
        "test": _test_summary(test),
        "questions": questions,
    }


async def _test_question_ids(session: AsyncSession, test_id: int) -> set:
    res = await session.execute(select(TestQuestion.question_id).where(TestQuestion.test_id == test_id))
    return set(res.scalars().all())


async def _upsert_answers(session: AsyncSession, attempt: Attempt, answers: Iterable[dict], now: datetime):
    answers = list(answers)
    qids = {a["question_id"] for a in answers}
    res = await session.execute(
        select(AttemptAnswer).where(AttemptAnswer.attempt_id == attempt.id, AttemptAnswer.question_id.in_(qids))
    )
    rows = {row.question_id: row for row in res.scalars().all()}

    for a in answers:
        row = rows.get(a["question_id"])
        if row is None:
            row = AttemptAnswer(attempt_id=attempt.id, question_id=a["question_id"])
            session.add(row)
            rows[a["question_id"]] = row
        row.selected_option_id = a.get("selected_option_id")
        row.answer_text = a.get("answer_text")
        row.time_spent_seconds = a.get("time_spent_seconds") or 0
        row.answered_at = now

    attempt.end_time = now


async def autosave_answers(session: AsyncSession, user, token: str, answers: List[dict]) -> int:
    """Upsert answers keyed by (attempt, question); last write wins. Returns the count saved."""
    _, attempt = await _resolve_owned_attempt(session, token, user)
    if attempt.is_completed:
        raise ForbiddenError("Attempt already submitted", reason="completed")
    if not answers:
        attempt.end_time = _utcnow()
        await session.commit()
        return 0

    allowed = await _test_question_ids(session, attempt.test_id)
    unknown = sorted({a["question_id"] for a in answers} - allowed)
    if unknown:
        raise ValidationFailedError("Answers reference questions outside this test", questionIds=unknown)

    attempt_id = attempt.id
    await _upsert_answers(session, attempt, answers, _utcnow())
    try:
        await session.commit()
    except IntegrityError:
        # a concurrent autosave inserted the same (attempt, question) first; replay as updates
        await session.rollback()
        logger.warning("Autosave insert race on attempt_id=%s, retrying as update", attempt_id)
        attempt = await session.get(Attempt, attempt_id)
        await _upsert_answers(session, attempt, answers, _utcnow())
        await session.commit()
    return len(answers)


async def _grade_attempt(session: AsyncSession, attempt: Attempt, test_session: TestSession | None, now: datetime) -> GradeResult:
    """Grade and stage every terminal write for one attempt. Caller commits."""
    res = await session.execute(select(AttemptAnswer).where(AttemptAnswer.attempt_id == attempt.id))
    answer_rows = list(res.scalars().all())
    schemes = await get_marking_schemes(session, attempt.test_id)

    if answer_rows:
        answered = [a.question_id for a in answer_rows if a.selected_option_id is not None]
        correct_map = correct_option_map(await get_options_for_questions(session, answered))
    else:
        # autosave never landed: everything is unanswered, skip the option lookup
        correct_map = {}

    grade = grade_submission(
        schemes,
        [AnswerRecord(a.question_id, a.selected_option_id) for a in answer_rows],
        correct_map,
    )

    # duration up to the last autosave, read before end_time is overwritten
    completion_seconds = None
    if attempt.end_time and attempt.start_time:
        completion_seconds = int((attempt.end_time - attempt.start_time).total_seconds())

    test = await session.get(Test, attempt.test_id)
    attempt.status = AttemptStatus.COMPLETED.value
    attempt.submit_time = now
    attempt.end_time = now
    attempt.total_marks_obtained = grade.score
    attempt.percentage = grade.percentage
    attempt.correct_answers = grade.correct
    attempt.incorrect_answers = grade.incorrect
    attempt.unanswered = grade.unanswered
    attempt.total_possible = grade.total_possible
    attempt.is_passed = is_passed(grade.score, test.passing_marks if test else None)

    rows_by_question = {a.question_id: a for a in answer_rows}
    for qr in grade.question_results:
        row = rows_by_question.get(qr.question_id)
        if row is not None:
            row.marks_obtained = qr.marks_obtained
            row.is_correct = qr.is_correct

    if test_session is not None:
        test_session.session_end = now

    session.add(
        LeaderboardEntry(
            test_id=attempt.test_id,
            user_id=attempt.user_id,
            attempt_id=attempt.id,
            score=grade.score,
            completion_time_seconds=completion_seconds,
            attempt_date=now,
        )
    )
    return grade


async def submit_session(session: AsyncSession, user, token: str) -> dict:
    test_session, attempt = await _resolve_owned_attempt(session, token, user)

    if attempt.is_completed:
        logger.info("Repeat submit for completed attempt_id=%s, returning stored result", attempt.id)
        return _result_from_attempt(attempt)

    attempt_id = attempt.id
    await _delete_in_progress(session, user.id, attempt.test_id, keep_attempt_id=attempt_id)

    try:
        await _grade_attempt(session, attempt, test_session, _utcnow())
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Grading failed for attempt_id=%s", attempt_id)
        raise

    logger.info(
        "Attempt %s submitted: score=%s correct=%s incorrect=%s unanswered=%s",
        attempt.id, attempt.total_marks_obtained, attempt.correct_answers, attempt.incorrect_answers, attempt.unanswered,
    )
    return _result_from_attempt(attempt)


async def post_session_event(session: AsyncSession, user, token: str, event_type: str, metadata: dict | None) -> None:
    if event_type not in proctoring_service.VALID_EVENT_TYPES:
        raise ValidationFailedError("Invalid event type")
    test_session, _ = await _resolve_owned_attempt(session, token, user)
    await proctoring_service.record_event(session, test_session, event_type, metadata)
    await session.commit()


async def get_session_status(session: AsyncSession, token: str) -> dict:
    test_session = await proctoring_service.get_session_by_token(session, token)
    if not test_session:
        raise NotFoundError("Session not found")
    attempt = await session.get(Attempt, test_session.attempt_id)
    if not attempt:
        raise NotFoundError("Attempt not found")

    return {
        "session": {
            "id": test_session.id,
            "session_start": test_session.session_start,
            "session_end": test_session.session_end,
            **proctoring_service.counters(test_session),
        },
        "attempt": {
            "attempt_id": attempt.id,
            "test_id": attempt.test_id,
            "start_time": attempt.start_time,
            "end_time": attempt.end_time,
            "submit_time": attempt.submit_time,
            "status": attempt.status,
        },
    }


async def get_attempt_result(session: AsyncSession, user, attempt_id: int) -> dict:
    res = await session.execute(select(Attempt).where(Attempt.id == attempt_id, Attempt.user_id == user.id))
    attempt = res.scalar_one_or_none()
    if not attempt:
        raise NotFoundError("Test attempt not found")
    test = await session.get(Test, attempt.test_id)
    return {
        **_result_from_attempt(attempt),
        "test_id": attempt.test_id,
        "test_name": test.name if test else "Test",
        "total_questions": test.total_questions if test else 0,
        "status": attempt.status,
        "submit_time": attempt.submit_time,
    }


async def list_attempt_events(session: AsyncSession, attempt_id: int) -> dict:
    attempt = await session.get(Attempt, attempt_id)
    if not attempt:
        raise NotFoundError("Attempt not found")
    res = await session.execute(select(TestSession).where(TestSession.attempt_id == attempt.id))
    test_session = res.scalar_one_or_none()
    if not test_session:
        raise NotFoundError("Session not found")
    events = await proctoring_service.list_events(session, test_session.id)
    return {
        "attempt_id": attempt.id,
        "user_id": attempt.user_id,
        "counters": proctoring_service.counters(test_session),
        "events": [
            {
                "id": e.id,
                "event_type": e.event_type,
                "severity": e.severity,
                "details": e.event_details or {},
                "created_at": e.created_at,
            }
            for e in events
        ],
    }


async def expire_overdue_attempts(session: AsyncSession, grace_seconds: int = 0, now: datetime | None = None) -> List[int]:
    """Force-submit in-progress attempts whose test duration (plus grace) has run out."""
    now = now or _utcnow()
    res = await session.execute(
        select(Attempt, Test.duration_minutes)
        .join(Test, Test.id == Attempt.test_id)
        .where(Attempt.status == AttemptStatus.IN_PROGRESS.value)
        .order_by(Attempt.id)
    )
    expired: List[int] = []
    for attempt, duration in res.all():
        if not duration:
            continue
        deadline = attempt.start_time + timedelta(minutes=duration, seconds=grace_seconds)
        if deadline >= now:
            continue
        attempt_id = attempt.id
        # each attempt grades inside its own savepoint; a failure rolls back only that attempt
        try:
            async with session.begin_nested():
                sres = await session.execute(select(TestSession).where(TestSession.attempt_id == attempt_id))
                await _grade_attempt(session, attempt, sres.scalar_one_or_none(), now)
                attempt.auto_submitted = True
        except Exception:
            logger.exception("Auto-submit failed for attempt_id=%s, skipped", attempt_id)
            continue
        expired.append(attempt_id)

    if expired:
        await session.commit()
        logger.info("Auto-submitted %d overdue attempt(s): %s", len(expired), expired)
    return expired
