import logging
from typing import List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import NotFoundError
from ..models.test_model import Test, TestQuestion, Question, QuestionOption
from ..schemas.test_schema import QuestionImport

logger = logging.getLogger(__name__)


async def _get_test(session: AsyncSession, test_id: int) -> Test:
    test = await session.get(Test, test_id)
    if not test:
        raise NotFoundError("Test not found")
    return test


async def _next_question_order(session: AsyncSession, test_id: int) -> int:
    res = await session.execute(select(func.max(TestQuestion.question_order)).where(TestQuestion.test_id == test_id))
    current = res.scalar_one_or_none()
    return (current or 0) + 1


async def refresh_test_totals(session: AsyncSession, test: Test):
    res = await session.execute(
        select(
            func.count(TestQuestion.id),
            func.coalesce(func.sum(func.coalesce(TestQuestion.marks_allocated, Question.marks)), 0),
        )
        .outerjoin(Question, Question.id == TestQuestion.question_id)
        .where(TestQuestion.test_id == test.id)
    )
    count, marks = res.one()
    test.total_questions = int(count or 0)
    test.total_marks = float(marks or 0)


async def import_questions(session: AsyncSession, test_id: int, questions: List[QuestionImport]) -> dict:
    """Create questions with options and append them to the test after its last question."""
    test = await _get_test(session, test_id)

    res = await session.execute(
        select(Question.question_text)
        .join(TestQuestion, TestQuestion.question_id == Question.id)
        .where(TestQuestion.test_id == test.id)
    )
    existing_texts = {t.strip().lower() for t in res.scalars().all()}

    order = await _next_question_order(session, test.id)
    created = 0
    for q in questions:
        key = q.question_text.strip().lower()
        if key in existing_texts:
            logger.info("'%s' is already on test %s, skipped", q.question_text, test.id)
            continue
        existing_texts.add(key)

        question = Question(
            question_text=q.question_text,
            question_type=q.question_type.value,
            marks=q.marks,
            negative_marks=q.negative_marks,
            explanation=q.explanation,
        )
        question.options = [
            QuestionOption(option_text=text, option_order=idx, is_correct=(q.correct_option == idx))
            for idx, text in enumerate(q.options, start=1)
        ]
        session.add(question)
        await session.flush()

        session.add(
            TestQuestion(
                test_id=test.id,
                question_id=question.id,
                question_order=order,
                marks_allocated=q.marks,
                negative_marks_allocated=q.negative_marks,
            )
        )
        order += 1
        created += 1

    await session.flush()
    await refresh_test_totals(session, test)
    await session.commit()

    return {"created": created, "total_questions": test.total_questions, "total_marks": test.total_marks}
