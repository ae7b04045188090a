"""
Ordered question-list resolution for a test.

Two tiers behind one call: a joined fetch (links -> questions -> options/media in
eager loads) and a decomposed fetch that issues one query per table and stitches
the rows together. The decomposed path runs when the joined one raises or comes
back empty. Both produce the same shape, ordered by ``question_order``, and never
carry option correctness.
"""
import logging
from typing import Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import config
from ..models.test_model import TestQuestion, Question, QuestionOption, QuestionMedia
from .grading_service import MarkingScheme

logger = logging.getLogger(__name__)


def media_url(file_path: str) -> str:
    return f"{config.MEDIA_BASE_URL}/{file_path.lstrip('/')}"


def _allocated(link_value, question_value) -> float:
    # a missing allocation falls back to the question's own value
    if link_value is not None:
        return float(link_value)
    return float(question_value or 0)


def _question_dict(link: TestQuestion, question: Question | None, options: Sequence[QuestionOption], media: Sequence[QuestionMedia]) -> dict:
    return {
        "test_question_id": link.id,
        "question_id": link.question_id,
        "order": link.question_order,
        "text": question.question_text if question else "",
        "type": question.question_type if question else "mcq",
        "marks": _allocated(link.marks_allocated, question.marks if question else None),
        "negative": _allocated(link.negative_marks_allocated, question.negative_marks if question else None),
        "metadata": (question.question_metadata if question else None) or {},
        "options": [
            {"option_id": o.id, "text": o.option_text}
            for o in sorted(options, key=lambda o: (o.option_order or 0, o.id))
        ],
        "media": [
            {"media_id": m.id, "url": media_url(m.file_path), "type": m.media_type, "file_name": m.file_name}
            for m in media
            if m.file_path
        ],
    }


async def _fetch_joined(session: AsyncSession, test_id: int) -> List[dict]:
    stmt = (
        select(TestQuestion)
        .where(TestQuestion.test_id == test_id)
        .options(
            selectinload(TestQuestion.question).selectinload(Question.options),
            selectinload(TestQuestion.question).selectinload(Question.media),
        )
        .order_by(TestQuestion.question_order, TestQuestion.id)
    )
    res = await session.execute(stmt)
    links = res.scalars().all()
    return [
        _question_dict(link, link.question, link.question.options if link.question else [], link.question.media if link.question else [])
        for link in links
    ]


async def _fetch_decomposed(session: AsyncSession, test_id: int) -> List[dict]:
    lres = await session.execute(
        select(TestQuestion).where(TestQuestion.test_id == test_id).order_by(TestQuestion.question_order, TestQuestion.id)
    )
    links = lres.scalars().all()
    qids = [link.question_id for link in links if link.question_id is not None]
    if not qids:
        return []

    qres = await session.execute(select(Question).where(Question.id.in_(qids)))
    qmap = {q.id: q for q in qres.scalars().all()}

    ores = await session.execute(select(QuestionOption).where(QuestionOption.question_id.in_(qids)))
    options: Dict[int, list] = {}
    for o in ores.scalars().all():
        options.setdefault(o.question_id, []).append(o)

    mres = await session.execute(select(QuestionMedia).where(QuestionMedia.question_id.in_(qids)))
    media: Dict[int, list] = {}
    for m in mres.scalars().all():
        media.setdefault(m.question_id, []).append(m)

    return [
        _question_dict(link, qmap.get(link.question_id), options.get(link.question_id, []), media.get(link.question_id, []))
        for link in links
    ]


async def resolve_test_questions(session: AsyncSession, test_id: int) -> List[dict]:
    """Ordered, answer-key-free question list for a test."""
    questions: List[dict] = []
    try:
        questions = await _fetch_joined(session, test_id)
    except Exception:
        logger.exception("Joined question fetch failed for test_id=%s, falling back to per-table lookups", test_id)

    if not questions:
        logger.info("Resolving questions for test_id=%s through per-table lookups", test_id)
        questions = await _fetch_decomposed(session, test_id)

    missing = [q["question_id"] for q in questions if not q["options"] and q["type"] in ("mcq", "true_false")]
    if missing:
        logger.warning("Questions without options on test_id=%s: %s", test_id, missing)
    return questions


async def get_marking_schemes(session: AsyncSession, test_id: int) -> List[MarkingScheme]:
    """Per-question marks for grading, in test order."""
    stmt = (
        select(TestQuestion, Question.marks, Question.negative_marks)
        .outerjoin(Question, Question.id == TestQuestion.question_id)
        .where(TestQuestion.test_id == test_id)
        .order_by(TestQuestion.question_order, TestQuestion.id)
    )
    res = await session.execute(stmt)
    schemes = []
    for link, q_marks, q_negative in res.all():
        schemes.append(
            MarkingScheme(
                question_id=link.question_id,
                marks=_allocated(link.marks_allocated, q_marks),
                negative_marks=_allocated(link.negative_marks_allocated, q_negative),
            )
        )
    return schemes


async def get_options_for_questions(session: AsyncSession, qids: Sequence[int]) -> List[QuestionOption]:
    if not qids:
        return []
    res = await session.execute(select(QuestionOption).where(QuestionOption.question_id.in_(list(qids))))
    return list(res.scalars().all())
