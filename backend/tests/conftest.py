import os
import tempfile

# configure before the app module builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET", "test-secret")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="examprep-media-"))

import uuid

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from examprep.app import app
from examprep.db import Base, get_async_session
from examprep.security import current_active_user
from examprep.models.user_model import User, UserRole
from examprep.models.test_model import Test, TestQuestion, Question, QuestionOption, QuestionMedia


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


async def _make_user(db_session, email, role=UserRole.STUDENT):
    user = User(
        id=uuid.uuid4(),
        email=email,
        hashed_password="not-a-real-hash",
        full_name=email.split("@")[0],
        role=role,
        is_active=True,
        is_verified=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def student(db_session):
    return await _make_user(db_session, "student@example.com")


@pytest.fixture
async def other_student(db_session):
    return await _make_user(db_session, "other@example.com")


@pytest.fixture
async def admin(db_session):
    return await _make_user(db_session, "admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def current_user(student):
    return {"user": student}


@pytest.fixture
def login_as(current_user):
    def _login(user):
        current_user["user"] = user
    return _login


def _override_dependencies(session_maker, current_user):
    async def _get_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = _get_session
    app.dependency_overrides[current_active_user] = lambda: current_user["user"]


@pytest.fixture
async def client(session_maker, current_user):
    _override_dependencies(session_maker, current_user)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def server_error_client(session_maker, current_user):
    """Client that returns the 500 response instead of re-raising the app's exception."""
    _override_dependencies(session_maker, current_user)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_test(db_session):
    """
    Build a published test of MCQ questions.

    Returns ``(test, answer_key)`` where answer_key maps question_id to
    ``{"correct": option_id, "wrong": option_id}``.
    """
    async def _make(
        n_questions=2,
        marks=4.0,
        negative=1.0,
        test_type="practice",
        category="chapter",
        **test_fields,
    ):
        fields = {
            "name": "Physics Chapter 1",
            "test_type": test_type,
            "test_metadata": {"test_category": category} if category else {},
            "is_published": True,
            "is_free": True,
            "duration_minutes": 30,
        }
        fields.update(test_fields)
        test = Test(**fields)
        db_session.add(test)
        await db_session.flush()

        answer_key = {}
        for i in range(n_questions):
            question = Question(question_text=f"Question {i + 1}", question_type="mcq", marks=marks, negative_marks=negative)
            question.options = [
                QuestionOption(option_text=f"Q{i + 1} option {j}", option_order=j, is_correct=(j == 2))
                for j in range(1, 5)
            ]
            db_session.add(question)
            await db_session.flush()
            db_session.add(
                TestQuestion(
                    test_id=test.id,
                    question_id=question.id,
                    question_order=i + 1,
                    marks_allocated=marks,
                    negative_marks_allocated=negative,
                )
            )
            by_order = {o.option_order: o.id for o in question.options}
            answer_key[question.id] = {"correct": by_order[2], "wrong": by_order[1]}

        test.total_questions = n_questions
        test.total_marks = marks * n_questions
        await db_session.commit()
        return test, answer_key

    return _make


@pytest.fixture
async def media_question(db_session):
    """Attach an image to a fresh single-question test."""
    test = Test(name="Diagram test", test_type="mock", is_published=True, is_free=True, duration_minutes=10)
    db_session.add(test)
    await db_session.flush()
    question = Question(question_text="Identify the circuit", marks=4, negative_marks=1)
    question.options = [
        QuestionOption(option_text="Series", option_order=1, is_correct=True),
        QuestionOption(option_text="Parallel", option_order=2, is_correct=False),
    ]
    question.media = [QuestionMedia(file_path="questions/circuit.png", media_type="image", file_name="circuit.png")]
    db_session.add(question)
    await db_session.flush()
    db_session.add(TestQuestion(test_id=test.id, question_id=question.id, question_order=1))
    await db_session.commit()
    return test, question
