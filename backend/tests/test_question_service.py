from examprep.services import question_service
from examprep.models.test_model import Test, TestQuestion, Question


async def test_joined_fetch_orders_by_question_order_and_hides_answer_key(db_session, make_test):
    test, key = await make_test(n_questions=3)

    questions = await question_service.resolve_test_questions(db_session, test.id)

    assert [q["order"] for q in questions] == [1, 2, 3]
    assert [q["question_id"] for q in questions] == list(key)
    for q in questions:
        assert len(q["options"]) == 4
        assert all(set(o) == {"option_id", "text"} for o in q["options"])
        assert q["marks"] == 4.0
        assert q["negative"] == 1.0


async def test_fallback_path_matches_joined_shape(db_session, make_test, monkeypatch):
    test, _ = await make_test(n_questions=2)
    joined = await question_service.resolve_test_questions(db_session, test.id)

    async def broken_join(session, test_id):
        raise RuntimeError("join layer unavailable")

    monkeypatch.setattr(question_service, "_fetch_joined", broken_join)
    fallback = await question_service.resolve_test_questions(db_session, test.id)

    assert fallback == joined


async def test_fallback_runs_when_join_comes_back_empty(db_session, make_test, monkeypatch):
    test, _ = await make_test(n_questions=2)
    calls = []

    async def empty_join(session, test_id):
        calls.append(test_id)
        return []

    monkeypatch.setattr(question_service, "_fetch_joined", empty_join)
    questions = await question_service.resolve_test_questions(db_session, test.id)

    assert calls == [test.id]
    assert len(questions) == 2


async def test_media_urls_are_public(db_session, media_question):
    test, question = media_question
    questions = await question_service.resolve_test_questions(db_session, test.id)

    media = questions[0]["media"]
    assert len(media) == 1
    assert media[0]["url"].endswith("/questions/circuit.png")
    assert media[0]["type"] == "image"


async def test_missing_allocation_falls_back_to_question_marks(db_session, media_question):
    test, _ = media_question

    schemes = await question_service.get_marking_schemes(db_session, test.id)

    assert len(schemes) == 1
    assert schemes[0].marks == 4.0
    assert schemes[0].negative_marks == 1.0


async def test_explicit_zero_negative_allocation_is_kept(db_session):
    test = Test(name="No negatives", test_type="mock", is_published=True)
    question = Question(question_text="Q", marks=4, negative_marks=1)
    db_session.add_all([test, question])
    await db_session.flush()
    db_session.add(TestQuestion(test_id=test.id, question_id=question.id, question_order=1, marks_allocated=2, negative_marks_allocated=0))
    await db_session.commit()

    schemes = await question_service.get_marking_schemes(db_session, test.id)

    assert schemes[0].marks == 2.0
    assert schemes[0].negative_marks == 0.0


async def test_empty_test_resolves_to_empty_list(db_session):
    test = Test(name="Empty", test_type="mock", is_published=True)
    db_session.add(test)
    await db_session.commit()

    assert await question_service.resolve_test_questions(db_session, test.id) == []
