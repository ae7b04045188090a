from types import SimpleNamespace

from examprep.services.grading_service import (
    AnswerRecord,
    MarkingScheme,
    correct_option_map,
    grade_submission,
    is_passed,
    CORRECT,
    INCORRECT,
    UNANSWERED,
)


def two_question_test(marks=4, negative=1):
    return [MarkingScheme(1, marks, negative), MarkingScheme(2, marks, negative)]


# question 1 -> option 11 is right, question 2 -> option 21 is right
CORRECT_OPTIONS = {1: 11, 2: 21}


def test_one_right_one_wrong():
    answers = [AnswerRecord(1, 11), AnswerRecord(2, 22)]
    result = grade_submission(two_question_test(), answers, CORRECT_OPTIONS)

    assert result.correct == 1
    assert result.incorrect == 1
    assert result.unanswered == 0
    assert result.score == 3.0
    assert result.total_possible == 8.0
    assert result.percentage == 37.5
    assert [r.outcome for r in result.question_results] == [CORRECT, INCORRECT]
    assert [r.marks_obtained for r in result.question_results] == [4.0, -1.0]


def test_no_answers_is_all_unanswered():
    result = grade_submission(two_question_test(), [], {})

    assert result.unanswered == 2
    assert result.correct == result.incorrect == 0
    assert result.score == 0.0
    assert result.percentage == 0.0
    assert result.total_possible == 8.0


def test_null_selection_and_missing_row_grade_the_same():
    with_null = grade_submission(two_question_test(), [AnswerRecord(1, None)], CORRECT_OPTIONS)
    without_row = grade_submission(two_question_test(), [], CORRECT_OPTIONS)

    assert with_null.unanswered == without_row.unanswered == 2
    assert with_null.score == without_row.score == 0.0
    assert with_null.question_results == without_row.question_results


def test_score_is_clamped_at_zero():
    schemes = [MarkingScheme(1, 4, 2), MarkingScheme(2, 4, 2)]
    answers = [AnswerRecord(1, 12), AnswerRecord(2, 22)]
    result = grade_submission(schemes, answers, CORRECT_OPTIONS)

    assert result.incorrect == 2
    assert result.score == 0.0
    assert result.percentage == 0.0
    # per-question marks still carry the deduction
    assert sum(r.marks_obtained for r in result.question_results) == -4.0


def test_question_without_correct_option_counts_as_unanswered():
    schemes = [MarkingScheme(1, 4, 1), MarkingScheme(3, 4, 1)]
    answers = [AnswerRecord(1, 11), AnswerRecord(3, 31)]
    result = grade_submission(schemes, answers, CORRECT_OPTIONS)

    assert result.correct == 1
    assert result.unanswered == 1
    assert result.score == 4.0


def test_counts_always_sum_to_question_count():
    schemes = [MarkingScheme(q, 2, 0.5) for q in range(1, 7)]
    correct = {q: q * 10 for q in range(1, 7)}
    answers = [AnswerRecord(1, 10), AnswerRecord(2, 99), AnswerRecord(3, None), AnswerRecord(5, 50)]
    result = grade_submission(schemes, answers, correct)

    assert result.correct + result.incorrect + result.unanswered == len(schemes)
    assert result.total_questions == 6


def test_zero_total_possible_gives_zero_percentage():
    result = grade_submission([MarkingScheme(1, 0, 0)], [AnswerRecord(1, 11)], CORRECT_OPTIONS)
    assert result.total_possible == 0
    assert result.percentage == 0.0


def test_option_ids_compare_numerically():
    result = grade_submission([MarkingScheme(1, 4, 1)], [AnswerRecord(1, "11")], CORRECT_OPTIONS)
    assert result.correct == 1


def test_grading_is_deterministic():
    answers = [AnswerRecord(2, 21), AnswerRecord(1, 12)]
    first = grade_submission(two_question_test(), answers, CORRECT_OPTIONS)
    second = grade_submission(two_question_test(), list(reversed(answers)), CORRECT_OPTIONS)
    assert first == second


def test_answers_outside_the_scheme_are_ignored():
    result = grade_submission(two_question_test(), [AnswerRecord(1, 11), AnswerRecord(99, 1)], CORRECT_OPTIONS)
    assert result.total_questions == 2
    assert result.score == 4.0


def test_correct_option_map_takes_first_correct_by_order():
    opts = [
        SimpleNamespace(id=5, question_id=1, option_order=2, is_correct=True),
        SimpleNamespace(id=4, question_id=1, option_order=1, is_correct=True),
        SimpleNamespace(id=6, question_id=2, option_order=1, is_correct=False),
    ]
    assert correct_option_map(opts) == {1: 4}


def test_is_passed():
    assert is_passed(10, None) is None
    assert is_passed(10, 10) is True
    assert is_passed(9.5, 10) is False
