from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional


CORRECT = "correct"
INCORRECT = "incorrect"
UNANSWERED = "unanswered"


@dataclass(frozen=True)
class MarkingScheme:
    question_id: int
    marks: float
    negative_marks: float = 0.0


@dataclass(frozen=True)
class AnswerRecord:
    question_id: int
    selected_option_id: Optional[int] = None


@dataclass(frozen=True)
class QuestionResult:
    question_id: int
    outcome: str
    marks_obtained: float

    @property
    def is_correct(self) -> bool:
        return self.outcome == CORRECT


@dataclass
class GradeResult:
    score: float = 0.0
    percentage: float = 0.0
    correct: int = 0
    incorrect: int = 0
    unanswered: int = 0
    total_possible: float = 0.0
    question_results: List[QuestionResult] = field(default_factory=list)

    @property
    def total_questions(self) -> int:
        return self.correct + self.incorrect + self.unanswered


def _same_option(selected, correct) -> bool:
    try:
        return int(selected) == int(correct)
    except (TypeError, ValueError):
        return False


def grade_submission(
    schemes: Iterable[MarkingScheme],
    answers: Iterable[AnswerRecord],
    correct_options: Mapping[int, int],
) -> GradeResult:
    """
    Grade one attempt with negative marking.

    - schemes: the test's questions in test order with their marks
    - answers: the attempt's answer rows (any order, at most one per question)
    - correct_options: question_id -> id of the option flagged correct. Questions
      missing here (numerical / subjective) are scored as unanswered.

    Pure: no I/O, same input gives the same result. The total is clamped at 0 and
    percentage is 0 when nothing is scoreable.
    """
    by_question: Dict[int, AnswerRecord] = {a.question_id: a for a in answers}
    result = GradeResult()
    obtained = 0.0

    for scheme in schemes:
        marks = float(scheme.marks or 0)
        negative = float(scheme.negative_marks or 0)
        result.total_possible += marks

        answer = by_question.get(scheme.question_id)
        correct_option = correct_options.get(scheme.question_id)

        if answer is None or answer.selected_option_id is None or correct_option is None:
            result.unanswered += 1
            result.question_results.append(QuestionResult(scheme.question_id, UNANSWERED, 0.0))
            continue

        if _same_option(answer.selected_option_id, correct_option):
            result.correct += 1
            obtained += marks
            result.question_results.append(QuestionResult(scheme.question_id, CORRECT, marks))
        else:
            result.incorrect += 1
            obtained -= negative
            result.question_results.append(QuestionResult(scheme.question_id, INCORRECT, -negative))

    result.score = max(obtained, 0.0)
    result.percentage = (result.score / result.total_possible) * 100 if result.total_possible > 0 else 0.0
    return result


def correct_option_map(options: Iterable) -> Dict[int, int]:
    """question_id -> first option (by option_order) flagged correct."""
    ordered = sorted(options, key=lambda o: (o.question_id, o.option_order or 0, o.id))
    out: Dict[int, int] = {}
    for opt in ordered:
        if opt.is_correct and opt.question_id not in out:
            out[opt.question_id] = opt.id
    return out


def is_passed(score: float, passing_marks: Optional[float]) -> Optional[bool]:
    if passing_marks is None:
        return None
    return score >= float(passing_marks)
