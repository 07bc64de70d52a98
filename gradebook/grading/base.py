import math
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple


class QuestionKind:
    TEXT = 'text'
    MULTIPLE_CHOICE = 'multiple-choice'
    MATCHING = 'matching'


AUTO_GRADABLE_KINDS = frozenset({QuestionKind.MULTIPLE_CHOICE, QuestionKind.MATCHING})


class GradingError(Exception):
    """Base class for grading engine errors."""


class InvalidGradeError(GradingError, ValueError):
    """A teacher supplied a grade that is not a well-formed number."""


def parse_points(value: Any) -> Optional[float]:
    """
    Parse a grade value coming from a form or JSON body.
    Returns None for empty or unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if text in ('', 'null', 'undefined'):
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and value.strip() in ('', 'null', 'undefined')


@dataclass(frozen=True)
class QuestionSpec:
    kind: str
    points: float = 0.0
    options: Tuple[dict, ...] = ()
    left_items: Tuple[dict, ...] = ()
    right_items: Tuple[dict, ...] = ()

    @property
    def is_auto_gradable(self) -> bool:
        return self.kind in AUTO_GRADABLE_KINDS

    @property
    def correct_option_text(self) -> Optional[str]:
        for option in self.options:
            if option.get('is_correct'):
                return option.get('text')
        return None


@dataclass
class AutoGradeResult:
    auto_graded: bool
    auto_grade: float
    auto_question_grades: Dict[str, float]
    all_multiple_choice: bool
    total_points: float = 0.0

    @property
    def percentage(self) -> int:
        # Display only. auto_grade is the stored value and is always in points.
        if self.total_points <= 0:
            return 0
        return int(math.floor(self.auto_grade / self.total_points * 100 + 0.5))


@dataclass
class SubmissionGradingState:
    """Snapshot of the grading fields stored on a submission."""
    answers: Dict[str, Any] = field(default_factory=dict)
    auto_graded: bool = False
    auto_grade: Optional[float] = None
    auto_question_grades: Dict[str, float] = field(default_factory=dict)
    question_grades: Dict[str, float] = field(default_factory=dict)
    grade: Optional[float] = None
    final_grade: Optional[float] = None
    teacher_approved: bool = False
    use_individual_grades: bool = False
    is_group: bool = False
    # ids (as strings) of the group's members; None when membership is unknown
    member_ids: Optional[FrozenSet[str]] = None


@dataclass
class TeacherGradeInput:
    grade: Any = None
    question_grades: Optional[Dict[str, Any]] = None
    approve_grade: bool = False
    use_individual_grades: bool = False
    member_grades: Optional[Dict[Any, Any]] = None
    feedback: Optional[str] = None


@dataclass
class MergeResult:
    auto_graded: bool
    auto_grade: Optional[float]
    auto_question_grades: Dict[str, float]
    question_grades: Dict[str, float]
    grade: Optional[float]
    final_grade: Optional[float]
    teacher_approved: bool
    use_individual_grades: bool
    member_grades: Optional[Dict[Any, float]] = None
    graded: bool = False
    recomputed: bool = False
    used_fallback: bool = False

    @classmethod
    def from_state(cls, state: SubmissionGradingState) -> 'MergeResult':
        return cls(
            auto_graded=state.auto_graded,
            auto_grade=state.auto_grade,
            auto_question_grades=dict(state.auto_question_grades or {}),
            question_grades=dict(state.question_grades or {}),
            grade=state.grade,
            final_grade=state.final_grade,
            teacher_approved=state.teacher_approved,
            use_individual_grades=state.use_individual_grades,
        )
