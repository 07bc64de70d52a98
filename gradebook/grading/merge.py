"""
Grade Merge Engine.
Reconciles automatic per-question scores with teacher grades when a submission
is graded or re-graded. Every merge recomputes the final grade from scratch so
that repeated grading never double-counts a question or drops a prior override.
"""
from typing import Dict, Optional, Sequence

from .auto_grader import AutoGrader
from .base import (
    InvalidGradeError, MergeResult, QuestionSpec, SubmissionGradingState,
    TeacherGradeInput, is_blank, parse_points,
)

OVERRIDE_TOLERANCE = 0.01


class GradeMergeEngine:

    def __init__(self, auto_grader: AutoGrader = None, tolerance: float = OVERRIDE_TOLERANCE):
        self.auto_grader = auto_grader or AutoGrader()
        self.tolerance = tolerance

    def merge(
        self,
        state: SubmissionGradingState,
        questions: Optional[Sequence[QuestionSpec]],
        teacher_input: TeacherGradeInput
    ) -> MergeResult:
        """
        Compute the new grading fields for a submission.

        `questions` is None when the assignment can no longer be resolved; the
        stored auto grade is then used as-is. The state is never mutated and
        InvalidGradeError is raised before any result is produced.
        """
        result = MergeResult.from_state(state)

        if state.auto_graded:
            if teacher_input.approve_grade:
                self._approve(result, questions, teacher_input)
            else:
                self._merge_manual(result, state, questions, teacher_input)
        else:
            self._grade_traditional(result, state, questions, teacher_input)

        return result

    # =========================================================================
    # APPROVE MODE
    # =========================================================================

    def _approve(self, result: MergeResult, questions, teacher_input: TeacherGradeInput):
        combined = dict(result.auto_question_grades)
        for key, value in (teacher_input.question_grades or {}).items():
            combined[str(key)] = parse_points(value) or 0.0
        result.question_grades = combined

        if questions is None:
            result.final_grade = result.auto_grade
            result.used_fallback = True
        else:
            result.final_grade = sum(
                combined.get(str(i), result.auto_question_grades.get(str(i), 0)) or 0
                for i in range(len(questions))
            )

        result.grade = result.final_grade
        result.teacher_approved = True
        result.graded = True

    # =========================================================================
    # MANUAL MODE
    # =========================================================================

    def _merge_manual(self, result: MergeResult, state, questions, teacher_input: TeacherGradeInput):
        if questions is None:
            result.final_grade = result.auto_grade or 0
            result.grade = result.final_grade
            result.teacher_approved = True
            result.graded = True
            result.used_fallback = True
            return

        if len(result.auto_question_grades) < len(questions):
            recomputed = self.auto_grader.grade(questions, state.answers)
            result.auto_graded = recomputed.auto_graded
            result.auto_grade = recomputed.auto_grade
            result.auto_question_grades = dict(recomputed.auto_question_grades)
            result.recomputed = True

        auto_grades = result.auto_question_grades
        overrides = self._teacher_overrides(questions, auto_grades, teacher_input.question_grades)
        self._keep_stored_overrides(overrides, questions, auto_grades, state.question_grades)

        resolved: Dict[str, float] = {}
        earned_points = 0.0
        for index, question in enumerate(questions):
            key = str(index)
            if key in overrides:
                points = overrides[key]
            elif question.is_auto_gradable:
                points = auto_grades.get(key) or 0
            else:
                points = 0
            resolved[key] = points
            earned_points += points

        result.question_grades = resolved
        result.final_grade = earned_points
        result.grade = earned_points
        result.teacher_approved = True
        result.graded = True

    def _teacher_overrides(self, questions, auto_grades, question_grades) -> Dict[str, float]:
        """Values from the current request. Auto-scored questions count only if changed."""
        overrides = {}
        for key, value in (question_grades or {}).items():
            index = _question_index(key, len(questions))
            if index is None:
                continue
            question = questions[index]
            parsed = parse_points(value)

            if not question.is_auto_gradable:
                overrides[str(index)] = parsed if parsed is not None else 0.0
                continue

            auto_value = auto_grades.get(str(index))
            if auto_value is not None and parsed is not None and abs(parsed - auto_value) > self.tolerance:
                overrides[str(index)] = parsed
        return overrides

    def _keep_stored_overrides(self, overrides, questions, auto_grades, stored_grades):
        """
        Carry forward earlier manual grades the current request did not resupply.
        A stored 0 against a positive auto score is corrupted legacy data and is dropped.
        """
        for key, value in (stored_grades or {}).items():
            index = _question_index(key, len(questions))
            if index is None or str(index) in overrides:
                continue
            stored = parse_points(value)
            if stored is None:
                continue

            if not questions[index].is_auto_gradable:
                overrides[str(index)] = stored
                continue

            auto_value = auto_grades.get(str(index))
            if auto_value is None:
                continue
            if abs(stored - auto_value) > self.tolerance and not (stored == 0 and auto_value > 0):
                overrides[str(index)] = stored

    # =========================================================================
    # NON AUTO-GRADED SUBMISSIONS
    # =========================================================================

    def _grade_traditional(self, result: MergeResult, state, questions, teacher_input: TeacherGradeInput):
        if teacher_input.use_individual_grades and state.is_group:
            member_grades = {}
            for member, value in (teacher_input.member_grades or {}).items():
                if state.member_ids is not None and str(member) not in state.member_ids:
                    continue
                parsed = parse_points(value)
                if parsed is not None:
                    member_grades[member] = parsed
            result.use_individual_grades = True
            result.member_grades = member_grades
            result.grade = sum(member_grades.values()) / len(member_grades) if member_grades else 0
            result.graded = True
        else:
            result.use_individual_grades = False
            if not is_blank(teacher_input.grade) and not teacher_input.approve_grade:
                parsed = parse_points(teacher_input.grade)
                if parsed is None:
                    raise InvalidGradeError(f"Invalid grade format: {teacher_input.grade!r}")
                result.grade = parsed
                result.final_grade = parsed
                result.teacher_approved = True
                result.graded = True

        if teacher_input.question_grades:
            result.question_grades = {
                str(key): parse_points(value) or 0.0
                for key, value in teacher_input.question_grades.items()
            }
            if questions:
                result.final_grade = sum(
                    result.question_grades.get(str(i), 0) for i in range(len(questions))
                )
                result.grade = result.final_grade
                result.teacher_approved = True
                result.graded = True


def _question_index(key, question_count: int) -> Optional[int]:
    try:
        index = int(str(key).strip())
    except ValueError:
        return None
    if 0 <= index < question_count:
        return index
    return None


def merge_grade(
    state: SubmissionGradingState,
    questions: Optional[Sequence[QuestionSpec]],
    teacher_input: TeacherGradeInput
) -> MergeResult:
    return GradeMergeEngine().merge(state, questions, teacher_input)
