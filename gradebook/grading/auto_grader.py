"""
Auto-Grader - scores structured quiz answers against an assignment's question bank.
Multiple choice and matching questions are scored here; text questions need a teacher.
"""
import json
import math
from typing import Any, Dict, Optional, Sequence

from .base import AutoGradeResult, QuestionKind, QuestionSpec


class AutoGrader:
    """
    Deterministic grading of one submission:
    - Multiple choice: exact match against the option flagged correct
    - Matching: proportional partial credit, truncated to cents
    - Text: recorded as 0 until graded by hand
    """

    def grade(self, questions: Sequence[QuestionSpec], answers: Optional[Dict[str, Any]]) -> AutoGradeResult:
        answers = answers or {}
        total_points = 0.0
        earned_points = 0.0
        question_grades: Dict[str, float] = {}
        all_auto_gradable = True
        has_auto_gradable = False

        for index, question in enumerate(questions):
            key = str(index)
            raw_answer = answers.get(key)
            if raw_answer is None:
                raw_answer = ''

            total_points += question.points or 0

            if question.is_auto_gradable:
                has_auto_gradable = True
                points = self.grade_question(question, raw_answer)
            else:
                all_auto_gradable = False
                points = 0

            earned_points += points
            question_grades[key] = points

        return AutoGradeResult(
            auto_graded=has_auto_gradable,
            auto_grade=earned_points,
            auto_question_grades=question_grades,
            all_multiple_choice=all_auto_gradable and has_auto_gradable,
            total_points=total_points,
        )

    def grade_question(self, question: QuestionSpec, raw_answer: Any) -> float:
        """Route to the scoring method for the question kind."""
        if question.kind == QuestionKind.MULTIPLE_CHOICE:
            return self._grade_choice(question, raw_answer)
        elif question.kind == QuestionKind.MATCHING:
            return self._grade_matching(question, raw_answer)
        return 0

    # =========================================================================
    # MULTIPLE CHOICE
    # =========================================================================

    def _grade_choice(self, question: QuestionSpec, raw_answer: Any) -> float:
        correct_text = question.correct_option_text
        if correct_text is not None and raw_answer == correct_text:
            return question.points or 0
        return 0

    # =========================================================================
    # MATCHING
    # =========================================================================

    def _grade_matching(self, question: QuestionSpec, raw_answer: Any) -> float:
        pairs = self._parse_pairs(raw_answer)
        if pairs is None or not question.left_items or not question.right_items:
            return 0

        right_by_id = {}
        for right_item in question.right_items:
            right_by_id.setdefault(right_item.get('id'), right_item)

        total_matches = len(question.left_items)
        correct_matches = 0
        for ordinal, left_item in enumerate(question.left_items):
            chosen = self._chosen_for(pairs, ordinal)
            correct_right = right_by_id.get(left_item.get('id'))
            if correct_right is not None and chosen is not None and chosen == correct_right.get('text'):
                correct_matches += 1

        points = question.points or 0
        if correct_matches == total_matches:
            return points
        return math.floor(points * (correct_matches / total_matches) * 100) / 100

    def _parse_pairs(self, raw_answer: Any):
        """Left ordinal -> chosen right text. Malformed payloads read as no pairs."""
        if isinstance(raw_answer, (dict, list)):
            return raw_answer
        if not isinstance(raw_answer, str):
            return {}
        try:
            parsed = json.loads(raw_answer)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, (dict, list)) else None

    def _chosen_for(self, pairs, ordinal: int):
        if isinstance(pairs, list):
            return pairs[ordinal] if ordinal < len(pairs) else None
        return pairs.get(str(ordinal))


def auto_grade(questions: Sequence[QuestionSpec], answers: Optional[Dict[str, Any]]) -> AutoGradeResult:
    return AutoGrader().grade(questions, answers)
