"""
Test cases for the Course Grading Engine.
Covers automatic scoring, grade merging, course aggregation, letter grades,
the grading services and the API.
"""
import math
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO

from django.contrib.auth.models import User
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from .grading import (
    AutoGrader, CourseGroup, GradableItem, GradeMergeEngine, InvalidGradeError,
    LegacyAggregation, QuestionSpec, RedistributingAggregation, SubmissionGradingState,
    TeacherGradeInput, aggregate_course_grade, auto_grade, group_breakdown,
    letter_for, validate_grade_scale,
)
from .grading.base import parse_points
from .models import (
    Assignment, AuditLog, Course, Discussion, DiscussionGrade, DiscussionReply,
    GroupSet, MemberGrade, Question, StudentGroup, Submission,
)
from .services import CourseGradeService, SubmissionGradingService


def mc_question(points=10, correct='Paris'):
    return QuestionSpec(
        kind='multiple-choice',
        points=points,
        options=({'text': 'London', 'is_correct': False}, {'text': correct, 'is_correct': True}),
    )


def matching_question(points=10, pairs=4):
    left = tuple({'id': f'p{i}', 'text': f'term {i}'} for i in range(pairs))
    right = tuple({'id': f'p{i}', 'text': f'definition {i}'} for i in range(pairs))
    return QuestionSpec(kind='matching', points=points, left_items=left, right_items=right)


def text_question(points=10):
    return QuestionSpec(kind='text', points=points)


# =============================================================================
# AUTO-GRADER
# =============================================================================

class AutoGraderTests(SimpleTestCase):
    """Tests for automatic scoring of multiple choice and matching questions."""

    def setUp(self):
        self.grader = AutoGrader()

    def test_multiple_choice_exact_match(self):
        """Test the correct option text earns full points"""
        result = self.grader.grade([mc_question()], {'0': 'Paris'})
        self.assertEqual(result.auto_grade, 10)
        self.assertEqual(result.auto_question_grades, {'0': 10})

    def test_multiple_choice_is_case_sensitive(self):
        """Test answers differing only in case earn nothing"""
        result = self.grader.grade([mc_question()], {'0': 'paris'})
        self.assertEqual(result.auto_grade, 0)

    def test_multiple_choice_without_correct_option(self):
        """Test a question with no correct option scores 0"""
        question = QuestionSpec(kind='multiple-choice', points=5, options=({'text': 'A', 'is_correct': False},))
        result = self.grader.grade([question], {'0': 'A'})
        self.assertEqual(result.auto_grade, 0)

    def test_matching_partial_credit(self):
        """Test 3 of 4 pairs earn three quarters of the points"""
        answer = '{"0": "definition 0", "1": "definition 1", "2": "definition 2", "3": "wrong"}'
        result = self.grader.grade([matching_question()], {'0': answer})
        self.assertEqual(result.auto_grade, 7.5)

    def test_matching_truncates_to_cents(self):
        """Test partial credit is truncated, not rounded"""
        answer = '{"0": "definition 0"}'
        result = self.grader.grade([matching_question(points=10, pairs=3)], {'0': answer})
        self.assertEqual(result.auto_grade, 3.33)

    def test_matching_all_correct_awards_full_points(self):
        """Test every pair correct awards the exact question points"""
        answer = {str(i): f'definition {i}' for i in range(7)}
        result = self.grader.grade([matching_question(points=0.29, pairs=7)], {'0': answer})
        self.assertEqual(result.auto_grade, 0.29)

    def test_matching_malformed_payload(self):
        """Test an unparseable matching answer scores 0 but still counts as auto-graded"""
        result = self.grader.grade([matching_question()], {'0': 'not json'})
        self.assertEqual(result.auto_grade, 0)
        self.assertTrue(result.auto_graded)

    def test_matching_without_left_items(self):
        """Test a matching question with no left items scores 0"""
        question = QuestionSpec(kind='matching', points=10, right_items=({'id': 'a', 'text': 'x'},))
        result = self.grader.grade([question], {'0': '{"0": "x"}'})
        self.assertEqual(result.auto_grade, 0)

    def test_text_question_needs_teacher(self):
        """Test text questions record 0 and block full auto-approval"""
        result = self.grader.grade([mc_question(), text_question()], {'0': 'Paris', '1': 'An essay'})
        self.assertTrue(result.auto_graded)
        self.assertFalse(result.all_multiple_choice)
        self.assertEqual(result.auto_question_grades, {'0': 10, '1': 0})

    def test_only_text_questions_are_not_auto_graded(self):
        """Test an all-text assignment is not marked auto-graded"""
        result = self.grader.grade([text_question()], {'0': 'An essay'})
        self.assertFalse(result.auto_graded)
        self.assertFalse(result.all_multiple_choice)

    def test_missing_answers_score_zero(self):
        """Test unanswered questions score 0"""
        result = self.grader.grade([mc_question(), matching_question()], {})
        self.assertEqual(result.auto_grade, 0)
        self.assertEqual(result.auto_question_grades, {'0': 0, '1': 0})

    def test_multiple_choice_and_matching_scenario(self):
        """Test 10 pt multiple choice answered correctly plus 10 pt matching with 3 of 4 pairs"""
        answers = {
            '0': 'Paris',
            '1': '{"0": "definition 0", "1": "definition 1", "2": "definition 2", "3": "definition 0"}',
        }
        result = auto_grade([mc_question(), matching_question()], answers)
        self.assertTrue(result.auto_graded)
        self.assertTrue(result.all_multiple_choice)
        self.assertEqual(result.auto_grade, 17.5)
        self.assertEqual(result.total_points, 20)
        self.assertEqual(result.percentage, 88)

    def test_percentage_with_no_points(self):
        """Test the display percentage is 0 when there are no points"""
        result = self.grader.grade([], {})
        self.assertEqual(result.percentage, 0)

    def test_matching_score_is_finite(self):
        """Test awkward point values never produce a non-finite or excessive score"""
        result = auto_grade([matching_question(points=7.77, pairs=9)], {'0': '{"0": "definition 0"}'})
        self.assertTrue(math.isfinite(result.auto_grade))
        self.assertLessEqual(result.auto_grade, 7.77)


class ParsePointsTests(SimpleTestCase):

    def test_parses_numbers_and_numeric_text(self):
        """Test numbers and numeric strings parse to floats"""
        self.assertEqual(parse_points('7.5'), 7.5)
        self.assertEqual(parse_points(' 3 '), 3.0)
        self.assertEqual(parse_points(4), 4.0)

    def test_rejects_blank_and_garbage(self):
        """Test blank, placeholder and non-finite values parse to None"""
        for value in (None, '', 'null', 'undefined', 'abc', 'nan', 'inf', True):
            self.assertIsNone(parse_points(value), value)


# =============================================================================
# GRADE MERGE ENGINE
# =============================================================================

class GradeMergeEngineTests(SimpleTestCase):
    """Tests for reconciling automatic scores with teacher grades."""

    def setUp(self):
        self.engine = GradeMergeEngine()
        self.questions = [mc_question(), text_question()]
        self.state = SubmissionGradingState(
            answers={'0': 'Paris', '1': 'An essay'},
            auto_graded=True,
            auto_grade=10,
            auto_question_grades={'0': 10, '1': 0},
        )

    def _next_state(self, result):
        return SubmissionGradingState(
            answers=self.state.answers,
            auto_graded=result.auto_graded,
            auto_grade=result.auto_grade,
            auto_question_grades=result.auto_question_grades,
            question_grades=result.question_grades,
            grade=result.grade,
            final_grade=result.final_grade,
            teacher_approved=result.teacher_approved,
        )

    def test_manual_grade_adds_text_score(self):
        """Test a text question grade is added to the automatic score"""
        result = self.engine.merge(self.state, self.questions, TeacherGradeInput(question_grades={'1': '7'}))
        self.assertEqual(result.final_grade, 17)
        self.assertEqual(result.grade, 17)
        self.assertEqual(result.question_grades, {'0': 10, '1': 7})
        self.assertTrue(result.teacher_approved)

    def test_regrading_is_idempotent(self):
        """Test grading twice with the same input gives the same final grade"""
        teacher_input = TeacherGradeInput(question_grades={'0': '6', '1': '7'})
        first = self.engine.merge(self.state, self.questions, teacher_input)
        second = self.engine.merge(self._next_state(first), self.questions, teacher_input)
        self.assertEqual(first.final_grade, 13)
        self.assertEqual(second.final_grade, first.final_grade)

    def test_override_survives_regrade_without_it(self):
        """Test an earlier override is kept when a re-grade does not resupply it"""
        first = self.engine.merge(self.state, self.questions, TeacherGradeInput(question_grades={'0': '5', '1': '7'}))
        second = self.engine.merge(self._next_state(first), self.questions, TeacherGradeInput(question_grades={'1': '8'}))
        self.assertEqual(second.question_grades['0'], 5)
        self.assertEqual(second.final_grade, 13)

    def test_stored_zero_against_positive_auto_is_discarded(self):
        """Test a stored 0 on a question the auto-grader scored is treated as corrupt"""
        self.state.question_grades = {'0': 0, '1': 6}
        result = self.engine.merge(self.state, self.questions, TeacherGradeInput())
        self.assertEqual(result.question_grades['0'], 10)
        self.assertEqual(result.final_grade, 16)

    def test_value_within_tolerance_keeps_auto_score(self):
        """Test a teacher value within 0.01 of the auto score is not an override"""
        result = self.engine.merge(self.state, self.questions, TeacherGradeInput(question_grades={'0': '10.005'}))
        self.assertEqual(result.final_grade, 10)

    def test_unparseable_values(self):
        """Test unparseable values keep the auto score or fall back to 0 for text"""
        result = self.engine.merge(
            self.state, self.questions, TeacherGradeInput(question_grades={'0': 'abc', '1': 'xyz'})
        )
        self.assertEqual(result.question_grades, {'0': 10, '1': 0})
        self.assertEqual(result.final_grade, 10)

    def test_out_of_range_keys_are_ignored(self):
        """Test grades for question indices that do not exist are ignored"""
        result = self.engine.merge(self.state, self.questions, TeacherGradeInput(question_grades={'5': '100', 'x': '3'}))
        self.assertEqual(result.final_grade, 10)
        self.assertNotIn('5', result.question_grades)

    def test_incomplete_auto_grades_are_recomputed(self):
        """Test a missing auto-grade record is recomputed before merging"""
        self.state.auto_question_grades = {}
        self.state.auto_grade = None
        result = self.engine.merge(self.state, self.questions, TeacherGradeInput(question_grades={'1': '4'}))
        self.assertTrue(result.recomputed)
        self.assertEqual(result.auto_grade, 10)
        self.assertEqual(result.final_grade, 14)

    def test_approve_mode(self):
        """Test approving the auto grade with a text question adjustment"""
        result = self.engine.merge(
            self.state, self.questions, TeacherGradeInput(approve_grade=True, question_grades={'1': '6'})
        )
        self.assertEqual(result.final_grade, 16)
        self.assertEqual(result.grade, 16)
        self.assertTrue(result.teacher_approved)
        self.assertFalse(result.used_fallback)

    def test_approve_without_questions_falls_back(self):
        """Test approval without question data keeps the stored auto grade"""
        result = self.engine.merge(self.state, None, TeacherGradeInput(approve_grade=True))
        self.assertTrue(result.used_fallback)
        self.assertEqual(result.final_grade, 10)

    def test_manual_without_questions_falls_back(self):
        """Test manual grading without question data keeps the stored auto grade"""
        result = self.engine.merge(self.state, None, TeacherGradeInput(question_grades={'1': '9'}))
        self.assertTrue(result.used_fallback)
        self.assertEqual(result.final_grade, 10)
        self.assertTrue(result.teacher_approved)

    def test_state_is_not_mutated(self):
        """Test merging leaves the input state untouched"""
        self.engine.merge(self.state, self.questions, TeacherGradeInput(question_grades={'1': '7'}))
        self.assertEqual(self.state.question_grades, {})
        self.assertIsNone(self.state.final_grade)

    def test_invalid_single_grade_raises(self):
        """Test a malformed single grade raises without changing the state"""
        state = SubmissionGradingState(grade=12, final_grade=12)
        with self.assertRaises(InvalidGradeError):
            self.engine.merge(state, [text_question()], TeacherGradeInput(grade='twelve'))
        self.assertEqual(state.grade, 12)

    def test_single_grade(self):
        """Test a numeric single grade sets grade and final grade"""
        state = SubmissionGradingState()
        result = self.engine.merge(state, [text_question()], TeacherGradeInput(grade='42.5'))
        self.assertEqual(result.grade, 42.5)
        self.assertEqual(result.final_grade, 42.5)
        self.assertTrue(result.teacher_approved)

    def test_blank_single_grade_leaves_grade_untouched(self):
        """Test a blank single grade is not a grading action"""
        state = SubmissionGradingState(grade=12, final_grade=12)
        result = self.engine.merge(state, [text_question()], TeacherGradeInput(grade=''))
        self.assertEqual(result.grade, 12)
        self.assertFalse(result.graded)

    def test_question_grades_sum_for_manual_assignment(self):
        """Test per-question grades sum over the assignment's questions only"""
        state = SubmissionGradingState()
        result = self.engine.merge(
            state, [text_question(), text_question()],
            TeacherGradeInput(question_grades={'0': '4', '1': 'oops', '2': '50'})
        )
        self.assertEqual(result.final_grade, 4)
        self.assertEqual(result.grade, 4)

    def test_individual_group_grades_average(self):
        """Test the group grade is the mean of the parseable member grades"""
        state = SubmissionGradingState(is_group=True)
        result = self.engine.merge(
            state, [text_question()],
            TeacherGradeInput(use_individual_grades=True, member_grades={'1': '80', '2': '90', '3': 'n/a'})
        )
        self.assertTrue(result.use_individual_grades)
        self.assertEqual(result.member_grades, {'1': 80.0, '2': 90.0})
        self.assertEqual(result.grade, 85)

    def test_individual_grades_ignore_non_members(self):
        """Test grades for users outside the group do not count toward the group grade"""
        state = SubmissionGradingState(is_group=True, member_ids=frozenset({'1', '2'}))
        result = self.engine.merge(
            state, [text_question()],
            TeacherGradeInput(use_individual_grades=True, member_grades={1: '80', '2': '90', '9': '0'})
        )
        self.assertEqual(result.member_grades, {1: 80.0, '2': 90.0})
        self.assertEqual(result.grade, 85)

    def test_individual_grades_with_no_members(self):
        """Test individual grading with no member grades gives a group grade of 0"""
        state = SubmissionGradingState(is_group=True)
        result = self.engine.merge(state, [text_question()], TeacherGradeInput(use_individual_grades=True))
        self.assertEqual(result.grade, 0)


# =============================================================================
# AGGREGATION
# =============================================================================

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=dt_timezone.utc)
YESTERDAY = NOW - timedelta(days=1)
TOMORROW = NOW + timedelta(days=1)

DEFAULT_GROUPS = [
    {'name': 'Projects', 'weight': 15},
    {'name': 'Homework', 'weight': 15},
    {'name': 'Exams', 'weight': 20},
    {'name': 'Quizzes', 'weight': 30},
    {'name': 'Participation', 'weight': 20},
]


class AggregationTests(SimpleTestCase):
    """Tests for weighted course grade aggregation."""

    def test_redistribution_scenario(self):
        """Test weight of ungraded groups moves to Quizzes and Exams in proportion"""
        items = [
            GradableItem('hw1', 'Homework', 10, due_date=TOMORROW),
            GradableItem('q1', 'Quizzes', 100, grade=80),
            GradableItem('e1', 'Exams', 50, grade=45),
            GradableItem('p1', 'Participation', 10),
            GradableItem('pr1', 'Projects', 20, has_submission=True, due_date=YESTERDAY),
        ]
        result = aggregate_course_grade(1, {'groups': DEFAULT_GROUPS}, items, now=NOW)
        self.assertAlmostEqual(result.percent, 84.0)
        self.assertEqual(result.letter, 'B')
        self.assertEqual(result.policy, 'redistribute')

    def test_adjusted_weights_sum_to_100(self):
        """Test adjusted weights of graded groups sum to 100 when course weights do"""
        items = [
            GradableItem('q1', 'Quizzes', 10, grade=7),
            GradableItem('h1', 'Homework', 10, grade=9),
            GradableItem('lab', 'Labs', 10, grade=5),
        ]
        outcome = RedistributingAggregation().score(
            [CourseGroup.coerce(g) for g in DEFAULT_GROUPS], items, {i.item_id: i.grade for i in items}, NOW
        )
        weights = [g.adjusted_weight for g in outcome.groups if g.has_grade]
        if outcome.other and outcome.other.has_grade:
            weights.append(outcome.other.adjusted_weight)
        self.assertAlmostEqual(sum(weights), 100.0)
        for group in outcome.groups:
            if not group.has_grade:
                self.assertEqual(group.adjusted_weight, 0)

    def test_nothing_graded_is_zero(self):
        """Test a course with nothing countable is 0 and F"""
        items = [
            GradableItem('q1', 'Quizzes', 10, due_date=TOMORROW),
            GradableItem('h1', 'Homework', 10, due_date=YESTERDAY, has_submission=True),
        ]
        result = aggregate_course_grade(1, {'groups': DEFAULT_GROUPS}, items, now=NOW)
        self.assertEqual(result.percent, 0)
        self.assertEqual(result.letter, 'F')

    def test_past_due_without_submission_counts_as_zero(self):
        """Test missed work past its due date counts as 0"""
        groups = [{'name': 'Homework', 'weight': 50}, {'name': 'Quizzes', 'weight': 50}]
        items = [
            GradableItem('h1', 'Homework', 10, due_date=YESTERDAY),
            GradableItem('q1', 'Quizzes', 10, grade=8),
        ]
        self.assertAlmostEqual(RedistributingAggregation().percent(groups, items, now=NOW), 40.0)

    def test_pending_submission_is_excluded(self):
        """Test submitted but ungraded work is left out"""
        groups = [{'name': 'Homework', 'weight': 50}, {'name': 'Quizzes', 'weight': 50}]
        items = [
            GradableItem('h1', 'Homework', 10, due_date=YESTERDAY, has_submission=True),
            GradableItem('q1', 'Quizzes', 10, grade=8),
        ]
        self.assertAlmostEqual(RedistributingAggregation().percent(groups, items, now=NOW), 80.0)

    def test_unpublished_items_are_skipped(self):
        """Test unpublished items never count"""
        groups = [{'name': 'Quizzes', 'weight': 100}]
        items = [
            GradableItem('q1', 'Quizzes', 10, grade=8),
            GradableItem('q2', 'Quizzes', 10, grade=0, published=False),
        ]
        self.assertAlmostEqual(RedistributingAggregation().percent(groups, items, now=NOW), 80.0)

    def test_other_bucket_takes_remaining_weight(self):
        """Test items outside every course group fill the weight left below 100"""
        groups = [{'name': 'Quizzes', 'weight': 60}]
        items = [
            GradableItem('q1', 'Quizzes', 10, grade=9),
            GradableItem('lab', 'Labs', 10, grade=5),
        ]
        self.assertAlmostEqual(RedistributingAggregation().percent(groups, items, now=NOW), 74.0)

    def test_zero_weight_groups_share_equally(self):
        """Test graded groups that all weigh 0 share the weight equally"""
        groups = [{'name': 'A', 'weight': 0}, {'name': 'B', 'weight': 0}]
        items = [GradableItem('a', 'A', 10, grade=10), GradableItem('b', 'B', 10, grade=5)]
        self.assertAlmostEqual(RedistributingAggregation().percent(groups, items, now=NOW), 75.0)

    def test_legacy_normalizes_weights(self):
        """Test the legacy policy normalizes weights and drops groups without items"""
        groups = [{'name': 'Quizzes', 'weight': 30}, {'name': 'Exams', 'weight': 20}]
        items = [GradableItem('q1', 'Quizzes', 10, grade=8)]
        self.assertAlmostEqual(LegacyAggregation().percent(groups, items, now=NOW), 80.0)

    def test_legacy_and_redistribution_differ_on_other(self):
        """Test the two policies weigh the Other bucket differently"""
        groups = [{'name': 'Quizzes', 'weight': 60}, {'name': 'Exams', 'weight': 40}]
        items = [
            GradableItem('q1', 'Quizzes', 10, grade=8),
            GradableItem('lab', 'Labs', 10, grade=5),
        ]
        self.assertAlmostEqual(LegacyAggregation().percent(groups, items, now=NOW), 68.0)
        self.assertAlmostEqual(RedistributingAggregation().percent(groups, items, now=NOW), 80.0)

    def test_grade_table_overrides_item_grades(self):
        """Test a supplied grade table replaces the grades carried on items"""
        groups = [{'name': 'Quizzes', 'weight': 100}]
        items = [GradableItem('q1', 'Quizzes', 10, grade=2)]
        result = aggregate_course_grade(7, {'groups': groups}, items, grade_table={'7': {'q1': 9}}, now=NOW)
        self.assertAlmostEqual(result.percent, 90.0)
        self.assertEqual(result.letter, 'A')

    def test_non_numeric_grades_are_ignored(self):
        """Test NaN grades are treated as ungraded"""
        groups = [{'name': 'Quizzes', 'weight': 100}]
        items = [GradableItem('q1', 'Quizzes', 10, grade=float('nan')), GradableItem('q2', 'Quizzes', 10, grade=6)]
        self.assertAlmostEqual(RedistributingAggregation().percent(groups, items, now=NOW), 60.0)

    def test_zero_point_items_do_not_divide_by_zero(self):
        """Test zero-point items produce 0 instead of an error"""
        groups = [{'name': 'Quizzes', 'weight': 100}]
        items = [GradableItem('q1', 'Quizzes', 0, grade=0)]
        self.assertEqual(RedistributingAggregation().percent(groups, items, now=NOW), 0)

    def test_breakdown_rows(self):
        """Test breakdown rows list named groups then Other"""
        groups = [{'name': 'Quizzes', 'weight': 60}]
        items = [GradableItem('q1', 'Quizzes', 10, grade=9), GradableItem('lab', 'Labs', 10, grade=5)]
        rows = group_breakdown(aggregate_course_grade(1, {'groups': groups}, items, now=NOW))
        self.assertEqual([row['name'] for row in rows], ['Quizzes', 'Other'])
        self.assertEqual(rows[0]['percent'], 90.0)
        self.assertEqual(rows[1]['adjusted_weight'], 40.0)


# =============================================================================
# LETTER GRADES
# =============================================================================

class LetterGradeTests(SimpleTestCase):

    def test_default_scale_boundaries(self):
        """Test lower bounds of the default scale are inclusive"""
        self.assertEqual(letter_for(95), 'A')
        self.assertEqual(letter_for(90), 'A')
        self.assertEqual(letter_for(89.99), 'B')
        self.assertEqual(letter_for(60), 'D')
        self.assertEqual(letter_for(59), 'F')

    def test_out_of_range_and_non_finite(self):
        """Test out-of-range values are clamped and non-finite ones get the lowest letter"""
        self.assertEqual(letter_for(150), 'A')
        self.assertEqual(letter_for(-5), 'F')
        self.assertEqual(letter_for(float('nan')), 'F')
        self.assertEqual(letter_for(None), 'F')

    def test_monotonic(self):
        """Test a higher percentage never yields a lower letter"""
        order = ['F', 'D', 'C', 'B', 'A']
        previous = 0
        for step in range(0, 201):
            rank = order.index(letter_for(step / 2))
            self.assertGreaterEqual(rank, previous)
            previous = rank

    def test_custom_scale(self):
        """Test a course-specific scale is used when supplied"""
        scale = [{'letter': 'Pass', 'min': 50, 'max': 100}, {'letter': 'Fail', 'min': 0, 'max': 49}]
        self.assertEqual(letter_for(50, scale), 'Pass')
        self.assertEqual(letter_for(49.5, scale), 'Fail')

    def test_validate_default_scale(self):
        """Test a contiguous scale validates"""
        self.assertIsNone(validate_grade_scale([
            {'letter': 'A', 'min': 90, 'max': 100},
            {'letter': 'B', 'min': 80, 'max': 89},
            {'letter': 'F', 'min': 0, 'max': 79},
        ]))

    def test_validate_rejects_problems(self):
        """Test empty, gapped, overlapping, duplicate and malformed scales are rejected"""
        self.assertIsNotNone(validate_grade_scale([]))
        # gap
        self.assertIsNotNone(validate_grade_scale([
            {'letter': 'A', 'min': 90, 'max': 100}, {'letter': 'B', 'min': 0, 'max': 85},
        ]))
        # overlap
        self.assertIsNotNone(validate_grade_scale([
            {'letter': 'A', 'min': 80, 'max': 100}, {'letter': 'B', 'min': 0, 'max': 85},
        ]))
        self.assertIn('Duplicate', validate_grade_scale([
            {'letter': 'A', 'min': 50, 'max': 100}, {'letter': 'A', 'min': 0, 'max': 49},
        ]))
        self.assertIn('whole numbers', validate_grade_scale([{'letter': 'A', 'min': 0.5, 'max': 100}]))
        self.assertIn('Min must be', validate_grade_scale([{'letter': 'A', 'min': 100, 'max': 0}]))
        self.assertIn('Letter', validate_grade_scale([{'letter': '', 'min': 0, 'max': 100}]))


# =============================================================================
# MODELS & SERVICES
# =============================================================================

class GradebookFixtureMixin:
    def make_course(self, groups=None):
        course = Course.objects.create(name='Chemistry', code='CHEM101')
        if groups is not None:
            course.groups = groups
            course.save()
        return course

    def make_quiz(self, course, **kwargs):
        assignment = Assignment.objects.create(
            course=course, title=kwargs.pop('title', 'Quiz 1'), group_name='Quizzes', published=True, **kwargs
        )
        Question.objects.create(
            assignment=assignment, question_type='multiple-choice', points=10, order=0,
            options=[{'text': 'H2O', 'is_correct': True}, {'text': 'CO2', 'is_correct': False}]
        )
        Question.objects.create(
            assignment=assignment, question_type='matching', points=10, order=1,
            left_items=[{'id': f'p{i}', 'text': f'term {i}'} for i in range(4)],
            right_items=[{'id': f'p{i}', 'text': f'definition {i}'} for i in range(4)],
        )
        return assignment

    def make_essay(self, course, **kwargs):
        assignment = Assignment.objects.create(
            course=course, title=kwargs.pop('title', 'Essay'), group_name='Homework', published=True, **kwargs
        )
        Question.objects.create(assignment=assignment, question_type='multiple-choice', points=10, order=0,
                                options=[{'text': 'H2O', 'is_correct': True}])
        Question.objects.create(assignment=assignment, question_type='text', points=10, order=1)
        return assignment


QUIZ_ANSWERS = {
    '0': 'H2O',
    '1': {'0': 'definition 0', '1': 'definition 1', '2': 'definition 2', '3': 'definition 0'},
}


class ModelValidationTests(GradebookFixtureMixin, TestCase):

    def test_course_rejects_invalid_grade_scale(self):
        """Test a course with a gapped grade scale fails validation"""
        course = Course(name='Bad', code='BAD1', grade_scale=[{'letter': 'A', 'min': 50, 'max': 100},
                                                              {'letter': 'B', 'min': 0, 'max': 40}])
        with self.assertRaises(ValidationError):
            course.full_clean()

    def test_course_rejects_duplicate_groups(self):
        """Test a course with two groups of the same name fails validation"""
        course = Course(name='Bad', code='BAD2', groups=[{'name': 'Quizzes', 'weight': 50},
                                                         {'name': 'Quizzes', 'weight': 50}])
        with self.assertRaises(ValidationError):
            course.full_clean()

    def test_default_groups(self):
        """Test a new course gets the default groups weighing 100 in total"""
        course = self.make_course()
        self.assertEqual(sum(g.weight for g in course.get_course_groups()), 100)

    def test_submission_needs_exactly_one_owner(self):
        """Test a submission without a student or group fails validation"""
        course = self.make_course()
        submission = Submission(assignment=self.make_quiz(course))
        with self.assertRaises(ValidationError):
            submission.clean()

    def test_question_structure_frozen_after_submission(self):
        """Test questions cannot be added or change kind once answers exist"""
        course = self.make_course()
        assignment = self.make_quiz(course)
        student = User.objects.create_user('s1', 's1@test.com', 'pass123')
        Submission.objects.create(assignment=assignment, student=student)

        with self.assertRaises(ValidationError):
            Question(assignment=assignment, question_type='text', points=5, order=2).clean()

        question = assignment.questions.first()
        question.question_type = 'text'
        with self.assertRaises(ValidationError):
            question.clean()

    def test_total_points_prefers_question_sum(self):
        """Test total points come from questions when there are any"""
        course = self.make_course()
        self.assertEqual(self.make_quiz(course, total_points=100).get_total_points(), 20)
        plain = Assignment.objects.create(course=course, title='Lab', total_points=25)
        self.assertEqual(plain.get_total_points(), 25)


class SubmissionGradingServiceTests(GradebookFixtureMixin, TestCase):
    """Tests for storing answers and applying teacher grades."""

    def setUp(self):
        self.course = self.make_course()
        self.student = User.objects.create_user('student', 'student@test.com', 'pass123')
        self.teacher = User.objects.create_user('teacher', 'teacher@test.com', 'pass123', is_staff=True)
        self.service = SubmissionGradingService()

    def make_group_assignment(self, *members):
        group_set = GroupSet.objects.create(course=self.course, name='Lab Teams')
        group = StudentGroup.objects.create(group_set=group_set, name='Team 1')
        group.members.add(*members)
        assignment = Assignment.objects.create(
            course=self.course, title='Lab Report', total_points=100, published=True,
            is_group_assignment=True, group_set=group_set
        )
        return assignment, group

    def test_record_answers_grades_fully_automatic_assignment(self):
        """Test an all multiple choice and matching quiz is graded and approved on submit"""
        submission = self.service.record_answers(self.make_quiz(self.course), QUIZ_ANSWERS, student=self.student)
        self.assertTrue(submission.auto_graded)
        self.assertEqual(submission.auto_grade, 17.5)
        self.assertEqual(submission.grade, 17.5)
        self.assertEqual(submission.final_grade, 17.5)
        self.assertTrue(submission.teacher_approved)
        self.assertEqual(submission.graded_by, self.student)
        self.assertIsNotNone(submission.graded_at)
        self.assertIsInstance(submission.answers['1'], str)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.AUTO_GRADED).exists())

    def test_record_answers_updates_existing_submission(self):
        """Test resubmitting replaces the answers on the same submission"""
        quiz = self.make_quiz(self.course)
        self.service.record_answers(quiz, {'0': 'CO2'}, student=self.student)
        submission = self.service.record_answers(quiz, QUIZ_ANSWERS, student=self.student)
        self.assertEqual(Submission.objects.filter(assignment=quiz).count(), 1)
        self.assertEqual(submission.auto_grade, 17.5)

    def test_record_answers_leaves_text_assignment_ungraded(self):
        """Test assignments with text questions wait for the teacher"""
        submission = self.service.record_answers(
            self.make_essay(self.course), {'0': 'H2O', '1': 'An essay'}, student=self.student
        )
        self.assertEqual(submission.auto_grade, 10)
        self.assertIsNone(submission.final_grade)
        self.assertFalse(submission.teacher_approved)
        self.assertIsNone(submission.graded_by)
        self.assertIsNone(submission.graded_at)

    def test_record_answers_without_auto_questions(self):
        """Test answers to an assignment with nothing auto-gradable are recorded and audited"""
        assignment = Assignment.objects.create(course=self.course, title='Reading', total_points=5, published=True)
        self.service.record_answers(assignment, {}, student=self.student)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.ANSWERS_RECORDED).exists())

    def test_record_answers_requires_one_owner(self):
        """Test answers without a student or group are rejected"""
        with self.assertRaises(ValueError):
            self.service.record_answers(self.make_quiz(self.course), {})

    def test_manual_grade_is_persisted(self):
        """Test a teacher's text question grade is merged and saved"""
        submission = self.service.record_answers(
            self.make_essay(self.course), {'0': 'H2O', '1': 'An essay'}, student=self.student
        )
        graded = self.service.grade(
            submission.id, self.teacher, TeacherGradeInput(question_grades={'1': '7'}, feedback='Solid')
        )
        graded.refresh_from_db()
        self.assertEqual(graded.final_grade, 17)
        self.assertEqual(graded.question_grades, {'0': 10, '1': 7})
        self.assertEqual(graded.graded_by, self.teacher)
        self.assertIsNotNone(graded.graded_at)
        self.assertEqual(graded.feedback, 'Solid')
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.MANUAL_GRADE).exists())

    def test_regrade_twice_is_stable(self):
        """Test saving the same grades twice gives the same final grade"""
        submission = self.service.record_answers(
            self.make_essay(self.course), {'0': 'H2O', '1': 'An essay'}, student=self.student
        )
        teacher_input = TeacherGradeInput(question_grades={'0': '4', '1': '7'})
        first = self.service.grade(submission.id, self.teacher, teacher_input).final_grade
        second = self.service.grade(submission.id, self.teacher, teacher_input).final_grade
        self.assertEqual(first, 11)
        self.assertEqual(second, first)

    def test_invalid_grade_changes_nothing(self):
        """Test a malformed grade is rejected, audited and not saved"""
        assignment = Assignment.objects.create(course=self.course, title='Report', total_points=50, published=True)
        submission = Submission.objects.create(assignment=assignment, student=self.student, grade=30, final_grade=30)

        with self.assertRaises(InvalidGradeError):
            self.service.grade(submission.id, self.teacher, TeacherGradeInput(grade='thirty'))

        submission.refresh_from_db()
        self.assertEqual(submission.grade, 30)
        self.assertIsNone(submission.graded_by)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.GRADE_REJECTED).exists())

    def test_missing_assignment_falls_back_to_auto_grade(self):
        """Test grading after the assignment is deleted keeps the stored auto grade"""
        quiz = self.make_quiz(self.course)
        submission = self.service.record_answers(quiz, QUIZ_ANSWERS, student=self.student)
        quiz.delete()

        graded = self.service.grade(submission.id, self.teacher, TeacherGradeInput(question_grades={'0': '3'}))
        self.assertIsNone(graded.assignment_id)
        self.assertEqual(graded.final_grade, 17.5)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.GRADE_FALLBACK).exists())

    def test_unknown_submission(self):
        """Test grading an unknown submission raises DoesNotExist"""
        with self.assertRaises(Submission.DoesNotExist):
            self.service.grade(999999, self.teacher, TeacherGradeInput(grade='1'))

    def test_individual_member_grades(self):
        """Test member grades are saved for members only and averaged into the group grade"""
        other = User.objects.create_user('other', 'other@test.com', 'pass123')
        outsider = User.objects.create_user('outsider', 'out@test.com', 'pass123')
        assignment, group = self.make_group_assignment(self.student, other)
        submission = self.service.record_answers(assignment, {}, group=group, submitted_by=self.student)

        graded = self.service.grade(submission.id, self.teacher, TeacherGradeInput(
            use_individual_grades=True,
            member_grades={str(self.student.id): '80', str(other.id): '90', str(outsider.id): '0'}
        ))
        self.assertTrue(graded.use_individual_grades)
        self.assertEqual(graded.grade, 85)
        self.assertEqual(MemberGrade.objects.filter(submission=graded).count(), 2)
        self.assertEqual(graded.grade_for(self.student), 80)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.MEMBER_GRADES).exists())

    def test_regrade_with_fewer_members_drops_old_grades(self):
        """Test a member left out of a re-grade loses their earlier member grade"""
        other = User.objects.create_user('other', 'other@test.com', 'pass123')
        assignment, group = self.make_group_assignment(self.student, other)
        submission = self.service.record_answers(assignment, {}, group=group, submitted_by=self.student)

        self.service.grade(submission.id, self.teacher, TeacherGradeInput(
            use_individual_grades=True,
            member_grades={str(self.student.id): '80', str(other.id): '90'}
        ))
        regraded = self.service.grade(submission.id, self.teacher, TeacherGradeInput(
            use_individual_grades=True,
            member_grades={str(self.student.id): '70'}
        ))

        self.assertEqual(regraded.grade, 70)
        self.assertEqual(regraded.grade_for(self.student), 70)
        self.assertIsNone(regraded.grade_for(other))
        self.assertFalse(MemberGrade.objects.filter(submission=regraded, student=other).exists())


class CourseGradeServiceTests(GradebookFixtureMixin, TestCase):
    """Tests for resolving a student's gradable items from the database."""

    def setUp(self):
        self.student = User.objects.create_user('student', 'student@test.com', 'pass123')

    def _assignment(self, course, group_name, total_points, **kwargs):
        kwargs.setdefault('published', True)
        return Assignment.objects.create(
            course=course, title=f'{group_name} {total_points}', group_name=group_name,
            total_points=total_points, **kwargs
        )

    def test_redistribution_scenario_from_database(self):
        """Test the course grade computed from stored submissions"""
        course = self.make_course()
        quiz = self._assignment(course, 'Quizzes', 100)
        exam = self._assignment(course, 'Exams', 50)
        self._assignment(course, 'Homework', 10, due_date=timezone.now() + timedelta(days=3))
        Submission.objects.create(assignment=quiz, student=self.student, grade=80)
        Submission.objects.create(assignment=exam, student=self.student, grade=45)

        result = CourseGradeService(course).course_grade(self.student)
        self.assertAlmostEqual(result.percent, 84.0)
        self.assertEqual(result.letter, 'B')

    def test_legacy_policy(self):
        """Test the policy argument selects the aggregation strategy"""
        course = self.make_course(groups=[{'name': 'Quizzes', 'weight': 60}, {'name': 'Exams', 'weight': 40}])
        quiz = self._assignment(course, 'Quizzes', 10)
        lab = self._assignment(course, 'Labs', 10)
        Submission.objects.create(assignment=quiz, student=self.student, grade=8)
        Submission.objects.create(assignment=lab, student=self.student, grade=5)

        service = CourseGradeService(course)
        self.assertAlmostEqual(service.course_grade(self.student, policy='legacy').percent, 68.0)
        self.assertAlmostEqual(service.course_grade(self.student, policy='redistribute').percent, 80.0)

    def test_other_students_grades_are_not_used(self):
        """Test only the student's own submissions count"""
        course = self.make_course(groups=[{'name': 'Quizzes', 'weight': 100}])
        quiz = self._assignment(course, 'Quizzes', 10)
        other = User.objects.create_user('other', 'other@test.com', 'pass123')
        Submission.objects.create(assignment=quiz, student=other, grade=10)

        self.assertEqual(CourseGradeService(course).course_grade(self.student).percent, 0)

    def test_group_assignment_uses_member_grade(self):
        """Test an individual member grade replaces the group grade"""
        course = self.make_course(groups=[{'name': 'Projects', 'weight': 100}])
        group_set = GroupSet.objects.create(course=course, name='Teams')
        group = StudentGroup.objects.create(group_set=group_set, name='Team A')
        group.members.add(self.student)
        project = self._assignment(course, 'Projects', 10, is_group_assignment=True, group_set=group_set)
        submission = Submission.objects.create(assignment=project, group=group, grade=9, use_individual_grades=True)
        MemberGrade.objects.create(submission=submission, student=self.student, grade=6)

        self.assertAlmostEqual(CourseGradeService(course).course_grade(self.student).percent, 60.0)

    def test_group_assignment_uses_group_grade(self):
        """Test members share the group grade without individual grading"""
        course = self.make_course(groups=[{'name': 'Projects', 'weight': 100}])
        group_set = GroupSet.objects.create(course=course, name='Teams')
        group = StudentGroup.objects.create(group_set=group_set, name='Team A')
        group.members.add(self.student)
        project = self._assignment(course, 'Projects', 10, is_group_assignment=True, group_set=group_set)
        Submission.objects.create(assignment=project, group=group, grade=9)

        self.assertAlmostEqual(CourseGradeService(course).course_grade(self.student).percent, 90.0)

    def test_group_assignment_without_group_set_is_skipped(self):
        """Test a group assignment with no group set is skipped with a warning"""
        course = self.make_course(groups=[{'name': 'Projects', 'weight': 100}])
        self._assignment(course, 'Projects', 10, is_group_assignment=True, due_date=timezone.now() - timedelta(days=1))

        with self.assertLogs('gradebook.services.course_grade', level='WARNING'):
            items = CourseGradeService(course).gradable_items(self.student)
        self.assertEqual(items, [])

    def test_graded_discussion_participation(self):
        """Test graded discussions count as missed, pending or graded"""
        course = self.make_course(groups=[{'name': 'Quizzes', 'weight': 60}, {'name': 'Discussions', 'weight': 40}])
        quiz = self._assignment(course, 'Quizzes', 10)
        Submission.objects.create(assignment=quiz, student=self.student, grade=9)
        discussion = Discussion.objects.create(
            course=course, title='Week 1', is_graded=True, total_points=10,
            due_date=timezone.now() - timedelta(days=1)
        )
        service = CourseGradeService(course)

        # past due, no reply: counts as zero
        self.assertAlmostEqual(service.course_grade(self.student).percent, 54.0)

        # replied but not graded yet: left out
        DiscussionReply.objects.create(discussion=discussion, author=self.student, body='My thoughts')
        self.assertAlmostEqual(service.course_grade(self.student).percent, 90.0)

        DiscussionGrade.objects.create(discussion=discussion, student=self.student, grade=5)
        self.assertAlmostEqual(service.course_grade(self.student).percent, 74.0)

    def test_ungraded_discussions_are_ignored(self):
        """Test ungraded discussions are not gradable items"""
        course = self.make_course(groups=[{'name': 'Discussions', 'weight': 100}])
        Discussion.objects.create(course=course, title='Chat', is_graded=False, due_date=timezone.now() - timedelta(days=1))
        self.assertEqual(CourseGradeService(course).gradable_items(self.student), [])

    def test_breakdown(self):
        """Test the breakdown carries the percent, letter and per-group rows"""
        course = self.make_course(groups=[{'name': 'Quizzes', 'weight': 100}])
        quiz = self._assignment(course, 'Quizzes', 10)
        Submission.objects.create(assignment=quiz, student=self.student, grade=7)

        breakdown = CourseGradeService(course).breakdown(self.student)
        self.assertEqual(breakdown['percent'], 70.0)
        self.assertEqual(breakdown['letter'], 'C')
        self.assertEqual(breakdown['groups'][0]['earned'], 7)


class RepairGradesCommandTests(GradebookFixtureMixin, TestCase):

    def setUp(self):
        course = self.make_course()
        student = User.objects.create_user('student', 'student@test.com', 'pass123')
        assignment = Assignment.objects.create(course=course, title='Quiz', group_name='Quizzes', published=True)
        for order in range(2):
            Question.objects.create(
                assignment=assignment, question_type='multiple-choice', points=10, order=order,
                options=[{'text': 'yes', 'is_correct': True}, {'text': 'no', 'is_correct': False}]
            )
        # 10 of 20 points earned, stored as the 50% percentage
        self.submission = Submission.objects.create(
            assignment=assignment, student=student, answers={'0': 'yes', '1': 'no'},
            auto_graded=True, auto_grade=50, auto_question_grades={'0': 10, '1': 0},
            grade=50, final_grade=50, teacher_approved=True,
        )

    def test_dry_run_changes_nothing(self):
        """Test --dry-run reports the fix without saving it"""
        out = StringIO()
        call_command('repair_grades', '--dry-run', stdout=out)
        self.submission.refresh_from_db()
        self.assertEqual(self.submission.final_grade, 50)
        self.assertIn('would fix', out.getvalue())

    def test_repairs_percentage_stored_as_points(self):
        """Test grades holding the percentage are reset to earned points"""
        call_command('repair_grades', stdout=StringIO())
        self.submission.refresh_from_db()
        self.assertEqual(self.submission.auto_grade, 10)
        self.assertEqual(self.submission.grade, 10)
        self.assertEqual(self.submission.final_grade, 10)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.GRADE_REPAIRED).exists())

    def test_correct_submission_is_left_alone(self):
        """Test a second run finds nothing to repair"""
        call_command('repair_grades', stdout=StringIO())
        updated_at = Submission.objects.get(pk=self.submission.pk).updated_at
        out = StringIO()
        call_command('repair_grades', stdout=out)
        self.assertEqual(Submission.objects.get(pk=self.submission.pk).updated_at, updated_at)
        self.assertIn('0 submission(s) repaired', out.getvalue())


# =============================================================================
# API
# =============================================================================

class GradebookAPITestCase(GradebookFixtureMixin, APITestCase):

    def setUp(self):
        cache.clear()
        self.course = self.make_course()
        self.student = User.objects.create_user('student', 'student@test.com', 'pass123')
        self.other = User.objects.create_user('other', 'other@test.com', 'pass123')
        self.educator = User.objects.create_user('educator', 'educator@test.com', 'pass123', is_staff=True)
        self.student_token = Token.objects.create(user=self.student)
        self.other_token = Token.objects.create(user=self.other)
        self.educator_token = Token.objects.create(user=self.educator)

    def login(self, token):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')


class SubmissionAPITests(GradebookAPITestCase):
    """Tests for submitting answers and grading through the API."""

    def test_requires_authentication(self):
        """Test anonymous requests are rejected"""
        response = self.client.get('/api/submissions/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_student_submits_answers(self):
        """Test a student's quiz answers are auto-graded on submit"""
        quiz = self.make_quiz(self.course)
        self.login(self.student_token)
        response = self.client.post('/api/submissions/', {'assignment': quiz.id, 'answers': QUIZ_ANSWERS}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['auto_grade'], 17.5)
        self.assertEqual(response.data['final_grade'], 17.5)
        self.assertTrue(response.data['teacher_approved'])

    def test_unpublished_assignment_is_rejected(self):
        """Test answers to an unpublished assignment are refused"""
        quiz = self.make_quiz(self.course)
        quiz.published = False
        quiz.save()
        self.login(self.student_token)
        response = self.client.post('/api/submissions/', {'assignment': quiz.id, 'answers': {}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_group_member_submits_for_group(self):
        """Test group members submit for their group and outsiders cannot"""
        group_set = GroupSet.objects.create(course=self.course, name='Teams')
        group = StudentGroup.objects.create(group_set=group_set, name='Team A')
        group.members.add(self.student)
        assignment = Assignment.objects.create(
            course=self.course, title='Poster', total_points=20, published=True,
            is_group_assignment=True, group_set=group_set
        )

        self.login(self.student_token)
        response = self.client.post('/api/submissions/', {'assignment': assignment.id, 'answers': {}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['group'], group.id)

        self.login(self.other_token)
        response = self.client.post('/api/submissions/', {'assignment': assignment.id, 'answers': {}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_student_cannot_see_others_submission(self):
        """Test students only retrieve their own submissions"""
        submission = Submission.objects.create(assignment=self.make_quiz(self.course), student=self.student)
        self.login(self.other_token)
        response = self.client.get(f'/api/submissions/{submission.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.login(self.student_token)
        response = self.client.get(f'/api/submissions/{submission.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_list_shows_only_own_submissions(self):
        """Test the submission list is filtered to the student"""
        quiz = self.make_quiz(self.course)
        own = Submission.objects.create(assignment=quiz, student=self.student)
        Submission.objects.create(assignment=quiz, student=self.other)
        self.login(self.student_token)
        response = self.client.get('/api/submissions/')
        self.assertEqual([row['id'] for row in response.data['results']], [own.id])

    def test_student_cannot_grade(self):
        """Test grading requires the educator role"""
        submission = Submission.objects.create(assignment=self.make_quiz(self.course), student=self.student)
        self.login(self.student_token)
        response = self.client.post(f'/api/submissions/{submission.id}/grade/', {'grade': '10'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_educator_grades_manual_submission(self):
        """Test an educator grades the text question of a submission"""
        essay = self.make_essay(self.course)
        submission = SubmissionGradingService().record_answers(essay, {'0': 'H2O', '1': 'Essay'}, student=self.student)
        self.login(self.educator_token)
        response = self.client.post(
            f'/api/submissions/{submission.id}/grade/',
            {'question_grades': {'1': '8'}, 'feedback': 'Nice'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['final_grade'], 18)
        self.assertEqual(response.data['graded_by_username'], 'educator')

    def test_invalid_grade_returns_400_and_changes_nothing(self):
        """Test a malformed grade is answered with 400 and not saved"""
        assignment = Assignment.objects.create(course=self.course, title='Report', total_points=50, published=True)
        submission = Submission.objects.create(assignment=assignment, student=self.student, grade=30, final_grade=30)
        self.login(self.educator_token)
        response = self.client.post(f'/api/submissions/{submission.id}/grade/', {'grade': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('detail', response.data)
        submission.refresh_from_db()
        self.assertEqual(submission.grade, 30)

    def test_numeric_grade_is_accepted(self):
        """Test a JSON number is accepted as a single grade"""
        assignment = Assignment.objects.create(course=self.course, title='Report', total_points=50, published=True)
        submission = Submission.objects.create(assignment=assignment, student=self.student)
        self.login(self.educator_token)
        response = self.client.post(f'/api/submissions/{submission.id}/grade/', {'grade': 42.5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['grade'], 42.5)

    def test_grade_unknown_submission(self):
        """Test grading an unknown submission returns 404"""
        self.login(self.educator_token)
        response = self.client.post('/api/submissions/999999/grade/', {'grade': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class CourseGradeAPITests(GradebookAPITestCase):
    """Tests for the course grade endpoints."""

    def setUp(self):
        super().setUp()
        quiz = Assignment.objects.create(course=self.course, title='Quiz', group_name='Quizzes', total_points=100, published=True)
        exam = Assignment.objects.create(course=self.course, title='Midterm', group_name='Exams', total_points=50, published=True)
        Submission.objects.create(assignment=quiz, student=self.student, grade=80)
        Submission.objects.create(assignment=exam, student=self.student, grade=45)

    def test_own_course_grade(self):
        """Test a student reads their own course grade"""
        self.login(self.student_token)
        response = self.client.get(f'/api/grades/course/{self.course.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['percent'], 84.0)
        self.assertEqual(response.data['letter'], 'B')
        self.assertEqual(response.data['policy'], 'redistribute')

    def test_legacy_course_grade(self):
        """Test the legacy endpoint uses the legacy policy"""
        self.login(self.student_token)
        response = self.client.get(f'/api/grades/course/{self.course.id}/legacy/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['policy'], 'legacy')
        # Exams 20 and Quizzes 30 contribute; other groups have no items
        self.assertAlmostEqual(response.data['percent'], 84.0)

    def test_breakdown(self):
        """Test the breakdown endpoint returns per-group rows"""
        self.login(self.student_token)
        response = self.client.get(f'/api/grades/course/{self.course.id}/breakdown/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        quizzes = next(row for row in response.data['groups'] if row['name'] == 'Quizzes')
        self.assertEqual(quizzes['percent'], 80.0)
        self.assertEqual(quizzes['adjusted_weight'], 60.0)

    def test_student_cannot_view_other_student(self):
        """Test students cannot read another student's grade and the attempt is audited"""
        self.login(self.other_token)
        response = self.client.get(f'/api/grades/course/{self.course.id}/', {'student': self.student.id})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.PERMISSION_DENIED).exists())

    def test_educator_views_student(self):
        """Test educators can read any student's grade"""
        self.login(self.educator_token)
        response = self.client.get(f'/api/grades/course/{self.course.id}/', {'student': self.student.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['student_id'], self.student.id)
        self.assertEqual(response.data['percent'], 84.0)

    def test_unknown_course_and_student(self):
        """Test unknown courses and students return 404"""
        self.login(self.educator_token)
        response = self.client.get('/api/grades/course/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.get(f'/api/grades/course/{self.course.id}/', {'student': 999999})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
