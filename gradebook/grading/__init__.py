from .base import (
    AutoGradeResult, GradingError, InvalidGradeError, MergeResult, QuestionKind,
    QuestionSpec, SubmissionGradingState, TeacherGradeInput,
)
from .auto_grader import AutoGrader, auto_grade
from .merge import GradeMergeEngine, merge_grade
from .aggregation import (
    AggregationStrategy, CourseGradeResult, CourseGroup, GradableItem,
    LegacyAggregation, RedistributingAggregation, aggregate_course_grade, group_breakdown,
)
from .letters import DEFAULT_GRADE_SCALE, letter_for, validate_grade_scale
from .factory import get_aggregation_strategy, get_merge_engine

__all__ = [
    'AutoGradeResult', 'GradingError', 'InvalidGradeError', 'MergeResult', 'QuestionKind',
    'QuestionSpec', 'SubmissionGradingState', 'TeacherGradeInput',
    'AutoGrader', 'auto_grade', 'GradeMergeEngine', 'merge_grade',
    'AggregationStrategy', 'CourseGradeResult', 'CourseGroup', 'GradableItem',
    'LegacyAggregation', 'RedistributingAggregation', 'aggregate_course_grade', 'group_breakdown',
    'DEFAULT_GRADE_SCALE', 'letter_for', 'validate_grade_scale', 'get_aggregation_strategy', 'get_merge_engine',
]
