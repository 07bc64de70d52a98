from .submission_grading import SubmissionGradingService
from .course_grade import CourseGradeService

__all__ = ['SubmissionGradingService', 'CourseGradeService']
