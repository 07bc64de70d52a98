from .course import Course
from .group import GroupSet, StudentGroup
from .assignment import Assignment, Question
from .submission import Submission, MemberGrade
from .discussion import Discussion, DiscussionReply, DiscussionGrade
from .audit import AuditLog

__all__ = [
    'Course', 'GroupSet', 'StudentGroup',
    'Assignment', 'Question',
    'Submission', 'MemberGrade',
    'Discussion', 'DiscussionReply', 'DiscussionGrade',
    'AuditLog',
]
