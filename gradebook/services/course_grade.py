"""
Course Grade Service.
Resolves every gradable item of a course for one student (own submissions,
group submissions, graded discussions) and runs the aggregation engine.
Results are computed on demand and never stored.
"""
import logging

from django.db.models import Prefetch

from gradebook.grading import GradableItem, aggregate_course_grade, get_aggregation_strategy, group_breakdown

logger = logging.getLogger(__name__)


class CourseGradeService:
    def __init__(self, course):
        self.course = course

    def gradable_items(self, student):
        return self._assignment_items(student) + self._discussion_items(student)

    def course_grade(self, student, policy=None, now=None):
        strategy = get_aggregation_strategy(policy)
        items = self.gradable_items(student)
        result = aggregate_course_grade(student.id, self.course, items, strategy=strategy, now=now)
        logger.debug(
            f"Course {self.course.code} grade for {student.username} ({strategy.name}): "
            f"{result.percent:.2f} {result.letter}"
        )
        return result

    def breakdown(self, student, policy=None, now=None):
        result = self.course_grade(student, policy=policy, now=now)
        return {
            'course_id': self.course.id,
            'student_id': student.id,
            'policy': result.policy,
            'percent': round(result.percent, 2),
            'letter': result.letter,
            'groups': group_breakdown(result),
        }

    # =========================================================================
    # ITEM RESOLUTION
    # =========================================================================

    def _assignment_items(self, student):
        from gradebook.models import MemberGrade, Submission

        assignments = self.course.assignments.select_related('group_set').prefetch_related('questions')
        own_submissions = {
            s.assignment_id: s
            for s in Submission.objects.filter(
                assignment__course=self.course, student=student, group__isnull=True
            )
        }
        group_submissions = {
            s.assignment_id: s
            for s in Submission.objects.filter(
                assignment__course=self.course, group__members=student
            ).prefetch_related(
                Prefetch('member_grades', queryset=MemberGrade.objects.filter(student=student))
            )
        }

        items = []
        for assignment in assignments:
            if assignment.is_group_assignment:
                if assignment.group_set is None:
                    logger.warning(
                        f"Assignment {assignment.id} ({assignment.title}) is a group assignment "
                        f"without a group set; left out of {student.username}'s course grade"
                    )
                    continue
                submission = group_submissions.get(assignment.id)
                grade = submission.grade_for(student) if submission else None
            else:
                submission = own_submissions.get(assignment.id)
                grade = submission.grade if submission else None

            items.append(GradableItem(
                item_id=f"assignment:{assignment.id}",
                group_name=assignment.group_name,
                total_points=assignment.get_total_points(),
                due_date=assignment.due_date,
                published=assignment.published,
                grade=grade,
                has_submission=submission is not None,
                title=assignment.title,
            ))
        return items

    def _discussion_items(self, student):
        from gradebook.models import DiscussionGrade

        discussions = self.course.discussions.filter(is_graded=True)
        grades = dict(
            DiscussionGrade.objects.filter(
                discussion__course=self.course, student=student
            ).values_list('discussion_id', 'grade')
        )
        replied = set(
            self.course.discussions.filter(replies__author=student).values_list('id', flat=True)
        )

        return [
            GradableItem(
                item_id=f"discussion:{discussion.id}",
                group_name=discussion.group_name or 'Discussions',
                total_points=discussion.total_points or 0,
                due_date=discussion.due_date,
                published=discussion.published,
                grade=grades.get(discussion.id),
                has_submission=discussion.id in replied,
                is_discussion=True,
                title=discussion.title,
            )
            for discussion in discussions
        ]
