"""
Submission Grading Service.
Stores student answers with their automatic score, and applies teacher
grading through the merge engine. Every read-recompute-write cycle runs on a
locked submission row so concurrent grading requests serialize.
"""
import json
import logging

from django.db import transaction
from django.utils import timezone

from gradebook.grading import AutoGrader, InvalidGradeError, TeacherGradeInput, get_merge_engine

logger = logging.getLogger(__name__)


class SubmissionGradingService:
    def __init__(self, auto_grader=None, merge_engine=None):
        self.auto_grader = auto_grader or AutoGrader()
        self.merge_engine = merge_engine or get_merge_engine(auto_grader=self.auto_grader)

    # =========================================================================
    # STUDENT ANSWERS
    # =========================================================================

    def record_answers(self, assignment, answers, student=None, group=None, submitted_by=None, request=None):
        """
        Create or update the submission of a student (or a group) and auto-grade it.
        Fully auto-gradable assignments are graded and approved on the spot.
        """
        from gradebook.models import AuditLog, Submission

        if (student is None) == (group is None):
            raise ValueError("Answers belong to exactly one student or one group.")

        normalized = _normalize_answers(answers)
        owner = {'group': group} if group is not None else {'student': student, 'group': None}

        with transaction.atomic():
            submission = (
                Submission.objects.select_for_update()
                .filter(assignment=assignment, **owner)
                .first()
            )
            if submission is None:
                submission = Submission(assignment=assignment, **owner)
            submission.answers = normalized
            submission.submitted_by = submitted_by or student
            submission.submitted_at = timezone.now()

            questions = assignment.get_question_specs()
            result = self.auto_grader.grade(questions, normalized)
            submission.auto_graded = result.auto_graded
            submission.auto_grade = result.auto_grade
            submission.auto_question_grades = result.auto_question_grades

            if result.all_multiple_choice:
                submission.grade = result.auto_grade
                submission.final_grade = result.auto_grade
                submission.teacher_approved = True
                submission.graded_by = submitted_by or student
                submission.graded_at = timezone.now()

            submission.save()

        logger.info(
            f"Submission {submission.id} for assignment {assignment.id}: "
            f"auto_graded={result.auto_graded} auto_grade={result.auto_grade}/{result.total_points}"
        )
        if result.auto_graded:
            event_type = AuditLog.EventType.AUTO_GRADED
            description = f"Auto-graded: {assignment.title} ({result.auto_grade}/{result.total_points} pts)"
        else:
            event_type = AuditLog.EventType.ANSWERS_RECORDED
            description = f"Answers recorded: {assignment.title}"
        AuditLog.log(
            event_type=event_type,
            description=description,
            request=request,
            user=submitted_by or student,
            metadata={
                'submission_id': submission.id,
                'assignment_id': assignment.id,
                'auto_grade': result.auto_grade,
                'all_multiple_choice': result.all_multiple_choice,
            }
        )
        return submission

    # =========================================================================
    # TEACHER GRADING
    # =========================================================================

    def grade(self, submission_id, teacher, teacher_input: TeacherGradeInput, request=None):
        """
        Merge a teacher's grading into a submission and persist the outcome.

        Raises Submission.DoesNotExist for unknown ids and InvalidGradeError
        for a malformed single grade; in both cases nothing is written.
        """
        from gradebook.models import AuditLog, MemberGrade, Submission

        try:
            with transaction.atomic():
                submission = (
                    Submission.objects.select_for_update()
                    .get(pk=submission_id)
                )
                questions = submission.assignment.get_question_specs() if submission.assignment else None
                result = self.merge_engine.merge(submission.grading_state(), questions, teacher_input)

                submission.auto_graded = result.auto_graded
                submission.auto_grade = result.auto_grade
                submission.auto_question_grades = result.auto_question_grades
                submission.question_grades = result.question_grades
                submission.grade = result.grade
                submission.final_grade = result.final_grade
                submission.teacher_approved = result.teacher_approved
                submission.use_individual_grades = result.use_individual_grades
                if teacher_input.feedback is not None:
                    submission.feedback = teacher_input.feedback
                if result.graded:
                    submission.graded_by = teacher
                    submission.graded_at = timezone.now()
                submission.save()

                if result.member_grades is not None:
                    ignored = set(map(str, teacher_input.member_grades or {})) - set(map(str, result.member_grades))
                    if ignored:
                        logger.warning(
                            f"Submission {submission.id}: ignored grades for {sorted(ignored)}, "
                            f"not graded members of group {submission.group_id}"
                        )
                    self._save_member_grades(submission, result.member_grades, teacher, MemberGrade)
        except InvalidGradeError as exc:
            logger.warning(f"Rejected grade for submission {submission_id}: {exc}")
            AuditLog.log(
                event_type=AuditLog.EventType.GRADE_REJECTED,
                description=str(exc),
                request=request,
                user=teacher,
                metadata={'submission_id': submission_id}
            )
            raise

        self._record_outcome(submission, result, teacher_input, teacher, request, AuditLog)
        return submission

    def _save_member_grades(self, submission, member_grades, teacher, member_grade_model):
        """Replace the submission's member grades with exactly the ones just merged."""
        members = {str(member.id): member for member in submission.group.members.all()}
        graded = [members[str(student_id)] for student_id in member_grades if str(student_id) in members]
        member_grade_model.objects.filter(submission=submission).exclude(
            student__in=graded
        ).delete()

        now = timezone.now()
        for student_id, grade in member_grades.items():
            member = members.get(str(student_id))
            if member is None:
                continue
            member_grade_model.objects.update_or_create(
                submission=submission,
                student=member,
                defaults={'grade': grade, 'graded_by': teacher, 'graded_at': now}
            )

    def _record_outcome(self, submission, result, teacher_input, teacher, request, audit_log):
        metadata = {
            'submission_id': submission.id,
            'assignment_id': submission.assignment_id,
            'grade': result.grade,
            'final_grade': result.final_grade,
        }

        if result.used_fallback:
            logger.warning(
                f"Submission {submission.id}: assignment questions unavailable, "
                f"kept stored auto grade {result.auto_grade}"
            )
            audit_log.log(
                event_type=audit_log.EventType.GRADE_FALLBACK,
                description=f"Graded submission {submission.id} without question data",
                request=request,
                user=teacher,
                metadata=metadata
            )
            return

        if result.recomputed:
            logger.info(f"Submission {submission.id}: recomputed incomplete auto grades")

        if result.member_grades is not None:
            event_type = audit_log.EventType.MEMBER_GRADES
            description = f"Individual grades for {len(result.member_grades)} member(s), group grade {result.grade}"
            metadata['member_grades'] = {str(k): v for k, v in result.member_grades.items()}
        elif submission.auto_graded and teacher_input.approve_grade:
            event_type = audit_log.EventType.GRADE_APPROVED
            description = f"Approved auto grade: {result.final_grade}"
        else:
            event_type = audit_log.EventType.MANUAL_GRADE
            description = f"Manual grade: {result.final_grade}"

        logger.info(f"Submission {submission.id} graded by {teacher}: {description}")
        audit_log.log(
            event_type=event_type,
            description=description,
            request=request,
            user=teacher,
            metadata=metadata
        )


def _normalize_answers(answers):
    """Answer maps are keyed by question index; structured answers are stored as JSON text."""
    normalized = {}
    for key, value in (answers or {}).items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        elif value is None:
            value = ''
        normalized[str(key)] = value if isinstance(value, str) else str(value)
    return normalized
