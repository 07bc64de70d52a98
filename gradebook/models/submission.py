from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from gradebook.grading.base import SubmissionGradingState


class Submission(models.Model):
    # Outlives its assignment so stored grades survive assignment cleanup.
    assignment = models.ForeignKey(
        'Assignment',
        on_delete=models.SET_NULL,
        null=True,
        related_name='submissions',
        db_index=True
    )
    student = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='submissions'
    )
    group = models.ForeignKey(
        'StudentGroup',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='submissions'
    )
    submitted_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='submitted_work'
    )
    # question index (string) -> raw answer; matching answers are JSON text
    answers = models.JSONField(default=dict, blank=True)
    submitted_at = models.DateTimeField(default=timezone.now)

    # Auto-grading record. All grade fields hold earned points, never a percentage.
    auto_graded = models.BooleanField(default=False)
    auto_grade = models.FloatField(null=True, blank=True)
    auto_question_grades = models.JSONField(default=dict, blank=True)

    # Manual grading record
    question_grades = models.JSONField(default=dict, blank=True)
    grade = models.FloatField(null=True, blank=True)
    final_grade = models.FloatField(null=True, blank=True)
    teacher_approved = models.BooleanField(default=False)
    graded_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='graded_submissions'
    )
    graded_at = models.DateTimeField(null=True, blank=True)
    feedback = models.TextField(blank=True)
    use_individual_grades = models.BooleanField(default=False)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-submitted_at']
        indexes = [
            models.Index(fields=['assignment', 'student']),
            models.Index(fields=['assignment', 'group']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['assignment', 'student'],
                condition=Q(group__isnull=True),
                name='unique_student_submission'
            ),
            models.UniqueConstraint(
                fields=['assignment', 'group'],
                condition=Q(group__isnull=False),
                name='unique_group_submission'
            ),
        ]

    def __str__(self):
        owner = self.group or self.student
        return f"{owner} - {self.assignment}"

    def clean(self):
        if (self.student_id is None) == (self.group_id is None):
            raise ValidationError("A submission belongs to exactly one student or one group.")

    @property
    def is_group_submission(self):
        return self.group_id is not None

    def grading_state(self) -> SubmissionGradingState:
        return SubmissionGradingState(
            answers=dict(self.answers or {}),
            auto_graded=self.auto_graded,
            auto_grade=self.auto_grade,
            auto_question_grades=dict(self.auto_question_grades or {}),
            question_grades=dict(self.question_grades or {}),
            grade=self.grade,
            final_grade=self.final_grade,
            teacher_approved=self.teacher_approved,
            use_individual_grades=self.use_individual_grades,
            is_group=self.is_group_submission,
            member_ids=(
                frozenset(str(pk) for pk in self.group.members.values_list('pk', flat=True))
                if self.is_group_submission else None
            ),
        )

    def grade_for(self, student):
        """Grade that counts for one student: their member grade under individual grading."""
        if self.use_individual_grades:
            member_grade = next(
                (mg for mg in self.member_grades.all() if mg.student_id == student.id), None
            )
            return member_grade.grade if member_grade else None
        return self.grade


class MemberGrade(models.Model):
    submission = models.ForeignKey(
        'Submission',
        on_delete=models.CASCADE,
        related_name='member_grades'
    )
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='member_grades')
    grade = models.FloatField()
    feedback = models.TextField(blank=True)
    graded_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='member_grades_given'
    )
    graded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['submission', 'student'], name='unique_member_grade')
        ]

    def __str__(self):
        return f"{self.student.username}: {self.grade}"
