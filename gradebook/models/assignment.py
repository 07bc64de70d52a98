from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from gradebook.grading.base import QuestionSpec


class Assignment(models.Model):
    course = models.ForeignKey(
        'Course',
        on_delete=models.CASCADE,
        related_name='assignments',
        db_index=True
    )
    title = models.CharField(max_length=300)
    description = models.TextField(blank=True)
    group_name = models.CharField(max_length=100, blank=True, help_text="Course group this item is weighted under")
    total_points = models.FloatField(default=0, validators=[MinValueValidator(0)])
    due_date = models.DateTimeField(null=True, blank=True)
    published = models.BooleanField(default=False, db_index=True)

    is_group_assignment = models.BooleanField(default=False)
    group_set = models.ForeignKey(
        'GroupSet',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assignments'
    )

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_assignments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['due_date', 'id']
        indexes = [
            models.Index(fields=['course', 'published']),
        ]

    def __str__(self):
        return self.title

    def clean(self):
        if self.is_group_assignment and not self.group_set_id:
            raise ValidationError({'group_set': "Group assignments need a group set."})

    def get_question_specs(self):
        return [question.to_spec() for question in self.questions.all()]

    def get_total_points(self):
        """Sum of question points when the assignment has questions, else the declared total."""
        questions = list(self.questions.all())
        if questions:
            return sum(question.points or 0 for question in questions)
        return self.total_points or 0


class Question(models.Model):
    class QuestionType(models.TextChoices):
        TEXT = 'text', 'Text'
        MULTIPLE_CHOICE = 'multiple-choice', 'Multiple Choice'
        MATCHING = 'matching', 'Matching'

    assignment = models.ForeignKey(
        'Assignment',
        on_delete=models.CASCADE,
        related_name='questions',
        db_index=True
    )
    question_type = models.CharField(
        max_length=20,
        choices=QuestionType.choices,
        default=QuestionType.TEXT
    )
    text = models.TextField(blank=True)
    points = models.FloatField(default=1, validators=[MinValueValidator(0)])
    order = models.PositiveIntegerField(default=0)
    # [{"text": "...", "is_correct": bool}]
    options = models.JSONField(default=list, blank=True)
    # [{"id": "...", "text": "..."}], paired by id
    left_items = models.JSONField(default=list, blank=True)
    right_items = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ['order', 'id']
        indexes = [
            models.Index(fields=['assignment', 'order']),
        ]

    def __str__(self):
        return f"Q{self.order}: {self.text[:50]}"

    def clean(self):
        # Stored answers and grades are keyed by question index and kind.
        if not self.assignment_id or not self.assignment.submissions.exists():
            return
        if self.pk is None:
            raise ValidationError("Questions cannot be added once the assignment has submissions.")
        stored_type = Question.objects.filter(pk=self.pk).values_list('question_type', flat=True).first()
        if stored_type is not None and stored_type != self.question_type:
            raise ValidationError({'question_type': "Question type cannot change once the assignment has submissions."})

    def to_spec(self) -> QuestionSpec:
        return QuestionSpec(
            kind=self.question_type,
            points=self.points or 0,
            options=tuple(self.options or ()),
            left_items=tuple(self.left_items or ()),
            right_items=tuple(self.right_items or ()),
        )
