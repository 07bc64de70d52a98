from django.contrib.auth.models import User
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class Discussion(models.Model):
    course = models.ForeignKey(
        'Course',
        on_delete=models.CASCADE,
        related_name='discussions'
    )
    title = models.CharField(max_length=300)
    group_name = models.CharField(max_length=100, default='Discussions')
    is_graded = models.BooleanField(default=False, db_index=True)
    total_points = models.FloatField(default=100, validators=[MinValueValidator(0)])
    due_date = models.DateTimeField(null=True, blank=True)
    published = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class DiscussionReply(models.Model):
    discussion = models.ForeignKey(
        'Discussion',
        on_delete=models.CASCADE,
        related_name='replies'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='children'
    )
    author = models.ForeignKey(User, on_delete=models.CASCADE, related_name='discussion_replies')
    body = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f"Reply by {self.author.username} on {self.discussion.title}"


class DiscussionGrade(models.Model):
    discussion = models.ForeignKey(
        'Discussion',
        on_delete=models.CASCADE,
        related_name='student_grades'
    )
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='discussion_grades')
    grade = models.FloatField(validators=[MinValueValidator(0)])
    graded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['discussion', 'student'], name='unique_discussion_grade')
        ]

    def __str__(self):
        return f"{self.student.username} - {self.discussion.title}: {self.grade}"
