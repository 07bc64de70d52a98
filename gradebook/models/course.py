from django.core.exceptions import ValidationError
from django.db import models

from gradebook.grading.aggregation import CourseGroup
from gradebook.grading.letters import DEFAULT_GRADE_SCALE, validate_grade_scale

DEFAULT_GROUPS = [
    {'name': 'Projects', 'weight': 15},
    {'name': 'Homework', 'weight': 15},
    {'name': 'Exams', 'weight': 20},
    {'name': 'Quizzes', 'weight': 30},
    {'name': 'Participation', 'weight': 20},
]


def default_groups():
    return [dict(group) for group in DEFAULT_GROUPS]


def default_grade_scale():
    return [dict(row) for row in DEFAULT_GRADE_SCALE]


class Course(models.Model):
    name = models.CharField(max_length=200)
    code = models.CharField(max_length=20, unique=True, db_index=True)
    description = models.TextField(blank=True)
    groups = models.JSONField(default=default_groups, blank=True)
    grade_scale = models.JSONField(default=default_grade_scale, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"

    def clean(self):
        errors = {}
        if self.grade_scale:
            message = validate_grade_scale(self.grade_scale)
            if message:
                errors['grade_scale'] = message

        names = set()
        for i, group in enumerate(self.groups or [], start=1):
            if not isinstance(group, dict) or not group.get('name'):
                errors['groups'] = f"Group {i}: Name is required."
                break
            weight = group.get('weight')
            if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight < 0:
                errors['groups'] = f"Group {i}: Weight must be a non-negative number."
                break
            if group['name'] in names:
                errors['groups'] = f"Duplicate group name: {group['name']}"
                break
            names.add(group['name'])

        if errors:
            raise ValidationError(errors)

    def get_course_groups(self):
        return [CourseGroup.coerce(group) for group in (self.groups or [])]
