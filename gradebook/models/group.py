from django.contrib.auth.models import User
from django.db import models


class GroupSet(models.Model):
    course = models.ForeignKey(
        'Course',
        on_delete=models.CASCADE,
        related_name='group_sets'
    )
    name = models.CharField(max_length=200)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.course.code} / {self.name}"

    def group_for(self, student):
        return self.groups.filter(members=student).first()


class StudentGroup(models.Model):
    group_set = models.ForeignKey(
        'GroupSet',
        on_delete=models.CASCADE,
        related_name='groups'
    )
    name = models.CharField(max_length=200)
    members = models.ManyToManyField(User, related_name='student_groups', blank=True)

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['group_set', 'name'], name='unique_group_name_per_set')
        ]

    def __str__(self):
        return self.name
