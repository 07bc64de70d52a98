from django.db import models
from django.contrib.auth.models import User


class AuditLog(models.Model):
    class EventType(models.TextChoices):
        ANSWERS_RECORDED = 'answers_recorded', 'Answers Recorded'
        AUTO_GRADED = 'auto_graded', 'Submission Auto-Graded'
        GRADE_APPROVED = 'grade_approved', 'Auto Grade Approved'
        MANUAL_GRADE = 'manual_grade', 'Manual Grade Saved'
        MEMBER_GRADES = 'member_grades', 'Individual Member Grades Saved'
        GRADE_FALLBACK = 'grade_fallback', 'Grade Saved Without Question Data'
        GRADE_REJECTED = 'grade_rejected', 'Grade Input Rejected'
        GRADE_REPAIRED = 'grade_repaired', 'Stored Grade Repaired'
        PERMISSION_DENIED = 'permission_denied', 'Permission Denied'

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    event_type = models.CharField(max_length=30, choices=EventType.choices, db_index=True)
    description = models.TextField()
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'event_type']),
            models.Index(fields=['created_at', 'event_type']),
        ]

    def __str__(self):
        return f"{self.event_type} - {self.user} - {self.created_at}"

    @classmethod
    def log(cls, event_type, description, request=None, user=None, metadata=None):
        ip_address = None
        user_agent = ''

        if request is not None:
            forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
            ip_address = forwarded.split(',')[0].strip() if forwarded else request.META.get('REMOTE_ADDR')
            user_agent = request.META.get('HTTP_USER_AGENT', '')[:500]

            if user is None and getattr(request, 'user', None) is not None and request.user.is_authenticated:
                user = request.user

        return cls.objects.create(
            user=user,
            event_type=event_type,
            description=description,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata or {}
        )
