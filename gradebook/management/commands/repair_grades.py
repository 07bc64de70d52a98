"""
Management command to repair stored grades of auto-graded submissions.
Re-runs automatic scoring and fixes grade fields that hold the rounded
percentage instead of earned points.
"""
import logging

from django.core.management.base import BaseCommand
from django.db import transaction

from gradebook.grading import AutoGrader
from gradebook.grading.merge import OVERRIDE_TOLERANCE
from gradebook.models import AuditLog, Submission

logger = logging.getLogger(__name__)

POINT_FIELDS = ('auto_grade', 'final_grade', 'grade')


def _differs(a, b):
    return abs((a or 0) - (b or 0)) > OVERRIDE_TOLERANCE


def plan_repair(submission, result):
    """Field changes that bring a submission in line with a fresh auto-grade result."""
    changes = {}
    earned = result.auto_grade
    percentage = result.percentage

    for field in POINT_FIELDS:
        value = getattr(submission, field)
        if value is not None and value == percentage and _differs(value, earned):
            changes[field] = earned

    old_auto = submission.auto_grade
    if _differs(old_auto, earned) or submission.auto_question_grades != result.auto_question_grades:
        changes['auto_grade'] = earned
        changes['auto_question_grades'] = result.auto_question_grades
        if submission.teacher_approved and submission.final_grade == old_auto and 'final_grade' not in changes:
            changes['final_grade'] = earned
            changes['grade'] = earned

    return changes


class Command(BaseCommand):
    help = 'Recompute auto grades and repair grades stored as percentages'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would change without saving'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        grader = AutoGrader()

        submissions = Submission.objects.filter(auto_graded=True).select_related('assignment')
        self.stdout.write(self.style.NOTICE(f'\nChecking {submissions.count()} auto-graded submission(s)...\n'))

        repaired = 0
        skipped = 0
        for submission in submissions.iterator():
            if submission.assignment is None:
                skipped += 1
                self.stdout.write(f'  #{submission.id}: skipped, assignment no longer exists')
                continue

            with transaction.atomic():
                locked = Submission.objects.select_for_update().get(pk=submission.pk)
                result = grader.grade(submission.assignment.get_question_specs(), locked.answers)
                changes = plan_repair(locked, result)
                if not changes:
                    continue

                summary = ', '.join(
                    f"{field}: {getattr(locked, field)} -> {value}"
                    for field, value in changes.items() if field != 'auto_question_grades'
                ) or 'per-question auto grades'
                repaired += 1

                if dry_run:
                    self.stdout.write(f'  #{locked.id}: would fix {summary}')
                    continue

                for field, value in changes.items():
                    setattr(locked, field, value)
                locked.save(update_fields=list(changes) + ['updated_at'])

                AuditLog.log(
                    event_type=AuditLog.EventType.GRADE_REPAIRED,
                    description=f"Repaired submission {locked.id}: {summary}",
                    metadata={'submission_id': locked.id, 'fields': sorted(changes)}
                )
                logger.info(f"Repaired submission {locked.id}: {summary}")
                self.stdout.write(self.style.SUCCESS(f'  ✓ #{locked.id}: {summary}'))

        verb = 'would be repaired' if dry_run else 'repaired'
        self.stdout.write(self.style.SUCCESS(f'\n{repaired} submission(s) {verb}, {skipped} skipped.'))
