from django.contrib import admin
from .models import (
    Assignment, AuditLog, Course, Discussion, DiscussionGrade, GroupSet,
    MemberGrade, Question, StudentGroup, Submission,
)


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 1
    fields = ['order', 'question_type', 'text', 'points', 'options', 'left_items', 'right_items']


class MemberGradeInline(admin.TabularInline):
    model = MemberGrade
    extra = 0
    readonly_fields = ['student', 'grade', 'feedback', 'graded_by', 'graded_at']
    can_delete = False


class DiscussionGradeInline(admin.TabularInline):
    model = DiscussionGrade
    extra = 0


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'created_at']
    search_fields = ['code', 'name']
    ordering = ['code']
    fieldsets = (
        (None, {'fields': ('code', 'name', 'description')}),
        ('Grading', {'fields': ('groups', 'grade_scale')}),
    )


@admin.register(Assignment)
class AssignmentAdmin(admin.ModelAdmin):
    list_display = ['title', 'course', 'group_name', 'total_points', 'due_date', 'published', 'is_group_assignment']
    list_filter = ['published', 'is_group_assignment', 'course']
    search_fields = ['title', 'description']
    inlines = [QuestionInline]
    readonly_fields = ['created_at', 'updated_at']
    fieldsets = (
        (None, {'fields': ('title', 'description', 'course', 'group_name', 'published')}),
        ('Scoring', {'fields': ('total_points', 'due_date')}),
        ('Groups', {'fields': ('is_group_assignment', 'group_set')}),
        ('Metadata', {'fields': ('created_by', 'created_at', 'updated_at'), 'classes': ('collapse',)}),
    )


@admin.register(GroupSet)
class GroupSetAdmin(admin.ModelAdmin):
    list_display = ['name', 'course']
    list_filter = ['course']


@admin.register(StudentGroup)
class StudentGroupAdmin(admin.ModelAdmin):
    list_display = ['name', 'group_set']
    list_filter = ['group_set']
    filter_horizontal = ['members']


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    list_display = ['id', 'owner', 'assignment', 'auto_grade', 'final_grade', 'teacher_approved', 'submitted_at']
    list_filter = ['teacher_approved', 'auto_graded', 'assignment__course']
    search_fields = ['student__username', 'group__name', 'assignment__title']
    inlines = [MemberGradeInline]
    # Grades change only through the grading service
    readonly_fields = [
        'auto_graded', 'auto_grade', 'auto_question_grades', 'question_grades',
        'grade', 'final_grade', 'teacher_approved', 'graded_by', 'graded_at',
        'use_individual_grades', 'submitted_at',
    ]
    fieldsets = (
        (None, {'fields': ('assignment', 'student', 'group', 'answers', 'submitted_at')}),
        ('Automatic Score', {'fields': ('auto_graded', 'auto_grade', 'auto_question_grades')}),
        ('Teacher Grading', {'fields': (
            'question_grades', 'grade', 'final_grade', 'teacher_approved',
            'use_individual_grades', 'feedback', 'graded_by', 'graded_at'
        )}),
    )

    def owner(self, obj):
        return obj.group or obj.student
    owner.short_description = 'Student / Group'


@admin.register(Discussion)
class DiscussionAdmin(admin.ModelAdmin):
    list_display = ['title', 'course', 'group_name', 'is_graded', 'total_points', 'due_date', 'published']
    list_filter = ['is_graded', 'published', 'course']
    search_fields = ['title']
    inlines = [DiscussionGradeInline]


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'event_type', 'user', 'ip_address', 'description_preview']
    list_filter = ['event_type', 'created_at']
    search_fields = ['user__username', 'description', 'ip_address']
    readonly_fields = ['user', 'event_type', 'description', 'ip_address', 'user_agent', 'metadata', 'created_at']
    ordering = ['-created_at']

    def description_preview(self, obj):
        return obj.description[:50] + '...' if len(obj.description) > 50 else obj.description
    description_preview.short_description = 'Description'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
