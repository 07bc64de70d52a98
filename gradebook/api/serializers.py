from rest_framework import serializers
from gradebook.grading import TeacherGradeInput
from gradebook.models import Assignment, MemberGrade, Submission


class MemberGradeSerializer(serializers.ModelSerializer):
    student_username = serializers.CharField(source='student.username', read_only=True)

    class Meta:
        model = MemberGrade
        fields = ['student', 'student_username', 'grade', 'feedback', 'graded_at']
        read_only_fields = fields


class SubmissionDetailSerializer(serializers.ModelSerializer):
    assignment_title = serializers.CharField(source='assignment.title', read_only=True, default=None)
    student_username = serializers.CharField(source='student.username', read_only=True, default=None)
    group_name = serializers.CharField(source='group.name', read_only=True, default=None)
    graded_by_username = serializers.CharField(source='graded_by.username', read_only=True, default=None)
    member_grades = MemberGradeSerializer(many=True, read_only=True)

    class Meta:
        model = Submission
        fields = [
            'id', 'assignment', 'assignment_title', 'student', 'student_username',
            'group', 'group_name', 'answers', 'submitted_at',
            'auto_graded', 'auto_grade', 'auto_question_grades',
            'question_grades', 'grade', 'final_grade', 'teacher_approved',
            'graded_by_username', 'graded_at', 'feedback',
            'use_individual_grades', 'member_grades',
        ]
        read_only_fields = fields


class SubmissionCreateSerializer(serializers.Serializer):
    assignment = serializers.PrimaryKeyRelatedField(queryset=Assignment.objects.all())
    answers = serializers.DictField(child=serializers.JSONField(), allow_empty=True)

    def validate_assignment(self, value):
        if not value.published:
            raise serializers.ValidationError("This assignment is not published.")
        if value.is_group_assignment and value.group_set_id is None:
            raise serializers.ValidationError("This group assignment has no group set.")
        return value

    def validate_answers(self, value):
        for key in value:
            if not str(key).strip().isdigit():
                raise serializers.ValidationError(f"Answer keys must be question indices, got {key!r}.")
        return value


class GradeSubmissionSerializer(serializers.Serializer):
    # Kept as text so malformed grades reach the merge engine and fail there with a clear message
    grade = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    question_grades = serializers.DictField(
        child=serializers.CharField(allow_blank=True, allow_null=True),
        required=False
    )
    approve_grade = serializers.BooleanField(required=False, default=False)
    use_individual_grades = serializers.BooleanField(required=False, default=False)
    member_grades = serializers.DictField(
        child=serializers.CharField(allow_blank=True, allow_null=True),
        required=False
    )
    feedback = serializers.CharField(required=False, allow_blank=True)

    def to_grade_input(self) -> TeacherGradeInput:
        data = self.validated_data
        return TeacherGradeInput(
            grade=data.get('grade'),
            question_grades=data.get('question_grades'),
            approve_grade=data.get('approve_grade', False),
            use_individual_grades=data.get('use_individual_grades', False),
            member_grades=data.get('member_grades'),
            feedback=data.get('feedback'),
        )


class GroupBreakdownSerializer(serializers.Serializer):
    name = serializers.CharField()
    weight = serializers.FloatField()
    adjusted_weight = serializers.FloatField()
    earned = serializers.FloatField()
    possible = serializers.FloatField()
    percent = serializers.FloatField(allow_null=True)
    has_grade = serializers.BooleanField()


class CourseGradeSerializer(serializers.Serializer):
    course_id = serializers.IntegerField()
    student_id = serializers.IntegerField()
    policy = serializers.CharField()
    percent = serializers.FloatField()
    letter = serializers.CharField()


class CourseGradeBreakdownSerializer(CourseGradeSerializer):
    groups = GroupBreakdownSerializer(many=True)
