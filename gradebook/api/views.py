"""
API Views for the Course Grading Engine.
Provides endpoints for student submissions, teacher grading and course grades.
"""
from django.contrib.auth.models import User
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import (
    extend_schema, extend_schema_view, OpenApiParameter, OpenApiExample
)

from gradebook.grading import InvalidGradeError
from gradebook.models import AuditLog, Course, Submission
from gradebook.permissions import IsEducatorOrAdmin, IsOwnerOrEducator, is_educator
from gradebook.services import CourseGradeService, SubmissionGradingService
from gradebook.throttling import GradingRateThrottle
from .serializers import (
    CourseGradeBreakdownSerializer, CourseGradeSerializer, GradeSubmissionSerializer,
    SubmissionCreateSerializer, SubmissionDetailSerializer,
)


# =============================================================================
# SUBMISSIONS
# =============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List submissions",
        description="""
Returns a paginated list of submissions.

**Students** see their own submissions and their groups' submissions.
**Educators** see every submission.
"""
    ),
    retrieve=extend_schema(
        summary="Get submission details",
        description="Returns answers, the automatic score record and the teacher grading record."
    )
)
@extend_schema(tags=['Submissions'])
class SubmissionViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    ViewSet for assignment submissions.

    Students create or update their answers; every write re-runs automatic
    scoring. Educators grade through the `grade` action.
    """
    queryset = Submission.objects.none()
    serializer_class = SubmissionDetailSerializer
    permission_classes = [IsAuthenticated, IsOwnerOrEducator]
    filterset_fields = ['assignment', 'teacher_approved']
    ordering_fields = ['submitted_at', 'graded_at', 'final_grade']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Submission.objects.none()

        queryset = Submission.objects.select_related(
            'assignment', 'student', 'group', 'graded_by'
        ).prefetch_related(
            'member_grades__student'
        )
        user = self.request.user
        if not is_educator(user):
            queryset = queryset.filter(Q(student=user) | Q(group__members=user)).distinct()
        return queryset

    @extend_schema(
        summary="Submit answers",
        description="""
Create or replace the current user's answers for an assignment.

- Answer keys are question indices (`"0"`, `"1"`, ...)
- Multiple choice answers are the chosen option text
- Matching answers are an object of left item ordinal to chosen right item text
- For group assignments the answers are stored on the group's submission

Assignments made only of multiple choice and matching questions are graded immediately.
""",
        request=SubmissionCreateSerializer,
        responses={201: SubmissionDetailSerializer, 400: dict},
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "assignment": 1,
                    "answers": {"0": "Paris", "1": {"0": "H2O", "1": "NaCl"}}
                },
                request_only=True
            )
        ]
    )
    def create(self, request, *args, **kwargs):
        serializer = SubmissionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assignment = serializer.validated_data['assignment']
        answers = serializer.validated_data['answers']

        owner = {'student': request.user}
        if assignment.is_group_assignment:
            group = assignment.group_set.group_for(request.user)
            if group is None:
                return Response(
                    {"detail": "You are not a member of a group for this assignment."},
                    status=status.HTTP_400_BAD_REQUEST
                )
            owner = {'group': group}

        submission = SubmissionGradingService().record_answers(
            assignment, answers, submitted_by=request.user, request=request, **owner
        )
        return Response(
            SubmissionDetailSerializer(submission, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )

    @extend_schema(
        summary="Grade a submission",
        description="""
Apply teacher grading to a submission. **Requires Educator or Admin role.**

**Auto-graded submissions:**
- `approve_grade: true` accepts the automatic score, with optional per-question adjustments
- otherwise `question_grades` are merged with the automatic per-question scores and
  earlier manual overrides, and the final grade is recomputed from scratch

**Other submissions:**
- `grade` sets a single grade in points; a malformed value is rejected with 400
- `question_grades` sum to the grade when the assignment has questions
- group submissions accept `use_individual_grades` with `member_grades` (user id -> points)
""",
        request=GradeSubmissionSerializer,
        responses={200: SubmissionDetailSerializer, 400: dict, 404: dict},
        examples=[
            OpenApiExample(
                'Manual Re-grade',
                value={"question_grades": {"0": "10", "2": "4.5"}, "feedback": "Good work"},
                request_only=True
            ),
            OpenApiExample(
                'Approve Auto Grade',
                value={"approve_grade": True},
                request_only=True
            ),
            OpenApiExample(
                'Individual Group Grades',
                value={"use_individual_grades": True, "member_grades": {"4": "85", "7": "92"}},
                request_only=True
            )
        ]
    )
    @action(
        detail=True,
        methods=['post'],
        permission_classes=[IsAuthenticated, IsEducatorOrAdmin],
        throttle_classes=[GradingRateThrottle]
    )
    def grade(self, request, pk=None):
        submission = self.get_object()

        serializer = GradeSubmissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            submission = SubmissionGradingService().grade(
                submission.id, request.user, serializer.to_grade_input(), request=request
            )
        except InvalidGradeError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        submission = self.get_queryset().get(pk=submission.pk)
        return Response(SubmissionDetailSerializer(submission, context={'request': request}).data)


# =============================================================================
# COURSE GRADES
# =============================================================================

class BaseCourseGradeView(APIView):
    permission_classes = [IsAuthenticated]
    policy = None

    def _resolve(self, request, course_id):
        """Returns (course, student, error_response)."""
        try:
            course = Course.objects.get(id=course_id)
        except Course.DoesNotExist:
            return None, None, Response({"detail": "Course not found."}, status=status.HTTP_404_NOT_FOUND)

        student_id = request.query_params.get('student')
        if not student_id or str(student_id) == str(request.user.id):
            return course, request.user, None

        if not is_educator(request.user):
            AuditLog.log(
                event_type=AuditLog.EventType.PERMISSION_DENIED,
                description=f"Requested course grade of user {student_id} in {course.code}",
                request=request,
                metadata={'course_id': course.id, 'student_id': student_id}
            )
            return course, None, Response(
                {"detail": "Only educators can view other students' grades."},
                status=status.HTTP_403_FORBIDDEN
            )

        try:
            student = User.objects.get(id=student_id)
        except (User.DoesNotExist, ValueError):
            return course, None, Response({"detail": "Student not found."}, status=status.HTTP_404_NOT_FOUND)
        return course, student, None

    def get_policy(self, request):
        return self.policy


STUDENT_PARAMETER = OpenApiParameter(
    name='student', type=int, location='query', required=False,
    description='Student user ID (educators only; defaults to the current user)'
)


@extend_schema(tags=['Course Grades'])
class CourseGradeView(BaseCourseGradeView):
    """Weighted course grade with ungraded group weight redistributed."""
    policy = 'redistribute'

    @extend_schema(
        summary="Get course grade",
        description="""
Course percentage and letter grade for a student.

Groups without any countable grade hand their weight to graded groups in
proportion to their original weight. Submitted but ungraded work is left out;
published work past its due date with no submission counts as 0.
""",
        parameters=[STUDENT_PARAMETER],
        responses={200: CourseGradeSerializer, 403: dict, 404: dict},
        examples=[
            OpenApiExample(
                'Response Example',
                value={"course_id": 1, "student_id": 4, "policy": "redistribute", "percent": 84.0, "letter": "B"},
                response_only=True
            )
        ]
    )
    def get(self, request, course_id):
        course, student, error = self._resolve(request, course_id)
        if error:
            return error

        result = CourseGradeService(course).course_grade(student, policy=self.get_policy(request))
        return Response(CourseGradeSerializer({
            'course_id': course.id,
            'student_id': student.id,
            'policy': result.policy,
            'percent': round(result.percent, 2),
            'letter': result.letter,
        }).data)


@extend_schema(tags=['Course Grades'])
class LegacyCourseGradeView(CourseGradeView):
    """Weighted course grade computed the backward compatible way."""
    policy = 'legacy'

    @extend_schema(
        summary="Get course grade (legacy policy)",
        description="""
Course percentage and letter grade using normalized weights: groups without
countable items drop out and the "Other" bucket takes the remaining weight.
""",
        parameters=[STUDENT_PARAMETER],
        responses={200: CourseGradeSerializer, 403: dict, 404: dict}
    )
    def get(self, request, course_id):
        return super().get(request, course_id)


@extend_schema(tags=['Course Grades'])
class CourseGradeBreakdownView(BaseCourseGradeView):
    """Per-group earned and possible points behind a course grade."""

    def get_policy(self, request):
        return request.query_params.get('policy') or None

    @extend_schema(
        summary="Get course grade breakdown",
        parameters=[
            STUDENT_PARAMETER,
            OpenApiParameter(
                name='policy', type=str, location='query', required=False,
                enum=['redistribute', 'legacy'],
                description='Aggregation policy (defaults to the configured policy)'
            ),
        ],
        responses={200: CourseGradeBreakdownSerializer, 403: dict, 404: dict}
    )
    def get(self, request, course_id):
        course, student, error = self._resolve(request, course_id)
        if error:
            return error

        breakdown = CourseGradeService(course).breakdown(student, policy=self.get_policy(request))
        return Response(CourseGradeBreakdownSerializer(breakdown).data)
