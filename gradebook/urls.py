from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .api.views import (
    SubmissionViewSet,
    CourseGradeView, LegacyCourseGradeView, CourseGradeBreakdownView,
)

router = DefaultRouter()
router.register(r'submissions', SubmissionViewSet, basename='submission')

urlpatterns = [
    # ============================================
    # COURSE GRADES
    # ============================================
    path('grades/course/<int:course_id>/', CourseGradeView.as_view(), name='course-grade'),
    path('grades/course/<int:course_id>/legacy/', LegacyCourseGradeView.as_view(), name='course-grade-legacy'),
    path('grades/course/<int:course_id>/breakdown/', CourseGradeBreakdownView.as_view(), name='course-grade-breakdown'),

    # ============================================
    # CORE API ROUTES (ViewSets)
    # ============================================
    path('', include(router.urls)),
]
