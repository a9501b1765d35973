from django.urls import path
from .views import (
    AntiCheatEventView,
    PendingGradingListView,
    ProgressView,
    ResultReviewView,
    SaveAnswerView,
    StartExamView,
    StudentExamAttemptsView,
    SubmitExamView,
    SubmitGradeView,
)

urlpatterns = [
    # --- Grading Module (Admin / Proctor) ---
    path('admin/grading/pending/', PendingGradingListView.as_view(), name='grading-pending'),
    path('admin/grading/submit/<uuid:attempt_id>/', SubmitGradeView.as_view(), name='grading-submit'),

    # --- Student Exam Flow ---
    path('exams/<int:exam_id>/start/', StartExamView.as_view(), name='start-exam'),
    path('attempts/', StudentExamAttemptsView.as_view(), name='student-attempts'),
    path('attempts/<uuid:attempt_id>/answer/', SaveAnswerView.as_view(), name='attempt-answer'),
    path('attempts/<uuid:attempt_id>/progress/', ProgressView.as_view(), name='attempt-progress'),
    path('attempts/<uuid:attempt_id>/submit/', SubmitExamView.as_view(), name='submit-exam'),
    path('attempts/<uuid:attempt_id>/events/', AntiCheatEventView.as_view(), name='attempt-events'),

    # --- Results ---
    path('results/<uuid:result_id>/review/', ResultReviewView.as_view(), name='result-review'),
]
