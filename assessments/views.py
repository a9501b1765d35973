import logging

from rest_framework import generics, permissions, status, views
from rest_framework.response import Response

from cores.models import AuditLog
from cores.providers import get_settings_provider

from .exceptions import AttemptNotOngoing, ResultNotFound
from .models import AntiCheatEvent, ExamAttempt, ExamResult
from .permissions import IsGraderOrAdmin, IsStudent
from .serializers import (
    AnswerInputSerializer,
    AntiCheatEventSerializer,
    AttemptSessionSerializer,
    ExamAttemptSerializer,
    ExamResultSerializer,
    PendingAttemptSerializer,
    ProgressInputSerializer,
    StudentAnswerSerializer,
    SubmitGradesSerializer,
    SubmitInputSerializer,
)
from .services.grading import apply_manual_grades, submit_attempt
from .services.lifecycle import AttemptLifecycle
from .services.progress import get_attempt, load_progress, record_answer, update_cursor
from .services.review import build_review

logger = logging.getLogger(__name__)


def client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


# --- STUDENT VIEWS ---

class StartExamView(views.APIView):
    """
    Student starts an exam, or gets back the attempt already in progress.
    Returns the questions with options in this attempt's order.
    """
    permission_classes = [IsStudent]

    def post(self, request, exam_id):
        session = AttemptLifecycle().start(
            exam_id,
            request.user,
            ip_address=client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )
        data = AttemptSessionSerializer(session).data
        return Response(data, status=status.HTTP_200_OK if session.is_resume else status.HTTP_201_CREATED)


class SaveAnswerView(views.APIView):
    """Saves one answer. ``position`` indexes the option order shown to the student."""
    permission_classes = [IsStudent]

    def get(self, request, attempt_id):
        attempt = get_attempt(attempt_id, request.user)
        serializer = StudentAnswerSerializer(attempt.answers.order_by('question_id'), many=True)
        return Response(serializer.data)

    def post(self, request, attempt_id):
        attempt = get_attempt(attempt_id, request.user)
        serializer = AnswerInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        answer = record_answer(
            attempt,
            data['question_id'],
            position=data.get('position'),
            text=data.get('text_answer'),
            is_flagged=data['is_flagged'],
            time_spent=data.get('time_spent'),
        )
        return Response(StudentAnswerSerializer(answer).data)


class ProgressView(views.APIView):
    """Autosave of navigation state (cursor, flags, draft answers)."""
    permission_classes = [IsStudent]

    def get(self, request, attempt_id):
        attempt = get_attempt(attempt_id, request.user)
        data = load_progress(attempt)
        data['remaining_seconds'] = attempt.remaining_seconds()
        data['status'] = attempt.effective_status()
        data['is_expired'] = attempt.is_expired()
        return Response(data)

    def post(self, request, attempt_id):
        attempt = get_attempt(attempt_id, request.user)
        serializer = ProgressInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        progress = update_cursor(
            attempt,
            data['current_question_index'],
            flagged=data.get('flagged_questions'),
            draft_answers=data.get('answers'),
            time_spent=data.get('time_spent'),
        )
        return Response({"saved": True, "last_saved_at": progress.last_saved_at})


class SubmitExamView(views.APIView):
    """
    Student submits the attempt.
    Choice answers are graded immediately; free-text answers wait for a grader.
    """
    permission_classes = [IsStudent]

    def post(self, request, attempt_id):
        attempt = get_attempt(attempt_id, request.user)
        serializer = SubmitInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = submit_attempt(
            attempt,
            answers=serializer.validated_data['answers'],
            time_spent=serializer.validated_data.get('time_spent'),
        )
        policy = get_settings_provider().exam_policy()
        attempt.refresh_from_db(fields=['status'])

        if not policy.show_results_immediately:
            return Response({
                "status": attempt.status,
                "attempt_id": attempt.id,
                "result_id": result.id,
                "show_results": False,
            })

        data = ExamResultSerializer(result).data
        data['show_results'] = True
        data['attempt_status'] = attempt.status
        return Response(data)


class AntiCheatEventView(views.APIView):
    """Students report events for their own attempt; graders and admins read them."""

    def get_permissions(self):
        if self.request.method == 'GET':
            return [IsGraderOrAdmin()]
        return [permissions.IsAuthenticated()]

    def get(self, request, attempt_id):
        attempt = get_attempt(attempt_id, request.user, allow_staff=True)
        serializer = AntiCheatEventSerializer(attempt.anti_cheat_events.all(), many=True)
        return Response({"events": serializer.data})

    def post(self, request, attempt_id):
        attempt = get_attempt(attempt_id, request.user)
        if not attempt.is_ongoing:
            raise AttemptNotOngoing(attempt.status)

        serializer = AntiCheatEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        event = serializer.save(attempt=attempt)

        log = logger.warning if event.severity == AntiCheatEvent.Severity.HIGH else logger.info
        log("Anti-cheat event %s (%s) on attempt %s", event.event_type, event.severity, attempt.pk)
        return Response(AntiCheatEventSerializer(event).data, status=status.HTTP_201_CREATED)


class StudentExamAttemptsView(generics.ListAPIView):
    """List all exam attempts for the logged-in student."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ExamAttemptSerializer

    def get_queryset(self):
        queryset = ExamAttempt.objects.filter(student=self.request.user).select_related('exam', 'result')
        exam_id = self.request.query_params.get('exam_id')
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        return queryset.order_by('-start_time')


class ResultReviewView(views.APIView):
    """Per-question review of a finished attempt, options in the order the student saw them."""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, result_id):
        queryset = ExamResult.objects.select_related('attempt', 'attempt__exam', 'exam')
        if not IsGraderOrAdmin().has_permission(request, self):
            queryset = queryset.filter(student=request.user)
        result = queryset.filter(pk=result_id).first()
        if result is None:
            raise ResultNotFound()

        return Response({
            "result": ExamResultSerializer(result).data,
            "per_question": build_review(result),
        })


# --- GRADER / ADMIN VIEWS ---

class PendingGradingListView(generics.ListAPIView):
    """List all submitted attempts that still have free-text answers to grade."""
    permission_classes = [IsGraderOrAdmin]
    serializer_class = PendingAttemptSerializer

    def get_queryset(self):
        return (
            ExamAttempt.objects
            .filter(status=ExamAttempt.Status.SUBMITTED)
            .select_related('student', 'exam')
            .prefetch_related('answers__question')
            .order_by('submitted_at')
        )


class SubmitGradeView(views.APIView):
    """Grader submits marks for the free-text answers of one attempt."""
    permission_classes = [IsGraderOrAdmin]

    def post(self, request, attempt_id):
        attempt = get_attempt(attempt_id, request.user, allow_staff=True)
        serializer = SubmitGradesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = apply_manual_grades(attempt, serializer.validated_data['grades'])

        AuditLog.objects.create(
            actor=request.user,
            action='GRADE',
            target_model='ExamAttempt',
            target_object_id=str(attempt.id),
            details=f"Graded {len(serializer.validated_data['grades'])} answer(s); score {result.obtained_marks}/{result.total_marks}",
            ip_address=client_ip(request),
        )
        logger.info("Attempt %s graded by %s", attempt.pk, request.user.pk)
        return Response({
            "status": "Graded successfully",
            "result": ExamResultSerializer(result).data,
        })
