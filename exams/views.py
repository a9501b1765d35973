import csv
import io
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Sum
from rest_framework import viewsets, permissions, status, filters
from rest_framework.decorators import action
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.response import Response

from cores.models import AuditLog
from .models import Exam, ExamQuestion, Question, Option, Program, ProgramEnrollment
from .serializers import (
    ExamSerializer, ExamDetailSerializer, ExamListSerializer,
    QuestionSerializer, ProgramSerializer, ProgramEnrollmentSerializer,
)

logger = logging.getLogger(__name__)


def refresh_exam_totals(exam):
    """Recount questions and marks after the exam's question list changed."""
    links = ExamQuestion.objects.filter(exam=exam)
    exam.total_questions = links.count()
    exam.total_marks = links.aggregate(total=Sum('question__marks'))['total'] or Decimal('0')
    exam.save(update_fields=['total_questions', 'total_marks'])


class ExamViewSet(viewsets.ModelViewSet):
    queryset = Exam.objects.all().order_by('-created_at')

    # Enable search on title and program name
    filter_backends = [filters.SearchFilter]
    search_fields = ['title', 'programs__name']

    def get_serializer_class(self):
        if self.action == 'retrieve' and self.request.user.is_staff:
            return ExamDetailSerializer
        if self.action in ['list', 'retrieve'] and not self.request.user.is_staff:
            # Candidates never see questions or answer keys here
            return ExamListSerializer
        return ExamSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [permissions.IsAuthenticated()]
        return [permissions.IsAdminUser()]

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user
        if not user.is_staff:
            # Students only see active exams of the programs they are enrolled in
            queryset = queryset.filter(
                is_active=True,
                programs__enrollments__student=user,
                programs__enrollments__status=ProgramEnrollment.Status.ACTIVE,
            ).distinct()
        return queryset

    def perform_create(self, serializer):
        exam = serializer.save()
        AuditLog.objects.create(
            actor=self.request.user,
            action='CREATE',
            target_model='Exam',
            target_object_id=str(exam.id),
            details=f"Created exam: {exam.title}",
        )

    def perform_update(self, serializer):
        exam = serializer.save()
        AuditLog.objects.create(
            actor=self.request.user,
            action='UPDATE',
            target_model='Exam',
            target_object_id=str(exam.id),
            details=f"Updated exam: {exam.title}",
        )

    @action(detail=True, methods=['post'], url_path='assign-questions')
    def assign_questions(self, request, pk=None):
        """
        Replaces the exam's questions, in the given order.
        Payload: { "question_ids": [1, 2, 3] }
        """
        exam = self.get_object()
        question_ids = request.data.get('question_ids', [])
        if not isinstance(question_ids, list) or not question_ids:
            return Response({"error": "Question IDs are required"}, status=status.HTTP_400_BAD_REQUEST)

        question_ids = list(dict.fromkeys(question_ids))
        found = set(Question.objects.filter(id__in=question_ids).values_list('id', flat=True))
        missing = [qid for qid in question_ids if qid not in found]
        if missing:
            return Response({"error": f"Questions not found: {missing}"}, status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            ExamQuestion.objects.filter(exam=exam).delete()
            ExamQuestion.objects.bulk_create([
                ExamQuestion(exam=exam, question_id=qid, sequence=sequence)
                for sequence, qid in enumerate(question_ids, start=1)
            ])
            refresh_exam_totals(exam)

        logger.info("Assigned %d questions to exam %s", len(question_ids), exam.pk)
        return Response({
            "status": f"Assigned {len(question_ids)} questions to {exam.title}",
            "total_questions": exam.total_questions,
            "total_marks": exam.total_marks,
        })

    @action(detail=True, methods=['post'], url_path='remove-questions')
    def remove_questions(self, request, pk=None):
        """
        Removes questions from the exam, returning them to the bank.
        """
        exam = self.get_object()
        question_ids = request.data.get('question_ids', [])
        with transaction.atomic():
            removed, _ = ExamQuestion.objects.filter(exam=exam, question_id__in=question_ids).delete()
            refresh_exam_totals(exam)
        return Response({
            "status": "Questions returned to bank",
            "removed": removed,
            "total_questions": exam.total_questions,
            "total_marks": exam.total_marks,
        })


class QuestionViewSet(viewsets.ModelViewSet):
    queryset = Question.objects.all().order_by('-id')
    serializer_class = QuestionSerializer
    permission_classes = [permissions.IsAdminUser]

    # Enable Search and Filtering for the Question Bank
    filter_backends = [filters.SearchFilter]
    search_fields = ['text', 'category']

    # Add parsers to handle file uploads
    parser_classes = (JSONParser, MultiPartParser, FormParser)

    def get_queryset(self):
        queryset = super().get_queryset().prefetch_related('options')
        # Filter by Exam if provided ?exam_id=1
        exam_id = self.request.query_params.get('exam_id')
        if exam_id:
            queryset = queryset.filter(exam_links__exam_id=exam_id)
        return queryset

    @action(detail=False, methods=['post'], url_path='bulk-upload')
    def bulk_upload(self, request):
        """
        Upload questions via CSV.
        Expected CSV Header: question_text, question_type, category, difficulty, marks, options, correct_answer
        Options are separated by '|' and keep their order.
        """
        file_obj = request.FILES.get('file')
        if not file_obj:
            return Response({"error": "No file uploaded"}, status=status.HTTP_400_BAD_REQUEST)

        try:
            decoded_file = file_obj.read().decode('utf-8')
        except UnicodeDecodeError:
            return Response({"error": "File must be UTF-8 encoded CSV"}, status=status.HTTP_400_BAD_REQUEST)

        reader = csv.DictReader(io.StringIO(decoded_file))
        created_count = 0
        errors = []

        with transaction.atomic():
            for line_number, row in enumerate(reader, start=2):
                text = (row.get('question_text') or '').strip()
                if not text:
                    errors.append(f"Line {line_number}: question_text is required")
                    continue
                try:
                    marks = Decimal(row.get('marks') or '1')
                except InvalidOperation:
                    errors.append(f"Line {line_number}: invalid marks")
                    continue

                question = Question.objects.create(
                    text=text,
                    question_type=(row.get('question_type') or 'mcq').strip().lower(),
                    category=row.get('category') or 'General',
                    difficulty=(row.get('difficulty') or 'medium').strip().lower(),
                    marks=marks,
                    correct_answer=(row.get('correct_answer') or '').strip(),
                )

                # Handle Options (for choice questions)
                if question.is_choice_based:
                    correct_ans_text = question.correct_answer.lower()
                    raw_options = [opt.strip() for opt in (row.get('options') or '').split('|')]
                    Option.objects.bulk_create([
                        Option(
                            question=question,
                            text=opt_text,
                            sequence=sequence,
                            is_correct=opt_text.lower() == correct_ans_text,
                        )
                        for sequence, opt_text in enumerate(opt for opt in raw_options if opt)
                    ])

                created_count += 1

        logger.info("Bulk upload created %d questions (%d rows rejected)", created_count, len(errors))
        return Response(
            {"status": f"Successfully uploaded {created_count} questions", "errors": errors},
            status=status.HTTP_201_CREATED,
        )


class ProgramViewSet(viewsets.ModelViewSet):
    queryset = Program.objects.all().order_by('name')
    serializer_class = ProgramSerializer
    permission_classes = [permissions.IsAdminUser]

    @action(detail=True, methods=['get', 'post'], url_path='enrollments')
    def enrollments(self, request, pk=None):
        """
        GET lists enrollments; POST enrolls (or updates) a student.
        Payload: { "student": 5, "status": "active" }
        """
        program = self.get_object()
        if request.method == 'GET':
            serializer = ProgramEnrollmentSerializer(program.enrollments.select_related('student'), many=True)
            return Response(serializer.data)

        serializer = ProgramEnrollmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        enrollment, created = ProgramEnrollment.objects.update_or_create(
            program=program,
            student=serializer.validated_data['student'],
            defaults={'status': serializer.validated_data.get('status', ProgramEnrollment.Status.ACTIVE)},
        )
        return Response(
            ProgramEnrollmentSerializer(enrollment).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )
