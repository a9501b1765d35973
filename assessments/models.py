# assessments/models.py
import uuid
from datetime import timedelta

from django.db import models
from django.conf import settings
from django.utils import timezone
from exams.models import Exam, Question


class ExamAttempt(models.Model):
    """
    One sitting of an exam by a student.

    The option order shown during the attempt is not stored anywhere; it is
    recomputed from (student, question, attempt) plus ``options_shuffled``,
    the exam-level shuffle decision snapshotted when the attempt was created.
    Question order is fixed the same way by ``questions_shuffled``.
    """
    class Status(models.TextChoices):
        ONGOING = "ongoing", "Ongoing"
        SUBMITTED = "submitted", "Submitted"
        EVALUATED = "evaluated", "Evaluated"

    TERMINAL_STATUSES = (Status.SUBMITTED, Status.EVALUATED)
    # Reported for ongoing attempts whose exam window has closed; never stored
    EXPIRED = "expired"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='exam_attempts', on_delete=models.CASCADE)
    exam = models.ForeignKey(Exam, related_name='attempts', on_delete=models.CASCADE)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ONGOING)
    attempt_number = models.PositiveIntegerField(default=1)

    start_time = models.DateTimeField(default=timezone.now)
    submitted_at = models.DateTimeField(null=True, blank=True)
    total_time_spent = models.PositiveIntegerField(default=0, help_text="Seconds")
    duration_minutes = models.PositiveIntegerField()

    options_shuffled = models.BooleanField(default=False)
    questions_shuffled = models.BooleanField(default=False)

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)

    class Meta:
        ordering = ['-start_time']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'exam'],
                condition=models.Q(status='ongoing'),
                name='one_ongoing_attempt_per_student_exam',
            ),
            models.UniqueConstraint(
                fields=['student', 'exam', 'attempt_number'],
                name='unique_attempt_number_per_student_exam',
            ),
        ]

    def __str__(self):
        return f"{self.student} - {self.exam.title} #{self.attempt_number}"

    @property
    def is_ongoing(self):
        return self.status == self.Status.ONGOING

    def is_expired(self, now=None):
        """An ongoing attempt past the exam end time is treated as abandoned."""
        now = now or timezone.now()
        return self.is_ongoing and self.exam.has_ended(now)

    def effective_status(self, now=None):
        return self.EXPIRED if self.is_expired(now) else self.status

    def elapsed_seconds(self, now=None):
        now = now or timezone.now()
        return max(0, int((now - self.start_time).total_seconds()))

    def remaining_seconds(self, now=None):
        now = now or timezone.now()
        deadline = min(self.start_time + timedelta(minutes=self.duration_minutes), self.exam.end_time)
        return max(0, int((deadline - now).total_seconds()))


class ExamProgress(models.Model):
    """Navigation state of an ongoing attempt. Advisory only."""
    attempt = models.OneToOneField(ExamAttempt, related_name='progress', on_delete=models.CASCADE)
    current_question_index = models.PositiveIntegerField(default=0)
    flagged_questions = models.JSONField(default=list, blank=True)
    # {question_id: {"position": int} | {"text": str}}
    draft_answers = models.JSONField(default=dict, blank=True)
    last_saved_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Progress for {self.attempt_id}"


class StudentAnswer(models.Model):
    attempt = models.ForeignKey(ExamAttempt, related_name='answers', on_delete=models.CASCADE)
    question = models.ForeignKey(Question, on_delete=models.CASCADE)

    # For MCQ: index into the shuffled option list the student was shown
    selected_position = models.IntegerField(null=True, blank=True)

    # For Theory
    text_answer = models.TextField(null=True, blank=True)

    is_flagged = models.BooleanField(default=False)
    time_spent_seconds = models.PositiveIntegerField(default=0)

    # Grading; is_correct stays null until graded or when the position cannot be resolved
    is_correct = models.BooleanField(null=True, blank=True)
    marks_obtained = models.DecimalField(max_digits=6, decimal_places=2, default=0)
    grader_comment = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('attempt', 'question')

    def __str__(self):
        return f"{self.attempt_id} - Q{self.question_id}"

    @property
    def is_answered(self):
        return self.selected_position is not None or bool(self.text_answer)


class ExamResult(models.Model):
    class Status(models.TextChoices):
        PASS = "pass", "Pass"
        FAIL = "fail", "Fail"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    attempt = models.OneToOneField(ExamAttempt, related_name='result', on_delete=models.CASCADE)
    exam = models.ForeignKey(Exam, related_name='results', on_delete=models.CASCADE)
    student = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='exam_results', on_delete=models.CASCADE)
    attempt_number = models.PositiveIntegerField(default=1)

    total_marks = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    obtained_marks = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    grade = models.CharField(max_length=2, default="F")

    correct_answers = models.PositiveIntegerField(default=0)
    incorrect_answers = models.PositiveIntegerField(default=0)
    unanswered = models.PositiveIntegerField(default=0)
    pending_review = models.PositiveIntegerField(default=0)

    time_spent = models.PositiveIntegerField(default=0, help_text="Seconds")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.FAIL)
    negative_marking_applied = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    result_date = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-result_date']

    def __str__(self):
        return f"{self.student} - {self.exam.title}: {self.obtained_marks}/{self.total_marks}"


class AntiCheatEvent(models.Model):
    class Severity(models.TextChoices):
        LOW = "low", "Low"
        MEDIUM = "medium", "Medium"
        HIGH = "high", "High"

    attempt = models.ForeignKey(ExamAttempt, related_name='anti_cheat_events', on_delete=models.CASCADE)
    event_type = models.CharField(max_length=50)
    severity = models.CharField(max_length=10, choices=Severity.choices, default=Severity.MEDIUM)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.attempt_id} - {self.event_type} ({self.severity})"
