# exams/models.py
from django.conf import settings
from django.db import models


class Program(models.Model):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class ProgramEnrollment(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        SUSPENDED = "suspended", "Suspended"
        COMPLETED = "completed", "Completed"

    program = models.ForeignKey(Program, related_name='enrollments', on_delete=models.CASCADE)
    student = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='program_enrollments', on_delete=models.CASCADE)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    enrolled_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('program', 'student')

    def __str__(self):
        return f"{self.student} -> {self.program} ({self.status})"


class Question(models.Model):
    class QuestionType(models.TextChoices):
        MCQ = "mcq", "Multiple Choice"
        TRUE_FALSE = "true_false", "True / False"
        THEORY = "theory", "Open Ended"

    class Difficulty(models.TextChoices):
        EASY = "easy", "Easy"
        MEDIUM = "medium", "Medium"
        HARD = "hard", "Hard"

    text = models.TextField()
    question_type = models.CharField(max_length=20, choices=QuestionType.choices, default=QuestionType.MCQ)

    # Metadata for the Bank
    category = models.CharField(max_length=100, blank=True)
    difficulty = models.CharField(max_length=20, choices=Difficulty.choices, default=Difficulty.MEDIUM)
    marks = models.DecimalField(max_digits=6, decimal_places=2, default=1)

    randomize_options = models.BooleanField(default=True)

    # Reference answer for free-response questions
    correct_answer = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def is_choice_based(self):
        return self.question_type in (self.QuestionType.MCQ, self.QuestionType.TRUE_FALSE)

    def __str__(self):
        return f"{self.text[:50]}..."


class Exam(models.Model):
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    programs = models.ManyToManyField(Program, related_name='exams', blank=True)
    questions = models.ManyToManyField(Question, through='ExamQuestion', related_name='exams', blank=True)

    # Scheduling window
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField()

    total_questions = models.PositiveIntegerField(default=0)
    total_marks = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    pass_mark_percentage = models.PositiveIntegerField(default=50)
    negative_marking = models.DecimalField(max_digits=5, decimal_places=2, default=0)

    # Attempt controls
    randomize_questions = models.BooleanField(default=False)
    randomize_options = models.BooleanField(default=True)
    allow_answer_change = models.BooleanField(default=True)
    allow_answer_review = models.BooleanField(default=True)
    proctoring_enabled = models.BooleanField(default=False)

    is_active = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.title

    def has_started(self, now):
        return now >= self.start_time

    def has_ended(self, now):
        return now > self.end_time


class ExamQuestion(models.Model):
    exam = models.ForeignKey(Exam, related_name='exam_questions', on_delete=models.CASCADE)
    question = models.ForeignKey(Question, related_name='exam_links', on_delete=models.CASCADE)
    sequence = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = ('exam', 'question')
        ordering = ['sequence', 'id']

    def __str__(self):
        return f"{self.exam} #{self.sequence}: {self.question}"


class Option(models.Model):
    question = models.ForeignKey(Question, related_name='options', on_delete=models.CASCADE)
    text = models.CharField(max_length=255)
    sequence = models.PositiveIntegerField(default=0)
    is_correct = models.BooleanField(default=False)

    def __str__(self):
        return self.text
