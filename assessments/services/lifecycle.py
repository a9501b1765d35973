# assessments/services/lifecycle.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from cores.providers import ExamPolicy, get_settings_provider
from exams.enrollment import is_actively_enrolled
from exams.models import Exam

from ..exceptions import (
    AttemptLimitReached,
    ConcurrentStartConflict,
    CooldownActive,
    ExamClosed,
    ExamNotFound,
    ExamNotYetOpen,
    NotEnrolled,
)
from ..models import ExamAttempt, ExamProgress
from .presentation import present_questions
from .progress import load_progress

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


@dataclass
class AttemptSession:
    attempt: ExamAttempt
    questions: list
    is_resume: bool
    elapsed_seconds: int
    remaining_seconds: int
    progress: dict = field(default_factory=dict)

    @property
    def exam(self):
        return self.attempt.exam


class AttemptLifecycle:
    """
    Starts exam attempts, or resumes the one already in progress.

    Eligibility checks, the lookup of an ongoing attempt and the creation of
    Attempt + Progress run in a single transaction with the student row locked.
    The partial unique constraint on ongoing attempts backs this up: if it
    fires, the attempt created by the competing request is returned instead.
    """

    def __init__(self, settings_provider=None, enrollment_checker=None, clock=None):
        self.settings_provider = settings_provider or get_settings_provider()
        self.enrollment_checker = enrollment_checker or is_actively_enrolled
        self.clock = clock or timezone.now

    def start(self, exam_id, student, ip_address=None, user_agent="") -> AttemptSession:
        policy = self.settings_provider.exam_policy()
        now = self.clock()

        try:
            with transaction.atomic():
                attempt, is_resume = self._open_attempt(exam_id, student, policy, now, ip_address, user_agent)
        except IntegrityError:
            logger.warning(
                "Concurrent start for exam=%s student=%s; re-reading the ongoing attempt",
                exam_id, student.pk,
            )
            attempt = self.find_ongoing(exam_id, student)
            if attempt is None:
                raise ConcurrentStartConflict()
            is_resume = True

        return self._session(attempt, is_resume, now)

    def find_ongoing(self, exam_id, student):
        return (
            ExamAttempt.objects
            .select_related('exam')
            .filter(exam_id=exam_id, student=student, status=ExamAttempt.Status.ONGOING)
            .first()
        )

    def check_eligibility(self, exam, student, policy: ExamPolicy, now) -> int:
        """Raise the first eligibility failure; return the number of finished attempts."""
        if not self.enrollment_checker(student, exam):
            raise NotEnrolled()

        if not exam.has_started(now):
            raise ExamNotYetOpen()
        if exam.has_ended(now):
            raise ExamClosed()

        finished = ExamAttempt.objects.filter(
            exam=exam,
            student=student,
            status__in=ExamAttempt.TERMINAL_STATUSES,
        )
        finished_count = finished.count()

        ceiling = policy.max_attempts_per_student if policy.allow_retake else 1
        if finished_count >= ceiling:
            raise AttemptLimitReached(ceiling)

        if finished_count and policy.allow_retake:
            last_submitted = (
                finished.exclude(submitted_at__isnull=True)
                .order_by('-submitted_at')
                .values_list('submitted_at', flat=True)
                .first()
            )
            if last_submitted:
                days_since = int((now - last_submitted).total_seconds() // SECONDS_PER_DAY)
                if days_since < policy.retake_cooldown_days:
                    raise CooldownActive(policy.retake_cooldown_days - days_since)

        return finished_count

    def _open_attempt(self, exam_id, student, policy, now, ip_address, user_agent):
        exam = Exam.objects.filter(pk=exam_id).first()
        if exam is None:
            raise ExamNotFound()

        # Serialises start requests of the same student
        list(get_user_model().objects.select_for_update().filter(pk=student.pk))

        finished_count = self.check_eligibility(exam, student, policy, now)

        existing = self.find_ongoing(exam.pk, student)
        if existing:
            logger.info(
                "Resuming attempt %s for student=%s exam=%s (elapsed %ss)",
                existing.pk, student.pk, exam.pk, existing.elapsed_seconds(now),
            )
            return existing, True

        attempt = ExamAttempt.objects.create(
            student=student,
            exam=exam,
            status=ExamAttempt.Status.ONGOING,
            attempt_number=finished_count + 1,
            start_time=now,
            duration_minutes=exam.duration_minutes,
            options_shuffled=bool(policy.shuffle_questions_globally and exam.randomize_options),
            questions_shuffled=exam.randomize_questions,
            ip_address=ip_address,
            user_agent=user_agent or "",
        )
        ExamProgress.objects.create(attempt=attempt)

        logger.info(
            "Started attempt %s (#%s) for student=%s exam=%s, options shuffled=%s",
            attempt.pk, attempt.attempt_number, student.pk, exam.pk, attempt.options_shuffled,
        )
        return attempt, False

    def _session(self, attempt, is_resume, now):
        return AttemptSession(
            attempt=attempt,
            questions=present_questions(attempt),
            is_resume=is_resume,
            elapsed_seconds=attempt.elapsed_seconds(now),
            remaining_seconds=attempt.remaining_seconds(now),
            progress=load_progress(attempt),
        )
