# assessments/services/grading.py
"""
Scoring and stored-position reconstruction.

A choice answer is stored as a position in the shuffled option list. To find
out which option that was, the shuffle is recomputed with the attempt's own
seed inputs and its snapshotted shuffle decision, then indexed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from exams.models import Option, Question

from ..exceptions import AttemptNotFound, AttemptNotOngoing, ExamClosed, InvalidAnswer, QuestionNotFound
from ..models import ExamAttempt, ExamProgress, ExamResult, StudentAnswer
from .presentation import exam_links, present_options
from .progress import record_answer

logger = logging.getLogger(__name__)

RESOLVED = "resolved"
UNANSWERED = "unanswered"
UNRESOLVABLE = "unresolvable"

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ResolvedAnswer:
    option: Option | None
    is_correct: bool | None
    status: str
    position: int | None = None


class AnswerReconstructor:

    def resolve(self, attempt, question, stored_position, options=None) -> ResolvedAnswer:
        if stored_position is None:
            return ResolvedAnswer(option=None, is_correct=None, status=UNANSWERED)

        presented = present_options(attempt, question, options)
        if not 0 <= stored_position < len(presented):
            logger.warning(
                "Unresolvable stored position %s for attempt=%s question=%s (%d options)",
                stored_position, attempt.pk, question.pk, len(presented),
            )
            return ResolvedAnswer(option=None, is_correct=None, status=UNRESOLVABLE, position=stored_position)

        option = presented[stored_position]
        return ResolvedAnswer(option=option, is_correct=option.is_correct, status=RESOLVED, position=stored_position)


def resolve(attempt_id, question_id, stored_position) -> ResolvedAnswer:
    attempt = ExamAttempt.objects.select_related('exam').filter(pk=attempt_id).first()
    if attempt is None:
        raise AttemptNotFound()
    question = Question.objects.filter(pk=question_id, exam_links__exam_id=attempt.exam_id).first()
    if question is None:
        raise QuestionNotFound()
    return AnswerReconstructor().resolve(attempt, question, stored_position)


def grade_letter(percentage):
    if percentage >= 90:
        return 'A+'
    if percentage >= 80:
        return 'A'
    if percentage >= 70:
        return 'B+'
    if percentage >= 60:
        return 'B'
    if percentage >= 50:
        return 'C'
    if percentage >= 40:
        return 'D'
    return 'F'


def _grade_choice_answer(attempt, answer, reconstructor):
    resolved = reconstructor.resolve(attempt, answer.question, answer.selected_position)
    if resolved.status != RESOLVED:
        answer.is_correct = None
        answer.marks_obtained = ZERO
    elif resolved.is_correct:
        answer.is_correct = True
        answer.marks_obtained = answer.question.marks
    else:
        answer.is_correct = False
        penalty = attempt.exam.negative_marking
        answer.marks_obtained = -penalty if penalty else ZERO
    answer.save(update_fields=['is_correct', 'marks_obtained', 'updated_at'])
    return resolved


def score_attempt(attempt, reconstructor=None) -> ExamResult:
    """(Re)compute the result of a finished attempt from its stored answers."""
    reconstructor = reconstructor or AnswerReconstructor()
    exam = attempt.exam
    links = exam_links(exam.pk)

    answers = (
        StudentAnswer.objects
        .filter(attempt=attempt)
        .select_related('question')
        .prefetch_related('question__options')
    )

    correct = incorrect = pending = 0
    obtained = ZERO
    for answer in answers:
        if answer.question.is_choice_based:
            _grade_choice_answer(attempt, answer, reconstructor)
        elif answer.is_answered and answer.is_correct is None:
            pending += 1

        if answer.is_correct is True:
            correct += 1
        elif answer.is_correct is False:
            incorrect += 1
        obtained += answer.marks_obtained

    total_marks = exam.total_marks or sum((link.question.marks for link in links), ZERO)
    percentage = (obtained / total_marks * HUNDRED) if total_marks > 0 else ZERO
    percentage = percentage.quantize(Decimal("0.01"))
    unanswered = max(0, len(links) - correct - incorrect - pending)

    result, _ = ExamResult.objects.update_or_create(
        attempt=attempt,
        defaults={
            'exam': exam,
            'student': attempt.student,
            'attempt_number': attempt.attempt_number,
            'total_marks': total_marks,
            'obtained_marks': obtained,
            'percentage': percentage,
            'grade': grade_letter(percentage),
            'correct_answers': correct,
            'incorrect_answers': incorrect,
            'unanswered': unanswered,
            'pending_review': pending,
            'time_spent': attempt.total_time_spent,
            'status': ExamResult.Status.PASS if percentage >= exam.pass_mark_percentage else ExamResult.Status.FAIL,
            'negative_marking_applied': exam.negative_marking,
        },
    )
    return result


def _apply_final_answers(attempt, answers, now, overwrite):
    """Store ``{question_id: {"position": n} | {"text": s}}`` entries before grading."""
    stored = set(attempt.answers.values_list('question_id', flat=True))
    for question_id, value in (answers or {}).items():
        try:
            question_id = int(question_id)
        except (TypeError, ValueError):
            if overwrite:
                raise InvalidAnswer(f"Invalid question id: {question_id!r}")
            logger.warning("Ignoring answer with bad question id %r on attempt=%s", question_id, attempt.pk)
            continue
        if not overwrite and question_id in stored:
            continue
        if not isinstance(value, dict):
            if overwrite:
                raise InvalidAnswer(f"Malformed answer for question {question_id}")
            logger.warning("Ignoring malformed answer for question=%s on attempt=%s", question_id, attempt.pk)
            continue
        try:
            record_answer(attempt, question_id, position=value.get('position'), text=value.get('text'), now=now)
        except (InvalidAnswer, QuestionNotFound) as exc:
            if overwrite:
                raise
            logger.warning("Skipping draft answer for question=%s on attempt=%s: %s", question_id, attempt.pk, exc)


def submit_attempt(attempt, answers=None, time_spent=None, now=None) -> ExamResult:
    """
    Finish an ongoing attempt and score it.

    Submitting again returns the existing result. Submissions after the exam
    end time are rejected.
    """
    now = now or timezone.now()
    with transaction.atomic():
        attempt = ExamAttempt.objects.select_for_update().select_related('exam', 'student').get(pk=attempt.pk)

        if not attempt.is_ongoing:
            existing = ExamResult.objects.filter(attempt=attempt).first()
            if existing:
                logger.info("Attempt %s already %s, returning result %s", attempt.pk, attempt.status, existing.pk)
                return existing
            raise AttemptNotOngoing(attempt.status)

        if attempt.exam.has_ended(now):
            logger.info("Rejected submission of attempt %s after exam end", attempt.pk)
            raise ExamClosed("The exam window has closed; this attempt can no longer be submitted")

        _apply_final_answers(attempt, answers, now, overwrite=True)
        progress = ExamProgress.objects.filter(attempt=attempt).first()
        if progress:
            _apply_final_answers(attempt, progress.draft_answers, now, overwrite=False)
            progress.delete()

        attempt.status = ExamAttempt.Status.SUBMITTED
        attempt.submitted_at = now
        attempt.total_time_spent = time_spent if time_spent is not None else attempt.elapsed_seconds(now)
        attempt.save(update_fields=['status', 'submitted_at', 'total_time_spent'])

        result = score_attempt(attempt)
        if result.pending_review == 0:
            attempt.status = ExamAttempt.Status.EVALUATED
            attempt.save(update_fields=['status'])

    logger.info(
        "Submitted attempt %s: %s/%s (%s%%), %s pending review",
        attempt.pk, result.obtained_marks, result.total_marks, result.percentage, result.pending_review,
    )
    return result


@transaction.atomic
def apply_manual_grades(attempt, grades) -> ExamResult:
    """
    Record marks for free-text answers: ``[{"question_id", "marks", "comment", "is_correct"?}]``.

    The attempt becomes ``evaluated`` once no free-text answer is left ungraded.
    """
    attempt = ExamAttempt.objects.select_for_update().select_related('exam', 'student').get(pk=attempt.pk)
    if attempt.is_ongoing:
        raise AttemptNotOngoing(attempt.status)

    for grade in grades:
        answer = (
            StudentAnswer.objects
            .select_related('question')
            .filter(attempt=attempt, question_id=grade['question_id'])
            .first()
        )
        if answer is None:
            raise QuestionNotFound("No answer for this question in the attempt")
        if answer.question.is_choice_based:
            raise InvalidAnswer("Choice answers are graded automatically")
        marks = Decimal(str(grade['marks']))
        answer.marks_obtained = marks
        answer.is_correct = grade.get('is_correct', marks > 0)
        answer.grader_comment = grade.get('comment', '')
        answer.save(update_fields=['marks_obtained', 'is_correct', 'grader_comment', 'updated_at'])

    result = score_attempt(attempt)
    if result.pending_review == 0 and attempt.status != ExamAttempt.Status.EVALUATED:
        attempt.status = ExamAttempt.Status.EVALUATED
        attempt.save(update_fields=['status'])
    return result
