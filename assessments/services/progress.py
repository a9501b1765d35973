# assessments/services/progress.py
import logging

from django.db import transaction
from django.utils import timezone

from exams.models import ExamQuestion

from ..exceptions import (
    AnswerChangeNotAllowed,
    AttemptNotFound,
    AttemptNotOngoing,
    ExamClosed,
    InvalidAnswer,
    QuestionNotFound,
)
from ..models import ExamAttempt, ExamProgress, StudentAnswer

logger = logging.getLogger(__name__)


def get_attempt(attempt_id, user, allow_staff=False):
    """Fetch an attempt owned by ``user`` (or any attempt for staff when allowed)."""
    queryset = ExamAttempt.objects.select_related('exam', 'student')
    if not (allow_staff and getattr(user, 'can_grade', False)):
        queryset = queryset.filter(student=user)
    attempt = queryset.filter(pk=attempt_id).first()
    if attempt is None:
        raise AttemptNotFound()
    return attempt


def ensure_writable(attempt, now=None):
    now = now or timezone.now()
    if not attempt.is_ongoing:
        raise AttemptNotOngoing(attempt.status)
    if attempt.exam.has_ended(now):
        raise ExamClosed("The exam window has closed; this attempt can no longer be changed")


def exam_question(attempt, question_id):
    link = (
        ExamQuestion.objects
        .select_related('question')
        .filter(exam_id=attempt.exam_id, question_id=question_id)
        .first()
    )
    if link is None:
        raise QuestionNotFound()
    return link.question


def clean_answer_value(question, position=None, text=None):
    """Return ``(position, text)`` for storage, or raise ``InvalidAnswer``."""
    if question.is_choice_based:
        if position is None:
            raise InvalidAnswer("A selected option position is required for this question")
        if isinstance(position, bool) or not isinstance(position, int):
            raise InvalidAnswer("The selected position must be an integer")
        option_count = question.options.count()
        if not 0 <= position < option_count:
            raise InvalidAnswer(f"The selected position must be between 0 and {option_count - 1}")
        return position, None

    if text is None or not str(text).strip():
        raise InvalidAnswer("An answer text is required for this question")
    return None, str(text)


@transaction.atomic
def record_answer(attempt, question_id, position=None, text=None, is_flagged=False, time_spent=None, now=None):
    """
    Store the answer for one question, overwriting any previous answer.

    For choice questions ``position`` is an index into the option order the
    student was shown, not an option id.
    """
    # Submission holds the same row lock
    attempt.status = ExamAttempt.objects.select_for_update().values_list('status', flat=True).get(pk=attempt.pk)
    ensure_writable(attempt, now)
    question = exam_question(attempt, question_id)
    position, text = clean_answer_value(question, position, text)

    existing = StudentAnswer.objects.select_for_update().filter(attempt=attempt, question=question).first()
    if existing and existing.is_answered and not attempt.exam.allow_answer_change:
        if (existing.selected_position, existing.text_answer) != (position, text):
            logger.info("Rejected answer change on attempt=%s question=%s", attempt.pk, question.pk)
            raise AnswerChangeNotAllowed()

    defaults = {
        'selected_position': position,
        'text_answer': text,
        'is_flagged': bool(is_flagged),
    }
    if time_spent is not None:
        defaults['time_spent_seconds'] = time_spent

    answer, _ = StudentAnswer.objects.update_or_create(attempt=attempt, question=question, defaults=defaults)

    if time_spent is not None:
        ExamAttempt.objects.filter(pk=attempt.pk).update(total_time_spent=time_spent)
        attempt.total_time_spent = time_spent

    return answer


@transaction.atomic
def update_cursor(attempt, question_index, flagged=None, draft_answers=None, time_spent=None, now=None):
    """Autosave navigation state. Has no effect on grading."""
    attempt.status = ExamAttempt.objects.select_for_update().values_list('status', flat=True).get(pk=attempt.pk)
    ensure_writable(attempt, now)

    progress, _ = ExamProgress.objects.get_or_create(attempt=attempt)
    progress.current_question_index = question_index
    if flagged is not None:
        progress.flagged_questions = list(dict.fromkeys(flagged))
    if draft_answers is not None:
        progress.draft_answers = {str(key): value for key, value in draft_answers.items()}
    progress.save()

    if time_spent is not None:
        ExamAttempt.objects.filter(pk=attempt.pk).update(total_time_spent=time_spent)
        attempt.total_time_spent = time_spent

    return progress


def load_progress(attempt):
    progress = ExamProgress.objects.filter(attempt=attempt).first()

    answers = dict(progress.draft_answers) if progress else {}
    for answer in attempt.answers.all():
        if answer.selected_position is not None:
            answers[str(answer.question_id)] = {"position": answer.selected_position}
        elif answer.text_answer:
            answers[str(answer.question_id)] = {"text": answer.text_answer}

    return {
        "current_question_index": progress.current_question_index if progress else 0,
        "flagged_questions": list(progress.flagged_questions) if progress else [],
        "answers": answers,
        "last_saved_at": progress.last_saved_at if progress else None,
    }
