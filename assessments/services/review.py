# assessments/services/review.py
import logging

from cores.providers import get_settings_provider

from ..exceptions import ReviewNotAllowed
from .grading import RESOLVED, UNRESOLVABLE, AnswerReconstructor
from .presentation import exam_links, present_options

logger = logging.getLogger(__name__)


def review_allowed(exam, policy):
    return policy.allow_review_after_submission and exam.allow_answer_review


def _answer_status(question, answer, resolved):
    if answer is None or not answer.is_answered:
        return "unattempted"
    if question.is_choice_based:
        if resolved.status != RESOLVED:
            return "unattempted"
        return "correct" if resolved.is_correct else "incorrect"
    if answer.is_correct is None:
        return "pending"
    return "correct" if answer.is_correct else "incorrect"


def build_review(result, settings_provider=None, reconstructor=None):
    """
    Per-question breakdown of a finished attempt, in exam order, with the
    options laid out exactly as the student saw them.
    """
    settings_provider = settings_provider or get_settings_provider()
    reconstructor = reconstructor or AnswerReconstructor()
    attempt = result.attempt
    exam = attempt.exam

    if not review_allowed(exam, settings_provider.exam_policy()):
        raise ReviewNotAllowed()

    answers = {answer.question_id: answer for answer in attempt.answers.all()}

    per_question = []
    for index, link in enumerate(exam_links(exam.pk), start=1):
        question = link.question
        answer = answers.get(question.pk)
        options = list(question.options.all())
        entry = {
            "question_number": index,
            "question_id": question.pk,
            "question_text": question.text,
            "question_type": question.question_type,
            "marks": question.marks,
            "marks_obtained": answer.marks_obtained if answer else 0,
            "unresolvable": False,
        }

        if question.is_choice_based:
            stored = answer.selected_position if answer else None
            resolved = reconstructor.resolve(attempt, question, stored, options)
            correct = next((option for option in options if option.is_correct), None)
            entry.update({
                "options": [
                    {"id": option.id, "text": option.text, "is_correct": option.is_correct}
                    for option in present_options(attempt, question, options)
                ],
                "student_answer": resolved.option.text if resolved.option else None,
                "correct_answer": correct.text if correct else None,
                "unresolvable": resolved.status == UNRESOLVABLE,
            })
        else:
            resolved = None
            entry.update({
                "options": [],
                "student_answer": answer.text_answer if answer else None,
                "correct_answer": question.correct_answer or None,
                "grader_comment": answer.grader_comment if answer else "",
            })

        entry["status"] = _answer_status(question, answer, resolved)
        per_question.append(entry)

    return per_question
