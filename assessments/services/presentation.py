# assessments/services/presentation.py
"""
What a student sees for an attempt: question order and per-question option order.

Start, resume, grading and review all go through ``present_options`` so the
order used to interpret a stored position is computed exactly like the order
that was rendered.
"""
from dataclasses import dataclass, field

from exams.models import ExamQuestion
from exams.shuffle import SeedInputs, resolve_base_order, shuffle


@dataclass
class PresentedQuestion:
    question: object
    sequence: int
    options: list = field(default_factory=list)


def option_shuffle_enabled(attempt, question):
    return bool(attempt.options_shuffled and question.randomize_options)


def present_options(attempt, question, options=None):
    base_order = resolve_base_order(question.options.all() if options is None else options)
    seed_inputs = SeedInputs(attempt.student_id, question.pk, attempt.pk)
    return shuffle(base_order, seed_inputs, enabled=option_shuffle_enabled(attempt, question))


def exam_links(exam_id):
    return list(
        ExamQuestion.objects
        .filter(exam_id=exam_id)
        .select_related('question')
        .prefetch_related('question__options')
        .order_by('sequence', 'id')
    )


def present_questions(attempt, links=None):
    links = exam_links(attempt.exam_id) if links is None else links
    if attempt.questions_shuffled:
        links = shuffle(links, SeedInputs(attempt.student_id, f"exam-{attempt.exam_id}", attempt.pk))
    return [
        PresentedQuestion(
            question=link.question,
            sequence=link.sequence,
            options=present_options(attempt, link.question),
        )
        for link in links
    ]
