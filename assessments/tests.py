from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from cores.models import AuditLog, PlatformSetting
from cores.providers import StaticSettingsProvider
from exams.models import Exam, ExamQuestion, Option, Program, ProgramEnrollment, Question

from .exceptions import (
    AnswerChangeNotAllowed,
    AttemptLimitReached,
    AttemptNotOngoing,
    ConcurrentStartConflict,
    CooldownActive,
    ExamClosed,
    ExamNotYetOpen,
    InvalidAnswer,
    NotEnrolled,
    ReviewNotAllowed,
)
from .models import ExamAttempt, ExamProgress, ExamResult, StudentAnswer
from .services.grading import (
    RESOLVED,
    UNANSWERED,
    UNRESOLVABLE,
    AnswerReconstructor,
    apply_manual_grades,
    grade_letter,
    resolve,
    submit_attempt,
)
from .services.lifecycle import AttemptLifecycle
from .services.presentation import present_options
from .services.progress import load_progress, record_answer, update_cursor
from .services.review import build_review

User = get_user_model()

NOW = datetime(2025, 3, 10, 10, 0, tzinfo=dt_timezone.utc)


class ExamFixtureMixin:
    """A three-question exam (MCQ, true/false, theory) open 09:00-12:00 on NOW's day."""

    exam_start = NOW.replace(hour=9)
    exam_end = NOW.replace(hour=12)

    def setUp(self):
        cache.clear()
        self.student = User.objects.create_user(
            username='student', email='student@example.com', password='pass12345!',
        )
        self.program = Program.objects.create(name='Nursing')
        ProgramEnrollment.objects.create(program=self.program, student=self.student)

        self.exam = Exam.objects.create(
            title='Anatomy I',
            start_time=self.exam_start,
            end_time=self.exam_end,
            duration_minutes=60,
            total_marks=Decimal('8'),
            negative_marking=Decimal('0.5'),
            is_active=True,
        )
        self.exam.programs.add(self.program)

        self.mcq = Question.objects.create(text='Largest bone?', marks=Decimal('2'))
        for sequence, (text, correct) in enumerate([
            ('Humerus', False), ('Tibia', False), ('Femur', True), ('Radius', False), ('Ulna', False),
        ]):
            Option.objects.create(question=self.mcq, text=text, sequence=sequence, is_correct=correct)

        self.true_false = Question.objects.create(
            text='The heart has four chambers', question_type=Question.QuestionType.TRUE_FALSE, marks=Decimal('1'),
        )
        Option.objects.create(question=self.true_false, text='True', sequence=0, is_correct=True)
        Option.objects.create(question=self.true_false, text='False', sequence=1)

        self.theory = Question.objects.create(
            text='Describe the cardiac cycle', question_type=Question.QuestionType.THEORY,
            marks=Decimal('5'), correct_answer='Systole and diastole',
        )

        for sequence, question in enumerate([self.mcq, self.true_false, self.theory], start=1):
            ExamQuestion.objects.create(exam=self.exam, question=question, sequence=sequence)

    def lifecycle(self, at=NOW, **policy):
        return AttemptLifecycle(settings_provider=StaticSettingsProvider(**policy), clock=lambda: at)

    def finished_attempt(self, number, submitted_at):
        return ExamAttempt.objects.create(
            student=self.student,
            exam=self.exam,
            status=ExamAttempt.Status.SUBMITTED,
            attempt_number=number,
            start_time=submitted_at - timedelta(minutes=30),
            submitted_at=submitted_at,
            duration_minutes=60,
        )

    def position_of(self, attempt, question, predicate):
        presented = present_options(attempt, question)
        return next(index for index, option in enumerate(presented) if predicate(option))


class AttemptEligibilityTestCase(ExamFixtureMixin, TestCase):

    def test_start_before_window(self):
        with self.assertRaises(ExamNotYetOpen):
            self.lifecycle(at=NOW.replace(hour=8, minute=59)).start(self.exam.id, self.student)
        self.assertFalse(ExamAttempt.objects.exists())

    def test_start_after_window(self):
        with self.assertRaises(ExamClosed):
            self.lifecycle(at=NOW.replace(hour=12, minute=1)).start(self.exam.id, self.student)

    def test_start_at_window_edges(self):
        session = self.lifecycle(at=self.exam_start).start(self.exam.id, self.student)
        self.assertFalse(session.is_resume)

    def test_not_enrolled(self):
        ProgramEnrollment.objects.filter(student=self.student).update(status=ProgramEnrollment.Status.SUSPENDED)
        with self.assertRaises(NotEnrolled):
            self.lifecycle().start(self.exam.id, self.student)

    def test_attempt_ceiling(self):
        for number in range(1, 4):
            self.finished_attempt(number, NOW - timedelta(days=30 + number))
        with self.assertRaises(AttemptLimitReached) as ctx:
            self.lifecycle(max_attempts_per_student=3).start(self.exam.id, self.student)
        self.assertEqual(ctx.exception.max_attempts, 3)
        self.assertEqual(ctx.exception.as_payload()['max_attempts'], 3)

    def test_no_retakes_means_single_attempt(self):
        self.finished_attempt(1, NOW - timedelta(days=30))
        with self.assertRaises(AttemptLimitReached) as ctx:
            self.lifecycle(allow_retake=False).start(self.exam.id, self.student)
        self.assertEqual(ctx.exception.max_attempts, 1)

    def test_cooldown_active(self):
        self.finished_attempt(1, NOW - timedelta(days=2))
        with self.assertRaises(CooldownActive) as ctx:
            self.lifecycle(retake_cooldown_days=7).start(self.exam.id, self.student)
        self.assertEqual(ctx.exception.days_remaining, 5)

    def test_cooldown_elapsed(self):
        self.finished_attempt(1, NOW - timedelta(days=8))
        session = self.lifecycle(retake_cooldown_days=7).start(self.exam.id, self.student)
        self.assertEqual(session.attempt.attempt_number, 2)

    def test_evaluated_attempts_count_towards_ceiling(self):
        attempt = self.finished_attempt(1, NOW - timedelta(days=30))
        attempt.status = ExamAttempt.Status.EVALUATED
        attempt.save()
        with self.assertRaises(AttemptLimitReached):
            self.lifecycle(max_attempts_per_student=1).start(self.exam.id, self.student)


class AttemptStartResumeTestCase(ExamFixtureMixin, TestCase):

    def test_new_attempt_creates_progress(self):
        session = self.lifecycle().start(self.exam.id, self.student, ip_address='10.0.0.1', user_agent='UA')
        attempt = session.attempt
        self.assertFalse(session.is_resume)
        self.assertEqual(attempt.status, ExamAttempt.Status.ONGOING)
        self.assertEqual(attempt.attempt_number, 1)
        self.assertTrue(attempt.options_shuffled)
        self.assertEqual(attempt.ip_address, '10.0.0.1')
        self.assertTrue(ExamProgress.objects.filter(attempt=attempt).exists())
        self.assertEqual(session.elapsed_seconds, 0)
        self.assertEqual(session.remaining_seconds, 3600)
        self.assertEqual([q.question.id for q in session.questions], [self.mcq.id, self.true_false.id, self.theory.id])

    def test_resume_returns_same_attempt(self):
        first = self.lifecycle().start(self.exam.id, self.student)
        later = NOW + timedelta(minutes=25)
        second = self.lifecycle(at=later).start(self.exam.id, self.student)

        self.assertTrue(second.is_resume)
        self.assertEqual(second.attempt.id, first.attempt.id)
        self.assertEqual(second.elapsed_seconds, 25 * 60)
        self.assertEqual(second.remaining_seconds, 35 * 60)
        self.assertEqual(ExamAttempt.objects.filter(student=self.student).count(), 1)

    def test_resume_keeps_option_order(self):
        first = self.lifecycle().start(self.exam.id, self.student)
        second = self.lifecycle(at=NOW + timedelta(minutes=5)).start(self.exam.id, self.student)
        for before, after in zip(first.questions, second.questions):
            self.assertEqual([o.id for o in before.options], [o.id for o in after.options])

    def test_resume_keeps_question_order(self):
        self.exam.randomize_questions = True
        self.exam.save()
        first = self.lifecycle().start(self.exam.id, self.student)
        second = self.lifecycle(at=NOW + timedelta(minutes=5)).start(self.exam.id, self.student)
        self.assertEqual(
            [q.question.id for q in first.questions],
            [q.question.id for q in second.questions],
        )

    def test_question_order_is_snapshotted(self):
        self.exam.randomize_questions = True
        self.exam.save()
        first = self.lifecycle().start(self.exam.id, self.student)
        self.assertTrue(first.attempt.questions_shuffled)

        Exam.objects.filter(pk=self.exam.pk).update(randomize_questions=False)
        second = self.lifecycle(at=NOW + timedelta(minutes=5)).start(self.exam.id, self.student)
        self.assertTrue(second.is_resume)
        self.assertEqual(
            [q.question.id for q in first.questions],
            [q.question.id for q in second.questions],
        )

    def test_remaining_time_capped_by_exam_end(self):
        session = self.lifecycle(at=NOW.replace(hour=11, minute=30)).start(self.exam.id, self.student)
        self.assertEqual(session.remaining_seconds, 30 * 60)

    def test_global_shuffle_off_shows_base_order(self):
        session = self.lifecycle(shuffle_questions_globally=False).start(self.exam.id, self.student)
        self.assertFalse(session.attempt.options_shuffled)
        self.assertEqual(
            [o.text for o in session.questions[0].options],
            ['Humerus', 'Tibia', 'Femur', 'Radius', 'Ulna'],
        )

    def test_exam_shuffle_off_is_snapshotted(self):
        self.exam.randomize_options = False
        self.exam.save()
        session = self.lifecycle().start(self.exam.id, self.student)
        self.assertFalse(session.attempt.options_shuffled)

    def test_question_level_flag_disables_shuffle(self):
        self.mcq.randomize_options = False
        self.mcq.save()
        session = self.lifecycle().start(self.exam.id, self.student)
        self.assertEqual(
            [o.text for o in session.questions[0].options],
            ['Humerus', 'Tibia', 'Femur', 'Radius', 'Ulna'],
        )

    def test_resume_brings_back_saved_progress(self):
        first = self.lifecycle().start(self.exam.id, self.student)
        record_answer(first.attempt, self.true_false.id, position=1, now=NOW)
        update_cursor(first.attempt, 2, flagged=[self.mcq.id], draft_answers={self.theory.id: {"text": "draft"}}, now=NOW)

        second = self.lifecycle(at=NOW + timedelta(minutes=1)).start(self.exam.id, self.student)
        progress = second.progress
        self.assertEqual(progress['current_question_index'], 2)
        self.assertEqual(progress['flagged_questions'], [self.mcq.id])
        self.assertEqual(progress['answers'][str(self.true_false.id)], {"position": 1})
        self.assertEqual(progress['answers'][str(self.theory.id)], {"text": "draft"})

    def test_concurrent_start_recovers_existing_attempt(self):
        existing = ExamAttempt.objects.create(
            student=self.student, exam=self.exam, start_time=NOW - timedelta(minutes=3), duration_minutes=60,
        )
        with patch.object(AttemptLifecycle, '_open_attempt', side_effect=IntegrityError('duplicate')):
            session = self.lifecycle().start(self.exam.id, self.student)
        self.assertTrue(session.is_resume)
        self.assertEqual(session.attempt.id, existing.id)
        self.assertEqual(session.elapsed_seconds, 180)

    def test_concurrent_start_without_survivor(self):
        with patch.object(AttemptLifecycle, '_open_attempt', side_effect=IntegrityError('duplicate')):
            with self.assertRaises(ConcurrentStartConflict):
                self.lifecycle().start(self.exam.id, self.student)

    def test_one_ongoing_attempt_constraint(self):
        self.lifecycle().start(self.exam.id, self.student)
        with self.assertRaises(IntegrityError), transaction.atomic():
            ExamAttempt.objects.create(
                student=self.student, exam=self.exam, attempt_number=2, duration_minutes=60,
            )


class AnswerCaptureTestCase(ExamFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.attempt = self.lifecycle().start(self.exam.id, self.student).attempt

    def test_position_out_of_range(self):
        with self.assertRaises(InvalidAnswer):
            record_answer(self.attempt, self.mcq.id, position=5, now=NOW)
        with self.assertRaises(InvalidAnswer):
            record_answer(self.attempt, self.mcq.id, position=-1, now=NOW)

    def test_theory_needs_text(self):
        with self.assertRaises(InvalidAnswer):
            record_answer(self.attempt, self.theory.id, text='   ', now=NOW)
        answer = record_answer(self.attempt, self.theory.id, text='Two phases', now=NOW)
        self.assertEqual(answer.text_answer, 'Two phases')
        self.assertIsNone(answer.selected_position)

    def test_overwrites_previous_answer(self):
        record_answer(self.attempt, self.mcq.id, position=0, now=NOW)
        record_answer(self.attempt, self.mcq.id, position=3, time_spent=40, now=NOW)
        answer = StudentAnswer.objects.get(attempt=self.attempt, question=self.mcq)
        self.assertEqual(answer.selected_position, 3)
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.total_time_spent, 40)

    def test_answer_change_not_allowed(self):
        self.exam.allow_answer_change = False
        self.exam.save()
        self.attempt = ExamAttempt.objects.select_related('exam').get(pk=self.attempt.pk)
        record_answer(self.attempt, self.mcq.id, position=0, now=NOW)
        # Same answer again is fine
        record_answer(self.attempt, self.mcq.id, position=0, now=NOW)
        with self.assertRaises(AnswerChangeNotAllowed):
            record_answer(self.attempt, self.mcq.id, position=1, now=NOW)

    def test_rejected_after_window(self):
        with self.assertRaises(ExamClosed):
            record_answer(self.attempt, self.mcq.id, position=0, now=self.exam_end + timedelta(seconds=1))

    def test_rejected_after_submission(self):
        submit_attempt(self.attempt, now=NOW)
        with self.assertRaises(AttemptNotOngoing):
            record_answer(self.attempt, self.mcq.id, position=0, now=NOW)

    def test_autosave_rejected_after_submission(self):
        stale = ExamAttempt.objects.select_related('exam').get(pk=self.attempt.pk)
        submit_attempt(self.attempt, now=NOW)
        with self.assertRaises(AttemptNotOngoing):
            update_cursor(stale, 1, now=NOW)
        self.assertFalse(ExamProgress.objects.filter(attempt=self.attempt).exists())

    def test_expired_after_window(self):
        self.assertFalse(self.attempt.is_expired(NOW))
        self.assertEqual(self.attempt.effective_status(NOW), ExamAttempt.Status.ONGOING)
        after = self.exam_end + timedelta(minutes=1)
        self.assertTrue(self.attempt.is_expired(after))
        self.assertEqual(self.attempt.effective_status(after), ExamAttempt.EXPIRED)

        submit_attempt(self.attempt, now=NOW)
        self.attempt.refresh_from_db()
        self.assertFalse(self.attempt.is_expired(after))

    def test_stored_answers_override_drafts(self):
        update_cursor(self.attempt, 0, draft_answers={str(self.mcq.id): {"position": 4}}, now=NOW)
        record_answer(self.attempt, self.mcq.id, position=1, now=NOW)
        self.assertEqual(load_progress(self.attempt)['answers'][str(self.mcq.id)], {"position": 1})


class ReconstructionTestCase(ExamFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.attempt = self.lifecycle().start(self.exam.id, self.student).attempt

    def test_round_trip_every_position(self):
        presented = present_options(self.attempt, self.mcq)
        for position, shown in enumerate(presented):
            record_answer(self.attempt, self.mcq.id, position=position, now=NOW)
            stored = StudentAnswer.objects.get(attempt=self.attempt, question=self.mcq).selected_position
            resolved = resolve(self.attempt.id, self.mcq.id, stored)
            self.assertEqual(resolved.status, RESOLVED)
            self.assertEqual(resolved.option.id, shown.id)
            self.assertEqual(resolved.is_correct, shown.is_correct)

    def test_unanswered(self):
        resolved = AnswerReconstructor().resolve(self.attempt, self.mcq, None)
        self.assertEqual(resolved.status, UNANSWERED)
        self.assertIsNone(resolved.option)

    def test_out_of_bounds_is_unresolvable(self):
        for position in (5, 99, -1):
            with self.assertLogs('assessments.services.grading', level='WARNING'):
                resolved = AnswerReconstructor().resolve(self.attempt, self.mcq, position)
            self.assertEqual(resolved.status, UNRESOLVABLE)
            self.assertIsNone(resolved.option)
            self.assertIsNone(resolved.is_correct)

    def test_setting_drift_does_not_change_mapping(self):
        position = self.position_of(self.attempt, self.mcq, lambda option: option.is_correct)
        record_answer(self.attempt, self.mcq.id, position=position, now=NOW)

        platform = PlatformSetting.load()
        platform.shuffle_questions_globally = not platform.shuffle_questions_globally
        platform.save()

        resolved = resolve(self.attempt.id, self.mcq.id, position)
        self.assertEqual(resolved.option.text, 'Femur')
        self.assertTrue(resolved.is_correct)

    def test_exam_flag_drift_does_not_change_mapping(self):
        position = self.position_of(self.attempt, self.mcq, lambda option: option.text == 'Radius')
        self.exam.randomize_options = False
        self.exam.save()
        attempt = ExamAttempt.objects.select_related('exam').get(pk=self.attempt.pk)
        self.assertEqual(AnswerReconstructor().resolve(attempt, self.mcq, position).option.text, 'Radius')


class SubmissionTestCase(ExamFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.attempt = self.lifecycle().start(self.exam.id, self.student).attempt

    def answer_all(self):
        correct = self.position_of(self.attempt, self.mcq, lambda option: option.is_correct)
        wrong = self.position_of(self.attempt, self.true_false, lambda option: not option.is_correct)
        record_answer(self.attempt, self.mcq.id, position=correct, now=NOW)
        record_answer(self.attempt, self.true_false.id, position=wrong, now=NOW)
        record_answer(self.attempt, self.theory.id, text='Systole then diastole', now=NOW)

    def test_scores_and_waits_for_manual_grading(self):
        self.answer_all()
        result = submit_attempt(self.attempt, time_spent=1200, now=NOW + timedelta(minutes=20))

        self.assertEqual(result.obtained_marks, Decimal('1.5'))
        self.assertEqual(result.total_marks, Decimal('8'))
        self.assertEqual(result.percentage, Decimal('18.75'))
        self.assertEqual(result.grade, 'F')
        self.assertEqual(result.status, ExamResult.Status.FAIL)
        self.assertEqual((result.correct_answers, result.incorrect_answers), (1, 1))
        self.assertEqual(result.pending_review, 1)
        self.assertEqual(result.unanswered, 0)
        self.assertEqual(result.time_spent, 1200)

        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.status, ExamAttempt.Status.SUBMITTED)
        self.assertFalse(ExamProgress.objects.filter(attempt=self.attempt).exists())

    def test_manual_grading_evaluates(self):
        self.answer_all()
        submit_attempt(self.attempt, now=NOW + timedelta(minutes=20))

        result = apply_manual_grades(self.attempt, [
            {'question_id': self.theory.id, 'marks': Decimal('4'), 'comment': 'Good'},
        ])
        self.assertEqual(result.obtained_marks, Decimal('5.5'))
        self.assertEqual(result.percentage, Decimal('68.75'))
        self.assertEqual(result.grade, 'B')
        self.assertEqual(result.status, ExamResult.Status.PASS)
        self.assertEqual(result.pending_review, 0)
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.status, ExamAttempt.Status.EVALUATED)

    def test_choice_only_attempt_is_evaluated_immediately(self):
        correct = self.position_of(self.attempt, self.mcq, lambda option: option.is_correct)
        result = submit_attempt(
            self.attempt, answers={str(self.mcq.id): {"position": correct}}, now=NOW + timedelta(minutes=5),
        )
        self.assertEqual(result.obtained_marks, Decimal('2'))
        self.assertEqual(result.unanswered, 2)
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.status, ExamAttempt.Status.EVALUATED)

    def test_leftover_drafts_are_graded(self):
        correct = self.position_of(self.attempt, self.true_false, lambda option: option.is_correct)
        update_cursor(self.attempt, 1, draft_answers={str(self.true_false.id): {"position": correct}}, now=NOW)
        result = submit_attempt(self.attempt, now=NOW + timedelta(minutes=5))
        self.assertEqual(result.correct_answers, 1)
        self.assertEqual(result.obtained_marks, Decimal('1'))

    def test_unresolvable_answer_scores_zero(self):
        StudentAnswer.objects.create(attempt=self.attempt, question=self.mcq, selected_position=42)
        with self.assertLogs('assessments.services.grading', level='WARNING'):
            result = submit_attempt(self.attempt, now=NOW + timedelta(minutes=5))
        self.assertEqual(result.obtained_marks, Decimal('0'))
        self.assertEqual(result.incorrect_answers, 0)
        answer = StudentAnswer.objects.get(attempt=self.attempt, question=self.mcq)
        self.assertIsNone(answer.is_correct)

    def test_resubmission_returns_existing_result(self):
        first = submit_attempt(self.attempt, now=NOW + timedelta(minutes=5))
        second = submit_attempt(self.attempt, now=NOW + timedelta(minutes=6))
        self.assertEqual(first.id, second.id)
        self.assertEqual(ExamResult.objects.filter(attempt=self.attempt).count(), 1)

    def test_submission_after_window_rejected(self):
        with self.assertRaises(ExamClosed):
            submit_attempt(self.attempt, now=self.exam_end + timedelta(minutes=1))
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.status, ExamAttempt.Status.ONGOING)

    def test_malformed_final_answers_rejected(self):
        with self.assertRaises(InvalidAnswer):
            submit_attempt(self.attempt, answers={'not-a-question': {"position": 0}}, now=NOW)
        with self.assertRaises(InvalidAnswer):
            submit_attempt(self.attempt, answers={str(self.mcq.id): 3}, now=NOW)
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.status, ExamAttempt.Status.ONGOING)

    def test_next_attempt_number_after_submission(self):
        submit_attempt(self.attempt, now=NOW + timedelta(minutes=5))
        session = self.lifecycle(at=NOW + timedelta(minutes=10), retake_cooldown_days=0).start(
            self.exam.id, self.student,
        )
        self.assertFalse(session.is_resume)
        self.assertEqual(session.attempt.attempt_number, 2)
        self.assertNotEqual(session.attempt.id, self.attempt.id)

    def test_grade_letters(self):
        cases = [(95, 'A+'), (90, 'A+'), (85, 'A'), (72, 'B+'), (60, 'B'), (55, 'C'), (40, 'D'), (39.99, 'F')]
        for percentage, letter in cases:
            self.assertEqual(grade_letter(percentage), letter)


class ReviewTestCase(ExamFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.attempt = self.lifecycle().start(self.exam.id, self.student).attempt
        correct = self.position_of(self.attempt, self.mcq, lambda option: option.is_correct)
        record_answer(self.attempt, self.mcq.id, position=correct, now=NOW)
        record_answer(self.attempt, self.theory.id, text='Two phases', now=NOW)
        self.result = submit_attempt(self.attempt, now=NOW + timedelta(minutes=10))

    def test_review_entries(self):
        review = build_review(self.result, settings_provider=StaticSettingsProvider())
        self.assertEqual([entry['question_id'] for entry in review], [self.mcq.id, self.true_false.id, self.theory.id])

        mcq, true_false, theory = review
        self.assertEqual(mcq['status'], 'correct')
        self.assertEqual(mcq['student_answer'], 'Femur')
        self.assertEqual(mcq['correct_answer'], 'Femur')
        self.assertEqual(
            [o['id'] for o in mcq['options']],
            [o.id for o in present_options(self.attempt, self.mcq)],
        )
        self.assertEqual(true_false['status'], 'unattempted')
        self.assertEqual(theory['status'], 'pending')
        self.assertEqual(theory['correct_answer'], 'Systole and diastole')

    def test_unresolvable_reported_as_unattempted(self):
        StudentAnswer.objects.filter(attempt=self.attempt, question=self.mcq).update(selected_position=17)
        with self.assertLogs('assessments.services.grading', level='WARNING'):
            review = build_review(self.result, settings_provider=StaticSettingsProvider())
        self.assertEqual(review[0]['status'], 'unattempted')
        self.assertTrue(review[0]['unresolvable'])
        self.assertIsNone(review[0]['student_answer'])

    def test_review_disabled_globally(self):
        with self.assertRaises(ReviewNotAllowed):
            build_review(self.result, settings_provider=StaticSettingsProvider(allow_review_after_submission=False))

    def test_review_disabled_for_exam(self):
        self.exam.allow_answer_review = False
        self.exam.save()
        result = ExamResult.objects.get(pk=self.result.pk)
        with self.assertRaises(ReviewNotAllowed):
            build_review(result, settings_provider=StaticSettingsProvider())


class AttemptApiTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.student = User.objects.create_user(
            username='candidate', email='candidate@example.com', password='pass12345!',
        )
        self.proctor = User.objects.create_user(
            username='proctor', email='proctor@example.com', password='pass12345!', role='proctor',
        )
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='pass12345!', role='admin', is_staff=True,
        )
        program = Program.objects.create(name='Biology')
        ProgramEnrollment.objects.create(program=program, student=self.student)

        now = timezone.now()
        self.exam = Exam.objects.create(
            title='Cell Biology', start_time=now - timedelta(hours=1), end_time=now + timedelta(hours=2),
            duration_minutes=45, is_active=True,
        )
        self.exam.programs.add(program)
        self.mcq = Question.objects.create(text='Powerhouse of the cell?', marks=Decimal('1'))
        for sequence, (text, correct) in enumerate([('Nucleus', False), ('Mitochondria', True), ('Ribosome', False)]):
            Option.objects.create(question=self.mcq, text=text, sequence=sequence, is_correct=correct)
        self.theory = Question.objects.create(
            text='Explain mitosis', question_type=Question.QuestionType.THEORY, marks=Decimal('4'),
        )
        ExamQuestion.objects.create(exam=self.exam, question=self.mcq, sequence=1)
        ExamQuestion.objects.create(exam=self.exam, question=self.theory, sequence=2)

    def start(self):
        self.client.force_authenticate(user=self.student)
        return self.client.post(f'/api/exams/{self.exam.id}/start/')

    def correct_position(self, response):
        options = response.data['questions'][0]['options']
        return next(i for i, option in enumerate(options) if option['text'] == 'Mitochondria')

    def test_start_then_resume(self):
        response = self.start()
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.data['is_resume'])
        self.assertEqual(len(response.data['questions']), 2)
        option_keys = set(response.data['questions'][0]['options'][0].keys())
        self.assertEqual(option_keys, {'id', 'text'})

        again = self.client.post(f'/api/exams/{self.exam.id}/start/')
        self.assertEqual(again.status_code, 200)
        self.assertTrue(again.data['is_resume'])
        self.assertEqual(again.data['attempt_id'], response.data['attempt_id'])
        self.assertEqual(again.data['questions'], response.data['questions'])

    def test_start_errors_are_json(self):
        ProgramEnrollment.objects.filter(student=self.student).delete()
        response = self.start()
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'not_enrolled')
        self.assertIn('error', response.data)

    def test_cooldown_payload(self):
        ExamAttempt.objects.create(
            student=self.student, exam=self.exam, status=ExamAttempt.Status.SUBMITTED,
            submitted_at=timezone.now() - timedelta(days=3), duration_minutes=45,
        )
        response = self.start()
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'cooldown_active')
        self.assertEqual(response.data['days_remaining'], 4)

    def test_staff_cannot_start(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f'/api/exams/{self.exam.id}/start/')
        self.assertEqual(response.status_code, 403)

    def test_answer_progress_submit_flow(self):
        started = self.start()
        attempt_id = started.data['attempt_id']
        position = self.correct_position(started)

        response = self.client.post(
            f'/api/attempts/{attempt_id}/answer/',
            {'question_id': self.mcq.id, 'position': position, 'time_spent': 30},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['selected_position'], position)

        response = self.client.post(
            f'/api/attempts/{attempt_id}/answer/', {'question_id': self.mcq.id, 'position': 9}, format='json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'invalid_answer')

        response = self.client.post(
            f'/api/attempts/{attempt_id}/progress/',
            {'current_question_index': 1, 'flagged_questions': [self.theory.id]},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.get(f'/api/attempts/{attempt_id}/progress/')
        self.assertEqual(response.data['current_question_index'], 1)
        self.assertEqual(response.data['flagged_questions'], [self.theory.id])

        response = self.client.post(
            f'/api/attempts/{attempt_id}/submit/',
            {'answers': {str(self.theory.id): {'text': 'Cell division'}}},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data['show_results'])
        self.assertEqual(response.data['status'], 'submitted')

        response = self.client.post(
            f'/api/attempts/{attempt_id}/answer/', {'question_id': self.mcq.id, 'position': 0}, format='json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['code'], 'attempt_not_ongoing')

    def test_submit_shows_results_when_enabled(self):
        platform = PlatformSetting.load()
        platform.show_results_immediately = True
        platform.save()

        started = self.start()
        attempt_id = started.data['attempt_id']
        response = self.client.post(
            f'/api/attempts/{attempt_id}/submit/',
            {'answers': {str(self.mcq.id): {'position': self.correct_position(started)}}},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['show_results'])
        self.assertEqual(Decimal(response.data['obtained_marks']), Decimal('1'))
        self.assertEqual(response.data['attempt_status'], 'evaluated')

    def test_other_students_cannot_touch_attempt(self):
        attempt_id = self.start().data['attempt_id']
        intruder = User.objects.create_user(username='other', email='other@example.com', password='pass12345!')
        self.client.force_authenticate(user=intruder)
        response = self.client.post(f'/api/attempts/{attempt_id}/submit/', {}, format='json')
        self.assertEqual(response.status_code, 404)

    def test_history_and_review(self):
        started = self.start()
        attempt_id = started.data['attempt_id']
        self.client.post(
            f'/api/attempts/{attempt_id}/submit/',
            {'answers': {str(self.mcq.id): {'position': self.correct_position(started)}}},
            format='json',
        )

        history = self.client.get('/api/attempts/')
        self.assertEqual(history.status_code, 200)
        self.assertEqual(len(history.data), 1)
        result_id = history.data[0]['result']['id']

        review = self.client.get(f'/api/results/{result_id}/review/')
        self.assertEqual(review.status_code, 200)
        statuses = [entry['status'] for entry in review.data['per_question']]
        self.assertEqual(statuses, ['correct', 'unattempted'])

        platform = PlatformSetting.load()
        platform.allow_review_after_submission = False
        platform.save()
        review = self.client.get(f'/api/results/{result_id}/review/')
        self.assertEqual(review.status_code, 403)
        self.assertEqual(review.data['code'], 'review_not_allowed')

    def test_expired_attempt_reported_by_readers(self):
        attempt_id = self.start().data['attempt_id']
        past = timezone.now() - timedelta(days=2)
        Exam.objects.filter(pk=self.exam.pk).update(start_time=past - timedelta(hours=3), end_time=past)

        history = self.client.get('/api/attempts/')
        self.assertEqual(history.data[0]['status'], 'expired')
        self.assertTrue(history.data[0]['is_expired'])

        progress = self.client.get(f'/api/attempts/{attempt_id}/progress/')
        self.assertEqual(progress.data['status'], 'expired')
        self.assertEqual(progress.data['remaining_seconds'], 0)

        self.client.force_authenticate(user=self.admin)
        stats = self.client.get('/api/admin/stats/')
        self.assertEqual(stats.data['ongoing_attempts'], 0)
        self.assertEqual(stats.data['expired_attempts'], 1)

    def test_anti_cheat_events(self):
        attempt_id = self.start().data['attempt_id']
        response = self.client.post(
            f'/api/attempts/{attempt_id}/events/',
            {'event_type': 'tab_switch', 'severity': 'high', 'description': 'Left the exam tab'},
            format='json',
        )
        self.assertEqual(response.status_code, 201)

        response = self.client.get(f'/api/attempts/{attempt_id}/events/')
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(user=self.proctor)
        response = self.client.get(f'/api/attempts/{attempt_id}/events/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['events'][0]['event_type'], 'tab_switch')

    def test_manual_grading_endpoints(self):
        started = self.start()
        attempt_id = started.data['attempt_id']
        self.client.post(
            f'/api/attempts/{attempt_id}/submit/',
            {'answers': {str(self.theory.id): {'text': 'Prophase, metaphase...'}}},
            format='json',
        )

        self.client.force_authenticate(user=self.proctor)
        pending = self.client.get('/api/admin/grading/pending/')
        self.assertEqual(pending.status_code, 200)
        self.assertEqual(len(pending.data), 1)
        self.assertEqual(pending.data[0]['answers'][0]['question_id'], self.theory.id)

        response = self.client.post(
            f'/api/admin/grading/submit/{attempt_id}/',
            {'grades': [{'question_id': self.theory.id, 'marks': '3', 'comment': 'Missing anaphase'}]},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.data['result']['obtained_marks']), Decimal('3'))
        self.assertEqual(ExamAttempt.objects.get(pk=attempt_id).status, ExamAttempt.Status.EVALUATED)
        self.assertTrue(AuditLog.objects.filter(action='GRADE', target_object_id=str(attempt_id)).exists())

        self.assertEqual(self.client.get('/api/admin/grading/pending/').data, [])

    def test_students_cannot_grade(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/admin/grading/pending/')
        self.assertEqual(response.status_code, 403)
