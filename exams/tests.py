import zlib
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from .enrollment import is_actively_enrolled
from .models import Exam, ExamQuestion, Option, Program, ProgramEnrollment, Question
from .shuffle import SeedInputs, derive_seed, permutation, resolve_base_order, shuffle

User = get_user_model()


def make_option(pk, sequence=0):
    return SimpleNamespace(pk=pk, sequence=sequence)


class ShuffleEngineTestCase(SimpleTestCase):
    def setUp(self):
        self.options = [make_option(pk, sequence=pk) for pk in range(1, 6)]
        self.seed_inputs = SeedInputs(student_id=7, question_id=42, attempt_id="a1")

    def test_same_inputs_give_same_order(self):
        first = shuffle(self.options, self.seed_inputs)
        second = shuffle(list(self.options), SeedInputs(7, 42, "a1"))
        self.assertEqual([o.pk for o in first], [o.pk for o in second])

    def test_result_is_a_permutation(self):
        shuffled = shuffle(self.options, self.seed_inputs)
        self.assertEqual(len(shuffled), len(self.options))
        self.assertCountEqual([o.pk for o in shuffled], [o.pk for o in self.options])

    def test_disabled_returns_base_order(self):
        shuffled = shuffle(self.options, self.seed_inputs, enabled=False)
        self.assertEqual(shuffled, self.options)
        self.assertIsNot(shuffled, self.options)

    def test_empty_and_single_inputs(self):
        self.assertEqual(shuffle([], self.seed_inputs), [])
        single = [make_option(1)]
        self.assertEqual(shuffle(single, self.seed_inputs), single)

    def test_input_is_not_mutated(self):
        before = list(self.options)
        shuffle(self.options, self.seed_inputs)
        self.assertEqual(self.options, before)

    def test_known_permutations(self):
        # seed 0: first LCG draw is 12345, which picks index 0 for the last slot
        self.assertEqual(permutation(0, 2), (1, 0))
        self.assertEqual(permutation(0, 3), (2, 1, 0))

    def test_permutation_covers_every_index(self):
        for size in (2, 3, 4, 10, 57):
            for seed in (0, 1, 12345, 2 ** 31 - 1, 2 ** 32 - 1):
                self.assertEqual(sorted(permutation(seed, size)), list(range(size)))

    def test_seed_uses_versioned_canonical_string(self):
        seed_inputs = SeedInputs(1, 2, 3)
        self.assertEqual(seed_inputs.canonical(), "v1:1-2-3")
        self.assertEqual(derive_seed(seed_inputs), zlib.crc32(b"v1:1-2-3"))

    def test_different_attempts_usually_differ(self):
        orders = {
            tuple(o.pk for o in shuffle(self.options, SeedInputs(7, 42, attempt)))
            for attempt in range(20)
        }
        self.assertGreater(len(orders), 1)


class BaseOrderTestCase(SimpleTestCase):
    def test_sorted_by_sequence(self):
        options = [make_option(1, 2), make_option(2, 0), make_option(3, 1)]
        self.assertEqual([o.pk for o in resolve_base_order(options)], [2, 3, 1])

    def test_ties_broken_by_primary_key(self):
        options = [make_option(9, 0), make_option(4, 0), make_option(6, 0)]
        self.assertEqual([o.pk for o in resolve_base_order(options)], [4, 6, 9])

    def test_empty(self):
        self.assertEqual(resolve_base_order([]), [])


class EnrollmentTestCase(TestCase):
    def setUp(self):
        now = timezone.now()
        self.student = User.objects.create_user(username='s1', email='s1@example.com', password='pass12345!')
        self.program = Program.objects.create(name='Nursing')
        self.exam = Exam.objects.create(
            title='Anatomy', start_time=now, end_time=now + timedelta(hours=2), duration_minutes=60,
        )
        self.exam.programs.add(self.program)

    def test_active_enrollment(self):
        ProgramEnrollment.objects.create(program=self.program, student=self.student)
        self.assertTrue(is_actively_enrolled(self.student, self.exam))

    def test_suspended_enrollment(self):
        ProgramEnrollment.objects.create(
            program=self.program, student=self.student, status=ProgramEnrollment.Status.SUSPENDED,
        )
        self.assertFalse(is_actively_enrolled(self.student, self.exam))

    def test_enrolled_in_another_program(self):
        other = Program.objects.create(name='Pharmacy')
        ProgramEnrollment.objects.create(program=other, student=self.student)
        self.assertFalse(is_actively_enrolled(self.student, self.exam))


class ExamAdminViewsTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='pass12345!', is_staff=True, role='admin',
        )
        self.student = User.objects.create_user(username='stu', email='stu@example.com', password='pass12345!')
        now = timezone.now()
        self.exam = Exam.objects.create(
            title='Physiology', start_time=now, end_time=now + timedelta(hours=3), duration_minutes=90,
        )
        self.q1 = Question.objects.create(text='Q1', marks=Decimal('2'))
        self.q2 = Question.objects.create(text='Q2', marks=Decimal('3'))

    def test_assign_questions_sets_sequence_and_totals(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            f'/api/exams/{self.exam.id}/assign-questions/',
            {'question_ids': [self.q2.id, self.q1.id]},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        links = list(ExamQuestion.objects.filter(exam=self.exam))
        self.assertEqual([link.question_id for link in links], [self.q2.id, self.q1.id])
        self.assertEqual([link.sequence for link in links], [1, 2])
        self.exam.refresh_from_db()
        self.assertEqual(self.exam.total_questions, 2)
        self.assertEqual(self.exam.total_marks, Decimal('5'))

    def test_assign_unknown_question(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            f'/api/exams/{self.exam.id}/assign-questions/', {'question_ids': [9999]}, format='json',
        )
        self.assertEqual(response.status_code, 400)

    def test_remove_questions_updates_totals(self):
        ExamQuestion.objects.create(exam=self.exam, question=self.q1, sequence=1)
        ExamQuestion.objects.create(exam=self.exam, question=self.q2, sequence=2)
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            f'/api/exams/{self.exam.id}/remove-questions/', {'question_ids': [self.q1.id]}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.exam.refresh_from_db()
        self.assertEqual(self.exam.total_questions, 1)
        self.assertEqual(self.exam.total_marks, Decimal('3'))

    def test_create_question_keeps_option_order(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/questions/', {
            'question_text': 'Largest organ?',
            'question_type': 'mcq',
            'marks': '1.00',
            'correct_answer': 'Skin',
            'options': ['Liver', 'Skin', 'Heart'],
        }, format='json')
        self.assertEqual(response.status_code, 201)
        question = Question.objects.get(pk=response.data['id'])
        options = resolve_base_order(question.options.all())
        self.assertEqual([o.text for o in options], ['Liver', 'Skin', 'Heart'])
        self.assertEqual([o.is_correct for o in options], [False, True, False])

    def test_bulk_upload(self):
        content = (
            "question_text,question_type,category,difficulty,marks,options,correct_answer\n"
            "Capital of France?,mcq,Geo,easy,2,Berlin|Paris|Rome,Paris\n"
            "Explain osmosis,theory,Bio,hard,5,,\n"
            ",mcq,Geo,easy,1,A|B,A\n"
        )
        upload = SimpleUploadedFile('questions.csv', content.encode('utf-8'), content_type='text/csv')
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/questions/bulk-upload/', {'file': upload}, format='multipart')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.data['errors']), 1)

        mcq = Question.objects.get(text='Capital of France?')
        self.assertEqual(mcq.marks, Decimal('2'))
        options = list(Option.objects.filter(question=mcq).order_by('sequence'))
        self.assertEqual([o.text for o in options], ['Berlin', 'Paris', 'Rome'])
        self.assertEqual([o.sequence for o in options], [0, 1, 2])
        self.assertTrue(options[1].is_correct)
        self.assertFalse(Question.objects.get(text='Explain osmosis').options.exists())

    def test_students_cannot_manage_exams(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.post('/api/questions/', {'question_text': 'x'}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_students_only_see_active_exams_of_their_programs(self):
        program = Program.objects.create(name='Medicine')
        ProgramEnrollment.objects.create(program=program, student=self.student)
        self.exam.programs.add(program)
        hidden = Exam.objects.create(
            title='Hidden', start_time=self.exam.start_time, end_time=self.exam.end_time,
            duration_minutes=30, is_active=True,
        )

        self.client.force_authenticate(user=self.student)
        response = self.client.get('/api/exams/')
        self.assertEqual(response.data, [])

        self.exam.is_active = True
        self.exam.save()
        response = self.client.get('/api/exams/')
        titles = [exam['title'] for exam in response.data]
        self.assertEqual(titles, ['Physiology'])
        self.assertNotIn(hidden.title, titles)

    def test_enroll_student_in_program(self):
        program = Program.objects.create(name='Dentistry')
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            f'/api/programs/{program.id}/enrollments/', {'student': self.student.id}, format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(ProgramEnrollment.objects.filter(program=program, student=self.student).exists())

        response = self.client.post(
            f'/api/programs/{program.id}/enrollments/',
            {'student': self.student.id, 'status': 'suspended'},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'suspended')
