from rest_framework import serializers
from .models import ExamAttempt, StudentAnswer, ExamResult, AntiCheatEvent
from exams.serializers import ExamListSerializer

# --- Presentation (what the student sees while taking the exam) ---

class PresentedOptionSerializer(serializers.Serializer):
    # No is_correct here: this goes to candidates
    id = serializers.IntegerField()
    text = serializers.CharField()


class PresentedQuestionSerializer(serializers.Serializer):
    id = serializers.IntegerField(source='question.id')
    text = serializers.CharField(source='question.text')
    question_type = serializers.CharField(source='question.question_type')
    marks = serializers.DecimalField(source='question.marks', max_digits=6, decimal_places=2)
    sequence = serializers.IntegerField()
    options = PresentedOptionSerializer(many=True)


class AttemptSessionSerializer(serializers.Serializer):
    attempt_id = serializers.UUIDField(source='attempt.id')
    attempt_number = serializers.IntegerField(source='attempt.attempt_number')
    exam = serializers.SerializerMethodField()
    exam_controls = serializers.SerializerMethodField()
    questions = PresentedQuestionSerializer(many=True)
    is_resume = serializers.BooleanField()
    elapsed_seconds = serializers.IntegerField()
    remaining_seconds = serializers.IntegerField()
    start_time = serializers.DateTimeField(source='attempt.start_time')
    progress = serializers.DictField()

    def get_exam(self, obj):
        exam = obj.exam
        return {
            "id": exam.id,
            "title": exam.title,
            "duration_minutes": obj.attempt.duration_minutes,
            "total_questions": len(obj.questions),
            "end_time": exam.end_time,
        }

    def get_exam_controls(self, obj):
        exam = obj.exam
        return {
            "allow_answer_change": exam.allow_answer_change,
            "allow_answer_review": exam.allow_answer_review,
            "proctoring_enabled": exam.proctoring_enabled,
            "randomize_questions": exam.randomize_questions,
            "options_shuffled": obj.attempt.options_shuffled,
            "questions_shuffled": obj.attempt.questions_shuffled,
        }


# --- Inputs ---

class AnswerInputSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    position = serializers.IntegerField(required=False, allow_null=True)
    text_answer = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    is_flagged = serializers.BooleanField(required=False, default=False)
    time_spent = serializers.IntegerField(required=False, min_value=0)


class ProgressInputSerializer(serializers.Serializer):
    current_question_index = serializers.IntegerField(min_value=0)
    flagged_questions = serializers.ListField(child=serializers.IntegerField(), required=False)
    answers = serializers.DictField(required=False)
    time_spent = serializers.IntegerField(required=False, min_value=0)


class SubmitInputSerializer(serializers.Serializer):
    # {question_id: {"position": n} | {"text": "..."}}
    answers = serializers.DictField(child=serializers.DictField(), required=False, default=dict)
    time_spent = serializers.IntegerField(required=False, min_value=0)


class GradeInputSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    marks = serializers.DecimalField(max_digits=6, decimal_places=2)
    comment = serializers.CharField(required=False, allow_blank=True, default='')
    is_correct = serializers.BooleanField(required=False)


class SubmitGradesSerializer(serializers.Serializer):
    grades = GradeInputSerializer(many=True)


# --- Stored records ---

class StudentAnswerSerializer(serializers.ModelSerializer):
    class Meta:
        model = StudentAnswer
        fields = [
            'id', 'question', 'selected_position', 'text_answer', 'is_flagged',
            'time_spent_seconds', 'marks_obtained', 'grader_comment', 'updated_at',
        ]
        read_only_fields = fields


class ExamResultSerializer(serializers.ModelSerializer):
    exam_title = serializers.CharField(source='exam.title', read_only=True)

    class Meta:
        model = ExamResult
        fields = [
            'id', 'attempt', 'exam', 'exam_title', 'attempt_number', 'total_marks',
            'obtained_marks', 'percentage', 'grade', 'correct_answers', 'incorrect_answers',
            'unanswered', 'pending_review', 'time_spent', 'status',
            'negative_marking_applied', 'result_date',
        ]
        read_only_fields = fields


class ExamAttemptSerializer(serializers.ModelSerializer):
    """Lightweight serializer for lists / dashboard history."""
    exam = ExamListSerializer(read_only=True)
    status = serializers.SerializerMethodField()
    is_expired = serializers.SerializerMethodField()
    result = serializers.SerializerMethodField()

    class Meta:
        model = ExamAttempt
        fields = [
            'id', 'exam', 'attempt_number', 'status', 'is_expired', 'start_time', 'submitted_at',
            'total_time_spent', 'result',
        ]
        read_only_fields = fields

    def get_status(self, obj):
        return obj.effective_status()

    def get_is_expired(self, obj):
        return obj.is_expired()

    def get_result(self, obj):
        result = getattr(obj, 'result', None) if not obj.is_ongoing else None
        if result is None:
            return None
        return {
            "id": result.id,
            "percentage": result.percentage,
            "grade": result.grade,
            "status": result.status,
        }


class PendingAttemptSerializer(serializers.ModelSerializer):
    """Attempts waiting for manual grading, with their free-text answers."""
    student_email = serializers.EmailField(source='student.email', read_only=True)
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    answers = serializers.SerializerMethodField()

    class Meta:
        model = ExamAttempt
        fields = ['id', 'student', 'student_email', 'exam', 'exam_title', 'submitted_at', 'answers']

    def get_answers(self, obj):
        return [
            {
                "question_id": answer.question_id,
                "question_text": answer.question.text,
                "reference_answer": answer.question.correct_answer,
                "max_marks": answer.question.marks,
                "text_answer": answer.text_answer,
            }
            for answer in obj.answers.all()
            if not answer.question.is_choice_based and answer.is_correct is None and answer.is_answered
        ]


class AntiCheatEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = AntiCheatEvent
        fields = ['id', 'event_type', 'severity', 'description', 'created_at']
        read_only_fields = ['id', 'created_at']
