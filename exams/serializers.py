# exams/serializers.py
from rest_framework import serializers
from .models import Exam, Question, Option, Program, ProgramEnrollment

# --- Helper Serializers ---

class OptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Option
        fields = ['id', 'text', 'sequence', 'is_correct']


class ProgramSerializer(serializers.ModelSerializer):
    enrolled_students = serializers.IntegerField(source='enrollments.count', read_only=True)

    class Meta:
        model = Program
        fields = ['id', 'name', 'description', 'is_active', 'enrolled_students', 'created_at']
        read_only_fields = ['created_at']


class ProgramEnrollmentSerializer(serializers.ModelSerializer):
    student_email = serializers.EmailField(source='student.email', read_only=True)

    class Meta:
        model = ProgramEnrollment
        fields = ['id', 'program', 'student', 'student_email', 'status', 'enrolled_at']
        read_only_fields = ['program', 'enrolled_at']

# --- Question Serializers ---

class QuestionSerializer(serializers.ModelSerializer):
    # Map frontend 'question_text' to backend 'text'
    question_text = serializers.CharField(source='text')
    # Frontend sends options as an ordered array of strings
    options = serializers.ListField(child=serializers.CharField(), required=False, write_only=True)
    options_data = OptionSerializer(source='options', many=True, read_only=True)

    class Meta:
        model = Question
        fields = [
            'id', 'question_text', 'question_type', 'category', 'difficulty',
            'marks', 'randomize_options', 'correct_answer', 'options', 'options_data',
        ]

    def validate(self, attrs):
        q_type = attrs.get('question_type', getattr(self.instance, 'question_type', Question.QuestionType.MCQ))
        # Normalize question type from frontend (essay/translation -> theory)
        if q_type in ['essay', 'translation']:
            attrs['question_type'] = q_type = Question.QuestionType.THEORY
        options = attrs.get('options')
        if options is not None and q_type != Question.QuestionType.THEORY and len(options) < 2:
            raise serializers.ValidationError({"options": "Choice questions need at least two options."})
        return attrs

    def _write_options(self, question, options_text):
        correct_ans = (question.correct_answer or '').strip().lower()
        for sequence, opt_text in enumerate(options_text):
            Option.objects.create(
                question=question,
                text=opt_text.strip(),
                sequence=sequence,
                # Option text matching correct_answer is marked correct
                is_correct=opt_text.strip().lower() == correct_ans,
            )

    def create(self, validated_data):
        options_text = validated_data.pop('options', [])
        question = Question.objects.create(**validated_data)
        if options_text:
            self._write_options(question, options_text)
        return question

    def update(self, instance, validated_data):
        options_text = validated_data.pop('options', None)
        question = super().update(instance, validated_data)
        if options_text is not None:
            question.options.all().delete()
            self._write_options(question, options_text)
        return question

# --- Exam Serializers ---

class ExamSerializer(serializers.ModelSerializer):
    # Map frontend 'passing_score' to backend 'pass_mark_percentage'
    passing_score = serializers.IntegerField(source='pass_mark_percentage', required=False)
    program_ids = serializers.PrimaryKeyRelatedField(
        source='programs', many=True, queryset=Program.objects.all(), required=False,
    )

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'program_ids', 'start_time', 'end_time',
            'duration_minutes', 'passing_score', 'negative_marking',
            'total_questions', 'total_marks', 'randomize_questions', 'randomize_options',
            'allow_answer_change', 'allow_answer_review', 'proctoring_enabled',
            'is_active', 'created_at',
        ]
        read_only_fields = ['total_questions', 'created_at']

    def validate(self, attrs):
        start = attrs.get('start_time', getattr(self.instance, 'start_time', None))
        end = attrs.get('end_time', getattr(self.instance, 'end_time', None))
        if start and end and end <= start:
            raise serializers.ValidationError({"end_time": "End time must be after start time."})
        return attrs


class ExamListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Exam
        fields = ['id', 'title', 'start_time', 'end_time', 'duration_minutes', 'total_questions']


class ExamDetailSerializer(ExamSerializer):
    """Detailed view for admins, questions in exam order."""
    questions = serializers.SerializerMethodField()

    class Meta(ExamSerializer.Meta):
        fields = ExamSerializer.Meta.fields + ['questions']

    def get_questions(self, obj):
        links = obj.exam_questions.select_related('question').prefetch_related('question__options')
        return [
            {**QuestionSerializer(link.question).data, 'sequence': link.sequence}
            for link in links
        ]
