from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from assessments.models import ExamAttempt, ExamResult

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'role', 'is_staff', 'phone_number', 'bio']
        read_only_fields = ['is_staff']


class ProfileSerializer(UserSerializer):
    """Users may edit their own details but not their role."""
    class Meta(UserSerializer.Meta):
        read_only_fields = ['email', 'role', 'is_staff']


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'password', 'role']
        read_only_fields = ['id']

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data['email'],
            email=validated_data['email'],
            password=validated_data['password'],
            first_name=validated_data.get('first_name', ''),
            last_name=validated_data.get('last_name', ''),
            role=validated_data.get('role', User.Role.STUDENT),
        )


class PublicRegisterSerializer(RegisterSerializer):
    """Self sign-up always creates a student account."""
    class Meta(RegisterSerializer.Meta):
        read_only_fields = ['id', 'role']


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        data['user'] = UserSerializer(self.user).data
        return data


class StudentListSerializer(serializers.ModelSerializer):
    exams_taken = serializers.SerializerMethodField()
    exams_passed = serializers.SerializerMethodField()
    last_activity = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'exams_taken', 'exams_passed', 'last_activity']

    def get_exams_taken(self, obj):
        return ExamAttempt.objects.filter(student=obj).exclude(status=ExamAttempt.Status.ONGOING).count()

    def get_exams_passed(self, obj):
        return ExamResult.objects.filter(student=obj, status=ExamResult.Status.PASS).count()

    def get_last_activity(self, obj):
        last_attempt = ExamAttempt.objects.filter(student=obj).order_by('-start_time').first()
        if last_attempt:
            return last_attempt.start_time
        return obj.date_joined
