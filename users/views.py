from rest_framework import generics, permissions, viewsets
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView
from django.contrib.auth import get_user_model
from django.utils import timezone

from exams.models import Exam
from assessments.models import ExamAttempt, ExamResult
from cores.models import AuditLog

from .serializers import (
    RegisterSerializer,
    PublicRegisterSerializer,
    CustomTokenObtainPairSerializer,
    StudentListSerializer,
    UserSerializer,
    ProfileSerializer,
)

User = get_user_model()


# --- User Management (CRUD for Admin) ---
class UserViewSet(viewsets.ModelViewSet):
    """
    Admin-only endpoint to manage all users.
    Every change is written to the audit log.
    """
    queryset = User.objects.all().order_by('-date_joined')
    permission_classes = [permissions.IsAdminUser]

    def get_serializer_class(self):
        if self.action == 'create':
            return RegisterSerializer
        return UserSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        role = self.request.query_params.get('role')
        if role:
            queryset = queryset.filter(role=role)
        return queryset

    def _audit(self, action, user, details):
        AuditLog.objects.create(
            actor=self.request.user,
            action=action,
            target_model='User',
            target_object_id=str(user.id),
            details=details,
        )

    def perform_create(self, serializer):
        user = serializer.save()
        self._audit('CREATE', user, f"Created new user: {user.email} (Role: {user.role})")

    def perform_update(self, serializer):
        user = serializer.save()
        # Handle password update if present
        if self.request.data.get('password'):
            user.set_password(self.request.data['password'])
            user.save(update_fields=['password'])
        self._audit('UPDATE', user, f"Updated profile for: {user.email}")

    def perform_destroy(self, instance):
        self._audit('DELETE', instance, f"Deleted user account: {instance.email}")
        instance.delete()


# --- Authentication Views ---
class RegisterView(generics.CreateAPIView):
    serializer_class = PublicRegisterSerializer
    permission_classes = [permissions.AllowAny]


class CustomLoginView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


# --- Dashboard Stats ---
class AdminStatsView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        now = timezone.now()
        ongoing = ExamAttempt.objects.filter(status=ExamAttempt.Status.ONGOING)
        stats = {
            "total_exams": Exam.objects.count(),
            "active_exams": Exam.objects.filter(is_active=True).count(),
            "total_students": User.objects.filter(role=User.Role.STUDENT).count(),
            # Ongoing attempts past the exam end are abandoned
            "ongoing_attempts": ongoing.filter(exam__end_time__gte=now).count(),
            "expired_attempts": ongoing.filter(exam__end_time__lt=now).count(),
            "pending_grading": ExamAttempt.objects.filter(status=ExamAttempt.Status.SUBMITTED).count(),
            "results_passed": ExamResult.objects.filter(status=ExamResult.Status.PASS).count(),
        }
        return Response(stats)


# --- Student List View ---
class StudentListView(generics.ListAPIView):
    serializer_class = StudentListSerializer
    permission_classes = [permissions.IsAdminUser]

    def get_queryset(self):
        return User.objects.filter(role=User.Role.STUDENT).order_by('-date_joined')


class UserProfileView(generics.RetrieveUpdateAPIView):
    serializer_class = ProfileSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user
