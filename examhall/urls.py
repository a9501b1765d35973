from django.contrib import admin
from django.urls import path, include

from cores.views import PlatformSettingView, AuditLogListView

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Student Exam Flow & Grading ---
    path('api/', include('assessments.urls')),

    # --- Authentication, Profile & User Management ---
    path('api/', include('users.urls')),

    # --- Platform Settings & Audit Trail ---
    path('api/settings/', PlatformSettingView.as_view(), name='platform-settings'),
    path('api/audit-logs/', AuditLogListView.as_view(), name='audit-logs'),

    # --- Exams, Question Bank & Programs ---
    path('api/', include('exams.urls')),
]
