from django.db import models
from django.core.cache import cache
from django.conf import settings

SETTINGS_CACHE_KEY = 'platform_settings'


class PlatformSetting(models.Model):
    # --- General & Branding ---
    site_name = models.CharField(max_length=100, default="ExamHall")
    support_email = models.EmailField(default="support@examhall.local")
    maintenance_mode = models.BooleanField(default=False)

    # --- Grading Defaults ---
    default_pass_mark = models.IntegerField(default=60, help_text="Default pass mark percentage")
    default_exam_duration = models.IntegerField(default=120, help_text="Default duration in minutes")
    strict_proctoring = models.BooleanField(default=True)

    # --- Exam Attempts ---
    shuffle_questions_globally = models.BooleanField(
        default=True,
        help_text="Show answer options in a per-attempt shuffled order where the question allows it",
    )
    show_results_immediately = models.BooleanField(default=False)
    allow_review_after_submission = models.BooleanField(default=True)

    # --- Retakes ---
    max_attempts_per_student = models.PositiveIntegerField(default=3)
    allow_retake = models.BooleanField(default=True)
    retake_cooldown_days = models.PositiveIntegerField(default=7)

    def save(self, *args, **kwargs):
        self.pk = 1  # Singleton pattern
        super().save(*args, **kwargs)
        cache.set(SETTINGS_CACHE_KEY, self)

    def delete(self, *args, **kwargs):
        pass

    @classmethod
    def load(cls):
        obj = cache.get(SETTINGS_CACHE_KEY)
        if obj is None:
            obj, created = cls.objects.get_or_create(pk=1)
            cache.set(SETTINGS_CACHE_KEY, obj)
        return obj

    def __str__(self):
        return "Platform Settings"


class AuditLog(models.Model):
    ACTION_CHOICES = [
        ('CREATE', 'Create'),
        ('UPDATE', 'Update'),
        ('DELETE', 'Delete'),
        ('LOGIN', 'Login'),
        ('GRADE', 'Grade Submitted'),
        ('SETTINGS', 'Settings Changed'),
    ]

    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    target_model = models.CharField(max_length=50, help_text="e.g., Exam, User, ExamAttempt")
    target_object_id = models.CharField(max_length=100, blank=True, null=True)
    details = models.TextField(blank=True, help_text="Description of changes")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.actor} - {self.action} - {self.timestamp}"
