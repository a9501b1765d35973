from rest_framework import serializers
from .models import PlatformSetting, AuditLog


class PlatformSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = PlatformSetting
        fields = [
            'site_name', 'support_email', 'maintenance_mode',
            'default_pass_mark', 'default_exam_duration', 'strict_proctoring',
            'shuffle_questions_globally', 'show_results_immediately', 'allow_review_after_submission',
            'max_attempts_per_student', 'allow_retake', 'retake_cooldown_days',
        ]

    def validate_max_attempts_per_student(self, value):
        if value < 1:
            raise serializers.ValidationError("At least one attempt must be allowed.")
        return value


class AuditLogSerializer(serializers.ModelSerializer):
    # Fetches the email from the related User model
    actor_email = serializers.CharField(source='actor.email', read_only=True)
    actor_role = serializers.CharField(source='actor.role', read_only=True)

    class Meta:
        model = AuditLog
        fields = [
            'id', 'actor', 'actor_email', 'actor_role', 'action', 'target_model',
            'target_object_id', 'ip_address', 'timestamp', 'details',
        ]
