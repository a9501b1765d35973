from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PlatformSetting',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('site_name', models.CharField(default='ExamHall', max_length=100)),
                ('support_email', models.EmailField(default='support@examhall.local', max_length=254)),
                ('maintenance_mode', models.BooleanField(default=False)),
                ('default_pass_mark', models.IntegerField(default=60, help_text='Default pass mark percentage')),
                ('default_exam_duration', models.IntegerField(default=120, help_text='Default duration in minutes')),
                ('strict_proctoring', models.BooleanField(default=True)),
                ('shuffle_questions_globally', models.BooleanField(default=True, help_text='Show answer options in a per-attempt shuffled order where the question allows it')),
                ('show_results_immediately', models.BooleanField(default=False)),
                ('allow_review_after_submission', models.BooleanField(default=True)),
                ('max_attempts_per_student', models.PositiveIntegerField(default=3)),
                ('allow_retake', models.BooleanField(default=True)),
                ('retake_cooldown_days', models.PositiveIntegerField(default=7)),
            ],
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('CREATE', 'Create'), ('UPDATE', 'Update'), ('DELETE', 'Delete'), ('LOGIN', 'Login'), ('GRADE', 'Grade Submitted'), ('SETTINGS', 'Settings Changed')], max_length=20)),
                ('target_model', models.CharField(help_text='e.g., Exam, User, ExamAttempt', max_length=50)),
                ('target_object_id', models.CharField(blank=True, max_length=100, null=True)),
                ('details', models.TextField(blank=True, help_text='Description of changes')),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('timestamp', models.DateTimeField(auto_now_add=True)),
                ('actor', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-timestamp'],
            },
        ),
    ]
