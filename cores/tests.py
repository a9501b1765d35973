from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from .models import AuditLog, PlatformSetting, SETTINGS_CACHE_KEY
from .providers import (
    ExamPolicy,
    PlatformSettingsProvider,
    StaticSettingsProvider,
    get_settings_provider,
)

User = get_user_model()


class SettingsProviderTestCase(TestCase):
    def setUp(self):
        cache.clear()

    def test_platform_provider_reads_singleton(self):
        platform = PlatformSetting.load()
        platform.max_attempts_per_student = 5
        platform.retake_cooldown_days = 0
        platform.shuffle_questions_globally = False
        platform.save()

        policy = PlatformSettingsProvider().exam_policy()
        self.assertEqual(policy.max_attempts_per_student, 5)
        self.assertEqual(policy.retake_cooldown_days, 0)
        self.assertFalse(policy.shuffle_questions_globally)

    def test_platform_defaults(self):
        self.assertEqual(PlatformSettingsProvider().exam_policy(), ExamPolicy())

    def test_static_provider_overrides(self):
        provider = StaticSettingsProvider(allow_retake=False)
        self.assertFalse(provider.exam_policy().allow_retake)
        self.assertEqual(provider.exam_policy().max_attempts_per_student, 3)

    def test_default_provider(self):
        self.assertIsInstance(get_settings_provider(), PlatformSettingsProvider)

    @override_settings(EXAM_SETTINGS_PROVIDER='cores.providers.StaticSettingsProvider')
    def test_provider_from_settings(self):
        self.assertIsInstance(get_settings_provider(), StaticSettingsProvider)


class PlatformSettingTestCase(TestCase):
    def setUp(self):
        cache.clear()

    def test_singleton(self):
        first = PlatformSetting.load()
        PlatformSetting(site_name='Other').save()
        self.assertEqual(PlatformSetting.objects.count(), 1)
        self.assertEqual(first.pk, 1)

    def test_save_refreshes_cache(self):
        platform = PlatformSetting.load()
        platform.allow_retake = False
        platform.save()
        self.assertFalse(cache.get(SETTINGS_CACHE_KEY).allow_retake)

    def test_delete_is_ignored(self):
        PlatformSetting.load().delete()
        self.assertTrue(PlatformSetting.objects.filter(pk=1).exists())


class PlatformSettingViewTestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='pass12345!', role='admin', is_staff=True,
        )

    def test_update_is_audited(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.put('/api/settings/', {'retake_cooldown_days': 3}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(PlatformSettingsProvider().exam_policy().retake_cooldown_days, 3)

        log = AuditLog.objects.get(action='SETTINGS')
        self.assertIn('retake_cooldown_days', log.details)

        response = self.client.get('/api/audit-logs/', {'action': 'SETTINGS'})
        self.assertEqual(len(response.data), 1)

    def test_rejects_zero_attempts(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.patch('/api/settings/', {'max_attempts_per_student': 0}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_students_cannot_read_settings(self):
        student = User.objects.create_user(username='s', email='s@example.com', password='pass12345!')
        self.client.force_authenticate(user=student)
        self.assertEqual(self.client.get('/api/settings/').status_code, 403)
