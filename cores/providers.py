"""
Settings providers for the exam attempt services.

Services never read ``PlatformSetting`` themselves: they are handed a provider
and take one ``ExamPolicy`` snapshot per operation, so the values in effect
for a request are explicit and can be pinned in tests.
"""
from dataclasses import dataclass, replace

from django.conf import settings
from django.utils.module_loading import import_string

from .models import PlatformSetting


@dataclass(frozen=True)
class ExamPolicy:
    shuffle_questions_globally: bool = True
    max_attempts_per_student: int = 3
    allow_retake: bool = True
    retake_cooldown_days: int = 7
    show_results_immediately: bool = False
    allow_review_after_submission: bool = True


class PlatformSettingsProvider:
    """Reads the cached ``PlatformSetting`` singleton."""

    def exam_policy(self) -> ExamPolicy:
        platform = PlatformSetting.load()
        return ExamPolicy(
            shuffle_questions_globally=platform.shuffle_questions_globally,
            max_attempts_per_student=platform.max_attempts_per_student,
            allow_retake=platform.allow_retake,
            retake_cooldown_days=platform.retake_cooldown_days,
            show_results_immediately=platform.show_results_immediately,
            allow_review_after_submission=platform.allow_review_after_submission,
        )


class StaticSettingsProvider:
    """Always returns the policy it was built with."""

    def __init__(self, policy: ExamPolicy = None, **overrides):
        policy = policy or ExamPolicy()
        if overrides:
            policy = replace(policy, **overrides)
        self.policy = policy

    def exam_policy(self) -> ExamPolicy:
        return self.policy


def get_settings_provider():
    path = getattr(settings, 'EXAM_SETTINGS_PROVIDER', 'cores.providers.PlatformSettingsProvider')
    return import_string(path)()
