from app.models.onboarding import (
    Alert,
    AppSetting,
    OnboardingCard,
    OnboardingStage,
    OnboardingTask,
)
from app.models.providers import (
    AuditLog,
    AuthUser,
    PriorityAssignment,
    Provider,
    ProviderHistory,
    ProviderNote,
)
from app.models.sync import SyncKindStatus, SyncRun, SyncedEntity

__all__ = [
    'Alert',
    'AppSetting',
    'AuditLog',
    'AuthUser',
    'OnboardingCard',
    'OnboardingStage',
    'OnboardingTask',
    'PriorityAssignment',
    'Provider',
    'ProviderHistory',
    'ProviderNote',
    'SyncKindStatus',
    'SyncRun',
    'SyncedEntity',
]
