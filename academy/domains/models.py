"""Central import of all domain models.

This file imports all models to ensure they are registered with SQLAlchemy's
metadata before any database operations (like creating tables).
"""

# Users domain
from academy.domains.users.models import User, UserRole

# Branches domain
from academy.domains.branches.models import Branch

# Programs domain
from academy.domains.programs.models import Player, Program

# Notifications domain
from academy.domains.notifications.models import (
    Notification,
    NotificationType,
    SMSLog,
    SMSStatus,
)

# Schedule domain
from academy.domains.schedule.models import (
    DayOfWeek,
    TrainingSession,
    WaitlistEntry,
    WaitlistStatus,
)

# Subscriptions domain
from academy.domains.subscriptions.models import (
    FreezeAdjustment,
    FreezeScope,
    FreezeStatus,
    Subscription,
    SubscriptionFreeze,
    SubscriptionStatus,
)

__all__ = [
    # Users
    "User",
    "UserRole",
    # Branches
    "Branch",
    # Programs
    "Player",
    "Program",
    # Notifications
    "Notification",
    "NotificationType",
    "SMSLog",
    "SMSStatus",
    # Schedule
    "DayOfWeek",
    "TrainingSession",
    "WaitlistEntry",
    "WaitlistStatus",
    # Subscriptions
    "FreezeAdjustment",
    "FreezeScope",
    "FreezeStatus",
    "Subscription",
    "SubscriptionFreeze",
    "SubscriptionStatus",
]
