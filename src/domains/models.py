"""Central import of all domain models.

This file imports all models to ensure they are registered with SQLAlchemy's
metadata before any database operations (like creating tables or migrations).
"""

# Users domain
from src.domains.users.models import User, UserRole

# Students domain
from src.domains.students.models import Student, StudentStatus

# Plans domain
from src.domains.plans.models import PersonalPlanAssignment, Plan, PlanKind

# Tokens domain
from src.domains.tokens.models import (
    AssignmentType,
    LegacyToken,
    Token,
    TokenAssignment,
    TokenKind,
)

# Renewals domain
from src.domains.renewals.models import ProofKind, RenewalRequest, RenewalStatus

# Notifications domain
from src.domains.notifications.models import Notification, NotificationType

# Transitions domain
from src.domains.transitions.models import HistoryReason, StudentPlanHistory

__all__ = [
    # Users
    "User",
    "UserRole",
    # Students
    "Student",
    "StudentStatus",
    # Plans
    "Plan",
    "PlanKind",
    "PersonalPlanAssignment",
    # Tokens
    "Token",
    "TokenKind",
    "TokenAssignment",
    "AssignmentType",
    "LegacyToken",
    # Renewals
    "RenewalRequest",
    "RenewalStatus",
    "ProofKind",
    # Notifications
    "Notification",
    "NotificationType",
    # Transitions
    "StudentPlanHistory",
    "HistoryReason",
]
