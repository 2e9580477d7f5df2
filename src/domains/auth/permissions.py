"""Role-based capability checks.

Every authorization decision goes through ``ensure_capability`` so that
role comparisons live in one place.
"""
import enum
from src.core.exceptions import Forbidden
from src.domains.users.models import User, UserRole


class Capability(str, enum.Enum):
    """Actions gated by role."""

    MANAGE_STUDENTS = "manage_students"
    VIEW_OWN_ENTITLEMENTS = "view_own_entitlements"
    REQUEST_RENEWAL = "request_renewal"
    MANAGE_PLANS = "manage_plans"
    MANAGE_TRAINERS = "manage_trainers"
    GRANT_TOKENS = "grant_tokens"
    REVIEW_RENEWALS = "review_renewals"
    RUN_MAINTENANCE = "run_maintenance"


ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.PERSONAL: frozenset({
        Capability.MANAGE_STUDENTS,
        Capability.VIEW_OWN_ENTITLEMENTS,
        Capability.REQUEST_RENEWAL,
    }),
    UserRole.ADMIN: frozenset({
        Capability.MANAGE_PLANS,
        Capability.MANAGE_TRAINERS,
        Capability.GRANT_TOKENS,
        Capability.REVIEW_RENEWALS,
        Capability.RUN_MAINTENANCE,
    }),
}


def has_capability(user: User, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(user.role, frozenset())


def ensure_capability(user: User, capability: Capability) -> None:
    """Raise Forbidden unless the user's role grants ``capability``."""
    if not user.is_active or not has_capability(user, capability):
        raise Forbidden(details={"capability": capability.value, "role": user.role.value})

