"""
Category Access Policy
======================

Role-based visibility of work item categories and the mapping from alert
classification to category. Pure functions over constant tables.
"""

from typing import Dict, FrozenSet, Iterable, List

from alert_triage.config import (
    ALL_CATEGORIES,
    HELPDESK_CATEGORIES,
    Role,
    SECURITY_CATEGORIES,
    TicketCategory,
)
from alert_triage.core import PermissionDeniedException, ValidationException

SECURITY_DOMAIN = "security"
HELPDESK_DOMAIN = "helpdesk"

ROLE_CATEGORIES: Dict[str, FrozenSet[str]] = {
    Role.SUPER_ADMIN: frozenset(ALL_CATEGORIES),
    Role.TENANT_ADMIN: frozenset(ALL_CATEGORIES),
    Role.SECURITY_ANALYST: frozenset(SECURITY_CATEGORIES),
    Role.IT_HELPDESK_ANALYST: frozenset(HELPDESK_CATEGORIES),
    Role.USER: frozenset(HELPDESK_CATEGORIES),
}

# Roles that can hold assigned work
ASSIGNABLE_ROLES = frozenset({
    Role.SUPER_ADMIN,
    Role.TENANT_ADMIN,
    Role.SECURITY_ANALYST,
    Role.IT_HELPDESK_ANALYST,
})

CLASSIFICATION_CATEGORIES: Dict[str, str] = {
    "malware": TicketCategory.MALWARE,
    "botnet_activity": TicketCategory.MALWARE,
    "phishing": TicketCategory.PHISHING,
    "intrusion_attempt": TicketCategory.INTRUSION,
    "suspicious_activity": TicketCategory.SECURITY_INCIDENT,
    "security_alert": TicketCategory.SECURITY_INCIDENT,
    "network_anomaly": TicketCategory.SECURITY_INCIDENT,
    "alert_storm": TicketCategory.SECURITY_INCIDENT,
    "data_loss": TicketCategory.DATA_BREACH,
    "web_filtering": TicketCategory.POLICY_VIOLATION,
    "access_anomaly": TicketCategory.ACCESS,
    "vulnerability": TicketCategory.VULNERABILITY,
    "compliance": TicketCategory.COMPLIANCE,
    "connectivity": TicketCategory.NETWORK,
    "license": TicketCategory.SOFTWARE,
    "resource_utilization": TicketCategory.HARDWARE,
    "needs_review": TicketCategory.GENERAL,
}


def category_for_classification(classification: str) -> str:
    return CLASSIFICATION_CATEGORIES.get(classification, TicketCategory.GENERAL)


def domain_of(category: str) -> str:
    return SECURITY_DOMAIN if category in SECURITY_CATEGORIES else HELPDESK_DOMAIN


def visible_categories(role: str) -> List[str]:
    """Categories ``role`` may view and be assigned, in canonical order."""
    allowed = ROLE_CATEGORIES.get(role, frozenset())
    return [c for c in ALL_CATEGORIES if c in allowed]


def can_see(role: str, category: str) -> bool:
    return category in ROLE_CATEGORIES.get(role, frozenset())


def is_eligible(role: str, category: str) -> bool:
    """Whether a user with ``role`` may be assigned work in ``category``."""
    return role in ASSIGNABLE_ROLES and can_see(role, category)


def require_categories(role: str, requested: Iterable[str]) -> List[str]:
    """
    Validate a category filter against the caller's role.

    Raises:
        ValidationException: a requested category does not exist
        PermissionDeniedException: a requested category is outside the role's set
    """
    requested = list(requested)
    unknown = [c for c in requested if c not in ALL_CATEGORIES]
    if unknown:
        raise ValidationException(
            f"Unknown categories: {', '.join(sorted(unknown))}",
            {"categories": unknown}
        )
    forbidden = [c for c in requested if not can_see(role, c)]
    if forbidden:
        raise PermissionDeniedException(
            f"Role '{role}' cannot access categories: {', '.join(sorted(forbidden))}",
            {"role": role, "categories": forbidden}
        )
    return requested
