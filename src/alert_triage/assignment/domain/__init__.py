"""Analyst entity and the category access policy."""

from alert_triage.assignment.domain.entities import Analyst
from alert_triage.assignment.domain.policy import (
    category_for_classification,
    can_see,
    domain_of,
    is_eligible,
    require_categories,
    visible_categories,
)

__all__ = [
    "Analyst",
    "category_for_classification",
    "can_see",
    "domain_of",
    "is_eligible",
    "require_categories",
    "visible_categories",
]
