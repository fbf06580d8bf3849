"""Tests for role-based category visibility."""

import pytest

from alert_triage.assignment.domain.policy import (
    category_for_classification,
    domain_of,
    is_eligible,
    require_categories,
    visible_categories,
)
from alert_triage.config import ALL_CATEGORIES, HELPDESK_CATEGORIES, SECURITY_CATEGORIES, Role
from alert_triage.core import PermissionDeniedException, ValidationException


class TestVisibleCategories:
    def test_security_analyst(self):
        assert visible_categories(Role.SECURITY_ANALYST) == SECURITY_CATEGORIES

    def test_helpdesk_analyst(self):
        assert visible_categories(Role.IT_HELPDESK_ANALYST) == HELPDESK_CATEGORIES

    @pytest.mark.parametrize("role", [Role.SUPER_ADMIN, Role.TENANT_ADMIN])
    def test_admins_see_everything(self, role):
        assert visible_categories(role) == ALL_CATEGORIES

    def test_unknown_role_sees_nothing(self):
        assert visible_categories("auditor") == []


class TestRequireCategories:
    def test_helpdesk_requesting_security(self):
        with pytest.raises(PermissionDeniedException) as exc_info:
            require_categories(Role.IT_HELPDESK_ANALYST, ["hardware", "malware"])
        assert exc_info.value.details["categories"] == ["malware"]

    def test_security_requesting_helpdesk(self):
        with pytest.raises(PermissionDeniedException):
            require_categories(Role.SECURITY_ANALYST, ["network"])

    def test_unknown_category(self):
        with pytest.raises(ValidationException):
            require_categories(Role.SUPER_ADMIN, ["printers"])

    def test_allowed_filter_is_returned(self):
        assert require_categories(Role.SECURITY_ANALYST, ["phishing", "malware"]) == ["phishing", "malware"]


class TestClassificationMapping:
    @pytest.mark.parametrize("classification,category", [
        ("malware", "malware"),
        ("botnet_activity", "malware"),
        ("intrusion_attempt", "intrusion"),
        ("alert_storm", "security_incident"),
        ("connectivity", "network"),
        ("resource_utilization", "hardware"),
        ("license", "software"),
        ("needs_review", "general"),
        ("something_new", "general"),
    ])
    def test_category_for_classification(self, classification, category):
        assert category_for_classification(classification) == category

    def test_domains(self):
        assert domain_of("phishing") == "security"
        assert domain_of("network") == "helpdesk"

    def test_user_role_never_eligible(self):
        assert not is_eligible(Role.USER, "general")
        assert is_eligible(Role.IT_HELPDESK_ANALYST, "general")
        assert not is_eligible(Role.SECURITY_ANALYST, "general")
