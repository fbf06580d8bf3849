"""
HTTP tests for the FastAPI application: identity headers, error mapping
and the intake, alert, correlation, playbook and assignment routes.
"""

import pytest
from fastapi.testclient import TestClient

from alert_triage.assignment.domain.entities import Analyst
from alert_triage.config import HELPDESK_CATEGORIES, Role
from alert_triage.container import ServiceContainer
from alert_triage.main import create_app

from factories import GUIDANCE, OTHER_TENANT, TENANT

ANALYSTS = [
    Analyst(id="sec-alice", tenant_id=TENANT, role=Role.SECURITY_ANALYST),
    Analyst(id="sec-bob", tenant_id=TENANT, role=Role.SECURITY_ANALYST),
    Analyst(id="help-carol", tenant_id=TENANT, role=Role.IT_HELPDESK_ANALYST),
    Analyst(id="sec-gina", tenant_id=OTHER_TENANT, role=Role.SECURITY_ANALYST),
]

FILE_HASH = "44d88612fea8a8f36de82e1278abb02f"


def headers(role: str = Role.SECURITY_ANALYST, user_id: str = "sec-alice", tenant_id: str = TENANT) -> dict:
    return {"X-User-Id": user_id, "X-User-Role": role, "X-Tenant-Id": tenant_id}


ADMIN = headers(Role.TENANT_ADMIN, "admin-dana")
ROOT = headers(Role.SUPER_ADMIN, "root")
HELPDESK = headers(Role.IT_HELPDESK_ANALYST, "help-carol")


@pytest.fixture
def client(memory_settings):
    container = ServiceContainer(memory_settings, analysts=ANALYSTS, watch_rules=False)
    app = create_app(settings=memory_settings, container=container)
    with TestClient(app) as test_client:
        yield test_client


def ingest_edr(client, alert_id="edr-1", device="C0EAE4B2C3F1", **payload) -> dict:
    body = {"payload": {"alert_id": alert_id, "title": "Trojan.GenericKD quarantined", "device_serial": device, **payload}}
    response = client.post("/intake/edr", json=body, headers=headers())
    assert response.status_code == 200, response.text
    return response.json()


def ingest_email(client, subject="VPN Down - Critical", body="Serial: C0EAE4B2C3F1") -> dict:
    response = client.post(
        "/intake/email",
        json={"payload": {"subject": subject, "body": body}},
        headers=headers(),
    )
    assert response.status_code == 200, response.text
    return response.json()


def playbook_body(**overrides) -> dict:
    body = {
        "name": "Malware triage",
        "version": "1.0",
        "purpose": "Contain and eradicate commodity malware on endpoints.",
        "status": "active",
        "quick_response_guide": ["Isolate the host"],
        "decision_guidance": GUIDANCE,
        "classifications": [{"classification": "malware", "is_primary": True}],
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Service endpoints and identity
# ---------------------------------------------------------------------------

class TestServiceEndpoints:
    def test_health_reports_checks(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["storage"] == "memory"
        assert data["checks"]["triage_rules"] == "loaded (19 rules)"
        assert data["checks"]["connectors"] == "stopped"

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "req-42"})
        assert response.headers["X-Correlation-ID"] == "req-42"


class TestIdentity:
    def test_missing_headers_rejected(self, client):
        assert client.get("/alerts").status_code == 401

    def test_unknown_role_rejected(self, client):
        assert client.get("/alerts", headers=headers(role="auditor")).status_code == 401


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------

class TestIntakeWebhook:
    def test_email_is_triaged_and_assigned(self, client):
        data = ingest_email(client)
        assert data["created"] is True
        assert data["alert_type"] == "vpn_down"
        assert data["severity"] == "critical"
        assert data["assigned_to"] == "help-carol"
        assert data["status"] == "assigned"

    def test_repeat_delivery_merges(self, client):
        first = ingest_email(client)
        second = ingest_email(client)
        assert second["alert_id"] == first["alert_id"]
        assert second["merged"] is True
        assert second["seen_count"] == 2

    def test_unknown_source_system(self, client):
        response = client.post("/intake/syslog", json={"payload": {}}, headers=headers())
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_invalid_payload(self, client):
        response = client.post("/intake/email", json={"payload": {"body": "no subject"}}, headers=headers())
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_user_role_cannot_submit(self, client):
        response = client.post(
            "/intake/email",
            json={"payload": {"subject": "VPN Down"}},
            headers=headers(Role.USER, "u-1"),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "PERMISSION_DENIED"

    def test_other_tenant_requires_super_admin(self, client):
        body = {"payload": {"subject": "VPN Down"}, "tenant_id": OTHER_TENANT}
        assert client.post("/intake/email", json=body, headers=ADMIN).status_code == 403

        response = client.post("/intake/email", json=body, headers=ROOT)
        assert response.status_code == 200
        alert_id = response.json()["alert_id"]
        alert = client.get(f"/alerts/{alert_id}", headers=headers(Role.TENANT_ADMIN, "admin-gus", OTHER_TENANT))
        assert alert.json()["tenant_id"] == OTHER_TENANT


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class TestAlertRoutes:
    def test_get_alert_with_playbooks(self, client):
        playbook = client.post("/playbooks", json=playbook_body(), headers=ROOT).json()
        alert_id = ingest_edr(client)["alert_id"]

        response = client.get(f"/alerts/{alert_id}", headers=headers())
        assert response.status_code == 200
        data = response.json()
        assert data["classification"] == "malware"
        assert data["playbooks"] == [
            {"id": playbook["id"], "name": "Malware triage", "version": "1.0", "is_primary": True}
        ]
        assert data["decision_guidance"] == GUIDANCE

    def test_missing_alert_is_404(self, client):
        response = client.get("/alerts/does-not-exist", headers=headers())
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_other_tenant_alert_is_404(self, client):
        alert_id = ingest_edr(client)["alert_id"]
        response = client.get(f"/alerts/{alert_id}", headers=headers(user_id="sec-gina", tenant_id=OTHER_TENANT))
        assert response.status_code == 404

    def test_helpdesk_cannot_open_security_alert(self, client):
        alert_id = ingest_edr(client)["alert_id"]
        assert client.get(f"/alerts/{alert_id}", headers=HELPDESK).status_code == 403

    def test_list_filtered_by_role(self, client):
        ingest_edr(client)
        ingest_email(client)

        security = client.get("/alerts", headers=headers()).json()
        helpdesk = client.get("/alerts", headers=HELPDESK).json()
        assert [a["category"] for a in security["alerts"]] == ["malware"]
        assert [a["category"] for a in helpdesk["alerts"]] == ["network"]
        assert len(client.get("/alerts", headers=ADMIN).json()["alerts"]) == 2

    def test_list_rejects_bad_filters(self, client):
        assert client.get("/alerts", params={"status": "bogus"}, headers=headers()).status_code == 422
        assert client.get("/alerts", params={"category": "malware"}, headers=HELPDESK).status_code == 403
        assert client.get("/alerts", params={"tenant_id": OTHER_TENANT}, headers=ADMIN).status_code == 403

    def test_investigate_then_resolve(self, client):
        alert_id = ingest_edr(client)["alert_id"]

        response = client.post(f"/alerts/{alert_id}/investigate", headers=headers())
        assert response.json()["status"] == "investigating"

        short = client.post(
            f"/alerts/{alert_id}/resolve",
            json={"outcome": "benign", "notes": "ok"},
            headers=headers(),
        )
        assert short.status_code == 422
        assert short.json()["code"] == "VALIDATION_ERROR"

        resolved = client.post(
            f"/alerts/{alert_id}/resolve",
            json={"outcome": "benign", "notes": "Approved internal admin tool"},
            headers=headers(),
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved_benign"
        assert resolved.json()["resolved_by"] == "sec-alice"

        again = client.post(
            f"/alerts/{alert_id}/resolve",
            json={"outcome": "false_positive", "notes": "Signature misfired on build tool"},
            headers=headers(),
        )
        assert again.status_code == 409

        trail = client.get(f"/alerts/{alert_id}/audit", headers=headers()).json()
        assert [e["action"] for e in trail] == ["assigned", "investigation_started", "resolved"]

    def test_other_analyst_cannot_act(self, client):
        alert_id = ingest_edr(client)["alert_id"]
        response = client.post(f"/alerts/{alert_id}/investigate", headers=headers(user_id="sec-bob"))
        assert response.status_code == 403

    def test_escalate_once(self, client):
        alert_id = ingest_edr(client)["alert_id"]

        response = client.post(
            f"/alerts/{alert_id}/escalate",
            json={"incident_title": "Trojan outbreak on finance laptop"},
            headers=headers(),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["alert_id"] == alert_id
        assert data["priority"] == "high"
        assert data["assignee"] == "sec-alice"

        assert client.post(f"/alerts/{alert_id}/escalate", headers=headers()).status_code == 409
        assert client.get(f"/alerts/{alert_id}", headers=headers()).json()["incident_id"] == data["incident_id"]

    def test_admin_reassigns(self, client):
        alert_id = ingest_edr(client)["alert_id"]

        response = client.post(f"/alerts/{alert_id}/assign", json={"analyst_id": "sec-bob"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["assigned_to"] == "sec-bob"

        mismatch = client.post(f"/alerts/{alert_id}/assign", json={"analyst_id": "help-carol"}, headers=ADMIN)
        assert mismatch.status_code == 422
        assert client.post(
            f"/alerts/{alert_id}/assign", json={"analyst_id": "sec-bob"}, headers=headers()
        ).status_code == 403


class TestCorrelationRoutes:
    def test_shared_hash_cluster(self, client):
        first = ingest_edr(client, "edr-1", "C0EAE4B2C3F1", file_hash=FILE_HASH)
        second = ingest_edr(client, "edr-2", "PF3XK2LM9Q1Z", file_hash=FILE_HASH)

        clusters = client.get("/correlations", headers=headers()).json()
        assert len(clusters) == 1
        assert set(clusters[0]["alert_ids"]) == {first["alert_id"], second["alert_id"]}
        assert f"hash:{FILE_HASH}" in clusters[0]["shared_indicators"]

        high_bar = client.get("/correlations", params={"min_confidence": 1.0}, headers=headers()).json()
        assert all(c["confidence"] >= 1.0 for c in high_bar)

    def test_helpdesk_cannot_query(self, client):
        assert client.get("/correlations", headers=HELPDESK).status_code == 403

    def test_inverted_window(self, client):
        response = client.get(
            "/correlations",
            params={"start": "2025-03-05T00:00:00Z", "end": "2025-03-04T00:00:00Z"},
            headers=headers(),
        )
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Playbooks
# ---------------------------------------------------------------------------

class TestPlaybookRoutes:
    def test_create_requires_super_admin(self, client):
        response = client.post("/playbooks", json=playbook_body(), headers=ADMIN)
        assert response.status_code == 403

    def test_create_and_read(self, client):
        created = client.post("/playbooks", json=playbook_body(), headers=ROOT)
        assert created.status_code == 201
        playbook = created.json()
        assert playbook["status"] == "active"
        assert playbook["created_by"] == "root"

        assert client.get(f"/playbooks/{playbook['id']}", headers=headers()).json()["name"] == "Malware triage"
        assert [p["id"] for p in client.get("/playbooks", headers=headers()).json()] == [playbook["id"]]

    def test_duplicate_version_conflicts(self, client):
        client.post("/playbooks", json=playbook_body(status="draft"), headers=ROOT)
        response = client.post("/playbooks", json=playbook_body(status="draft"), headers=ROOT)
        assert response.status_code == 409

    def test_guidance_and_summary(self, client):
        primary = client.post("/playbooks", json=playbook_body(), headers=ROOT).json()
        secondary = client.post("/playbooks", json=playbook_body(
            name="Endpoint isolation",
            classifications=[{"classification": "malware", "is_primary": False}],
        ), headers=ROOT).json()

        guidance = client.get("/playbooks/guidance/malware", headers=headers()).json()
        assert guidance["primary"]["id"] == primary["id"]
        assert [p["id"] for p in guidance["secondary"]] == [secondary["id"]]
        assert guidance["decision_guidance"] == GUIDANCE

        summary = client.get("/playbooks/classifications/summary", headers=headers()).json()
        assert summary["malware"] == {"primary_playbook_id": primary["id"], "playbook_count": 2}

        empty = client.get("/playbooks/guidance/phishing", headers=headers()).json()
        assert empty["primary"] is None
        assert empty["secondary"] == []

    def test_lifecycle_and_versions(self, client):
        v1 = client.post("/playbooks", json=playbook_body(), headers=ROOT).json()
        v2 = client.post("/playbooks", json=playbook_body(version="2.0", status="draft"), headers=ROOT).json()

        assert client.post(f"/playbooks/{v2['id']}/activate", headers=ROOT).status_code == 409
        assert client.post(f"/playbooks/{v1['id']}/retire", headers=ROOT).json()["status"] == "retired"
        assert client.post(f"/playbooks/{v2['id']}/activate", headers=ROOT).json()["status"] == "active"

        versions = client.get("/playbooks/versions/Malware triage", headers=headers()).json()
        assert {p["version"] for p in versions} == {"1.0", "2.0"}

    def test_update_and_delete(self, client):
        playbook = client.post("/playbooks", json=playbook_body(status="draft"), headers=ROOT).json()

        updated = client.put(
            f"/playbooks/{playbook['id']}",
            json={"purpose": "Updated purpose", "containment_checks": ["Host isolated"]},
            headers=ROOT,
        )
        assert updated.status_code == 200
        assert updated.json()["purpose"] == "Updated purpose"
        assert updated.json()["containment_checks"] == ["Host isolated"]

        assert client.delete(f"/playbooks/{playbook['id']}", headers=ROOT).status_code == 204
        assert client.get(f"/playbooks/{playbook['id']}", headers=headers()).status_code == 404


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

class TestAssignmentRoutes:
    def test_categories_for_role(self, client):
        data = client.get("/assignment/categories", headers=HELPDESK).json()
        assert data == {"role": Role.IT_HELPDESK_ANALYST, "categories": HELPDESK_CATEGORIES}

    def test_category_check(self, client):
        allowed = client.post("/assignment/categories/check", json={"categories": ["network"]}, headers=HELPDESK)
        assert allowed.status_code == 200

        forbidden = client.post("/assignment/categories/check", json={"categories": ["malware"]}, headers=HELPDESK)
        assert forbidden.status_code == 403

        unknown = client.post("/assignment/categories/check", json={"categories": ["bogus"]}, headers=HELPDESK)
        assert unknown.status_code == 422

    def test_register_analyst(self, client):
        body = {"id": "sec-erin", "tenant_id": TENANT, "role": Role.SECURITY_ANALYST}
        response = client.put("/assignment/analysts", json=body, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["active"] is True

        assert client.put("/assignment/analysts", json=body, headers=headers()).status_code == 403
        bad_role = client.put("/assignment/analysts", json={**body, "role": "auditor"}, headers=ADMIN)
        assert bad_role.status_code == 422

    def test_registered_analyst_takes_new_work(self, client):
        ingest_edr(client, "edr-1", "C0EAE4B2C3F1")
        ingest_edr(client, "edr-2", "PF3XK2LM9Q1Z")
        client.put(
            "/assignment/analysts",
            json={"id": "sec-erin", "tenant_id": TENANT, "role": Role.SECURITY_ANALYST},
            headers=ADMIN,
        )
        assert ingest_edr(client, "edr-3", "LAPTOP-042")["assigned_to"] == "sec-erin"
