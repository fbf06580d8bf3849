"""
Alerts Module
=============

Bounded Context for the lifecycle of normalized alerts.

Responsibilities:
- Deduplicate repeat deliveries by fingerprint within a time window
- Detect alert storms per device and emit a synthetic storm alert
- Correlate alerts across devices by shared indicators
- Drive the alert state machine (assign, investigate, resolve, escalate)
- Keep the audit trail of every transition
"""
