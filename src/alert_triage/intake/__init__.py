"""
Intake Module
=============

Bounded Context for getting alerts from upstream security sources into a
normalized, classified shape.

Responsibilities:
- Source payload models (email, EDR, firewall, SIEM)
- Rule-based classification and severity mapping
- Device identifier and timestamp extraction
- Hot-reloadable classification rules (YAML + watchdog)
- Polling connectors and the webhook endpoint
"""
