"""
Alert Triage Service
====================

Security alert intake, normalization, deduplication, playbook guidance,
workload-balanced assignment and escalation for a multi-tenant SOC.
"""

__version__ = "1.0.0"
