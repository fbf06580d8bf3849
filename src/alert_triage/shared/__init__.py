"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (intake, alerts,
playbooks, assignment).

DO NOT add business logic from a bounded context to the shared kernel.
"""
