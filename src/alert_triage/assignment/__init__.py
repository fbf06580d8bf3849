"""
Assignment Module
=================

Bounded Context for routing work to people.

Responsibilities:
- Role to category visibility (RBAC)
- Classification to category mapping
- Analyst directory
- Least-loaded assignment with deterministic tie-breaking
"""
