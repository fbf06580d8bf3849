"""
Playbooks Module
================

Bounded Context for response playbooks: versioned investigation guides
linked to alert classifications, with one active primary per
classification.
"""
