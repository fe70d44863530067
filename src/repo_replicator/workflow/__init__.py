"""Explicit per-task workflow concepts.

This package holds the provisioning task state machine and the terminal outcome types the
orchestrator aggregates.
"""

__all__: list[str] = []
