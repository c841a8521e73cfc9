"""
Domain Services Package

Architectural Intent:
- Stateless domain logic: lifecycle decisions and message rendering
"""

from vigil.domain.services.lifecycle import LifecycleAction, decide, effective_previous

__all__ = [
    "LifecycleAction",
    "decide",
    "effective_previous",
]
