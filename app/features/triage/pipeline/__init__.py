"""
Pipeline components for triage: scoring strategies and the admission gate.
"""

__all__ = ["admission", "scoring"]
