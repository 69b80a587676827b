"""
Triage scoring package.

Two strategies share one 0-100 scale: rule-based scoring for items with
structured metadata and model-based scoring for free-text email.
"""

from .report import ScoringReport
from .semantic import SemanticScorer, UrgencyScoringCapability
from .structured import StructuredScorer

__all__ = ["ScoringReport", "SemanticScorer", "StructuredScorer", "UrgencyScoringCapability"]
