"""
Convocate - Agents
"""

from .twin import TwinAgent, TwinReply
from .scorer import StyleScorer, ScoreResult, SCORE_SCHEMA

__all__ = ["TwinAgent", "TwinReply", "StyleScorer", "ScoreResult", "SCORE_SCHEMA"]
