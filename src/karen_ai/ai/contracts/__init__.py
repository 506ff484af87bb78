"""Contratos Pydantic para as decisões do gateway de IA."""

from karen_ai.ai.contracts.decisions import (
    ChannelRecommendation,
    ExtractionOutcome,
    InitialAnalysis,
    SufficiencyVerdict,
)

__all__ = [
    "ChannelRecommendation",
    "ExtractionOutcome",
    "InitialAnalysis",
    "SufficiencyVerdict",
]
