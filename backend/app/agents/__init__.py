from app.agents.base import AgentResult, BaseAgent
from app.agents.ensemble_reviewer import EnsembleMergeAgent, EnsembleReviewer
from app.agents.gap_detector import GapDetectionAgent
from app.agents.quality_reviewer import QualityReviewer
from app.agents.text_extractor import TextExtractionAgent

__all__ = [
    "AgentResult",
    "BaseAgent",
    "EnsembleMergeAgent",
    "EnsembleReviewer",
    "GapDetectionAgent",
    "QualityReviewer",
    "TextExtractionAgent",
]
