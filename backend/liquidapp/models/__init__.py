"""Import all models to register them with SQLAlchemy metadata."""
from liquidapp.models.base import Base
from liquidapp.models.claim import Claim
from liquidapp.models.evidence import Evidence
from liquidapp.models.analysis_result import AnalysisResult
from liquidapp.models.client import Client
from liquidapp.models.pre_report import PreReport

__all__ = [
    "Base",
    "Claim",
    "Evidence",
    "AnalysisResult",
    "Client",
    "PreReport",
]
