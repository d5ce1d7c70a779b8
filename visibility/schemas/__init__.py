# Pydantic schemas
from visibility.schemas.analysis import BusinessAnalysis, GeneratedPrompt
from visibility.schemas.report import CompetitorCount, PlatformResult, ReportResponse
from visibility.schemas.rescan import CooldownStateResponse, RescanAccepted, RescanRequest
from visibility.schemas.scan import ScanCreateRequest, ScanCreateResponse, ScanStatusResponse

__all__ = [
    "BusinessAnalysis",
    "CompetitorCount",
    "CooldownStateResponse",
    "GeneratedPrompt",
    "PlatformResult",
    "ReportResponse",
    "RescanAccepted",
    "RescanRequest",
    "ScanCreateRequest",
    "ScanCreateResponse",
    "ScanStatusResponse",
]
