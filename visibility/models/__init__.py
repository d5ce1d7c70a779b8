# ORM models
from visibility.models.account import Account
from visibility.models.base import Base
from visibility.models.platform_response import PlatformResponse
from visibility.models.report import Report
from visibility.models.scan_prompt import PromptCategory, ScanPrompt
from visibility.models.scan_run import RunStatus, ScanRun, TriggerType
from visibility.models.score_history import ScoreHistory
from visibility.models.site_analysis import SiteAnalysis
from visibility.models.subscriber_question import SubscriberQuestion
from visibility.models.subscription import Subscription
from visibility.models.tracked_competitor import TrackedCompetitor

__all__ = [
    "Account",
    "Base",
    "PlatformResponse",
    "PromptCategory",
    "Report",
    "RunStatus",
    "ScanPrompt",
    "ScanRun",
    "ScoreHistory",
    "SiteAnalysis",
    "SubscriberQuestion",
    "Subscription",
    "TrackedCompetitor",
    "TriggerType",
]
