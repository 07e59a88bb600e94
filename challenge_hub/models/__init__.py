from .client import Client
from .challenge import Challenge, Sprint, ChallengeLabel
from .assignment import Assignment, AssignmentUsage
from .analytics import AnalyticsEvent, EventType

__all__ = [
    "Client",
    "Challenge",
    "Sprint",
    "ChallengeLabel",
    "Assignment",
    "AssignmentUsage",
    "AnalyticsEvent",
    "EventType",
]
