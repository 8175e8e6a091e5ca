"""Services package initialization"""
from chat_analytics.services.activity import ActivityMethod, ActivityResolver, ResolvedActivity
from chat_analytics.services.openness import OpennessClassifier
from chat_analytics.services.urgency import SenderAttribution, UrgencyAssessment, UrgencyClassifier, UrgencyLevel
from chat_analytics.services.metrics import ChatMetrics, ClassifiedChat, MetricsAggregator
from chat_analytics.services.analytics import ChatAnalyticsService, merge_chats
from chat_analytics.services.periskope_client import PeriskopeClient
from chat_analytics.services.policy import ResponsePolicy, TypeThresholds, get_policy

__all__ = [
    "ActivityMethod",
    "ActivityResolver",
    "ResolvedActivity",
    "OpennessClassifier",
    "SenderAttribution",
    "UrgencyAssessment",
    "UrgencyClassifier",
    "UrgencyLevel",
    "ChatMetrics",
    "ClassifiedChat",
    "MetricsAggregator",
    "ChatAnalyticsService",
    "merge_chats",
    "PeriskopeClient",
    "ResponsePolicy",
    "TypeThresholds",
    "get_policy",
]
