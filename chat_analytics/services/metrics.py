"""
Metrics Aggregator
Folds open chats into summary statistics and sorted detail lists
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from chat_analytics.models.chat import Chat, ChatType
from chat_analytics.services.activity import ActivityResolver, ResolvedActivity
from chat_analytics.services.openness import OpennessClassifier
from chat_analytics.services.urgency import UrgencyAssessment, UrgencyClassifier, UrgencyLevel

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


@dataclass
class ClassifiedChat:
    """A chat together with its openness, resolved activity and urgency"""
    chat: Chat
    activity: ResolvedActivity
    assessment: UrgencyAssessment
    is_open: bool

    @property
    def age_in_hours(self) -> float:
        return self.assessment.age_in_hours

    @property
    def urgency_level(self) -> UrgencyLevel:
        return self.assessment.urgency_level

    @property
    def requires_response(self) -> bool:
        return self.assessment.requires_response

    @property
    def last_activity_method(self) -> str:
        return self.activity.method.value


@dataclass
class OpenChatDetail:
    chat_id: str
    chat_name: Optional[str]
    age_in_hours: float
    chat_type: ChatType
    agent_phone: Optional[str]
    last_activity: str
    age_calculation_method: str
    is_valid_activity: bool
    member_count: int
    is_assigned: bool
    org_phone: Optional[str]
    last_message_from_customer: bool
    urgency_level: UrgencyLevel
    requires_response: bool


@dataclass
class DelayedChatDetail:
    chat_id: str
    chat_name: Optional[str]
    chat_type: ChatType
    last_message_time: Optional[str]
    hours_without_response: float
    agent_phone: Optional[str]
    last_message_from_customer: bool
    member_count: int
    org_phone: Optional[str]
    urgency_level: UrgencyLevel
    reason: str
    message_preview: Optional[str] = None


@dataclass
class MetricsDebug:
    """Diagnostics about one aggregation run"""
    total_chats_found: int
    valid_activity_chats: int
    skipped_records: int
    chat_type_distribution: Dict[str, int]
    policy_name: str
    delayed_response_thresholds: Dict[str, Dict[str, float]]
    filter_applied: Optional[str] = None


@dataclass
class ChatMetrics:
    total_open_chats: int
    average_age_in_hours: float
    max_age_in_hours: float
    chats_with_delayed_response: int
    open_chat_details: List[OpenChatDetail] = field(default_factory=list)
    delayed_response_details: List[DelayedChatDetail] = field(default_factory=list)
    debug: Optional[MetricsDebug] = None


def truncate_preview(body: Optional[str], length: int = PREVIEW_LENGTH) -> Optional[str]:
    """Shorten a message body for display"""
    if not body:
        return None
    if len(body) <= length:
        return body
    return body[:length] + "..."


class MetricsAggregator:
    """
    Aggregates open chats into ChatMetrics

    Usually fed chats that already passed the openness filter; any closed
    chat that slips through is left out. Average and maximum age only use
    chats whose last activity came from a real activity signal; every
    retained chat still counts towards the total and appears in the open
    chat details.
    """

    def __init__(
        self,
        classifier: Optional[UrgencyClassifier] = None,
        resolver: Optional[ActivityResolver] = None,
        openness: Optional[OpennessClassifier] = None,
    ):
        self.classifier = classifier or UrgencyClassifier()
        self.resolver = resolver or ActivityResolver()
        self.openness = openness or OpennessClassifier()

    def classify(self, chat: Chat, now: datetime) -> ClassifiedChat:
        """Resolve openness, activity and urgency for a single chat"""
        activity = self.resolver.resolve(chat, now)
        assessment = self.classifier.classify(chat, activity.timestamp, now)
        return ClassifiedChat(
            chat=chat,
            activity=activity,
            assessment=assessment,
            is_open=self.openness.is_open(chat, now),
        )

    def aggregate(
        self,
        chats: List[Chat],
        now: datetime,
        filter_applied: Optional[str] = None,
    ) -> ChatMetrics:
        total_age = timedelta(0)
        max_age = timedelta(0)
        valid_age_count = 0
        skipped = 0
        closed = 0

        open_details: List[OpenChatDetail] = []
        delayed_details: List[DelayedChatDetail] = []
        type_counts: Counter = Counter()

        for chat in chats:
            if not chat.chat_id:
                skipped += 1
                logger.debug("Skipping chat record without chat_id: %r", chat.chat_name)
                continue

            classified = self.classify(chat, now)
            if not classified.is_open:
                closed += 1
                continue

            type_counts[chat.chat_type.value] += 1

            if classified.activity.is_valid:
                age = classified.activity.age(now)
                total_age += age
                valid_age_count += 1
                if age > max_age:
                    max_age = age

            open_details.append(self._open_detail(classified))
            if classified.requires_response:
                delayed_details.append(self._delayed_detail(classified))

        hour = timedelta(hours=1)
        average_age = round(total_age / valid_age_count / hour, 2) if valid_age_count else 0
        max_age_hours = round(max_age / hour, 2)

        open_details.sort(key=lambda d: d.age_in_hours, reverse=True)
        delayed_details.sort(key=lambda d: d.hours_without_response, reverse=True)

        if skipped:
            logger.warning("Skipped %d chat records without chat_id", skipped)
        if closed:
            logger.debug("Left out %d closed chats", closed)

        policy = self.classifier.policy
        debug = MetricsDebug(
            total_chats_found=len(chats),
            valid_activity_chats=valid_age_count,
            skipped_records=skipped,
            chat_type_distribution={t.value: type_counts.get(t.value, 0) for t in ChatType},
            policy_name=policy.name,
            delayed_response_thresholds=policy.describe(),
            filter_applied=filter_applied,
        )

        metrics = ChatMetrics(
            total_open_chats=len(open_details),
            average_age_in_hours=average_age,
            max_age_in_hours=max_age_hours,
            chats_with_delayed_response=len(delayed_details),
            open_chat_details=open_details,
            delayed_response_details=delayed_details,
            debug=debug,
        )

        logger.info(
            "Processed metrics: open=%d avg_age=%.2fh max_age=%.2fh delayed=%d valid=%d",
            metrics.total_open_chats,
            metrics.average_age_in_hours,
            metrics.max_age_in_hours,
            metrics.chats_with_delayed_response,
            valid_age_count,
        )
        return metrics

    @staticmethod
    def _open_detail(classified: ClassifiedChat) -> OpenChatDetail:
        chat = classified.chat
        return OpenChatDetail(
            chat_id=chat.chat_id,
            chat_name=chat.chat_name,
            age_in_hours=classified.age_in_hours,
            chat_type=chat.chat_type,
            agent_phone=chat.assigned_to,
            last_activity=classified.activity.timestamp.isoformat(),
            age_calculation_method=classified.last_activity_method,
            is_valid_activity=classified.activity.is_valid,
            member_count=chat.member_count or 0,
            is_assigned=bool(chat.assigned_to),
            org_phone=chat.org_phone,
            last_message_from_customer=classified.assessment.last_message_from_customer,
            urgency_level=classified.urgency_level,
            requires_response=classified.requires_response,
        )

    @staticmethod
    def _delayed_detail(classified: ClassifiedChat) -> DelayedChatDetail:
        chat = classified.chat
        message = chat.latest_message
        last_message_time = message.timestamp if message and message.timestamp else chat.updated_at
        return DelayedChatDetail(
            chat_id=chat.chat_id,
            chat_name=chat.chat_name,
            chat_type=chat.chat_type,
            last_message_time=last_message_time.isoformat() if last_message_time else None,
            hours_without_response=classified.assessment.hours_without_response,
            agent_phone=chat.assigned_to,
            last_message_from_customer=classified.assessment.last_message_from_customer,
            member_count=chat.member_count or 0,
            org_phone=chat.org_phone,
            urgency_level=classified.urgency_level,
            reason=classified.assessment.reason,
            message_preview=truncate_preview(message.body if message else None),
        )
