"""
Urgency Classifier
Determines whether a chat is waiting on the support team and how urgently
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional

from chat_analytics.models.chat import Chat, Message
from chat_analytics.services.activity import ActivityResolver
from chat_analytics.services.policy import ResponsePolicy, TypeThresholds, get_policy

HOUR = timedelta(hours=1)

# Waits are capped like resolved activity ages
MAX_WAIT_HOURS = ActivityResolver.MAX_AGE / HOUR

_JID_SUFFIX = re.compile(r"@(c\.us|g\.us|s\.whatsapp\.net)$", re.IGNORECASE)
_NON_DIGIT = re.compile(r"\D")


class UrgencyLevel(str, Enum):
    """Urgency tiers, lowest first"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _URGENCY_ORDER.index(self)


_URGENCY_ORDER = [UrgencyLevel.LOW, UrgencyLevel.MEDIUM, UrgencyLevel.HIGH, UrgencyLevel.CRITICAL]


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start) / HOUR


def normalize_phone(phone: Optional[str]) -> str:
    """Strip WhatsApp JID suffixes and formatting, keeping digits only"""
    if not phone:
        return ""
    return _NON_DIGIT.sub("", _JID_SUFFIX.sub("", phone.strip()))


@dataclass
class UrgencyAssessment:
    """Outcome of urgency classification for one chat"""
    urgency_level: UrgencyLevel
    requires_response: bool
    age_in_hours: float
    hours_without_response: float
    last_message_from_customer: bool
    reason: str


class SenderAttribution:
    """
    Decides whether a message was sent by the support side

    Signals in priority order:
    1. The explicit "sent by us" flag (message.from_me and id.from_me),
       when present and not contradictory
    2. Sender phone equal to the chat's org phone
    3. Sender phone in the known support phone set
    Messages matching none of these are treated as customer-sent.
    """

    def __init__(self, support_phones: Iterable[str] = ()):
        self.support_phones = {normalize_phone(p) for p in support_phones if normalize_phone(p)}

    def is_from_support(self, message: Message, org_phone: Optional[str] = None) -> bool:
        explicit = self._explicit_flag(message)
        if explicit is not None:
            return explicit

        sender = normalize_phone(message.sender_phone)
        if not sender:
            return False

        if sender == normalize_phone(org_phone or message.org_phone):
            return True

        return sender in self.support_phones

    @staticmethod
    def _explicit_flag(message: Message) -> Optional[bool]:
        flags = {message.from_me}
        if message.id is not None:
            flags.add(message.id.from_me)
        flags.discard(None)
        if len(flags) == 1:
            return flags.pop()
        # Missing on both, or the two flags disagree
        return None


class UrgencyClassifier:
    """
    Classifies how urgently an open chat needs a support reply

    A chat requires a response only when the latest message came from the
    customer and has waited past the chat type's overdue threshold. When
    support sent the latest message the turn is with the customer and the
    chat is never flagged. Chats without any message are flagged once their
    age passes the no-message threshold.
    """

    def __init__(
        self,
        policy: Optional[ResponsePolicy] = None,
        attribution: Optional[SenderAttribution] = None,
    ):
        self.policy = policy or get_policy()
        self.attribution = attribution or SenderAttribution()

    def classify(self, chat: Chat, last_activity: datetime, now: datetime) -> UrgencyAssessment:
        age_in_hours = round(hours_between(last_activity, now), 2)
        thresholds = self.policy.for_type(chat.chat_type)
        message = chat.latest_message

        if message is None:
            return self._classify_without_message(age_in_hours, thresholds)

        if self.attribution.is_from_support(message, chat.org_phone):
            return UrgencyAssessment(
                urgency_level=UrgencyLevel.LOW,
                requires_response=False,
                age_in_hours=age_in_hours,
                hours_without_response=0.0,
                last_message_from_customer=False,
                reason="Support sent the last message",
            )

        waiting_since = message.timestamp or last_activity
        wait_hours = min(max(hours_between(waiting_since, now), 0.0), MAX_WAIT_HOURS)

        level = self.tier(wait_hours, thresholds)
        requires_response = wait_hours > thresholds.overdue_hours
        if requires_response:
            if level.rank < UrgencyLevel.MEDIUM.rank:
                level = UrgencyLevel.MEDIUM
            reason = (
                f"Customer waiting {wait_hours:.1f}h "
                f"(threshold {thresholds.overdue_hours:g}h for {chat.chat_type.value} chats)"
            )
        else:
            reason = f"Customer message within {thresholds.overdue_hours:g}h threshold"

        return UrgencyAssessment(
            urgency_level=level,
            requires_response=requires_response,
            age_in_hours=age_in_hours,
            hours_without_response=round(wait_hours, 2),
            last_message_from_customer=True,
            reason=reason,
        )

    @staticmethod
    def tier(wait_hours: float, thresholds: TypeThresholds) -> UrgencyLevel:
        """Map a wait time onto an urgency tier"""
        if wait_hours > thresholds.critical_hours:
            return UrgencyLevel.CRITICAL
        if wait_hours > thresholds.high_hours:
            return UrgencyLevel.HIGH
        if wait_hours > thresholds.medium_hours:
            return UrgencyLevel.MEDIUM
        return UrgencyLevel.LOW

    @staticmethod
    def _classify_without_message(age_in_hours: float, thresholds: TypeThresholds) -> UrgencyAssessment:
        if age_in_hours > thresholds.no_message_hours:
            return UrgencyAssessment(
                urgency_level=UrgencyLevel.MEDIUM,
                requires_response=True,
                age_in_hours=age_in_hours,
                hours_without_response=age_in_hours,
                last_message_from_customer=False,
                reason=f"No messages for {age_in_hours:.1f}h since chat activity",
            )
        return UrgencyAssessment(
            urgency_level=UrgencyLevel.LOW,
            requires_response=False,
            age_in_hours=age_in_hours,
            hours_without_response=age_in_hours,
            last_message_from_customer=False,
            reason="New chat without messages",
        )
