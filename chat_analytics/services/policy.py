"""
Response policies
Named, swappable threshold sets used by the urgency classifier
"""
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from chat_analytics.exceptions import UnknownPolicyError
from chat_analytics.models.chat import ChatType


@dataclass(frozen=True)
class TypeThresholds:
    """Thresholds in hours for one chat type"""
    overdue_hours: float
    no_message_hours: float
    medium_hours: float
    high_hours: float
    critical_hours: float = 168.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "overdue_hours": self.overdue_hours,
            "no_message_hours": self.no_message_hours,
            "medium_hours": self.medium_hours,
            "high_hours": self.high_hours,
            "critical_hours": self.critical_hours,
        }


@dataclass(frozen=True)
class ResponsePolicy:
    """
    Per chat type thresholds for overdue responses and urgency tiers

    activity_window_days optionally restricts open chats to those with
    activity inside the window; None disables the window.
    """
    name: str
    thresholds: Dict[ChatType, TypeThresholds] = field(default_factory=dict)
    activity_window_days: Optional[int] = None

    def for_type(self, chat_type: ChatType) -> TypeThresholds:
        return self.thresholds.get(chat_type, self.thresholds[ChatType.USER])

    def with_activity_window(self, days: Optional[int]) -> "ResponsePolicy":
        return replace(self, activity_window_days=days)

    def describe(self) -> Dict[str, Dict[str, float]]:
        """Thresholds keyed by chat type name, for diagnostics"""
        return {chat_type.value: t.to_dict() for chat_type, t in self.thresholds.items()}


def _direct_tiers(overdue: float, no_message: float) -> TypeThresholds:
    # user and business chats
    return TypeThresholds(overdue, no_message, medium_hours=48, high_hours=72)


def _group_tiers(overdue: float, no_message: float) -> TypeThresholds:
    return TypeThresholds(overdue, no_message, medium_hours=72, high_hours=120)


POLICIES: Dict[str, ResponsePolicy] = {
    "strict": ResponsePolicy(
        name="strict",
        thresholds={
            ChatType.BUSINESS: _direct_tiers(12, 24),
            ChatType.USER: _direct_tiers(24, 48),
            ChatType.GROUP: _group_tiers(24, 48),
        },
    ),
    "standard": ResponsePolicy(
        name="standard",
        thresholds={
            ChatType.BUSINESS: _direct_tiers(24, 48),
            ChatType.USER: _direct_tiers(48, 72),
            ChatType.GROUP: _group_tiers(48, 72),
        },
    ),
    "relaxed": ResponsePolicy(
        name="relaxed",
        thresholds={
            ChatType.BUSINESS: _direct_tiers(24, 48),
            ChatType.USER: _direct_tiers(48, 72),
            ChatType.GROUP: _group_tiers(72, 72),
        },
    ),
}

DEFAULT_POLICY = "relaxed"


def get_policy(name: str = DEFAULT_POLICY) -> ResponsePolicy:
    """Look up a named policy preset"""
    try:
        return POLICIES[name]
    except KeyError:
        raise UnknownPolicyError(
            f"Unknown response policy '{name}'. Available: {', '.join(sorted(POLICIES))}"
        ) from None
