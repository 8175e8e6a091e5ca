"""
Chat analytics pipeline
Deduplicates fetched chats, filters open ones and aggregates metrics
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from chat_analytics.models.chat import Chat, ChatType
from chat_analytics.services.metrics import ChatMetrics, MetricsAggregator
from chat_analytics.services.openness import OpennessClassifier
from chat_analytics.services.policy import ResponsePolicy
from chat_analytics.services.urgency import SenderAttribution, UrgencyClassifier, normalize_phone

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _freshness(chat: Chat) -> datetime:
    return chat.updated_at or chat.created_at or _EPOCH


def merge_chats(batches: Iterable[Iterable[Chat]]) -> List[Chat]:
    """
    Merge paginated batches into one list keyed by chat_id

    Duplicates keep the record updated most recently (updated_at, falling
    back to created_at). Records without a chat_id are passed through
    untouched so downstream aggregation can count them.
    """
    by_id: Dict[str, Chat] = {}
    unkeyed: List[Chat] = []
    duplicates = 0

    for batch in batches:
        for chat in batch:
            if not chat.chat_id:
                unkeyed.append(chat)
                continue
            existing = by_id.get(chat.chat_id)
            if existing is None:
                by_id[chat.chat_id] = chat
                continue
            duplicates += 1
            if _freshness(chat) > _freshness(existing):
                by_id[chat.chat_id] = chat

    if duplicates:
        logger.info("Merged %d duplicate chat records across pages", duplicates)

    return list(by_id.values()) + unkeyed


def matches_org_phone(chat: Chat, org_phone: str) -> bool:
    """Org phone match, ignoring the @c.us suffix"""
    return normalize_phone(chat.org_phone) == normalize_phone(org_phone)


def _looks_like_phone(value: str) -> bool:
    digits = normalize_phone(value)
    return bool(digits) and not any(ch.isalpha() for ch in value.replace("@c.us", ""))


def is_assigned_to(chat: Chat, agent: str) -> bool:
    """Assignment match on the raw identifier, or on digits when both look like phones"""
    if not chat.assigned_to:
        return False
    if chat.assigned_to.strip().lower() == agent.strip().lower():
        return True
    if _looks_like_phone(chat.assigned_to) and _looks_like_phone(agent):
        return normalize_phone(chat.assigned_to) == normalize_phone(agent)
    return False


class ChatAnalyticsService:
    """
    Runs the classification pipeline over one fetched chat list

    merge -> openness filter -> org phone / chat type / agent filters ->
    metrics aggregation. Holds no state between calls.
    """

    def __init__(self, policy: ResponsePolicy, support_phones: Iterable[str] = ()):
        self.policy = policy
        self.openness = OpennessClassifier(activity_window_days=policy.activity_window_days)
        self.aggregator = MetricsAggregator(
            classifier=UrgencyClassifier(policy, SenderAttribution(support_phones)),
            openness=self.openness,
        )

    def compute(
        self,
        chats: Iterable[Chat],
        now: Optional[datetime] = None,
        org_phone: Optional[str] = None,
        chat_type: Optional[ChatType] = None,
        agent: Optional[str] = None,
    ) -> ChatMetrics:
        now = now or utcnow()
        merged = merge_chats([chats])
        logger.info("Computing chat metrics for %d unique chats", len(merged))

        selected = self.openness.filter_open(merged, now)
        applied = []

        if org_phone:
            selected = [c for c in selected if matches_org_phone(c, org_phone)]
            applied.append(f"org phone {org_phone}")
            logger.info("After org phone filter: %d chats", len(selected))

        if chat_type:
            selected = [c for c in selected if c.chat_type == chat_type]
            applied.append(f"{chat_type.value} chats")
            logger.info("After chat type filter: %d chats", len(selected))

        if agent:
            selected = [c for c in selected if is_assigned_to(c, agent)]
            applied.append(f"assigned to {agent}")
            logger.info("After agent filter: %d chats", len(selected))

        filter_applied = ", ".join(applied) if applied else "all open chats"
        metrics = self.aggregator.aggregate(selected, now, filter_applied=filter_applied)
        metrics.debug.total_chats_found = len(merged)
        return metrics
