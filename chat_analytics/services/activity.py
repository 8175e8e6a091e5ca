"""
Activity Resolver
Picks one authoritative "last activity" timestamp per chat
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from chat_analytics.models.chat import Chat, ChatType


class ActivityMethod(str, Enum):
    """Which source the last-activity timestamp came from"""
    LATEST_MESSAGE = "latest_message"
    UPDATED_AT = "updated_at"
    CREATED_AT = "created_at"
    FALLBACK = "fallback"
    FUTURE_CORRECTED = "future_corrected"
    AGE_CAPPED = "age_capped"


# Sources that are evidence of real activity
VALID_METHODS = {ActivityMethod.LATEST_MESSAGE, ActivityMethod.UPDATED_AT}


@dataclass
class ResolvedActivity:
    """Last activity timestamp of a chat and how it was derived"""
    timestamp: datetime
    method: ActivityMethod
    is_valid: bool

    def age(self, now: datetime) -> timedelta:
        return now - self.timestamp


class ActivityResolver:
    """
    Resolves the last activity time of a chat

    Priority for user and business chats:
        latest message -> updated_at -> created_at -> fallback
    Group chats compare the latest message with updated_at and take the
    more recent one, since membership and settings changes count as
    group activity.

    Only latest-message and updated_at sources are marked valid. Future
    timestamps are clamped to now and ages beyond MAX_AGE are capped;
    both are marked invalid.
    """

    FALLBACK_AGE = timedelta(hours=1)
    MAX_AGE = timedelta(days=365)

    def resolve(self, chat: Chat, now: datetime) -> ResolvedActivity:
        timestamp, method = self._pick_source(chat, now)

        if timestamp > now:
            return ResolvedActivity(now, ActivityMethod.FUTURE_CORRECTED, False)

        if now - timestamp > self.MAX_AGE:
            return ResolvedActivity(now - self.MAX_AGE, ActivityMethod.AGE_CAPPED, False)

        return ResolvedActivity(timestamp, method, method in VALID_METHODS)

    def _pick_source(self, chat: Chat, now: datetime) -> Tuple[datetime, ActivityMethod]:
        message_time = chat.latest_message_time
        updated_at = chat.updated_at

        if chat.chat_type == ChatType.GROUP:
            candidate = self._latest_group_activity(message_time, updated_at)
            if candidate:
                return candidate
        else:
            if message_time:
                return message_time, ActivityMethod.LATEST_MESSAGE
            if updated_at:
                return updated_at, ActivityMethod.UPDATED_AT

        if chat.created_at:
            return chat.created_at, ActivityMethod.CREATED_AT

        return now - self.FALLBACK_AGE, ActivityMethod.FALLBACK

    @staticmethod
    def _latest_group_activity(
        message_time: Optional[datetime],
        updated_at: Optional[datetime],
    ) -> Optional[Tuple[datetime, ActivityMethod]]:
        if message_time and updated_at:
            if updated_at > message_time:
                return updated_at, ActivityMethod.UPDATED_AT
            return message_time, ActivityMethod.LATEST_MESSAGE
        if message_time:
            return message_time, ActivityMethod.LATEST_MESSAGE
        if updated_at:
            return updated_at, ActivityMethod.UPDATED_AT
        return None
