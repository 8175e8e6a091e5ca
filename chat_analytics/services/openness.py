"""
Openness Classifier
Decides whether a chat is still open for the support team
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from chat_analytics.models.chat import Chat, ChatType

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class OpennessClassifier:
    """
    Classifies chats as open or closed

    Rules, first match wins:
    1. Support has exited the chat: closed
    2. Group with one member or fewer: closed
    3. Never explicitly closed: open
    4. Closed with no message timestamp: closed
    5. Latest message after the closure: open (reopened)
    6. Otherwise: closed
    """

    def __init__(self, activity_window_days: Optional[int] = None):
        self.activity_window_days = activity_window_days

    def is_open(self, chat: Chat, now: datetime) -> bool:
        if chat.is_exited:
            return False

        if chat.chat_type == ChatType.GROUP and chat.member_count is not None and chat.member_count <= 1:
            return False

        if chat.closed_at is None:
            return True

        message_time = chat.latest_message_time
        if message_time is None:
            return False

        return message_time > chat.closed_at

    def is_recent(self, chat: Chat, now: datetime) -> bool:
        """Whether the chat had any activity inside the configured window"""
        if self.activity_window_days is None:
            return True
        last_known = chat.last_known_time
        if last_known is None:
            return False
        return now - last_known <= timedelta(days=self.activity_window_days)

    def filter_open(self, chats: Iterable[Chat], now: datetime) -> List[Chat]:
        """Open (and recent, when a window is set) chats, most recently active first"""
        chats = list(chats)
        open_chats = [c for c in chats if self.is_open(c, now) and self.is_recent(c, now)]

        logger.info(
            "Filtered %d open chats out of %d (activity window: %s days)",
            len(open_chats),
            len(chats),
            self.activity_window_days if self.activity_window_days is not None else "none",
        )

        return sorted(
            open_chats,
            key=lambda c: c.last_known_time or _EPOCH,
            reverse=True,
        )
