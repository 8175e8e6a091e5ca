"""Models package initialization"""
from chat_analytics.models.chat import Chat, ChatType, Message, MessageKey, coerce_timestamp

__all__ = ["Chat", "ChatType", "Message", "MessageKey", "coerce_timestamp"]
