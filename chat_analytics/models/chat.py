"""
Chat and Message models - records returned by the Periskope API
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

# Epoch values above this are milliseconds rather than seconds
_EPOCH_MS_THRESHOLD = 10 ** 11


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """
    Convert an upstream timestamp into an aware UTC datetime

    Accepts datetimes, ISO-8601 strings (with or without a trailing "Z")
    and epoch numbers in seconds or milliseconds. Naive values are taken
    as UTC. Anything unparseable becomes None.
    """
    if value is None or value == "":
        return None

    parsed = None
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, bool):
            parsed = None
        elif isinstance(value, (int, float)):
            seconds = value / 1000 if abs(value) > _EPOCH_MS_THRESHOLD else value
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        elif isinstance(value, str):
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
    except (ValueError, OverflowError, OSError):
        parsed = None

    if parsed is None:
        logger.debug("Discarding unparseable timestamp %r", value)
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ChatType(str, Enum):
    """Kind of WhatsApp conversation"""
    USER = "user"
    GROUP = "group"
    BUSINESS = "business"


class MessageKey(BaseModel):
    """WhatsApp message key nested under a message's ``id`` field"""

    model_config = ConfigDict(extra="ignore")

    from_me: Optional[bool] = None
    id: Optional[str] = None
    remote: Optional[str] = None
    serialized: Optional[str] = None


class Message(BaseModel):
    """A single message, also used as the latest-message projection of a chat"""

    model_config = ConfigDict(extra="ignore")

    message_id: Optional[str] = None
    chat_id: Optional[str] = None
    message_type: Optional[str] = None
    body: Optional[str] = None
    from_me: Optional[bool] = None
    timestamp: Optional[datetime] = None
    sender_phone: Optional[str] = None
    org_phone: Optional[str] = None
    author: Optional[str] = None
    id: Optional[MessageKey] = None
    is_deleted: Optional[bool] = None
    has_media: Optional[bool] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Optional[datetime]:
        return coerce_timestamp(value)


class Chat(BaseModel):
    """A conversation thread as listed by the chats endpoint"""

    model_config = ConfigDict(extra="ignore")

    chat_id: Optional[str] = None
    chat_name: Optional[str] = None
    chat_type: ChatType = ChatType.USER
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    is_exited: bool = False
    member_count: Optional[int] = None
    assigned_to: Optional[str] = None
    latest_message: Optional[Message] = None
    org_phone: Optional[str] = None
    custom_properties: Dict[str, Any] = {}

    @field_validator("created_at", "updated_at", "closed_at", mode="before")
    @classmethod
    def _parse_timestamps(cls, value: Any) -> Optional[datetime]:
        return coerce_timestamp(value)

    @field_validator("is_exited", mode="before")
    @classmethod
    def _null_is_not_exited(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("custom_properties", mode="before")
    @classmethod
    def _null_properties(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def latest_message_time(self) -> Optional[datetime]:
        """Timestamp of the latest message, if the chat has one"""
        if self.latest_message is None:
            return None
        return self.latest_message.timestamp

    @property
    def last_known_time(self) -> Optional[datetime]:
        """Most recent timestamp known for the chat: message, update, then creation"""
        return self.latest_message_time or self.updated_at or self.created_at
