"""
Messages Router - raw messages and activity statistics for a time range
"""
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from chat_analytics.config import Settings, get_settings
from chat_analytics.exceptions import ChatSourceError
from chat_analytics.models.chat import Message, coerce_timestamp
from chat_analytics.routers.dependencies import get_chat_source
from chat_analytics.services.activity_stats import get_date_range, summarize_activity
from chat_analytics.services.periskope_client import PeriskopeClient
from chat_analytics.services.urgency import SenderAttribution

logger = logging.getLogger(__name__)

router = APIRouter()


# Pydantic Schemas
class MessagesResponse(BaseModel):
    messages: List[Message]
    count: int
    activity: Dict[str, Any]


def _resolve_range(start_time: Optional[str], end_time: Optional[str], period: Optional[str], tz: str):
    if period and not (start_time or end_time):
        return get_date_range(period, tz=tz)

    start = coerce_timestamp(start_time)
    end = coerce_timestamp(end_time)
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="startTime and endTime must be valid ISO timestamps")
    if end <= start:
        raise HTTPException(status_code=400, detail="endTime must be after startTime")
    return start, end


# Endpoints
@router.get("/messages", response_model=MessagesResponse)
def get_messages(
    start_time: Optional[str] = Query(None, alias="startTime"),
    end_time: Optional[str] = Query(None, alias="endTime"),
    period: Optional[str] = None,
    org_phone: Optional[str] = Query(None, alias="orgPhone"),
    limit: Optional[int] = Query(None, ge=1),
    settings: Settings = Depends(get_settings),
    source: PeriskopeClient = Depends(get_chat_source),
):
    """
    Messages in a time range with day/hour activity statistics

    Either startTime and endTime, or a named period (today, yesterday,
    last7days, lastMonth, last3months, thisMonth, lastCalendarMonth).
    """
    start, end = _resolve_range(start_time, end_time, period, settings.timezone)
    limit = limit or settings.message_page_limit
    logger.info("Fetching messages %s -> %s (orgPhone=%s, limit=%d)", start.isoformat(), end.isoformat(), org_phone, limit)

    try:
        messages = source.fetch_messages(start, end, org_phone=org_phone, limit=limit)
    except ChatSourceError as e:
        logger.error("Failed to fetch messages: %s", e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch messages: {e}")

    activity = summarize_activity(
        messages,
        start,
        end,
        tz=settings.timezone,
        attribution=SenderAttribution(settings.support_phones),
    )

    return MessagesResponse(messages=messages, count=len(messages), activity=asdict(activity))
