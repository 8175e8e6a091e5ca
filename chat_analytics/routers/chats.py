"""
Chats Router - open chat metrics and custom property breakdowns
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chat_analytics.config import Settings, get_settings
from chat_analytics.exceptions import ChatSourceError, UnknownPolicyError
from chat_analytics.models.chat import ChatType
from chat_analytics.routers.dependencies import get_chat_source
from chat_analytics.services.analytics import ChatAnalyticsService
from chat_analytics.services.periskope_client import PeriskopeClient
from chat_analytics.services.properties import property_distribution, property_values
from chat_analytics.services.urgency import UrgencyLevel

logger = logging.getLogger(__name__)

router = APIRouter()


# Pydantic Schemas
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class OpenChatDetailResponse(CamelModel):
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


class DelayedChatDetailResponse(CamelModel):
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


class MetricsDebugResponse(CamelModel):
    total_chats_found: int
    valid_activity_chats: int
    skipped_records: int
    chat_type_distribution: Dict[str, int]
    policy_name: str
    delayed_response_thresholds: Dict[str, Dict[str, float]]
    filter_applied: Optional[str] = None


class ChatMetricsResponse(CamelModel):
    total_open_chats: int
    average_age_in_hours: float
    max_age_in_hours: float
    chats_with_delayed_response: int
    open_chat_details: List[OpenChatDetailResponse]
    delayed_response_details: List[DelayedChatDetailResponse]
    debug: Optional[MetricsDebugResponse] = Field(default=None, alias="_debug")


class ChatAnalyticsResponse(BaseModel):
    metrics: ChatMetricsResponse


class DistributionEntry(BaseModel):
    name: str
    value: int


class PropertyDistributionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    distribution: List[DistributionEntry]
    debug: Dict[str, Any] = Field(default_factory=dict, alias="_debug")


class PropertyValuesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    property_id: str = Field(alias="propertyId")
    values: List[str]


# Endpoints
@router.get("/chat-analytics", response_model=ChatAnalyticsResponse)
def get_chat_analytics(
    org_phone: Optional[str] = Query(None, alias="orgPhone"),
    chat_type: Optional[ChatType] = Query(None, alias="chatType"),
    agent: Optional[str] = None,
    policy: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    source: PeriskopeClient = Depends(get_chat_source),
):
    """
    Open chat metrics: ages, urgency and chats waiting on a support reply

    Args:
        orgPhone: Only chats on this support line (with or without @c.us)
        chatType: Only chats of this type
        agent: Only chats assigned to this agent
        policy: Response policy preset (strict, standard, relaxed)
    """
    try:
        response_policy = settings.build_policy(policy)
    except UnknownPolicyError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Chat analytics requested (orgPhone=%s, chatType=%s, agent=%s)", org_phone, chat_type, agent)

    try:
        chats = source.fetch_chats(chat_type=chat_type)
    except ChatSourceError as e:
        logger.error("Failed to fetch chats: %s", e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch chat metrics: {e}")

    service = ChatAnalyticsService(response_policy, support_phones=settings.support_phones)
    metrics = service.compute(chats, org_phone=org_phone, chat_type=chat_type, agent=agent)

    return {"metrics": ChatMetricsResponse.model_validate(metrics)}


@router.get("/custom-property-distribution", response_model=PropertyDistributionResponse)
def get_custom_property_distribution(
    property_id: Optional[str] = Query(None, alias="propertyId"),
    chat_type: Optional[ChatType] = Query(None, alias="chatType"),
    source: PeriskopeClient = Depends(get_chat_source),
):
    """Value counts of a chat custom property, most common first"""
    if not property_id:
        raise HTTPException(status_code=400, detail="Property ID is required")

    try:
        chats = source.fetch_chats(chat_type=chat_type)
    except ChatSourceError as e:
        logger.error("Failed to fetch chats for property %s: %s", property_id, e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch custom property distribution: {e}")

    result = property_distribution(chats, property_id)

    return PropertyDistributionResponse(
        distribution=[DistributionEntry(**entry) for entry in result.distribution],
        debug={
            "propertyId": result.property_id,
            "alternativePropertyId": result.alternative_property_id,
            "chatType": chat_type.value if chat_type else None,
            "totalChats": result.total_chats,
            "chatsWithProperty": result.chats_with_property,
            "uniqueValueCount": len(result.distribution),
        },
    )


@router.get("/custom-property-values", response_model=PropertyValuesResponse)
def get_custom_property_values(
    property_id: Optional[str] = Query(None, alias="propertyId"),
    source: PeriskopeClient = Depends(get_chat_source),
):
    """Distinct values of a chat custom property"""
    if not property_id:
        raise HTTPException(status_code=400, detail="Property ID is required")

    try:
        chats = source.fetch_chats()
    except ChatSourceError as e:
        logger.error("Failed to fetch chats for property %s: %s", property_id, e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch custom property values: {e}")

    return PropertyValuesResponse(property_id=property_id, values=property_values(chats, property_id))
