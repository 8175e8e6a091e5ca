"""
Shared router dependencies
"""
from fastapi import Depends

from chat_analytics.config import Settings, get_settings
from chat_analytics.services.periskope_client import PeriskopeClient


def get_chat_source(settings: Settings = Depends(get_settings)) -> PeriskopeClient:
    """Dependency for the upstream chat source"""
    return PeriskopeClient.from_settings(settings)
