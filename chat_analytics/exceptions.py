"""
Exception hierarchy for the chat analytics service
"""


class ChatAnalyticsError(Exception):
    """Base class for all chat analytics errors"""


class ChatSourceError(ChatAnalyticsError):
    """Fetching chats or messages from the upstream API failed"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(ChatSourceError):
    """Upstream kept answering 429 after every retry attempt"""


class UnknownPolicyError(ChatAnalyticsError):
    """Requested response policy preset does not exist"""
