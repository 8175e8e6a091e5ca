"""
Periskope API client
Paginated fetching of chats and messages with rate-limit backoff
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from chat_analytics.exceptions import ChatSourceError, RateLimitedError
from chat_analytics.models.chat import Chat, ChatType, Message
from chat_analytics.services.analytics import merge_chats

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class PeriskopeClient:
    """
    Chat source backed by the Periskope REST API

    Chats are paged by offset until a short page (or max_pages) and
    deduplicated by chat_id. Messages are fetched in daily windows on a
    small worker pool, each window following next_cursor pagination.
    HTTP 429 responses are retried with exponential backoff; every other
    failure raises ChatSourceError.
    """

    CHATS_PATH = "/chats"
    MESSAGES_PATH = "/chats/messages"

    def __init__(
        self,
        api_key: str,
        phone: str,
        base_url: str = "https://api.periskope.app/v1",
        *,
        page_size: int = 1000,
        max_pages: int = 15,
        concurrency: int = 2,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        self.concurrency = max(1, concurrency)
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "x-phone": phone,
            "Accept": "application/json",
        }

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None) -> "PeriskopeClient":
        return cls(
            api_key=settings.periskope_api_key,
            phone=settings.periskope_phone,
            base_url=settings.periskope_base_url,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
            concurrency=settings.fetch_concurrency,
            max_attempts=settings.retry_max_attempts,
            backoff_seconds=settings.retry_backoff_seconds,
            timeout=settings.request_timeout_seconds,
            session=session,
        )

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def fetch_chats(self, chat_type: Optional[ChatType] = None) -> List[Chat]:
        """Fetch every chat page and merge duplicates across pages"""
        batches: List[List[Chat]] = []
        offset = 0

        for page_number in range(1, self.max_pages + 1):
            params: Dict[str, Any] = {"limit": self.page_size, "offset": offset}
            if chat_type:
                params["chat_type"] = chat_type.value

            logger.info("Fetching chat page %d (offset %d)", page_number, offset)
            payload = self._get(self.CHATS_PATH, params)
            records = self._extract_records(payload, "chats")
            batches.append(self._parse_records(records, Chat))

            if len(records) < self.page_size:
                break
            offset += self.page_size
        else:
            logger.warning("Stopped chat pagination at the %d page limit", self.max_pages)

        chats = merge_chats(batches)
        logger.info("Fetched %d unique chats from %d pages", len(chats), len(batches))
        return chats

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def fetch_messages(
        self,
        start: datetime,
        end: datetime,
        org_phone: Optional[str] = None,
        limit: int = 2000,
    ) -> List[Message]:
        """Fetch all messages between start and end, one day window at a time"""
        windows = self.daily_windows(start, end)
        logger.info("Fetching messages in %d windows with concurrency=%d", len(windows), self.concurrency)

        def load(window: Tuple[datetime, datetime]) -> List[Message]:
            return self._fetch_message_window(window[0], window[1], org_phone, limit)

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            results = list(executor.map(load, windows))

        messages = [m for window_messages in results for m in window_messages]
        logger.info("Fetched %d messages in total", len(messages))
        return messages

    @staticmethod
    def daily_windows(start: datetime, end: datetime) -> List[Tuple[datetime, datetime]]:
        """Split [start, end) into consecutive windows of at most one day"""
        windows = []
        cursor = start
        while cursor < end:
            window_end = min(cursor + timedelta(days=1), end)
            windows.append((cursor, window_end))
            cursor = window_end
        return windows

    def _fetch_message_window(
        self,
        start: datetime,
        end: datetime,
        org_phone: Optional[str],
        limit: int,
    ) -> List[Message]:
        messages: List[Message] = []
        cursor = None

        while True:
            params: Dict[str, Any] = {
                "limit": limit,
                "start_time": start.isoformat(),
                "end_time": end.isoformat(),
            }
            if org_phone:
                params["org_phone"] = org_phone
            if cursor:
                params["cursor"] = cursor

            payload = self._get(self.MESSAGES_PATH, params)
            records = self._extract_records(payload, "messages")
            messages.extend(self._parse_records(records, Message))

            cursor = self._next_cursor(payload)
            if not cursor:
                break

        logger.debug("Window %s -> %s returned %d messages", start.isoformat(), end.isoformat(), len(messages))
        return messages

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)
            except requests.RequestException as e:
                raise ChatSourceError(f"Request to {path} failed: {e}") from e

            if response.status_code == 429:
                if attempt < self.max_attempts:
                    backoff = self.backoff_seconds * 2 ** (attempt - 1)
                    logger.warning("429 received from %s, retrying in %.1fs", path, backoff)
                    self._sleep(backoff)
                    continue
                raise RateLimitedError(f"Rate limited on {path} after {attempt} attempts", status_code=429)

            if response.status_code >= 400:
                raise ChatSourceError(
                    f"Periskope returned HTTP {response.status_code} for {path}",
                    status_code=response.status_code,
                )

            try:
                payload = response.json()
            except ValueError as e:
                raise ChatSourceError(f"Invalid JSON from {path}") from e

            if isinstance(payload, dict) and payload.get("error"):
                raise ChatSourceError(f"Periskope error for {path}: {payload['error']}")
            return payload

        raise RateLimitedError(f"Rate limited on {path}", status_code=429)

    @staticmethod
    def _extract_records(payload: Any, key: str) -> List[Dict[str, Any]]:
        """Pull the record list out of the known response shapes"""
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            data = payload.get("data")
            if isinstance(data, dict) and isinstance(data.get(key), list):
                return data[key]
            if isinstance(data, list):
                return data
            if isinstance(payload.get(key), list):
                return payload[key]
        return []

    @staticmethod
    def _next_cursor(payload: Any) -> Optional[str]:
        if not isinstance(payload, dict):
            return None
        data = payload.get("data")
        if isinstance(data, dict) and data.get("next_cursor"):
            return data["next_cursor"]
        return payload.get("next_cursor") or None

    @staticmethod
    def _parse_records(records: List[Dict[str, Any]], model: Type[ModelT]) -> List[ModelT]:
        parsed = []
        for record in records:
            try:
                parsed.append(model.model_validate(record))
            except ValidationError as e:
                logger.warning("Dropping malformed %s record: %s", model.__name__, e.errors()[:1])
        return parsed
