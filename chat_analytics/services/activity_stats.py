"""
Message Activity Statistics
Day/hour heatmap buckets, peak times and reply delays for a message set
"""
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import pytz

from chat_analytics.models.chat import Message
from chat_analytics.services.urgency import SenderAttribution

DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

BUSINESS_START = time(9, 0)
BUSINESS_END = time(17, 0)

Heatmap = Dict[str, Dict[str, int]]


@dataclass
class MessageActivity:
    """Summary of message activity over a date range"""
    total_messages: int
    heatmap: Heatmap
    max_hour_count: int
    most_active_day: Dict[str, object]
    peak_hour: Dict[str, object]
    average_per_day: int
    average_reply_delay_hours: float
    average_business_reply_delay_hours: float
    timezone: str = "UTC"
    period: Dict[str, str] = field(default_factory=dict)


def _zone(tz) -> pytz.BaseTzInfo:
    if tz is None:
        return pytz.utc
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def empty_heatmap() -> Heatmap:
    return {day: {str(hour): 0 for hour in range(24)} for day in DAYS}


def group_messages_by_day_and_hour(messages: Iterable[Message], tz=None) -> Heatmap:
    """Count messages per weekday and hour of day in the given timezone"""
    zone = _zone(tz)
    heatmap = empty_heatmap()
    for message in messages:
        if message.timestamp is None:
            continue
        local = message.timestamp.astimezone(zone)
        heatmap[DAYS[local.weekday()]][str(local.hour)] += 1
    return heatmap


def find_max_value(heatmap: Heatmap) -> int:
    return max((count for hours in heatmap.values() for count in hours.values()), default=0)


def get_most_active_day(heatmap: Heatmap) -> Dict[str, object]:
    """Day with the most messages; ties go to the earlier day"""
    best_day, best_count = "", 0
    for day, hours in heatmap.items():
        total = sum(hours.values())
        if total > best_count:
            best_day, best_count = day, total
    return {"day": best_day, "count": best_count}


def get_peak_hour(heatmap: Heatmap) -> Dict[str, object]:
    """Hour of day with the most messages across all days"""
    best_hour, best_count = "", 0
    for hour in range(24):
        key = str(hour)
        total = sum(hours.get(key, 0) for hours in heatmap.values())
        if total > best_count:
            best_hour, best_count = key, total
    return {"hour": best_hour, "count": best_count}


def _format_hour(hour: int) -> str:
    period = "PM" if hour >= 12 else "AM"
    hour12 = 12 if hour % 12 == 0 else hour % 12
    return f"{hour12}:00 {period}"


def format_hour_range(hour: str) -> str:
    """Human readable one-hour range, e.g. "14" -> "2:00 PM - 3:00 PM" """
    hour_num = int(hour)
    return f"{_format_hour(hour_num)} - {_format_hour((hour_num + 1) % 24)}"


def calculate_average_per_day(message_count: int, start: datetime, end: datetime, tz=None) -> int:
    """Average messages per calendar day, counting both the start and end day"""
    zone = _zone(tz)
    days = (end.astimezone(zone).date() - start.astimezone(zone).date()).days + 1
    if days <= 0:
        return message_count
    return round(message_count / days)


def business_hours_difference(start: datetime, end: datetime, tz=None) -> timedelta:
    """Time between start and end that falls inside Mon-Fri 09:00-17:00"""
    zone = _zone(tz)
    total = timedelta(0)
    day = start.astimezone(zone).date()
    last_day = end.astimezone(zone).date()

    while day <= last_day:
        if day.weekday() < 5:
            open_at = zone.localize(datetime.combine(day, BUSINESS_START))
            close_at = zone.localize(datetime.combine(day, BUSINESS_END))
            slice_start = max(start, open_at)
            slice_end = min(end, close_at)
            if slice_end > slice_start:
                total += slice_end - slice_start
        day += timedelta(days=1)

    return total


def compute_average_reply_delay(
    messages: Iterable[Message],
    tz=None,
    attribution: Optional[SenderAttribution] = None,
) -> Tuple[timedelta, timedelta]:
    """
    Average delay between a customer message and the next support reply

    Returns (absolute, business hours). Consecutive customer messages keep
    the latest one as the start of the wait.
    """
    attribution = attribution or SenderAttribution()
    ordered = sorted((m for m in messages if m.timestamp), key=lambda m: m.timestamp)

    absolute: List[timedelta] = []
    business: List[timedelta] = []
    last_customer = None

    for message in ordered:
        if not attribution.is_from_support(message, message.org_phone):
            last_customer = message
        elif last_customer is not None:
            if message.timestamp > last_customer.timestamp:
                absolute.append(message.timestamp - last_customer.timestamp)
                business.append(business_hours_difference(last_customer.timestamp, message.timestamp, tz))
            last_customer = None

    def average(deltas: List[timedelta]) -> timedelta:
        return sum(deltas, timedelta(0)) / len(deltas) if deltas else timedelta(0)

    return average(absolute), average(business)


def get_date_range(period: str, now: Optional[datetime] = None, tz=None) -> Tuple[datetime, datetime]:
    """Start and end of a named reporting period in the given timezone"""
    zone = _zone(tz)
    now = (now or datetime.now(pytz.utc)).astimezone(zone)
    today = now.date()

    def start_of(day) -> datetime:
        return zone.localize(datetime.combine(day, time.min))

    def end_of(day) -> datetime:
        return zone.localize(datetime.combine(day, time.max))

    if period == "today":
        return start_of(today), end_of(today)
    if period == "yesterday":
        yesterday = today - timedelta(days=1)
        return start_of(yesterday), end_of(yesterday)
    if period == "lastMonth":
        return start_of(today - timedelta(days=29)), end_of(today)
    if period == "last3months":
        return start_of(today - timedelta(days=89)), end_of(today)
    if period == "thisMonth":
        return start_of(today.replace(day=1)), now
    if period == "lastCalendarMonth":
        last_of_previous = today.replace(day=1) - timedelta(days=1)
        return start_of(last_of_previous.replace(day=1)), end_of(last_of_previous)

    # last7days and anything unrecognised
    return start_of(today - timedelta(days=6)), end_of(today)


def summarize_activity(
    messages: List[Message],
    start: datetime,
    end: datetime,
    tz=None,
    attribution: Optional[SenderAttribution] = None,
) -> MessageActivity:
    """Build the full activity summary for a fetched message set"""
    zone = _zone(tz)
    heatmap = group_messages_by_day_and_hour(messages, zone)
    peak = get_peak_hour(heatmap)
    if peak["hour"]:
        peak["label"] = format_hour_range(peak["hour"])

    absolute, business = compute_average_reply_delay(messages, zone, attribution)
    hour = timedelta(hours=1)

    return MessageActivity(
        total_messages=len(messages),
        heatmap=heatmap,
        max_hour_count=find_max_value(heatmap),
        most_active_day=get_most_active_day(heatmap),
        peak_hour=peak,
        average_per_day=calculate_average_per_day(len(messages), start, end, zone),
        average_reply_delay_hours=round(absolute / hour, 2),
        average_business_reply_delay_hours=round(business / hour, 2),
        timezone=zone.zone,
        period={"start": start.isoformat(), "end": end.isoformat()},
    )
