"""
Custom property distribution
Counts the values of a chat custom property across chats
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from chat_analytics.models.chat import Chat

logger = logging.getLogger(__name__)

PROPERTY_PREFIX = "property-"


@dataclass
class PropertyDistribution:
    property_id: str
    alternative_property_id: str
    total_chats: int
    chats_with_property: int
    distribution: List[Dict[str, Any]] = field(default_factory=list)


def find_property(custom_properties: Dict[str, Any], property_id: str) -> Tuple[bool, Any]:
    """
    Look up a property value on one chat

    Tries the exact id, then the id without its "property-" prefix, then
    the first key containing the stripped id.
    """
    if not custom_properties:
        return False, None

    if property_id in custom_properties:
        return True, custom_properties[property_id]

    alternative = property_id.replace(PROPERTY_PREFIX, "", 1)
    if alternative in custom_properties:
        return True, custom_properties[alternative]

    for key, value in custom_properties.items():
        if alternative and alternative in key:
            logger.debug("Matched property %s via similar key %s", property_id, key)
            return True, value

    return False, None


def _label(value: Any) -> str:
    return "undefined" if value is None or value == "" else str(value)


def property_distribution(chats: Iterable[Chat], property_id: str) -> PropertyDistribution:
    """Value counts for a property, most common first"""
    chats = list(chats)
    counts: Counter = Counter()
    found = 0

    for chat in chats:
        has_property, value = find_property(chat.custom_properties, property_id)
        if has_property:
            found += 1
            counts[_label(value)] += 1

    logger.info(
        "Property %s found on %d of %d chats (%d distinct values)",
        property_id, found, len(chats), len(counts),
    )

    return PropertyDistribution(
        property_id=property_id,
        alternative_property_id=property_id.replace(PROPERTY_PREFIX, "", 1),
        total_chats=len(chats),
        chats_with_property=found,
        distribution=[{"name": name, "value": count} for name, count in counts.most_common()],
    )


def property_values(chats: Iterable[Chat], property_id: str) -> List[str]:
    """Sorted distinct non-empty values of a property"""
    values = set()
    for chat in chats:
        has_property, value = find_property(chat.custom_properties, property_id)
        if has_property and value is not None and value != "":
            values.add(str(value))
    return sorted(values)
