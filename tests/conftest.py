"""
Shared pytest fixtures
"""
import pytest

from chat_analytics.services.policy import get_policy
from tests.chat_factory import NOW, SyntheticChatGenerator


@pytest.fixture
def now():
    """Fixed reference time for every classification test"""
    return NOW


@pytest.fixture
def generator():
    return SyntheticChatGenerator(seed=42)


@pytest.fixture
def strict_policy():
    return get_policy("strict")


@pytest.fixture
def relaxed_policy():
    return get_policy("relaxed")
