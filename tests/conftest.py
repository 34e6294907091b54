"""Shared pytest fixtures."""

import pytest

from tact_api.models import ProviderIdentity
from tests.helpers import FakeProvider


@pytest.fixture
def groq() -> FakeProvider:
    return FakeProvider(ProviderIdentity.GROQ)


@pytest.fixture
def gemini() -> FakeProvider:
    return FakeProvider(ProviderIdentity.GEMINI)
