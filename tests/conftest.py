"""Pytest fixtures for vehicle gate agent tests."""

from __future__ import annotations

from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from vehicle_gate.models.enums import Direction
from vehicle_gate.models.schemas import (
    AntennaConfig,
    AuthorizationOutcome,
    Authorized,
)
from vehicle_gate.services.authorizer import Authorizer
from vehicle_gate.services.tag_validator import TagValidator


class StubAuthorizer(Authorizer):
    """Authorizer answering from a queue of canned outcomes."""

    def __init__(self, outcome: Optional[AuthorizationOutcome] = None) -> None:
        self.timeout = 1.0
        self.outcome = outcome or Authorized()
        self.verify_calls: List[str] = []
        self.register_calls: List[str] = []
        self.register_result = True
        self.closed = False

    async def verify(self, tag: str, antenna: AntennaConfig) -> AuthorizationOutcome:
        self.verify_calls.append(tag)
        return self.outcome

    async def register(self, tag: str, antenna: AntennaConfig) -> bool:
        self.register_calls.append(tag)
        return self.register_result

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def antenna() -> AntennaConfig:
    """Return a test antenna description."""
    return AntennaConfig(
        id=1,
        name="ANTENNA1",
        device=7,
        host="127.0.0.1",
        port=10001,
        direction=Direction.ENTRY,
    )


@pytest.fixture
def authorizer() -> StubAuthorizer:
    """Return an authorizer that grants every tag."""
    return StubAuthorizer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def validator(authorizer: StubAuthorizer, antenna: AntennaConfig, clock: FakeClock) -> TagValidator:
    """Return a TagValidator with a small cache and a fake clock."""
    return TagValidator(authorizer, antenna, cache_ttl=60.0, cache_size=3, clock=clock)


@pytest.fixture
def fake_writer() -> MagicMock:
    """Return a StreamWriter stand-in that records written frames."""
    writer = MagicMock()
    writer.is_closing.return_value = False
    writer.write = MagicMock()
    writer.transport = MagicMock()
    return writer
