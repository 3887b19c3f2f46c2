"""
Pytest fixtures for Fitness Coach tests.
"""
import sys
import pytest
from pathlib import Path
from datetime import datetime, timedelta, timezone
from dotenv import load_dotenv

import httpx

# Ensure src/ and scripts/ are on sys.path so tests can import plan_generation and the simulator.
ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
SCRIPTS = ROOT / "scripts"
for path in (ROOT, SRC, SCRIPTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

# Load environment variables
load_dotenv()

from plan_generation import (  # noqa: E402
    CoachInput,
    GenerationMutex,
    InMemoryLeaseStore,
    StepCoachClient,
    StepPoller,
)
from step_coach_simulator import SimulatorScenario, create_app  # noqa: E402


class FakeClock:
    """Settable UTC clock shared by the mutex and the poller."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ============================================================================
# Plan Generation Fixtures
# ============================================================================


@pytest.fixture
def coach_input():
    """A typical muscle-gain request."""
    return CoachInput(
        age=30,
        sex="male",
        height=180,
        weight=80,
        activity_level="moderate",
        fitness_goal="muscle_gain",
        dietary_preferences=("high_protein",),
        weekly_budget=50,
        workout_days_per_week=4,
        preferred_workout_days=("monday", "wednesday", "friday", "saturday"),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lease_store():
    return InMemoryLeaseStore()


@pytest.fixture
def simulator():
    """
    Factory fixture for a simulated job API.

    Returns a function that accepts a SimulatorScenario and returns
    (app, StepCoachClient) wired through an in-process ASGI transport.
    """
    def _create(scenario: SimulatorScenario = None):
        app = create_app(scenario or SimulatorScenario())
        client = StepCoachClient(
            base_url="http://simulator",
            transport=httpx.ASGITransport(app=app),
        )
        return app, client

    return _create


@pytest.fixture
def make_poller(simulator, lease_store):
    """
    Factory fixture for a StepPoller against the simulator.

    Polls without delay; pass ``clock`` to control time.
    """
    def _create(scenario: SimulatorScenario = None, clock=None, **kwargs):
        app, client = simulator(scenario)
        mutex = GenerationMutex(lease_store, holder="test-client", clock=clock)
        poller = StepPoller(
            client,
            mutex,
            poll_interval=kwargs.pop("poll_interval", 0),
            clock=clock,
            **kwargs,
        )
        return poller, app

    return _create
