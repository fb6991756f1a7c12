"""Test doubles for Orchestra tests."""

from tests.mocks.actions import failing, flaky, returning, sleeping
from tests.mocks.timing import FakeClock, FakeSleep

__all__ = ["FakeClock", "FakeSleep", "failing", "flaky", "returning", "sleeping"]
