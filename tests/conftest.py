import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from tests.fakes import FakeGenerator, FakeMemory, ManualClock


@pytest.fixture
def memory() -> FakeMemory:
    return FakeMemory()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
