import random

import pytest

from greenboard.config import Settings
from helpers import NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def settings():
    return Settings(prometheus_url="http://prom.test", prometheus_timeout=2.0)
