"""Common test fixtures for cadence tracker tests."""

import pytest

from cadence_processor import CadenceProcessor, HistoryBuffer, RateEstimator
from models import AccelSample

GRAVITY = 9.81


@pytest.fixture
def processor():
    """Processor with default configuration."""
    return CadenceProcessor()


@pytest.fixture
def small_processor():
    """Processor with a short history for buffer assertions."""
    return CadenceProcessor(history=HistoryBuffer(capacity=5))


@pytest.fixture
def density_estimator():
    return RateEstimator(window_seconds=5, strategy="density", min_interval_ms=250)


@pytest.fixture
def span_estimator():
    return RateEstimator(window_seconds=5, strategy="span", min_interval_ms=250)


@pytest.fixture
def at_rest():
    """Device lying flat: gravity entirely on the z axis."""
    return AccelSample(x=0.0, y=0.0, z=GRAVITY)


def settle_gravity(processor, sample, start=0.0, count=100, step_ms=20.0):
    """Feed a constant sample until the gravity estimate has converged."""
    t = start
    for _ in range(count):
        processor.on_sample(sample, t)
        t += step_ms
    return t
