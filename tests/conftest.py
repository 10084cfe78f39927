"""
Pytest configuration and fixtures for MapyChat tests.
"""

import os
import sys
import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

# Request events go to a throwaway directory, set before settings are first read.
os.environ.setdefault("MAPYCHAT_LOG_DIR", tempfile.mkdtemp(prefix="mapychat-logs-"))

from mapychat.core.config import get_settings
from mapychat.core.rate_limiter import set_rate_limiter
from mapychat.telemetry.metrics import MetricsCollector
from tests.helpers import MODEL, FakeClock, UpstreamRecorder


@pytest.fixture(autouse=True)
def reset_process_state():
    """Isolate cached settings, the shared limiter and collected metrics."""
    get_settings.cache_clear()
    set_rate_limiter(None)
    MetricsCollector.reset()
    yield
    get_settings.cache_clear()
    set_rate_limiter(None)
    MetricsCollector.reset()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def user_body() -> Callable[..., dict]:
    """Factory for a valid proxy request body with per-test overrides."""

    def build(**overrides) -> dict:
        body = {
            "model": MODEL,
            "temperature": 0.8,
            "systemPrompt": "Eres un asistente útil.",
            "characterPrompt": "",
            "messages": [{"role": "user", "content": "hola"}],
        }
        body.update(overrides)
        return body

    return build
