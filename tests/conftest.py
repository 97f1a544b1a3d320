"""
Root test configuration.

Test organization:
- unit/   Fast, isolated; HTTP is replaced by mocks, files go to tmp_path.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import json

import pytest

from imagehub.image.registry import ProtocolMode, ProviderDescriptor


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast isolated tests")


class FakeResponse:
    """Minimal stand-in for `requests.Response`."""

    def __init__(self, status_code=200, payload=None, text=None, content=None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = content if content is not None else text.encode("utf-8")

    def json(self):
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def make_descriptor():
    """Factory for provider descriptors with test-friendly defaults."""

    def make(key="siliconflow", credential="sk-test", mode=ProtocolMode.SYNC, **overrides):
        values = {
            "key": key,
            "name": key.title(),
            "credential": credential,
            "base_url": f"https://{key}.example/v1",
            "model": f"{key}-model",
            "mode": mode,
            "poll_interval": 0,
            "max_attempts": 5,
        }
        values.update(overrides)
        return ProviderDescriptor(**values)

    return make
