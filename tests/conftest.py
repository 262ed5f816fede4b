"""
Root pytest configuration and fixtures for toolchat.

Provides common fixtures and test utilities for the test suite.
"""

from pathlib import Path
import sys

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from toolchat.config import ModelConfig  # noqa: E402
from toolchat.diagnostics import DiagnosticsSink  # noqa: E402


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of config resolution."""
    for name in (
        "TOOLCHAT_AGENT",
        "TOOLCHAT_MODEL",
        "TOOLCHAT_ENDPOINT",
        "TOOLCHAT_MAX_TOKENS",
        "TOOLCHAT_API_KEY",
        "GITHUB_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def endpoint():
    """Test backend URL."""
    return "https://llm.test/v1/messages"


@pytest.fixture
def model_config(endpoint):
    return ModelConfig(name="test", model="test-model", endpoint=endpoint, system="Be brief.")


@pytest.fixture
def diagnostics():
    sink = DiagnosticsSink()
    yield sink
    sink.uninstall()
