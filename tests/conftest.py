"""
followme Test Configuration
---------------------------
Shared fixtures and configuration for all tests.
"""

import os
import sys
from pathlib import Path
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.types import ExecutionContext, Policy
from infra.store import Store
from tools.registry import ToolRegistry


# =============================================================================
# Test Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def clean_followme_env(monkeypatch):
    """
    Remove FOLLOWME_* variables so a developer's shell settings can't leak
    into config tests.
    """
    for key in list(os.environ):
        if key.startswith("FOLLOWME_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Shared Fixtures
# =============================================================================

class RecordingLogger:
    """Context logger sink that keeps every message."""

    def __init__(self):
        self.messages = []

    def __call__(self, message, meta=None):
        self.messages.append((message, meta))

    def text(self):
        return "\n".join(m for m, _ in self.messages)


@pytest.fixture
def registry():
    """Empty tool registry."""
    return ToolRegistry()


@pytest.fixture
def log_sink():
    return RecordingLogger()


@pytest.fixture
def context(tmp_path, log_sink):
    """Unrestricted execution context rooted at a temp directory."""
    return ExecutionContext(cwd=str(tmp_path), logger=log_sink, run_id="test-run")


@pytest.fixture
def make_context(tmp_path, log_sink):
    """Factory for contexts with a policy and optional confirmer."""
    def _make(confirmer=None, **policy_kwargs):
        return ExecutionContext(
            cwd=str(tmp_path),
            logger=log_sink,
            confirmer=confirmer,
            policy=Policy(**policy_kwargs),
            run_id="test-run",
        )
    return _make


@pytest.fixture
def store(tmp_path_factory):
    """Initialized store, kept outside the context cwd so file tools never see it."""
    db = Store(str(tmp_path_factory.mktemp("store") / "test.db"))
    db.initialize()
    yield db
    db.close()
