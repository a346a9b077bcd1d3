"""
Shared test configuration.
It asserts expected behavior and guards against regressions in the corresponding component.
These tests are executed by `pytest` locally and in CI and should remain deterministic.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))


@pytest.fixture(autouse=True)
def base_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure required environment variables are present during tests."""

    defaults = {
        "PROJECT_NAME": "test-project",
        "ENV": "test",
        "LOG_LEVEL": "INFO",
        "DATABASE_URL": "sqlite+pysqlite:///:memory:",
        "ESTIMATOR_CONFIG_PATH": str(ROOT_DIR / "configs" / "estimator.yaml"),
    }

    for key, value in defaults.items():
        if os.getenv(key) is None:
            monkeypatch.setenv(key, value)

    for key in list(os.environ):
        if key.startswith("ESTIMATOR_") and key != "ESTIMATOR_CONFIG_PATH":
            monkeypatch.delenv(key, raising=False)
