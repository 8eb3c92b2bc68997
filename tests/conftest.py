"""Test configuration and fixtures."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import Mock

import pytest

from auth_fsm.fsm.auth import AuthCallbacks, AuthDefinition, new_auth_definition
from auth_fsm.fsm.store import CheckpointStore
from auth_fsm.logging import JsonFormatter


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    """The CLI reconfigures the root logger; undo that after each test."""

    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, JsonFormatter):
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run from an empty directory with no AUTH_FSM_* variables set."""

    for name in (
        "AUTH_FSM_LOG_LEVEL",
        "AUTH_FSM_MAX_PAYMENT_ATTEMPTS",
        "AUTH_FSM_MAX_AUTH_ATTEMPTS",
        "AUTH_FSM_RETRYABLE_ERRORS",
        "AUTH_FSM_CHECKPOINT_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def callbacks() -> Mock:
    """Callbacks that succeed and change nothing unless a test says otherwise."""

    return Mock(spec=AuthCallbacks)


@pytest.fixture
def definition(callbacks: Mock) -> AuthDefinition:
    definition = new_auth_definition(callbacks)
    definition.validate()
    return definition


@pytest.fixture
def checkpoint_store(tmp_path: Path) -> CheckpointStore:
    return CheckpointStore(tmp_path / "agent_state" / "checkpoint.json")
