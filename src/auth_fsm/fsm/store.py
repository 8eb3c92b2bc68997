"""Persist workflow checkpoints as JSON.

A checkpoint is the pair ``(currentState, memory)``. Only permanent states are
ever written, so every stored record is a legal resume point.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .auth import AuthDefinition, AuthEvent, AuthState, Memory
from .engine import Instance
from .errors import RestoreError

logger = logging.getLogger(__name__)


class Checkpoint(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_state: str
    memory: Memory = Field(default_factory=Memory)

    @staticmethod
    def from_instance(instance: Instance[AuthState, AuthEvent, Memory]) -> Checkpoint:
        state, memory = instance.checkpoint()
        return Checkpoint(current_state=state.value, memory=memory)

    def to_json(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


class CheckpointStore:
    """Single-workflow checkpoint file.

    The store does not lock. Callers that share a file across workers must
    serialise access per workflow identity.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Checkpoint | None:
        if not self._path.exists():
            return None
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        return Checkpoint.model_validate(raw)

    def save(self, checkpoint: Checkpoint) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(checkpoint.to_json(), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        logger.debug(
            "Checkpoint saved",
            extra={"path": str(self._path), "state": checkpoint.current_state},
        )

    def save_instance(self, instance: Instance[AuthState, AuthEvent, Memory]) -> Checkpoint:
        """Checkpoint an instance. Fails if it was left mid-chain."""

        checkpoint = Checkpoint.from_instance(instance)
        self.save(checkpoint)
        return checkpoint

    def load_instance(self, definition: AuthDefinition) -> Instance[AuthState, AuthEvent, Memory]:
        """Restore the stored workflow, or start a fresh one if nothing is stored.

        Raises:
            RestoreError: The stored record is unreadable or names a state that
                is not a legal resume point.
        """

        try:
            checkpoint = self.load()
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise RestoreError(None, reason=f"corrupt checkpoint at {self._path} ({e})") from e

        if checkpoint is None:
            logger.info("No checkpoint found, starting fresh", extra={"path": str(self._path)})
            return definition.new()

        try:
            state = AuthState(checkpoint.current_state)
        except ValueError as e:
            raise RestoreError(checkpoint.current_state, reason="unknown state") from e
        return definition.restore(state, checkpoint.memory)
