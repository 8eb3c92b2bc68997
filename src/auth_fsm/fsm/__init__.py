"""FSM engine and the payment/authorization workflow built on it.

- `engine`: generic `Definition` / `Instance`
- `errors`: everything the engine raises
- `auth`: states, events, memory and the shipped transition table
- `store`: JSON checkpoints of permanent states
"""

from .auth import (
    AuthCallbacks,
    AuthDefinition,
    AuthEvent,
    AuthState,
    Memory,
    RetryPolicy,
    new_auth_definition,
)
from .engine import Definition, Instance
from .errors import (
    AmbiguousConditionalTransitionError,
    CallbackError,
    ConditionalTransitionError,
    DefinitionError,
    EventError,
    FsmError,
    FsmInvariantError,
    NoConditionalTransitionMatchedError,
    NoTransitionError,
    NotPermanentStateError,
    RestoreError,
    UnknownEventError,
)
from .store import Checkpoint, CheckpointStore

__all__ = [
    "AmbiguousConditionalTransitionError",
    "AuthCallbacks",
    "AuthDefinition",
    "AuthEvent",
    "AuthState",
    "CallbackError",
    "Checkpoint",
    "CheckpointStore",
    "ConditionalTransitionError",
    "Definition",
    "DefinitionError",
    "EventError",
    "FsmError",
    "FsmInvariantError",
    "Instance",
    "Memory",
    "NoConditionalTransitionMatchedError",
    "NoTransitionError",
    "NotPermanentStateError",
    "RestoreError",
    "RetryPolicy",
    "UnknownEventError",
    "new_auth_definition",
]
