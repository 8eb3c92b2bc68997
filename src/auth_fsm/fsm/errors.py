"""Exceptions raised by the FSM engine.

Every failure is surfaced to the immediate caller of `Definition.validate`,
`Definition.restore` or `Instance.process_event`. Nothing is swallowed.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from enum import Enum


def label(value: Hashable) -> str:
    """Render a state or event for messages and log fields."""

    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class FsmError(Exception):
    """Base class for all engine errors."""


class DefinitionError(FsmError, ValueError):
    """The transition table is malformed. Never recovered at runtime."""


class MultipleTransitionKindsError(DefinitionError):
    def __init__(self, state: Hashable) -> None:
        super().__init__(f'multiple transition kinds from state "{label(state)}"')
        self.state = state


class NonPermanentInitialStateError(DefinitionError):
    def __init__(self, state: Hashable) -> None:
        super().__init__(
            f'initial state "{label(state)}" is not permanent (no event transitions from it)'
        )
        self.state = state


class UnconditionalSelfTransitionError(DefinitionError):
    def __init__(self, state: Hashable) -> None:
        super().__init__(f'unconditional self-transition from "{label(state)}"')
        self.state = state


class UnconditionalCycleError(DefinitionError):
    def __init__(self, states: Iterable[Hashable]) -> None:
        self.states = tuple(states)
        path = " -> ".join(f'"{label(s)}"' for s in self.states)
        super().__init__(f"unconditional transition cycle: {path}")


class DeadEndStateError(DefinitionError):
    def __init__(self, state: Hashable) -> None:
        super().__init__(f'transient state "{label(state)}" has no outgoing transition')
        self.state = state


class UnknownStateError(DefinitionError):
    def __init__(self, state: Hashable) -> None:
        super().__init__(f'state "{label(state)}" is not in list of states')
        self.state = state


class UndeclaredEventError(DefinitionError):
    def __init__(self, event: Hashable) -> None:
        super().__init__(f'event "{label(event)}" is not in list of events')
        self.event = event


class UnreachableStateError(DefinitionError):
    def __init__(self, states: Iterable[Hashable]) -> None:
        self.states = tuple(states)
        names = ", ".join(f'"{label(s)}"' for s in self.states)
        super().__init__(f"states unreachable from the initial state: {names}")


class RestoreError(FsmError, ValueError):
    """A persisted record cannot be resumed."""

    def __init__(self, state: Hashable | None, reason: str = "is not a permanent state") -> None:
        if state is None:
            super().__init__(f"cannot restore: {reason}")
        else:
            super().__init__(f'cannot restore to state "{label(state)}": {reason}')
        self.state = state


class NotPermanentStateError(FsmError):
    """The instance is parked mid-chain, which a healthy caller never observes."""

    def __init__(self, state: Hashable) -> None:
        super().__init__(f'current state "{label(state)}" is not permanent')
        self.state = state


class EventError(FsmError):
    """Expected, recoverable event rejection. Instance state is untouched."""


class UnknownEventError(EventError):
    def __init__(self, event: Hashable) -> None:
        super().__init__(f'unknown event "{label(event)}"')
        self.event = event


class NoTransitionError(EventError):
    def __init__(self, state: Hashable, event: Hashable) -> None:
        super().__init__(f'no transition from "{label(state)}" for event "{label(event)}"')
        self.state = state
        self.event = event


class ConditionalTransitionError(FsmError):
    """Memory did not select exactly one conditional destination."""


class NoConditionalTransitionMatchedError(ConditionalTransitionError):
    def __init__(self, state: Hashable) -> None:
        super().__init__(f'no conditional transition matched from "{label(state)}"')
        self.state = state


class AmbiguousConditionalTransitionError(ConditionalTransitionError):
    def __init__(self, state: Hashable, destinations: Iterable[Hashable]) -> None:
        self.state = state
        self.destinations = tuple(destinations)
        names = ", ".join(f'"{label(d)}"' for d in self.destinations)
        super().__init__(
            f'ambiguous conditional transition from "{label(state)}": '
            f"{len(self.destinations)} matches ({names})"
        )


class CallbackError(FsmError):
    """A state-entry callback failed. The original exception is `__cause__`."""

    def __init__(self, state: Hashable, from_state: Hashable, cause: BaseException) -> None:
        super().__init__(
            f'on entering state "{label(state)}" from state "{label(from_state)}": {cause}'
        )
        self.state = state
        self.from_state = from_state


class FsmInvariantError(FsmError, RuntimeError):
    """A transient state has no outgoing edge. Only possible for unvalidated tables."""

    def __init__(self, state: Hashable) -> None:
        super().__init__(f'transient state "{label(state)}" has no outgoing transition')
        self.state = state
