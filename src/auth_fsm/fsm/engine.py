"""Generic finite-state-machine engine.

A `Definition` is the immutable transition table of a workflow. An `Instance`
is one running copy of it: the current state plus the memory record that
callbacks write and conditional transitions read.

States fall into two categories, derived from the table alone:

* permanent states are sources of event transitions; an instance only rests
  on these between `Instance.process_event` calls
* transient states are everything else; they are passed through automatically
  via unconditional or conditional transitions

The engine is synchronous and not reentrant. Callers must serialise
`process_event` calls per instance.
"""

from __future__ import annotations

import copy
import logging
from collections import deque
from collections.abc import Callable, Hashable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Generic, TypeVar

from .errors import (
    AmbiguousConditionalTransitionError,
    CallbackError,
    DeadEndStateError,
    FsmInvariantError,
    MultipleTransitionKindsError,
    NoConditionalTransitionMatchedError,
    NonPermanentInitialStateError,
    NoTransitionError,
    NotPermanentStateError,
    RestoreError,
    UnconditionalCycleError,
    UnconditionalSelfTransitionError,
    UndeclaredEventError,
    UnknownEventError,
    UnknownStateError,
    UnreachableStateError,
    label,
)

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Hashable)
E = TypeVar("E", bound=Hashable)
M = TypeVar("M")


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class Definition(Generic[S, E, M]):
    """Immutable transition table.

    A state may be the source of at most one transition kind. This is not
    enforced on construction; call `validate` once before creating instances.

    `states` and `events`, when given, declare the closed vocabulary of the
    workflow so that `validate` can reject tables referencing anything else.
    """

    initial_state: S
    initial_memory: M
    callbacks: Mapping[S, Callable[[M], None] | None] = field(default_factory=dict)
    event_transitions: Mapping[S, Mapping[E, S]] = field(default_factory=dict)
    conditional_transitions: Mapping[S, Mapping[S, Callable[[M], bool] | None]] = field(
        default_factory=dict
    )
    unconditional_transitions: Mapping[S, S] = field(default_factory=dict)
    states: frozenset[S] | None = None
    events: frozenset[E] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "callbacks", _freeze(self.callbacks))
        object.__setattr__(
            self,
            "event_transitions",
            _freeze({s: _freeze(t) for s, t in self.event_transitions.items()}),
        )
        object.__setattr__(
            self,
            "conditional_transitions",
            _freeze({s: _freeze(c) for s, c in self.conditional_transitions.items()}),
        )
        object.__setattr__(
            self, "unconditional_transitions", _freeze(self.unconditional_transitions)
        )

    # Derived sets

    def permanent_states(self) -> frozenset[S]:
        return frozenset(self.event_transitions)

    def known_states(self) -> frozenset[S]:
        return frozenset(self._referenced_states())

    def known_events(self) -> frozenset[E]:
        return frozenset(e for transitions in self.event_transitions.values() for e in transitions)

    def ordered_states(self) -> list[S]:
        """Every state mentioned in the table, deduplicated, in table order."""

        return list(dict.fromkeys(self._referenced_states()))

    def _referenced_states(self) -> Iterator[S]:
        """Yield every state mentioned anywhere in the table, in table order."""

        yield self.initial_state
        yield from self.callbacks
        for state, transitions in self.event_transitions.items():
            yield state
            yield from transitions.values()
        for state, conditions in self.conditional_transitions.items():
            yield state
            yield from conditions
        for state, destination in self.unconditional_transitions.items():
            yield state
            yield destination

    def successors(self, state: S) -> list[S]:
        """Destinations reachable from `state` in one hop, in table order."""

        if state in self.event_transitions:
            return list(dict.fromkeys(self.event_transitions[state].values()))
        if state in self.conditional_transitions:
            return list(self.conditional_transitions[state])
        if state in self.unconditional_transitions:
            return [self.unconditional_transitions[state]]
        return []

    # Validation

    def validate(self, *, strict: bool = False) -> None:
        """Check that the table is well formed, raising the first violation found.

        Args:
            strict: Also fail when some states (or states with callbacks) cannot
                be reached from the initial state. Otherwise this is only logged.

        Only cycles made entirely of unconditional edges are rejected. A loop
        that passes through a conditional state is accepted, since whether it
        terminates depends on the predicates and on what callbacks write to
        memory. Such a loop whose predicates keep choosing it never returns
        from `process_event`.

        Raises:
            DefinitionError: A subclass describing the violation.
        """

        self._validate_vocabulary()

        sources: set[S] = set()
        for table in (
            self.event_transitions,
            self.conditional_transitions,
            self.unconditional_transitions,
        ):
            for state in table:
                if state in sources:
                    raise MultipleTransitionKindsError(state)
                sources.add(state)

        if self.initial_state not in self.event_transitions:
            raise NonPermanentInitialStateError(self.initial_state)

        for state, destination in self.unconditional_transitions.items():
            if state == destination:
                raise UnconditionalSelfTransitionError(state)
        self._validate_unconditional_cycles()

        for state in self.ordered_states():
            if not self.successors(state) and state not in self.event_transitions:
                raise DeadEndStateError(state)

        unreachable = self.unreachable_states()
        if unreachable:
            if strict:
                raise UnreachableStateError(unreachable)
            logger.warning(
                "Unreachable states in definition",
                extra={
                    "states": [label(s) for s in unreachable],
                    "with_callbacks": [
                        label(s) for s in unreachable if self.callbacks.get(s) is not None
                    ],
                },
            )

    def _validate_vocabulary(self) -> None:
        if self.states is not None:
            for state in self._referenced_states():
                if state not in self.states:
                    raise UnknownStateError(state)
        if self.events is not None:
            for transitions in self.event_transitions.values():
                for event in transitions:
                    if event not in self.events:
                        raise UndeclaredEventError(event)

    def _validate_unconditional_cycles(self) -> None:
        cleared: set[S] = set()
        for start in self.unconditional_transitions:
            path: list[S] = []
            state = start
            while state in self.unconditional_transitions and state not in cleared:
                if state in path:
                    raise UnconditionalCycleError([*path[path.index(state) :], state])
                path.append(state)
                state = self.unconditional_transitions[state]
            cleared.update(path)

    def unreachable_states(self) -> list[S]:
        """States that no path from the initial state can enter."""

        seen = {self.initial_state}
        queue = deque([self.initial_state])
        while queue:
            for nxt in self.successors(queue.popleft()):
                if nxt not in seen:
                    seen.add(nxt)
                    queue.append(nxt)
        return [s for s in self.ordered_states() if s not in seen]

    # Instances

    def new(self) -> Instance[S, E, M]:
        """Start a fresh workflow on the initial state."""

        return Instance(self, self.initial_state, copy.deepcopy(self.initial_memory))

    def restore(self, state: S, memory: M) -> Instance[S, E, M]:
        """Resume a workflow from persisted values.

        Only permanent states are legal checkpoints.

        Raises:
            RestoreError: If `state` is not permanent.
        """

        if state not in self.event_transitions:
            raise RestoreError(state)
        return Instance(self, state, copy.deepcopy(memory))


class Instance(Generic[S, E, M]):
    """A running workflow: current state plus exclusively owned memory."""

    def __init__(self, definition: Definition[S, E, M], current: S, memory: M) -> None:
        self.definition = definition
        self.current = current
        self.memory = memory

        self.states = definition.known_states()
        self.permanent_states = definition.permanent_states()
        self.events = definition.known_events()

        self._callbacks = {s: fn for s, fn in definition.callbacks.items() if fn is not None}
        self._conditions = {
            s: {d: p for d, p in conditions.items() if p is not None}
            for s, conditions in definition.conditional_transitions.items()
        }

    @property
    def is_permanent(self) -> bool:
        return self.current in self.permanent_states

    def available_events(self) -> list[E]:
        """Events that have a transition from the current state."""

        return list(self.definition.event_transitions.get(self.current, {}))

    def checkpoint(self) -> tuple[S, M]:
        """Return `(state, memory)` suitable for persistence.

        Raises:
            NotPermanentStateError: If the instance was left mid-chain by a
                failed `process_event` call.
        """

        if not self.is_permanent:
            raise NotPermanentStateError(self.current)
        return self.current, copy.deepcopy(self.memory)

    def process_event(self, event: E) -> None:
        """Apply an external event, then follow automatic transitions.

        Each entered state's callback runs exactly once, in order. On failure
        the instance stays on the last state it successfully entered; memory
        changes already made by callbacks are kept.

        Raises:
            NotPermanentStateError: The instance is not resting on a permanent state.
            UnknownEventError: `event` appears nowhere in the table.
            NoTransitionError: `event` is not accepted from the current state.
            ConditionalTransitionError: Memory selected zero or several destinations.
            CallbackError: A state-entry callback raised.
            FsmInvariantError: A transient state has no outgoing transition.
        """

        if not self.is_permanent:
            raise NotPermanentStateError(self.current)
        if event not in self.events:
            logger.warning("Unknown event", extra={"event": label(event)})
            raise UnknownEventError(event)

        source = self.current
        destination = self.definition.event_transitions[source].get(event)
        if destination is None:
            logger.warning(
                "No transition for event",
                extra={"state": label(source), "event": label(event)},
            )
            raise NoTransitionError(source, event)

        self._enter(destination)
        while not self.is_permanent:
            self._enter(self._next_state())

        logger.info(
            "Event processed",
            extra={"event": label(event), "from_state": label(source), "state": label(self.current)},
        )

    def _next_state(self) -> S:
        state = self.current
        if state in self.definition.unconditional_transitions:
            return self.definition.unconditional_transitions[state]

        conditions = self._conditions.get(state)
        if conditions is None:
            raise FsmInvariantError(state)

        # Predicates see a snapshot; all of them run before deciding.
        snapshot = copy.copy(self.memory)
        matches = [dst for dst, predicate in conditions.items() if predicate(snapshot)]
        if len(matches) == 1:
            return matches[0]

        logger.error(
            "Conditional transition did not resolve",
            extra={"state": label(state), "destinations": [label(d) for d in matches]},
        )
        if not matches:
            raise NoConditionalTransitionMatchedError(state)
        raise AmbiguousConditionalTransitionError(state, matches)

    def _enter(self, state: S) -> None:
        callback = self._callbacks.get(state)
        if callback is not None:
            try:
                callback(self.memory)
            except Exception as exc:
                logger.error(
                    "State callback failed",
                    extra={"state": label(state), "from_state": label(self.current)},
                )
                raise CallbackError(state, self.current, exc) from exc
        logger.debug(
            "Entered state", extra={"state": label(state), "from_state": label(self.current)}
        )
        self.current = state
