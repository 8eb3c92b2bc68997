"""Unit tests for the generic FSM engine.

Tables here use plain strings for states and events and a dict as memory so
the engine is exercised independently of the payment workflow.
"""

from __future__ import annotations

import logging
from typing import Any

import pytest

from auth_fsm.fsm.engine import Definition
from auth_fsm.fsm.errors import (
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
)

Memory = dict[str, Any]


def _always(_: Memory) -> bool:
    return True


def _defn(**kwargs: Any) -> Definition[str, str, Memory]:
    kwargs.setdefault("initial_state", "idle")
    kwargs.setdefault("initial_memory", {"status": "", "attempts": 0})
    return Definition(**kwargs)


def _branching(callbacks: dict[str, Any] | None = None) -> Definition[str, str, Memory]:
    """idle --go--> check --(status)--> ok | ko, both permanent."""

    return _defn(
        callbacks=callbacks or {},
        event_transitions={
            "idle": {"go": "check"},
            "ok": {"reset": "idle"},
            "ko": {"reset": "idle"},
        },
        conditional_transitions={
            "check": {
                "ok": lambda m: m["status"] == "ok",
                "ko": lambda m: m["status"] == "ko",
            },
        },
    )


# Validation


@pytest.mark.parametrize(
    "extra",
    [
        {"unconditional_transitions": {"idle": "step"}},
        {"conditional_transitions": {"idle": {"step": _always}}},
    ],
)
def test_validate_rejects_state_with_event_and_automatic_transitions(extra: dict[str, Any]) -> None:
    defn = _defn(event_transitions={"idle": {"go": "step"}, "step": {"go": "idle"}}, **extra)
    with pytest.raises(MultipleTransitionKindsError, match='from state "idle"'):
        defn.validate()


def test_validate_rejects_conditional_and_unconditional_from_same_state() -> None:
    defn = _defn(
        event_transitions={"idle": {"go": "step"}},
        conditional_transitions={"step": {"idle": _always}},
        unconditional_transitions={"step": "idle"},
    )
    with pytest.raises(MultipleTransitionKindsError) as exc_info:
        defn.validate()
    assert exc_info.value.state == "step"


def test_validate_rejects_transient_initial_state() -> None:
    defn = _defn(
        initial_state="boot",
        event_transitions={"idle": {"go": "boot"}},
        unconditional_transitions={"boot": "idle"},
    )
    with pytest.raises(NonPermanentInitialStateError):
        defn.validate()


def test_validate_rejects_unconditional_self_transition() -> None:
    defn = _defn(
        event_transitions={"idle": {"go": "spin"}},
        unconditional_transitions={"spin": "spin"},
    )
    with pytest.raises(UnconditionalSelfTransitionError, match='self-transition from "spin"'):
        defn.validate()


def test_validate_rejects_unconditional_cycle() -> None:
    defn = _defn(
        event_transitions={"idle": {"go": "a"}},
        unconditional_transitions={"a": "b", "b": "a"},
    )
    with pytest.raises(UnconditionalCycleError) as exc_info:
        defn.validate()
    assert exc_info.value.states == ("a", "b", "a")


def test_validate_rejects_transient_dead_end() -> None:
    defn = _defn(event_transitions={"idle": {"go": "nowhere"}})
    with pytest.raises(DeadEndStateError, match='"nowhere"'):
        defn.validate()


def test_validate_rejects_states_outside_declared_vocabulary() -> None:
    defn = _defn(
        states=frozenset({"idle", "step"}),
        event_transitions={"idle": {"go": "step"}},
        unconditional_transitions={"step": "typo"},
    )
    with pytest.raises(UnknownStateError, match='"typo" is not in list of states'):
        defn.validate()


def test_validate_rejects_events_outside_declared_vocabulary() -> None:
    defn = _defn(
        events=frozenset({"go"}),
        event_transitions={"idle": {"go": "step", "stop": "step"}},
        unconditional_transitions={"step": "idle"},
    )
    with pytest.raises(UndeclaredEventError, match='"stop"'):
        defn.validate()


def test_unreachable_states_warn_by_default_and_fail_in_strict_mode(
    caplog: pytest.LogCaptureFixture,
) -> None:
    defn = _defn(
        callbacks={"orphan": lambda m: None, "stray": None},
        event_transitions={"idle": {"go": "step"}},
        unconditional_transitions={"step": "idle", "orphan": "idle", "stray": "idle"},
    )
    assert defn.unreachable_states() == ["orphan", "stray"]

    caplog.set_level(logging.WARNING, logger="auth_fsm.fsm.engine")
    defn.validate()
    [record] = [r for r in caplog.records if "Unreachable states" in r.getMessage()]
    assert record.states == ["orphan", "stray"]
    assert record.with_callbacks == ["orphan"]

    with pytest.raises(UnreachableStateError) as exc_info:
        defn.validate(strict=True)
    assert exc_info.value.states == ("orphan", "stray")


def test_loop_through_conditional_state_is_left_to_the_predicates() -> None:
    defn = _defn(
        event_transitions={"idle": {"go": "check"}, "done": {"reset": "idle"}},
        conditional_transitions={
            "check": {
                "retry": lambda m: m["attempts"] < 3,
                "done": lambda m: m["attempts"] >= 3,
            },
        },
        unconditional_transitions={"retry": "check"},
        callbacks={"retry": lambda m: m.update(attempts=m["attempts"] + 1)},
    )
    defn.validate(strict=True)

    workflow = defn.new()
    workflow.process_event("go")

    assert workflow.current == "done"
    assert workflow.memory["attempts"] == 3


def test_validate_does_not_mutate_definition() -> None:
    defn = _branching()
    before = (
        dict(defn.event_transitions),
        dict(defn.conditional_transitions),
        dict(defn.unconditional_transitions),
    )
    defn.validate()
    after = (
        dict(defn.event_transitions),
        dict(defn.conditional_transitions),
        dict(defn.unconditional_transitions),
    )
    assert before == after


def test_definition_tables_are_read_only() -> None:
    source = {"idle": {"go": "check"}, "ok": {"reset": "idle"}, "ko": {"reset": "idle"}}
    defn = _defn(
        event_transitions=source,
        conditional_transitions={"check": {"ok": _always}},
    )
    source["idle"]["go"] = "elsewhere"

    assert defn.event_transitions["idle"]["go"] == "check"
    with pytest.raises(TypeError):
        defn.event_transitions["idle"]["stop"] = "ok"  # type: ignore[index]


# Instance construction


def test_new_starts_on_initial_state_with_copy_of_initial_memory() -> None:
    defn = _branching()
    instance = defn.new()

    assert instance.current == "idle"
    assert instance.memory == defn.initial_memory
    assert instance.memory is not defn.initial_memory

    instance.memory["status"] = "changed"
    assert defn.initial_memory["status"] == ""


def test_new_derives_states_and_events_from_table() -> None:
    instance = _branching().new()

    assert instance.states == {"idle", "check", "ok", "ko"}
    assert instance.permanent_states == {"idle", "ok", "ko"}
    assert instance.events == {"go", "reset"}


def test_restore_rejects_transient_and_unknown_states() -> None:
    defn = _branching()
    with pytest.raises(RestoreError, match='"check"'):
        defn.restore("check", {"status": "ok", "attempts": 0})
    with pytest.raises(RestoreError):
        defn.restore("missing", {"status": "", "attempts": 0})


def test_restore_preserves_given_values() -> None:
    memory = {"status": "ko", "attempts": 3}
    instance = _branching().restore("ko", memory)

    assert instance.current == "ko"
    assert instance.memory == memory
    assert instance.memory is not memory


# Event processing


def test_event_without_transition_fails_and_leaves_state_unchanged() -> None:
    instance = _branching().new()

    with pytest.raises(NoTransitionError) as first:
        instance.process_event("reset")
    with pytest.raises(NoTransitionError) as second:
        instance.process_event("reset")

    assert str(first.value) == 'no transition from "idle" for event "reset"'
    assert str(second.value) == str(first.value)
    assert instance.current == "idle"
    assert instance.memory == {"status": "", "attempts": 0}


def test_unknown_event_is_rejected() -> None:
    instance = _branching().new()
    with pytest.raises(UnknownEventError, match='unknown event "explode"'):
        instance.process_event("explode")
    assert instance.current == "idle"


def test_callbacks_run_once_in_order_and_memory_flows_to_predicates() -> None:
    entered: list[str] = []

    def on_check(memory: Memory) -> None:
        entered.append("check")
        memory["status"] = "ok"
        memory["attempts"] += 1

    def on_ok(memory: Memory) -> None:
        entered.append("ok")

    instance = _branching({"check": on_check, "ok": on_ok}).new()
    instance.process_event("go")

    assert entered == ["check", "ok"]
    assert instance.current == "ok"
    assert instance.memory == {"status": "ok", "attempts": 1}
    assert instance.available_events() == ["reset"]


def test_unconditional_chain_is_followed_to_permanent_state() -> None:
    entered: list[str] = []
    defn = _defn(
        callbacks={s: (lambda m, s=s: entered.append(s)) for s in ("a", "b", "done")},
        event_transitions={"idle": {"go": "a"}, "done": {"go": "a"}},
        unconditional_transitions={"a": "b", "b": "done"},
    )
    defn.validate()
    instance = defn.new()
    instance.process_event("go")

    assert entered == ["a", "b", "done"]
    assert instance.current == "done"


def test_ambiguous_conditional_transition_names_every_match() -> None:
    defn = _defn(
        event_transitions={"idle": {"go": "check"}, "ok": {}, "also_ok": {}},
        conditional_transitions={"check": {"ok": _always, "also_ok": _always}},
    )
    instance = defn.new()

    with pytest.raises(AmbiguousConditionalTransitionError) as exc_info:
        instance.process_event("go")

    assert exc_info.value.destinations == ("ok", "also_ok")
    assert '"ok"' in str(exc_info.value)
    assert '"also_ok"' in str(exc_info.value)
    assert instance.current == "check"
    assert not instance.is_permanent


def test_no_conditional_match_is_reported() -> None:
    instance = _branching().new()

    with pytest.raises(NoConditionalTransitionMatchedError, match='from "check"'):
        instance.process_event("go")
    assert instance.current == "check"


def test_instance_left_mid_chain_refuses_events_and_checkpoints() -> None:
    instance = _branching().new()
    with pytest.raises(NoConditionalTransitionMatchedError):
        instance.process_event("go")

    with pytest.raises(NotPermanentStateError):
        instance.process_event("go")
    with pytest.raises(NotPermanentStateError):
        instance.checkpoint()


def test_failing_callback_is_wrapped_and_keeps_previous_state() -> None:
    def on_check(memory: Memory) -> None:
        memory["attempts"] += 1
        raise RuntimeError("boom")

    instance = _branching({"check": on_check}).new()

    with pytest.raises(CallbackError) as exc_info:
        instance.process_event("go")

    err = exc_info.value
    assert str(err) == 'on entering state "check" from state "idle": boom'
    assert isinstance(err.__cause__, RuntimeError)
    assert (err.state, err.from_state) == ("check", "idle")
    assert instance.current == "idle"
    # Mutations made before the failure are not rolled back.
    assert instance.memory["attempts"] == 1


def test_failing_callback_mid_chain_parks_on_last_entered_state() -> None:
    def on_ok(memory: Memory) -> None:
        raise ValueError("notify failed")

    def on_check(memory: Memory) -> None:
        memory["status"] = "ok"

    instance = _branching({"check": on_check, "ok": on_ok}).new()

    with pytest.raises(CallbackError, match='"ok" from state "check"'):
        instance.process_event("go")
    assert instance.current == "check"


def test_predicates_see_a_snapshot() -> None:
    def sneaky(memory: Memory) -> bool:
        memory["status"] = "tampered"
        return True

    defn = _defn(
        event_transitions={"idle": {"go": "check"}, "ok": {}},
        conditional_transitions={"check": {"ok": sneaky}},
    )
    instance = defn.new()
    instance.process_event("go")

    assert instance.current == "ok"
    assert instance.memory["status"] == ""


def test_absent_callbacks_and_predicates_are_dropped() -> None:
    defn = _defn(
        callbacks={"check": None},
        event_transitions={"idle": {"go": "check"}, "ok": {}, "ko": {}},
        conditional_transitions={"check": {"ko": None, "ok": _always}},
    )
    instance = defn.new()
    instance.process_event("go")
    assert instance.current == "ok"


def test_dead_end_in_unvalidated_table_is_an_invariant_violation() -> None:
    instance = _defn(event_transitions={"idle": {"go": "nowhere"}}).new()

    with pytest.raises(FsmInvariantError):
        instance.process_event("go")


def test_checkpoint_returns_copy_of_memory() -> None:
    instance = _branching().restore("ok", {"status": "ok", "attempts": 2})
    state, memory = instance.checkpoint()

    assert state == "ok"
    assert memory == {"status": "ok", "attempts": 2}
    memory["attempts"] = 99
    assert instance.memory["attempts"] == 2
