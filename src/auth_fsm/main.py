"""CLI entrypoint for inspecting the payment/authorization workflow.

The CLI never performs workflow side effects. It builds the shipped table with
no callbacks bound, which is enough to validate it, describe it and inspect a
stored checkpoint.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from auth_fsm import __version__
from auth_fsm.config import AuthFsmSettings
from auth_fsm.fsm.auth import STATE_ACTIONS, AuthDefinition, RetryPolicy, new_auth_definition
from auth_fsm.fsm.errors import DefinitionError, RestoreError, label
from auth_fsm.fsm.store import CheckpointStore
from auth_fsm.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="auth-fsm",
        description="Payment/authorization workflow state machine",
    )
    parser.add_argument("--version", action="version", version=f"auth-fsm {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate the shipped transition table")
    validate.add_argument(
        "--strict",
        action="store_true",
        help="Also fail when some states are unreachable from the initial state",
    )

    describe = subparsers.add_parser(
        "describe", help="List every state with its kind, action and outgoing edges"
    )
    describe.add_argument("--json", action="store_true", help="Emit JSON instead of text")

    inspect = subparsers.add_parser(
        "inspect", help="Show a stored checkpoint and the events it accepts"
    )
    inspect.add_argument(
        "--checkpoint",
        default=None,
        help="Checkpoint file (defaults to AUTH_FSM_CHECKPOINT_PATH)",
    )

    return parser


def describe_definition(definition: AuthDefinition) -> list[dict[str, Any]]:
    """One row per state, in table order."""

    permanent = definition.permanent_states()
    rows: list[dict[str, Any]] = []
    for state in definition.ordered_states():
        row: dict[str, Any] = {
            "state": label(state),
            "kind": "permanent" if state in permanent else "transient",
            "action": STATE_ACTIONS.get(state),
        }
        if state in definition.event_transitions:
            row["on"] = {
                label(event): label(dst)
                for event, dst in definition.event_transitions[state].items()
            }
        elif state in definition.conditional_transitions:
            row["when"] = [label(dst) for dst in definition.conditional_transitions[state]]
        elif state in definition.unconditional_transitions:
            row["then"] = label(definition.unconditional_transitions[state])
        rows.append(row)
    return rows


def _format_row(row: dict[str, Any]) -> str:
    parts = [f"{row['state']:<22}", f"{row['kind']:<10}", f"{row['action'] or '-':<29}"]
    if "on" in row:
        parts.append(", ".join(f"{event} -> {dst}" for event, dst in row["on"].items()))
    elif "when" in row:
        parts.append("one of " + " | ".join(row["when"]))
    elif "then" in row:
        parts.append(f"-> {row['then']}")
    return " ".join(parts).rstrip()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = AuthFsmSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level, stream=sys.stderr)
    definition = new_auth_definition(None, RetryPolicy.from_settings(settings))

    try:
        if args.command == "validate":
            try:
                definition.validate(strict=args.strict)
            except DefinitionError as e:
                print(f"Invalid definition: {e}", file=sys.stderr)
                return 1
            print(
                f"Definition is valid: {len(definition.known_states())} states, "
                f"{len(definition.permanent_states())} permanent, "
                f"{len(definition.known_events())} events"
            )
            return 0

        if args.command == "describe":
            rows = describe_definition(definition)
            if args.json:
                print(json.dumps(rows, indent=2))
            else:
                for row in rows:
                    print(_format_row(row))
            return 0

        if args.command == "inspect":
            path = Path(args.checkpoint) if args.checkpoint else settings.checkpoint_path
            store = CheckpointStore(path)
            if not path.exists():
                print(f"No checkpoint at {path}", file=sys.stderr)
                return 1
            try:
                instance = store.load_instance(definition)
            except RestoreError as e:
                logger.error(str(e), extra={"path": str(path)})
                print(f"Cannot resume from {path}: {e}", file=sys.stderr)
                return 1

            print(f"State: {label(instance.current)}")
            print(f"Memory: {instance.memory.model_dump_json(by_alias=True)}")
            events = [label(e) for e in instance.available_events()]
            print(f"Accepts: {', '.join(events) or 'nothing'}")
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
