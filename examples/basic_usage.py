#!/usr/bin/env python3
"""Drive the payment/authorization workflow with simulated callbacks.

This demonstrates using the FSM components directly:

* load settings from `.env`
* build and validate the workflow definition
* resume from (or create) a checkpoint file
* process one event and checkpoint the result

The callbacks below fake the payment provider: every creation attempt fails
with a retryable error until `--succeed-after` attempts have been made.
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence

from auth_fsm.config import AuthFsmSettings
from auth_fsm.fsm import (
    AuthEvent,
    CheckpointStore,
    FsmError,
    Memory,
    RetryPolicy,
    new_auth_definition,
)
from auth_fsm.logging import configure_logging

logger = logging.getLogger("basic_usage")


class SimulatedCallbacks:
    def __init__(self, succeed_after: int) -> None:
        self._succeed_after = succeed_after

    def create_payment(self, memory: Memory) -> None:
        memory.payment_attempts += 1
        if memory.payment_attempts >= self._succeed_after:
            memory.payment_status, memory.payment_error = "succeeded", ""
        else:
            memory.payment_status, memory.payment_error = "failed", "can retry"

    def get_payment_status_from_zooz(self, memory: Memory) -> None:
        logger.info("Polling payment", extra={"status": memory.payment_status})

    def create_auth(self, memory: Memory) -> None:
        memory.auth_attempts += 1
        memory.auth_status = "succeeded"

    def get_auth_status_from_zooz(self, memory: Memory) -> None:
        logger.info("Polling authorization", extra={"status": memory.auth_status})

    def schedule_job(self, memory: Memory) -> None:
        logger.info("Job scheduled")

    def send_success_to_gpm(self, memory: Memory) -> None:
        print("GPM notified: success")

    def send_error_to_gpm(self, memory: Memory) -> None:
        print(f"GPM notified: error ({memory.payment_error or memory.auth_error})")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process one workflow event.")
    parser.add_argument(
        "event",
        choices=[e.value for e in AuthEvent],
        help="Event to deliver, e.g. RequestFromGPM or Job",
    )
    parser.add_argument(
        "--succeed-after",
        type=int,
        default=2,
        help="Payment attempt number that succeeds (default: 2)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = AuthFsmSettings()
    configure_logging(settings.log_level)

    definition = new_auth_definition(
        SimulatedCallbacks(args.succeed_after), RetryPolicy.from_settings(settings)
    )
    definition.validate()

    store = CheckpointStore(settings.checkpoint_path)
    workflow = store.load_instance(definition)

    try:
        workflow.process_event(AuthEvent(args.event))
    except FsmError as exc:
        print(f"Event rejected: {exc}")
        return 1

    store.save_instance(workflow)
    print(f"Now at {workflow.current.value}; checkpoint written to {store.path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
