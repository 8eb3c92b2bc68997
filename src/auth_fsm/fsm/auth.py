"""Two-stage payment/authorization workflow built on the generic engine.

A payment is created and polled until it settles, then an authorization is
created and polled the same way. Failed attempts are retried while the
recorded error is retryable and the attempt ceiling is not reached. The
workflow ends by notifying GPM of success or failure.

All I/O lives behind `AuthCallbacks`; this module only wires the table.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .engine import Definition

if TYPE_CHECKING:
    from auth_fsm.config import AuthFsmSettings


class AuthState(str, Enum):
    INITIAL = "Initial"
    NEW = "New"

    PAYMENT_CREATED = "PaymentCreated"
    PAYMENT_PENDING = "PaymentPending"
    PAYMENT_RETRY = "PaymentRetry"
    PAYMENT_WAIT_FOR_RETRY = "PaymentWaitForRetry"
    PAYMENT_FAILED = "PaymentFailed"
    PAYMENT_SUCCEEDED = "PaymentSucceeded"
    CHECK_PAYMENT_STATUS = "CheckPaymentStatus"

    AUTH_CREATED = "AuthCreated"
    AUTH_PENDING = "AuthPending"
    AUTH_RETRY = "AuthRetry"
    AUTH_WAIT_FOR_RETRY = "AuthWaitForRetry"
    AUTH_FAILED = "AuthFailed"
    AUTH_SUCCEEDED = "AuthSucceeded"
    CHECK_AUTH_STATUS = "CheckAuthStatus"

    SENDING_SUCCESS_TO_GPM = "SendingSuccessToGPM"
    SENDING_ERROR_TO_GPM = "SendingErrorToGPM"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class AuthEvent(str, Enum):
    REQUEST_FROM_GPM = "RequestFromGPM"
    JOB = "Job"
    PAYMENT_WEBHOOK_FROM_ZOOZ = "PaymentWebhookFromZooz"
    AUTH_WEBHOOK_FROM_ZOOZ = "AuthWebhookFromZooz"


class Memory(BaseModel):
    """Domain facts carried through transitions.

    Written by callbacks, read by conditional transitions. Serialised with
    camelCase keys (`paymentStatus`, `authAttempts`, ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    payment_status: str = ""
    payment_error: str = ""
    payment_attempts: int = 0
    auth_status: str = ""
    auth_error: str = ""
    auth_attempts: int = 0


class AuthCallbacks(Protocol):
    """Side effects invoked when entering states.

    Each action may update the memory it is given and signals failure by
    raising.
    """

    def create_auth(self, memory: Memory) -> None: ...

    def create_payment(self, memory: Memory) -> None: ...

    def get_auth_status_from_zooz(self, memory: Memory) -> None: ...

    def get_payment_status_from_zooz(self, memory: Memory) -> None: ...

    def schedule_job(self, memory: Memory) -> None: ...

    def send_error_to_gpm(self, memory: Memory) -> None: ...

    def send_success_to_gpm(self, memory: Memory) -> None: ...


# Which `AuthCallbacks` action runs on entering each state.
STATE_ACTIONS: dict[AuthState, str] = {
    AuthState.AUTH_PENDING: "schedule_job",
    AuthState.AUTH_RETRY: "create_auth",
    AuthState.AUTH_WAIT_FOR_RETRY: "schedule_job",
    AuthState.CHECK_AUTH_STATUS: "get_auth_status_from_zooz",
    AuthState.CHECK_PAYMENT_STATUS: "get_payment_status_from_zooz",
    AuthState.NEW: "create_payment",
    AuthState.PAYMENT_PENDING: "schedule_job",
    AuthState.PAYMENT_RETRY: "create_payment",
    AuthState.PAYMENT_SUCCEEDED: "create_auth",
    AuthState.PAYMENT_WAIT_FOR_RETRY: "schedule_job",
    AuthState.SENDING_ERROR_TO_GPM: "send_error_to_gpm",
    AuthState.SENDING_SUCCESS_TO_GPM: "send_success_to_gpm",
}

MAX_PAYMENT_ATTEMPTS = 5
MAX_AUTH_ATTEMPTS = 5
RETRYABLE_ERROR = "can retry"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt ceilings and the set of error strings worth retrying."""

    max_payment_attempts: int = MAX_PAYMENT_ATTEMPTS
    max_auth_attempts: int = MAX_AUTH_ATTEMPTS
    retryable_errors: frozenset[str] = field(default_factory=lambda: frozenset({RETRYABLE_ERROR}))

    def can_retry(self, error: str) -> bool:
        return error in self.retryable_errors

    @staticmethod
    def from_settings(settings: AuthFsmSettings) -> RetryPolicy:
        return RetryPolicy(
            max_payment_attempts=settings.max_payment_attempts,
            max_auth_attempts=settings.max_auth_attempts,
            retryable_errors=frozenset(settings.retryable_errors),
        )


AuthDefinition = Definition[AuthState, AuthEvent, Memory]


def _status_is(attr: str, status: str) -> Callable[[Memory], bool]:
    return lambda m: getattr(m, attr) == status


def _bind_callbacks(
    callbacks: AuthCallbacks | None,
) -> dict[AuthState, Callable[[Memory], None] | None]:
    if callbacks is None:
        return {}
    return {state: getattr(callbacks, action) for state, action in STATE_ACTIONS.items()}


def new_auth_definition(
    callbacks: AuthCallbacks | None, policy: RetryPolicy | None = None
) -> AuthDefinition:
    """Build the payment/authorization transition table.

    Args:
        callbacks: Side effects to bind. `None` builds the same table with no
            actions bound, which is enough for validation and inspection.
        policy: Retry ceilings and retryable errors. Defaults to `RetryPolicy()`.
    """

    policy = policy or RetryPolicy()

    def payment_can_retry(m: Memory) -> bool:
        return policy.can_retry(m.payment_error) and m.payment_attempts < policy.max_payment_attempts

    def auth_can_retry(m: Memory) -> bool:
        return policy.can_retry(m.auth_error) and m.auth_attempts < policy.max_auth_attempts

    return Definition(
        initial_state=AuthState.INITIAL,
        initial_memory=Memory(),
        states=frozenset(AuthState),
        events=frozenset(AuthEvent),
        callbacks=_bind_callbacks(callbacks),
        event_transitions={
            AuthState.INITIAL: {
                AuthEvent.REQUEST_FROM_GPM: AuthState.NEW,
            },
            AuthState.AUTH_PENDING: {
                AuthEvent.JOB: AuthState.CHECK_AUTH_STATUS,
                AuthEvent.AUTH_WEBHOOK_FROM_ZOOZ: AuthState.AUTH_CREATED,
                AuthEvent.REQUEST_FROM_GPM: AuthState.CHECK_AUTH_STATUS,
            },
            AuthState.AUTH_WAIT_FOR_RETRY: {
                AuthEvent.JOB: AuthState.AUTH_RETRY,
                AuthEvent.REQUEST_FROM_GPM: AuthState.AUTH_RETRY,
            },
            AuthState.FAILED: {
                AuthEvent.REQUEST_FROM_GPM: AuthState.SENDING_ERROR_TO_GPM,
            },
            AuthState.PAYMENT_PENDING: {
                AuthEvent.JOB: AuthState.CHECK_PAYMENT_STATUS,
                AuthEvent.PAYMENT_WEBHOOK_FROM_ZOOZ: AuthState.PAYMENT_CREATED,
                AuthEvent.REQUEST_FROM_GPM: AuthState.CHECK_PAYMENT_STATUS,
            },
            AuthState.PAYMENT_WAIT_FOR_RETRY: {
                AuthEvent.JOB: AuthState.PAYMENT_RETRY,
                AuthEvent.REQUEST_FROM_GPM: AuthState.PAYMENT_RETRY,
            },
            AuthState.SUCCEEDED: {
                AuthEvent.REQUEST_FROM_GPM: AuthState.SENDING_SUCCESS_TO_GPM,
            },
        },
        conditional_transitions={
            AuthState.AUTH_CREATED: {
                AuthState.AUTH_FAILED: _status_is("auth_status", "failed"),
                AuthState.AUTH_PENDING: _status_is("auth_status", "pending"),
                AuthState.AUTH_SUCCEEDED: _status_is("auth_status", "succeeded"),
            },
            AuthState.AUTH_FAILED: {
                AuthState.AUTH_WAIT_FOR_RETRY: auth_can_retry,
                AuthState.SENDING_ERROR_TO_GPM: lambda m: not auth_can_retry(m),
            },
            AuthState.PAYMENT_CREATED: {
                AuthState.PAYMENT_FAILED: _status_is("payment_status", "failed"),
                AuthState.PAYMENT_PENDING: _status_is("payment_status", "pending"),
                AuthState.PAYMENT_SUCCEEDED: _status_is("payment_status", "succeeded"),
            },
            AuthState.PAYMENT_FAILED: {
                AuthState.PAYMENT_WAIT_FOR_RETRY: payment_can_retry,
                AuthState.SENDING_ERROR_TO_GPM: lambda m: not payment_can_retry(m),
            },
        },
        unconditional_transitions={
            AuthState.AUTH_RETRY: AuthState.AUTH_CREATED,
            AuthState.AUTH_SUCCEEDED: AuthState.SENDING_SUCCESS_TO_GPM,
            AuthState.CHECK_AUTH_STATUS: AuthState.AUTH_CREATED,
            AuthState.CHECK_PAYMENT_STATUS: AuthState.PAYMENT_CREATED,
            AuthState.NEW: AuthState.PAYMENT_CREATED,
            AuthState.PAYMENT_RETRY: AuthState.PAYMENT_CREATED,
            AuthState.PAYMENT_SUCCEEDED: AuthState.AUTH_CREATED,
            AuthState.SENDING_ERROR_TO_GPM: AuthState.FAILED,
            AuthState.SENDING_SUCCESS_TO_GPM: AuthState.SUCCEEDED,
        },
    )

