"""Blocking operations: at most one long-running cluster operation at a time."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TRANSITION_OPERATION_STEP_ID = (
    "Transition step: waiting either for the next step to start or for the operation to be removed ..."
)

OPERATION_ID_BASE_CONFIG_COUNT_SPEC_ENFORCEMENT = "Base config count spec enforcement"
OPERATION_STEP_ID_BASE_CONFIG_DEPLOYING = "Base config is deploying"

OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT = "Primary DB count spec enforcement"
OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING = "Primary DB is deploying"
OPERATION_STEP_ID_PRIMARY_DB_WAITING_BEFORE_FAILING_OVER = (
    "Waiting few seconds before failing over by promoting a Replica DB as a Primary DB"
)
OPERATION_STEP_ID_PRIMARY_DB_FAILING_OVER = "Failing over by promoting a Replica DB as a Primary DB"

OPERATION_ID_REPLICA_DB_COUNT_SPEC_ENFORCEMENT = "Replica DB count spec enforcement"
OPERATION_STEP_ID_REPLICA_DB_DEPLOYING = "Replica DB is deploying"
OPERATION_STEP_ID_REPLICA_DB_UNDEPLOYING = "Replica DB is undeploying"

OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING = "Enforcing StatefulSet's Spec"
OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING = "StatefulSet's spec is updating"
OPERATION_STEP_ID_STATEFUL_SET_POD_SPEC_UPDATING = "StatefulSet Pod's spec is updating"
OPERATION_STEP_ID_STATEFUL_SET_WAITING_ON_STUCK_POD = "Attempting to fix a stuck Pod by recreating it"

MAX_REQUEUE_SECONDS = 20

_ERROR_ALREADY_ACTIVE = (
    "There is already an active operation which is running. "
    "We cannot have more than 1 active operation running."
)
_ERROR_NO_ASSOCIATED_CONFIG = (
    "The given operationId has not an associated config. "
    "Please associate it by calling the method BlockingOperation.AddConfig()."
)


@dataclass(frozen=True)
class StatefulSetOperation:
    """The StatefulSet an operation acts upon."""

    instance_index: int = 0
    name: str = ""


@dataclass(frozen=True)
class StatefulSetSpecUpdateOperation:
    """Details of a StatefulSet spec update."""

    spec_differences: str = ""


@dataclass(frozen=True)
class KubegresBlockingOperation:
    """A blocking operation as recorded in the Kubegres status."""

    operation_id: str = ""
    step_id: str = ""
    has_timed_out: bool = False
    timeout_epoch_seconds: int = 0
    stateful_set_operation: StatefulSetOperation = field(default_factory=StatefulSetOperation)
    stateful_set_spec_update_operation: StatefulSetSpecUpdateOperation = field(
        default_factory=StatefulSetSpecUpdateOperation
    )


@dataclass
class OperationStatus:
    """The part of the Kubegres status that stores blocking operations."""

    blocking_operation: KubegresBlockingOperation = field(default_factory=KubegresBlockingOperation)
    previous_blocking_operation: KubegresBlockingOperation = field(
        default_factory=KubegresBlockingOperation
    )


CompletionChecker = Callable[[KubegresBlockingOperation], bool]


@dataclass(frozen=True)
class BlockingOperationConfig:
    """How a given operation step times out and how its completion is detected.

    When ``after_completion_move_to_transition_step`` is false, a completed
    operation is removed and becomes the previous operation. When true, the
    operation stays active on the transition step, blocking other operations
    until the next step starts or the operation is removed.
    """

    operation_id: str
    step_id: str
    timeout_seconds: int
    completion_checker: Optional[CompletionChecker] = None
    after_completion_move_to_transition_step: bool = False


_NO_CONFIG = BlockingOperationConfig(operation_id="", step_id="", timeout_seconds=0)


class BlockingOperationError(Exception):
    """Raised when a blocking operation cannot be activated."""

    def __init__(self, reason: str, operation_id: str) -> None:
        self.reason = reason
        self.operation_id = operation_id
        self.there_is_already_an_active_operation = reason == _ERROR_ALREADY_ACTIVE
        self.operation_id_has_no_associated_config = reason == _ERROR_NO_ASSOCIATED_CONFIG
        super().__init__(
            "Cannot active a blocking operation. Reason: "
            f"OperationId: '{operation_id}' - {reason}"
        )


def _now() -> int:
    return int(time.time())


class BlockingOperation:
    """Tracks the single active blocking operation and the one before it."""

    def __init__(
        self,
        status: OperationStatus,
        stateful_set_name: Optional[Callable[[int], str]] = None,
        clock: Callable[[], int] = _now,
    ) -> None:
        self._status = status
        self._stateful_set_name = stateful_set_name or (lambda index: "")
        self._clock = clock
        self._configs: dict[tuple[str, str], BlockingOperationConfig] = {}
        self._active = KubegresBlockingOperation()
        self._previous = KubegresBlockingOperation()

    @property
    def active_operation(self) -> KubegresBlockingOperation:
        return self._active

    @property
    def previously_active_operation(self) -> KubegresBlockingOperation:
        return self._previous

    def add_config(self, config: BlockingOperationConfig) -> None:
        self._configs[(config.operation_id, config.step_id)] = config

    def load_active_operation(self) -> int:
        """Load operations from the status; return seconds to wait, at most 20."""
        self._active = self._status.blocking_operation
        self._previous = self._status.previous_blocking_operation
        self._remove_operation_if_not_active()
        return min(self.seconds_left_before_timeout(), MAX_REQUEUE_SECONDS)

    def is_active_operation_id_different_of(self, operation_id: str) -> bool:
        return self._is_there_active_operation() and self._active.operation_id != operation_id

    def is_active_operation_in_transition(self, operation_id: str) -> bool:
        return (
            self._active.operation_id == operation_id
            and self._active.step_id == TRANSITION_OPERATION_STEP_ID
        )

    def has_active_operation_id_timed_out(self, operation_id: str) -> bool:
        return self._active.operation_id == operation_id and self._active.has_timed_out

    def activate_operation(self, operation_id: str, step_id: str) -> None:
        self._activate(KubegresBlockingOperation(operation_id=operation_id, step_id=step_id))

    def activate_operation_on_stateful_set(
        self, operation_id: str, step_id: str, instance_index: int
    ) -> None:
        self._activate(
            KubegresBlockingOperation(
                operation_id=operation_id,
                step_id=step_id,
                stateful_set_operation=self._stateful_set_operation(instance_index),
            )
        )

    def activate_operation_on_stateful_set_spec_update(
        self, operation_id: str, step_id: str, instance_index: int, spec_differences: str
    ) -> None:
        self._activate(
            KubegresBlockingOperation(
                operation_id=operation_id,
                step_id=step_id,
                stateful_set_operation=self._stateful_set_operation(instance_index),
                stateful_set_spec_update_operation=StatefulSetSpecUpdateOperation(
                    spec_differences=spec_differences
                ),
            )
        )

    def remove_active_operation(self) -> None:
        self._remove_active(has_timed_out=False)

    def seconds_since_operation_started(self) -> int:
        timeout = self._config_for(self._active).timeout_seconds
        return timeout - self.seconds_left_before_timeout()

    def seconds_left_before_timeout(self) -> int:
        if self._active.timeout_epoch_seconds == 0:
            return 0
        return max(self._active.timeout_epoch_seconds - self._clock(), 0)

    def seconds_since_timed_out(self) -> int:
        return self._clock() - self._active.timeout_epoch_seconds

    def _is_there_active_operation(self) -> bool:
        return self._active.operation_id != ""

    def _is_in_transition(self) -> bool:
        return self._active.step_id == TRANSITION_OPERATION_STEP_ID

    def _stateful_set_operation(self, instance_index: int) -> StatefulSetOperation:
        return StatefulSetOperation(
            instance_index=instance_index, name=self._stateful_set_name(instance_index)
        )

    def _config_for(self, operation: KubegresBlockingOperation) -> BlockingOperationConfig:
        return self._configs.get((operation.operation_id, operation.step_id), _NO_CONFIG)

    def _activate(self, operation: KubegresBlockingOperation) -> None:
        if self._is_there_active_operation() and self._active.operation_id != operation.operation_id:
            raise BlockingOperationError(_ERROR_ALREADY_ACTIVE, operation.operation_id)
        if (operation.operation_id, operation.step_id) not in self._configs:
            raise BlockingOperationError(_ERROR_NO_ASSOCIATED_CONFIG, operation.operation_id)

        config = self._config_for(operation)
        operation = replace(operation, timeout_epoch_seconds=self._clock() + config.timeout_seconds)
        self._active = operation
        self._status.blocking_operation = operation

    def _remove_active(self, has_timed_out: bool) -> None:
        if not self._is_in_transition():
            self._previous = replace(self._active, has_timed_out=has_timed_out)
            self._status.previous_blocking_operation = self._previous
        self._active = KubegresBlockingOperation()
        self._status.blocking_operation = self._active

    def _move_to_transition(self, has_timed_out: bool) -> None:
        self._previous = replace(self._active, has_timed_out=has_timed_out)
        self._status.previous_blocking_operation = self._previous
        self._active = replace(
            self._active,
            step_id=TRANSITION_OPERATION_STEP_ID,
            has_timed_out=False,
            timeout_epoch_seconds=0,
        )
        self._status.blocking_operation = self._active

    def _complete(self, has_timed_out: bool) -> None:
        if self._config_for(self._active).after_completion_move_to_transition_step:
            self._move_to_transition(has_timed_out)
        else:
            self._remove_active(has_timed_out)

    def _remove_operation_if_not_active(self) -> None:
        if not self._is_there_active_operation() or self._is_in_transition():
            return

        config = self._config_for(self._active)
        has_timed_out = self._active.timeout_epoch_seconds - self._clock() <= 0

        if has_timed_out:
            self._active = replace(self._active, has_timed_out=True)
            if config.completion_checker is None:
                self._complete(has_timed_out)
            else:
                logger.info(
                    "BlockingOperationTimedOut: Blocking-Operation timed-out. OperationId=%s StepId=%s",
                    self._active.operation_id,
                    self._active.step_id,
                )
        elif config.completion_checker is not None and config.completion_checker(self._active):
            logger.info(
                "BlockingOperationCompleted: Blocking-Operation is successfully completed. "
                "OperationId=%s StepId=%s",
                self._active.operation_id,
                self._active.step_id,
            )
            self._complete(has_timed_out)