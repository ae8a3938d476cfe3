"""Logging of the active and previously active blocking operations."""

from __future__ import annotations

import logging
from typing import Any, Optional

from kubegres.operation import BlockingOperation, KubegresBlockingOperation

_default_logger = logging.getLogger(__name__)


def describe_operation(operation: KubegresBlockingOperation) -> dict[str, Any]:
    """Return the key/value pairs that describe an operation, in log order."""
    values: dict[str, Any] = {
        "OperationId": operation.operation_id,
        "StepId": operation.step_id,
        "HasTimedOut": operation.has_timed_out,
    }
    instance_index = operation.stateful_set_operation.instance_index
    if instance_index != 0:
        values["StatefulSetInstanceIndex"] = instance_index
    spec_differences = operation.stateful_set_spec_update_operation.spec_differences
    if spec_differences:
        values["StatefulSetSpecDifferences"] = spec_differences
    return values


def _format(values: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in values.items())


class BlockingOperationLogger:
    """Writes the state of a BlockingOperation to a logger."""

    def __init__(
        self,
        blocking_operation: BlockingOperation,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._blocking_operation = blocking_operation
        self._logger = logger or _default_logger

    def log(self) -> None:
        self._log_active_operation()
        self._log_previously_active_operation()

    def _log_active_operation(self) -> None:
        active = self._blocking_operation.active_operation
        if not active.operation_id:
            self._logger.info("Active Blocking-Operation: None")
            return
        values = describe_operation(active)
        values["NbreSecondsLeftBeforeTimeOut"] = (
            self._blocking_operation.seconds_left_before_timeout()
        )
        self._logger.info("Active Blocking-Operation %s", _format(values))

    def _log_previously_active_operation(self) -> None:
        previous = self._blocking_operation.previously_active_operation
        if not previous.operation_id:
            self._logger.info("Previous Blocking-Operation: None")
            return
        self._logger.info("Previous Blocking-Operation %s", _format(describe_operation(previous)))