import pytest

from kubegres.operation import (
    MAX_REQUEUE_SECONDS,
    OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT,
    OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING,
    OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING,
    OPERATION_STEP_ID_STATEFUL_SET_POD_SPEC_UPDATING,
    OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING,
    TRANSITION_OPERATION_STEP_ID,
    BlockingOperation,
    BlockingOperationConfig,
    BlockingOperationError,
    KubegresBlockingOperation,
    OperationStatus,
)

START = 1_000_000


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now


def make(checker=None, transition=False, timeout=300):
    status = OperationStatus()
    clock = FakeClock()
    op = BlockingOperation(status, lambda index: f"mydb-{index}", clock)
    op.add_config(
        BlockingOperationConfig(
            operation_id=OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING,
            step_id=OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING,
            timeout_seconds=timeout,
            completion_checker=checker,
            after_completion_move_to_transition_step=transition,
        )
    )
    op.add_config(
        BlockingOperationConfig(
            operation_id=OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING,
            step_id=OPERATION_STEP_ID_STATEFUL_SET_POD_SPEC_UPDATING,
            timeout_seconds=timeout,
        )
    )
    op.add_config(
        BlockingOperationConfig(
            operation_id=OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT,
            step_id=OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING,
            timeout_seconds=timeout,
        )
    )
    return op, status, clock


def test_activation_records_operation_in_status():
    op, status, _ = make()
    op.activate_operation_on_stateful_set_spec_update(
        OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING,
        OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING,
        3,
        "Image",
    )
    active = status.blocking_operation
    assert active == op.active_operation
    assert active.timeout_epoch_seconds == START + 300
    assert active.stateful_set_operation.instance_index == 3
    assert active.stateful_set_operation.name == "mydb-3"
    assert active.stateful_set_spec_update_operation.spec_differences == "Image"


def test_activation_without_config_raises():
    op, _, _ = make()
    with pytest.raises(BlockingOperationError) as info:
        op.activate_operation("unknown", "step")
    assert info.value.operation_id_has_no_associated_config
    assert not info.value.there_is_already_an_active_operation
    assert "OperationId: 'unknown'" in str(info.value)
    assert str(info.value).startswith("Cannot active a blocking operation. Reason: ")


def test_activation_while_other_operation_active_raises():
    op, status, _ = make()
    op.activate_operation(OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT, OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING)
    with pytest.raises(BlockingOperationError) as info:
        op.activate_operation(
            OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING
        )
    assert info.value.there_is_already_an_active_operation
    assert status.blocking_operation.operation_id == OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT


def test_same_operation_can_change_step():
    op, status, _ = make()
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING)
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_POD_SPEC_UPDATING)
    assert status.blocking_operation.step_id == OPERATION_STEP_ID_STATEFUL_SET_POD_SPEC_UPDATING


def test_active_operation_id_checks():
    op, _, _ = make()
    assert not op.is_active_operation_id_different_of("anything")
    op.activate_operation(OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT, OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING)
    assert op.is_active_operation_id_different_of(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING)
    assert not op.is_active_operation_id_different_of(OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT)


def test_load_caps_wait_time():
    op, _, _ = make(checker=lambda operation: False)
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING)
    assert op.load_active_operation() == MAX_REQUEUE_SECONDS


def test_load_returns_remaining_seconds_when_short():
    op, _, clock = make(checker=lambda operation: False)
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING)
    clock.now = START + 295
    assert op.load_active_operation() == 300 - 295
    assert op.seconds_since_operation_started() == 295


def test_load_reads_operations_from_status():
    status = OperationStatus(
        previous_blocking_operation=KubegresBlockingOperation(operation_id="old", step_id="s")
    )
    op = BlockingOperation(status, clock=FakeClock())
    assert op.load_active_operation() == 0
    assert op.previously_active_operation.operation_id == "old"
    assert op.active_operation == KubegresBlockingOperation()


def test_timeout_without_checker_removes_operation():
    op, status, clock = make()
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING)
    clock.now = START + 301
    assert op.load_active_operation() == 0
    assert status.blocking_operation == KubegresBlockingOperation()
    assert status.previous_blocking_operation.has_timed_out
    assert status.previous_blocking_operation.step_id == OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING


def test_timeout_with_checker_keeps_operation_active():
    op, status, clock = make(checker=lambda operation: False)
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING)
    clock.now = START + 310
    op.load_active_operation()
    assert op.has_active_operation_id_timed_out(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING)
    assert op.seconds_since_timed_out() == 10
    assert status.previous_blocking_operation == KubegresBlockingOperation()


def test_completion_moves_to_transition_step():
    op, status, clock = make(checker=lambda operation: True, transition=True)
    op.activate_operation_on_stateful_set(
        OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING, 2
    )
    clock.now = START + 50
    assert op.load_active_operation() == 0
    assert op.is_active_operation_in_transition(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING)
    assert status.blocking_operation.step_id == TRANSITION_OPERATION_STEP_ID
    assert status.blocking_operation.timeout_epoch_seconds == 0
    previous = status.previous_blocking_operation
    assert previous.step_id == OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING
    assert previous.stateful_set_operation.instance_index == 2
    assert not previous.has_timed_out


def test_completion_without_transition_removes_operation():
    op, status, clock = make(checker=lambda operation: True)
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING)
    clock.now = START + 5
    op.load_active_operation()
    assert status.blocking_operation == KubegresBlockingOperation()
    assert status.previous_blocking_operation.operation_id == OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING
    assert not status.previous_blocking_operation.has_timed_out


def test_checker_receives_active_operation():
    seen = []
    op, _, _ = make(checker=lambda operation: seen.append(operation) or False)
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING)
    op.load_active_operation()
    assert seen == [op.active_operation]


def test_remove_in_transition_keeps_previous_operation():
    op, status, _ = make(checker=lambda operation: True, transition=True)
    op.activate_operation(OPERATION_ID_STATEFUL_SET_SPEC_ENFORCING, OPERATION_STEP_ID_STATEFUL_SET_SPEC_UPDATING)
    op.load_active_operation()
    previous = status.previous_blocking_operation
    op.remove_active_operation()
    assert status.previous_blocking_operation == previous
    assert status.blocking_operation == KubegresBlockingOperation()


def test_remove_active_operation_sets_previous():
    op, status, _ = make()
    op.activate_operation(OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT, OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING)
    op.remove_active_operation()
    assert op.previously_active_operation.operation_id == OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT
    assert status.previous_blocking_operation == op.previously_active_operation
    assert op.seconds_left_before_timeout() == 0