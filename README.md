# kubegres

This package holds the core bookkeeping for an operator that runs a replicated
PostgreSQL cluster. It has three parts:

- blocking operations, which make sure only one change to the cluster runs at a time;
- a logger that reports the blocking operations;
- loaders that find out which configuration and backup resources are deployed.

## Installation

```
pip install .
```

The package has no runtime dependencies. To run the tests:

```
pip install ".[test]"
pytest
```

## Blocking operations (`kubegres.operation`)

Only one operation may be active at a time. Examples are deploying a primary,
failing over, or updating a StatefulSet's spec. Each `(operation id, step id)`
pair must be registered with a `BlockingOperationConfig`. The config gives a
time-out in seconds. It can also give a completion checker, which is a
callable that receives the active `KubegresBlockingOperation` and returns true
when the operation is done.

```python
from kubegres.operation import (
    OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT,
    OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING,
    BlockingOperation,
    BlockingOperationConfig,
    BlockingOperationError,
    OperationStatus,
)

status = OperationStatus()
blocking = BlockingOperation(status, stateful_set_name=lambda i: f"mydb-{i}")

primary_ready = False

blocking.add_config(BlockingOperationConfig(
    operation_id=OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT,
    step_id=OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING,
    timeout_seconds=300,
    completion_checker=lambda op: primary_ready,
))

blocking.activate_operation_on_stateful_set(
    OPERATION_ID_PRIMARY_DB_COUNT_SPEC_ENFORCEMENT,
    OPERATION_STEP_ID_PRIMARY_DB_DEPLOYING,
    1,
)
```

### Status

`OperationStatus` holds two values, `blocking_operation` and
`previous_blocking_operation`. `BlockingOperation` writes both of them back
every time it changes state.

### Clock

`BlockingOperation` takes an optional `clock` argument. It is a callable that
returns epoch seconds, and it defaults to the current time.

### Reloading the state

`load_active_operation()` reloads both operations from the status. It then
does one of the following:

- If the active operation has timed out and has no completion checker, the operation is completed.
- If the active operation has timed out and has a completion checker, it stays active, marked as timed out.
- If the completion checker returns true, the operation is completed.

Completing an operation means one of two things. If the config sets
`after_completion_move_to_transition_step`, the operation moves to the
transition step (`TRANSITION_OPERATION_STEP_ID`). Otherwise it is removed and
recorded as the previous operation.

The method returns the seconds left before the time-out, capped at 20.

### Other methods

- `is_active_operation_id_different_of`, `is_active_operation_in_transition` and `has_active_operation_id_timed_out` query the active operation.
- `activate_operation`, `activate_operation_on_stateful_set` and `activate_operation_on_stateful_set_spec_update` start an operation.
- `remove_active_operation` ends the active operation.
- `seconds_left_before_timeout`, `seconds_since_operation_started` and `seconds_since_timed_out` report timing.
- The `active_operation` and `previously_active_operation` properties give the current values.

### Errors

`BlockingOperationError` is raised in two cases:

- you activate an operation with a different id while another one is active;
- you activate an operation without a registered config.

Its `there_is_already_an_active_operation` and
`operation_id_has_no_associated_config` attributes say which case it was.

## Logging operations (`kubegres.operation_logger`)

```python
import logging
from kubegres.operation_logger import BlockingOperationLogger, describe_operation

BlockingOperationLogger(blocking, logging.getLogger("mydb")).log()
print(describe_operation(blocking.active_operation))
```

`log()` writes the active operation, including the seconds left before its
time-out, and then the previous operation. If there is none, it writes
"None".

`describe_operation` returns a dict with the following keys:

- always `OperationId`, `StepId` and `HasTimedOut`;
- `StatefulSetInstanceIndex`, only when it is not zero;
- `StatefulSetSpecDifferences`, only when it is not empty.

## Resource states (`kubegres.states`)

`load_config_states(client, namespace, custom_config_name)` and
`load_backup_states(client, namespace, cron_job_name, backup_pvc_name)` take a
client object. The client must have a `get(kind, namespace, name)` method that
returns the resource as a mapping, or raises `ResourceNotFoundError`.

### `load_config_states`

It returns a `ConfigStates`, which tells you two things:

- whether the base config map (`base-kubegres-config`) and the custom config map are deployed;
- in its `ConfigLocations`, which volume (`base-config` or `custom-config`) each file comes from.

The files are `postgres.conf`, `primary_init_script.sh`,
`backup_database.sh` and `pg_hba.conf`. A file comes from `custom-config` when
the custom config map has a non-empty entry for it.

### `load_backup_states`

It returns a `BackUpStates`, which tells you:

- whether the backup CronJob and its PVC are deployed;
- the config map used by the CronJob's second volume;
- the CronJob's last schedule time.

### Errors

A resource is treated as not deployed in two cases: the client raises
`ResourceNotFoundError`, or the resource name is empty. Any other error from
the client is logged and raised again.

## What this package does not do

This package only keeps state. It does not:

- talk to a Kubernetes API server itself;
- run a reconciliation loop;
- create, update or delete any resource;
- provide a command-line program.

The caller supplies the client object and decides what to do with the states
and operations.