"""
Cleaning state machine

Every room goes through:

    available -> in_progress -> finished -> checked

plus an explicit reset from any state back to available.

The displayed status is never trusted from storage: it is re-derived from
which timestamps are set, so a record can always be audited from its fields.
"""
from typing import Dict, FrozenSet

from models import CleaningStatus


START = "start"
FINISH = "finish"
CHECK = "check"
RESET = "reset"


# action -> states it may be applied from
TRANSITIONS: Dict[str, FrozenSet[CleaningStatus]] = {
    # a finished/checked room may be started again (restart overwrites)
    START: frozenset({
        CleaningStatus.AVAILABLE,
        CleaningStatus.FINISHED,
        CleaningStatus.CHECKED,
    }),
    # start time is advisory: an unstarted room may be finished directly
    FINISH: frozenset({CleaningStatus.AVAILABLE, CleaningStatus.IN_PROGRESS}),
    CHECK: frozenset({CleaningStatus.FINISHED}),
    RESET: frozenset(CleaningStatus),
}

TARGETS: Dict[str, CleaningStatus] = {
    START: CleaningStatus.IN_PROGRESS,
    FINISH: CleaningStatus.FINISHED,
    CHECK: CleaningStatus.CHECKED,
    RESET: CleaningStatus.AVAILABLE,
}


def derive_status(record) -> CleaningStatus:
    """
    Composite status from the timestamps of a cleaning record.

    Rules (first match wins):
        checked_time set  -> checked
        finish_time set   -> finished
        start_time set    -> in_progress
        otherwise         -> available

    ``record`` is anything with those three attributes (ORM row or a
    plain object), which keeps the function pure and easy to test.
    """
    if getattr(record, "checked_time", None) is not None:
        return CleaningStatus.CHECKED
    if getattr(record, "finish_time", None) is not None:
        return CleaningStatus.FINISHED
    if getattr(record, "start_time", None) is not None:
        return CleaningStatus.IN_PROGRESS
    return CleaningStatus.AVAILABLE


def can_transition(current: CleaningStatus, action: str) -> bool:
    if action not in TRANSITIONS:
        raise ValueError(f"Unknown cleaning action {action!r}")
    return current in TRANSITIONS[action]


def target_status(action: str) -> CleaningStatus:
    return TARGETS[action]
