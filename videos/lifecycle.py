"""
Video lifecycle state machine.

    uploaded -> processing -> completed
                           -> failed -> processing (broker redelivery)

COMPLETED is absorbing. FAILED only re-opens when the broker hands the same
task back after a NACK_REQUEUE; the new attempt starts from scratch.
"""
from .models import Video

Status = Video.Status

TRANSITIONS = {
    Status.UPLOADED: frozenset({Status.PROCESSING}),
    # processing -> processing: redelivery after a worker died mid-task
    Status.PROCESSING: frozenset({Status.PROCESSING, Status.COMPLETED, Status.FAILED}),
    Status.FAILED: frozenset({Status.PROCESSING}),
    Status.COMPLETED: frozenset(),
}


class InvalidTransition(Exception):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition: {current} -> {target}")


def can_transition(current: str, target: str) -> bool:
    return Status(target) in TRANSITIONS.get(Status(current), frozenset())


def check_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(current, target)
