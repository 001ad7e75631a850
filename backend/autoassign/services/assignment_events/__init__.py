"""Assignment-committed event queueing + dispatch utilities."""

from autoassign.services.assignment_events.dispatch import (
    dispatch_assignment_event,
    register_assignment_listener,
    unregister_assignment_listener,
)
from autoassign.services.assignment_events.queue import (
    SOURCE_APPROVAL,
    SOURCE_DIRECT,
    SOURCE_MANUAL,
    TASK_TYPE,
    AssignmentCommitted,
    decode_assignment_task,
    publish_assignment_committed,
)

__all__ = [
    "SOURCE_APPROVAL",
    "SOURCE_DIRECT",
    "SOURCE_MANUAL",
    "TASK_TYPE",
    "AssignmentCommitted",
    "decode_assignment_task",
    "dispatch_assignment_event",
    "publish_assignment_committed",
    "register_assignment_listener",
    "unregister_assignment_listener",
]
