"""Timeline: named moments, dispatch policies and observer registries."""

from queryflow.timeline.moments import (
    Moment,
    async_reduce,
    broadcast,
    reduce,
    request,
    wait_for_observer_tasks,
)
from queryflow.timeline.observers import AddBehavior, Observer, ObserverRegistry
from queryflow.timeline.timeline import (
    ERROR_MOMENT,
    LOG_MOMENT,
    LogLevel,
    ObserverHandle,
    ObserverOwnership,
    Timeline,
    TimelinePipe,
)

__all__ = [
    # Moments
    "Moment",
    "broadcast",
    "request",
    "reduce",
    "async_reduce",
    "wait_for_observer_tasks",
    # Observers
    "AddBehavior",
    "Observer",
    "ObserverRegistry",
    # Timeline
    "LOG_MOMENT",
    "ERROR_MOMENT",
    "LogLevel",
    "ObserverHandle",
    "ObserverOwnership",
    "Timeline",
    "TimelinePipe",
]
