"""Timeline: an ordered set of moments with pluggable observers.

A timeline declares its moments once, as a mapping of moment name to a
dispatch policy (see :mod:`queryflow.timeline.moments`). Observers are held
in an :class:`ObserverRegistry` which may be shared with a parent timeline
until this instance first changes its own observers:

    Inheriting --(subscribe / unsubscribe_all)--> Owning
    Owning     --(reset_observers)--------------> Inheriting

Two moments exist on every timeline: ``log(message, level)`` and
``error(err)``. Invoking ``error`` with nothing subscribed raises
:class:`UnhandledErrorEvent`; any other moment that raises is routed to
``error`` once.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from enum import Enum, IntEnum
from typing import Any, TypeVar

from queryflow.exceptions import UnhandledErrorEvent, UnknownMomentError
from queryflow.timeline.moments import Moment, broadcast
from queryflow.timeline.observers import AddBehavior, Observer, ObserverRegistry

logger = logging.getLogger("timeline")

T = TypeVar("T", bound="Timeline")

LOG_MOMENT = "log"
ERROR_MOMENT = "error"


class LogLevel(IntEnum):
    """Levels passed to the ``log`` moment."""

    VERBOSE = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    OFF = 99


class ObserverOwnership(str, Enum):
    """Whether a timeline's registry is borrowed from a parent or its own."""

    INHERITING = "inheriting"
    OWNING = "owning"


class ObserverHandle:
    """Subscription accessor for one moment of one timeline."""

    def __init__(self, timeline: Timeline, moment: str) -> None:
        self._timeline = timeline
        self.moment = moment

    def __call__(self, observer: Observer) -> Timeline:
        return self._timeline.subscribe(self.moment, observer, AddBehavior.APPEND)

    def prepend(self, observer: Observer) -> Timeline:
        return self._timeline.subscribe(self.moment, observer, AddBehavior.PREPEND)

    def replace(self, observer: Observer) -> Timeline:
        return self._timeline.subscribe(self.moment, observer, AddBehavior.REPLACE)

    def to_list(self) -> list[Observer]:
        return self._timeline.list_observers(self.moment)

    def clear(self) -> bool:
        return self._timeline.unsubscribe_all(self.moment)

    def __repr__(self) -> str:
        return f"ObserverHandle({type(self._timeline).__name__}.{self.moment})"


TimelinePipe = Callable[[T], T]


class Timeline(ABC):
    """Base class for lifecycle pipelines built from named moments.

    Subclasses pass their moment mapping to ``__init__`` and implement
    :meth:`execute`.
    """

    def __init__(
        self,
        moments: Mapping[str, Moment],
        observers: ObserverRegistry | None = None,
    ) -> None:
        """Initialize the timeline.

        Args:
            moments: Moment name to dispatch policy
            observers: Registry to inherit from a parent timeline. When given,
                it is shared until this timeline first changes its observers.
        """
        self._moments: dict[str, Moment] = {
            LOG_MOMENT: broadcast(),
            ERROR_MOMENT: broadcast(),
            **moments,
        }
        self._parent_observers: ObserverRegistry | None = None

        if observers is not None:
            self._observers = observers
            self._ownership = ObserverOwnership.INHERITING
        else:
            self._observers = ObserverRegistry()
            self._ownership = ObserverOwnership.OWNING

        self._handles = {name: ObserverHandle(self, name) for name in self._moments}

    @property
    def moments(self) -> tuple[str, ...]:
        """Names of every moment this timeline declares."""
        return tuple(self._moments)

    @property
    def observers(self) -> ObserverRegistry:
        """The registry currently used for dispatch."""
        return self._observers

    @property
    def ownership(self) -> ObserverOwnership:
        return self._ownership

    def on(self, moment: str) -> ObserverHandle:
        """Accessor used to subscribe observers to ``moment``.

        Usage:
            timeline.on("send").replace(my_send)
            timeline.on("log")(print_log)
        """
        try:
            return self._handles[moment]
        except KeyError:
            raise UnknownMomentError(moment, list(self._moments)) from None

    def subscribe(
        self: T,
        moment: str,
        observer: Observer,
        mode: AddBehavior = AddBehavior.APPEND,
    ) -> T:
        """Register ``observer`` for ``moment``.

        The first change made while inheriting copies the parent registry,
        so the parent and any siblings never see it.

        Returns:
            This timeline, for chaining
        """
        self._check_moment(moment)
        self._own_observers()
        self._observers.add(moment, observer, mode)
        return self

    def list_observers(self, moment: str) -> list[Observer]:
        """Copy of the observers currently subscribed to ``moment``."""
        self._check_moment(moment)
        return self._observers.to_list(moment)

    def unsubscribe_all(self, moment: str) -> bool:
        """Remove every observer of ``moment``.

        Returns:
            True if the moment had a registration, False otherwise
        """
        self._check_moment(moment)
        self._own_observers()
        return self._observers.clear(moment)

    def reset_observers(self) -> None:
        """Drop local observer changes and go back to the parent registry.

        Does nothing unless this timeline copied a parent registry earlier.
        """
        if self._ownership is ObserverOwnership.OWNING and self._parent_observers is not None:
            self._observers = self._parent_observers
            self._parent_observers = None
            self._ownership = ObserverOwnership.INHERITING

    def using(self: T, *behaviors: TimelinePipe) -> T:
        """Apply behaviors (functions of timeline -> timeline) in order."""
        for behavior in behaviors:
            behavior(self)
        return self

    def log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        """Emit a message on the ``log`` moment."""
        self.invoke(LOG_MOMENT, message, level)

    def invoke(self, moment: str, *args: Any) -> Any:
        """Dispatch ``moment`` to its observers.

        Args:
            moment: Moment name
            *args: Arguments passed to every observer after the timeline

        Returns:
            Whatever the moment's dispatch policy returns

        Raises:
            UnhandledErrorEvent: If ``error`` is invoked with no observers
        """
        self._check_moment(moment)
        observers = self._observers.get(moment)

        if moment == ERROR_MOMENT and not observers:
            raise UnhandledErrorEvent(args[0] if args else None)

        dispatch = self._moments[moment]

        try:
            return dispatch(self, observers, *args)
        except Exception as exc:
            if moment == ERROR_MOMENT:
                # error observers failing is never re-routed
                raise
            logger.debug(
                "Observer raised; routing to error moment",
                extra={"service": "timeline", "moment": moment, "error": str(exc)},
            )
            return self.invoke(ERROR_MOMENT, exc)

    @abstractmethod
    def execute(self, *args: Any, **kwargs: Any) -> Any:
        """Run the whole timeline; returns an awaitable result."""

    def _check_moment(self, moment: str) -> None:
        if moment not in self._moments:
            raise UnknownMomentError(moment, list(self._moments))

    def _own_observers(self) -> None:
        if self._ownership is ObserverOwnership.INHERITING:
            self._parent_observers = self._observers
            self._observers = self._observers.snapshot()
            self._ownership = ObserverOwnership.OWNING


__all__ = [
    "LOG_MOMENT",
    "ERROR_MOMENT",
    "LogLevel",
    "ObserverOwnership",
    "ObserverHandle",
    "Timeline",
    "TimelinePipe",
]
