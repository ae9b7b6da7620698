"""Observer registry backing a timeline's moments.

The registry maps a moment name to the ordered list of observers subscribed
to it. Timelines dispatch from the live lists; anything handed to callers
outside the timeline is a copy.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from enum import Enum
from typing import Any

from queryflow.exceptions import InvalidObserverError

Observer = Callable[..., Any]


class AddBehavior(str, Enum):
    """How a new observer is placed relative to existing ones."""

    APPEND = "append"
    PREPEND = "prepend"
    REPLACE = "replace"


class ObserverRegistry:
    """Mapping of moment name to an ordered observer list."""

    def __init__(self, observers: dict[str, list[Observer]] | None = None) -> None:
        self._observers: dict[str, list[Observer]] = observers if observers is not None else {}

    def add(
        self,
        moment: str,
        observer: Observer,
        mode: AddBehavior = AddBehavior.APPEND,
    ) -> list[Observer]:
        """Register ``observer`` for ``moment``.

        Args:
            moment: Moment name
            observer: Callable invoked as ``observer(timeline, *args)``
            mode: Placement relative to already registered observers

        Returns:
            The live observer list for ``moment``

        Raises:
            InvalidObserverError: If ``observer`` is not callable
        """
        if not callable(observer):
            raise InvalidObserverError(moment, observer)

        mode = AddBehavior(mode)
        observers = self._observers.get(moment)

        if observers is None:
            observers = self._observers[moment] = [observer]
        elif mode is AddBehavior.APPEND:
            observers.append(observer)
        elif mode is AddBehavior.PREPEND:
            observers.insert(0, observer)
        else:
            observers.clear()
            observers.append(observer)

        return observers

    def get(self, moment: str) -> list[Observer]:
        """Live observer list used for dispatch (empty if none registered)."""
        return self._observers.get(moment, [])

    def to_list(self, moment: str) -> list[Observer]:
        """Copy of the observer list for ``moment``."""
        return list(self._observers.get(moment, ()))

    def clear(self, moment: str) -> bool:
        """Remove every observer for ``moment``.

        Returns:
            True if the moment had a registration, False otherwise
        """
        observers = self._observers.get(moment)
        if observers is None:
            return False
        observers.clear()
        return True

    def snapshot(self) -> ObserverRegistry:
        """Copy every moment list into a new, independent registry.

        The observers themselves are shared.
        """
        return ObserverRegistry({moment: list(observers) for moment, observers in self._observers.items()})

    def __contains__(self, moment: object) -> bool:
        return moment in self._observers

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._observers))

    def __len__(self) -> int:
        return len(self._observers)

    def __repr__(self) -> str:
        counts = {moment: len(observers) for moment, observers in self._observers.items()}
        return f"ObserverRegistry({counts})"


__all__ = ["AddBehavior", "Observer", "ObserverRegistry"]
