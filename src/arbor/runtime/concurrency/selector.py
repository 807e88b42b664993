"""Readiness notification source backed by ``selectors``.

The reactor only needs three things from it: register interest with a
callback, block until any registered interest fires, and hand back the
callbacks that fired. Interests are one-shot: a fired interest is
unregistered before its callback is returned.
"""

from __future__ import annotations

import selectors
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from arbor.foundation.errors import ResourceBusy

READ = selectors.EVENT_READ
WRITE = selectors.EVENT_WRITE

Callback = Callable[[], object]


@runtime_checkable
class ReadinessSource(Protocol):
    """External I/O readiness collaborator."""

    def __len__(self) -> int: ...
    def register(self, fileobj: object, event: int, callback: Callback) -> Callable[[], None]: ...
    def select(self, timeout: float | None) -> list[Callback]: ...
    def close(self) -> None: ...


class SelectorSource:
    """One-shot readiness interests multiplexed over a ``selectors.BaseSelector``.

    At most one callback may be registered per (file object, direction).
    """

    __slots__ = ("_selector",)

    def __init__(self, selector: selectors.BaseSelector | None = None) -> None:
        self._selector = selector or selectors.DefaultSelector()

    def __len__(self) -> int:
        return len(self._selector.get_map() or ())

    def register(self, fileobj: object, event: int, callback: Callback) -> Callable[[], None]:
        """Arm a one-shot interest. Returns a callable that disarms it.

        Raises:
            ResourceBusy: If the same direction is already armed for ``fileobj``.
        """
        try:
            key = self._selector.get_key(fileobj)  # type: ignore[arg-type]
        except KeyError:
            self._selector.register(fileobj, event, {event: callback})  # type: ignore[arg-type]
        else:
            if event in key.data:
                raise ResourceBusy(f"{fileobj!r} already has a waiter for {_direction(event)}")
            self._selector.modify(fileobj, key.events | event, {**key.data, event: callback})  # type: ignore[arg-type]

        def remove() -> None:
            self._disarm(fileobj, event)
        return remove

    def select(self, timeout: float | None) -> list[Callback]:
        """Block up to ``timeout`` seconds; return callbacks of fired interests."""
        fired: list[Callback] = []
        for key, mask in self._selector.select(timeout):
            for event in (READ, WRITE):
                if mask & event and (callback := self._disarm(key.fileobj, event)) is not None:
                    fired.append(callback)
        return fired

    def close(self) -> None:
        self._selector.close()

    def _disarm(self, fileobj: object, event: int) -> Callback | None:
        try:
            key = self._selector.get_key(fileobj)  # type: ignore[arg-type]
        except (KeyError, ValueError):
            return None
        callbacks = dict(key.data)
        callback = callbacks.pop(event, None)
        if callback is None:
            return None
        if remaining := key.events & ~event:
            self._selector.modify(fileobj, remaining, callbacks)  # type: ignore[arg-type]
        else:
            self._selector.unregister(fileobj)  # type: ignore[arg-type]
        return callback


def _direction(event: int) -> str:
    return "reading" if event == READ else "writing"
