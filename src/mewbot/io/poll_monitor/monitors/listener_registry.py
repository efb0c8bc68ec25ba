# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Keeps track of who wants to hear about changes to which watched path.
"""

from __future__ import annotations

from typing import Callable, Dict, Hashable, List, Optional, Tuple

import logging
import threading

from mewbot.io.poll_monitor.monitors.diff_engine import ChangeEvent
from mewbot.io.poll_monitor.monitors.external_apis import Change

Listener = Callable[[ChangeEvent], None]


class FileListener:
    """
    Convenience base for listeners which want a method per kind of change.

    Instances are plain callables, so can be bound anywhere a listener is expected.

    The handler methods run on the monitor's poll thread, with the monitor's lock held.
    Until they return, other threads calling into the monitor - even to read stats or state - are
    kept waiting.
    So a handler must never block on another thread which uses the monitor; that deadlocks.
    Calling the monitor from the handler itself is safe.
    """

    def __call__(self, event: ChangeEvent) -> None:
        """
        Route the event to the matching handler method.

        :param event:
        :return:
        """
        if event.change == Change.added:
            self.on_created(event)
        elif event.change == Change.deleted:
            self.on_deleted(event)
        elif event.change == Change.modified:
            self.on_changed(event)
        else:
            raise NotImplementedError(f"Unexpected change type {event.change}")

    def on_created(self, event: ChangeEvent) -> None:
        """
        Something now exists at event.path which did not at the last poll.
        """

    def on_deleted(self, event: ChangeEvent) -> None:
        """
        The thing at event.path has gone.
        """

    def on_changed(self, event: ChangeEvent) -> None:
        """
        The timestamp or size of the thing at event.path has moved.
        """


class ListenerRegistry:
    """
    Mapping from a watched path identity to the listeners bound to it.

    Every operation happens under a single re-entrant lock - including the listener calls made by
    dispatch.
    So once unbind has returned, no listener which was bound to that path can be called for it
    again.
    Listeners may bind and unbind from inside a dispatch - the lock is re-entrant and membership is
    re-checked before each call.
    """

    _logger: logging.Logger
    _lock: threading.RLock
    _bindings: Dict[Hashable, List[Listener]]
    _listener_failures: int

    def __init__(self, lock: Optional[threading.RLock] = None) -> None:
        """
        Start with no bindings.

        :param lock: Share a lock with an owning component - a private one is made if not given.
                     Must be re-entrant.
        """
        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)
        self._lock = lock if lock is not None else threading.RLock()
        self._bindings = {}
        self._listener_failures = 0

    def bind(self, identity: Hashable, listener: Listener) -> None:
        """
        Register interest from the listener in the given path.

        Binding the same listener to the same path twice has no further effect.
        :param identity:
        :param listener:
        :return:
        """
        with self._lock:
            bound = self._bindings.setdefault(identity, [])
            if listener not in bound:
                bound.append(listener)

    def unbind(self, identity: Hashable) -> None:
        """
        Remove every listener bound to the given path.

        Waits for any dispatch currently in progress to finish.
        :param identity:
        :return:
        """
        with self._lock:
            self._bindings.pop(identity, None)

    def clear(self) -> None:
        """
        Remove all bindings for all paths.

        :return:
        """
        with self._lock:
            self._bindings.clear()

    def listeners(self, identity: Hashable) -> Tuple[Listener, ...]:
        """
        The listeners currently bound to a path - in the order they were bound.

        :param identity:
        :return:
        """
        with self._lock:
            return tuple(self._bindings.get(identity, ()))

    @property
    def listener_failures(self) -> int:
        """
        How many listener calls have raised since this registry was made.

        :return:
        """
        with self._lock:
            return self._listener_failures

    def dispatch(self, identity: Hashable, event: ChangeEvent) -> int:
        """
        Call every listener bound to the given path with the event - in registration order.

        A listener which raises is logged and skipped - the rest still hear about the event.
        :param identity: The watched path the event was produced for
        :param event:
        :return: The number of listeners which handled the event without error
        """
        delivered = 0

        with self._lock:
            for listener in tuple(self._bindings.get(identity, ())):
                # An earlier listener may have unbound this path (or this listener)
                if listener not in self._bindings.get(identity, ()):
                    continue

                try:
                    listener(event)
                except Exception:  # pylint: disable=broad-except
                    self._listener_failures += 1
                    self._logger.exception(
                        "Listener %r failed while handling %s for %s",
                        listener,
                        event.change.name,
                        event.path,
                    )
                    continue

                delivered += 1

        return delivered

    def __contains__(self, identity: Hashable) -> bool:
        with self._lock:
            return bool(self._bindings.get(identity))

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
