# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Polls a set of watched paths on a fixed interval and reports what changed.

One background thread per monitor runs a private asyncio loop.
Each cycle captures every watched path (concurrently, bounded by a semaphore), diffs the result
against the last snapshot, dispatches the events and stores the new snapshot.
A path whose capture hangs is left behind by the cycle, and sits out later cycles until the
capture finishes - the other paths carry on being polled.
Callers may add and remove paths, or stop, restart and close the monitor, from any thread at any
time.
"""

from __future__ import annotations

from typing import Dict, Hashable, List, Optional, Tuple

import asyncio
import concurrent.futures
import dataclasses
import logging
import threading

from mewbot.io.poll_monitor.monitors.base_monitor import (
    DEFAULT_DELAY,
    MonitorState,
    MonitorStats,
    WatchEntry,
    normalise_delay,
)
from mewbot.io.poll_monitor.monitors.diff_engine import diff
from mewbot.io.poll_monitor.monitors.errors import (
    MonitorClosedError,
    MonitorConfigError,
    SnapshotCaptureError,
)
from mewbot.io.poll_monitor.monitors.listener_registry import Listener, ListenerRegistry
from mewbot.io.poll_monitor.monitors.path_handles import PathHandle, PathSpec, as_path_handle
from mewbot.io.poll_monitor.monitors.snapshot import Snapshot, capture


class PollMonitor:  # pylint: disable=too-many-instance-attributes
    """
    Polling based change monitor for any number of paths.

    Paths which do not exist yet can be watched - their creation will be reported.
    A path's state is recorded as it is added - nothing which already existed is reported as
    created, and anything which changes after add_path returns is reported.
    Events for a path are only ever delivered to listeners which are bound to it at the moment of
    delivery - once remove_path returns, that path's listeners will not hear about it again.

    Listeners are called on the poll thread with the monitor's lock held.
    While one runs, every other thread calling into the monitor (even just reading stats or
    state) waits for it to return.
    A listener may call the monitor itself, but must not block on another thread which uses the
    monitor - that would deadlock.
    Hand slow work off to another thread or loop instead.
    """

    _logger: logging.Logger

    _lock: threading.RLock
    _registry: ListenerRegistry
    _entries: Dict[Hashable, WatchEntry]

    _listener: Optional[Listener]
    _delay: float
    _recursive: bool
    _max_concurrent_polls: int
    _slow_poll_warning: float
    _close_timeout: float

    _state: MonitorState
    _stats: MonitorStats

    _worker: Optional[threading.Thread]
    _loop: Optional[asyncio.AbstractEventLoop]
    _wakeup: Optional[asyncio.Event]

    def __init__(  # pylint: disable=too-many-arguments
        self,
        listener: Optional[Listener] = None,
        delay: float = DEFAULT_DELAY,
        recursive: bool = False,
        max_concurrent_polls: int = 8,
        slow_poll_warning: float = 5.0,
        close_timeout: float = 5.0,
    ) -> None:
        """
        Prepare a monitor - no poll cycles run until start is called.

        :param listener: Used for every path added without a listener of its own
        :param delay: Seconds to wait between the end of one cycle and the start of the next
        :param recursive: Default for paths added without saying - should folder contents be
                          watched?
        :param max_concurrent_polls: How many paths may be captured at the same time
        :param slow_poll_warning: Seconds a cycle waits on any one path before warning and moving
                                  on without it - the path sits out later cycles until its
                                  capture finishes. Also bounds the capture made by add_path.
        :param close_timeout: How long close waits for the poll thread to exit (seconds)
        """
        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)

        self._lock = threading.RLock()
        self._registry = ListenerRegistry(lock=self._lock)
        self._entries = {}

        if max_concurrent_polls < 1:
            raise MonitorConfigError(
                f"max_concurrent_polls must be at least 1 - got {max_concurrent_polls}"
            )

        self._listener = listener
        self._delay = normalise_delay(delay, self._logger)
        self._recursive = bool(recursive)
        self._max_concurrent_polls = max_concurrent_polls
        self._slow_poll_warning = slow_poll_warning
        self._close_timeout = close_timeout

        self._state = MonitorState.IDLE
        self._stats = MonitorStats()

        self._worker = None
        self._loop = None
        self._wakeup = None

    # - CONFIGURATION

    @property
    def delay(self) -> float:
        """
        Seconds between poll cycles.

        :return:
        """
        with self._lock:
            return self._delay

    @delay.setter
    def delay(self, value: float) -> None:
        """
        Change the poll delay - takes effect from the next wait between cycles.

        :param value:
        :return:
        """
        new_delay = normalise_delay(value, self._logger)
        with self._lock:
            self._delay = new_delay

    @property
    def recursive(self) -> bool:
        """
        Default recursive setting for paths added from now on.

        :return:
        """
        with self._lock:
            return self._recursive

    @recursive.setter
    def recursive(self, value: bool) -> None:
        """
        Change the default for paths added after this point.

        Paths which are already being watched keep the setting they were added with.
        :param value:
        :return:
        """
        with self._lock:
            self._recursive = bool(value)

    # - INSPECTION

    @property
    def state(self) -> MonitorState:
        """
        Where the monitor is in its lifecycle.

        :return:
        """
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        """
        Is the monitor currently scheduling poll cycles?

        :return:
        """
        return self.state is MonitorState.RUNNING

    @property
    def stats(self) -> MonitorStats:
        """
        Copy of the monitor's counters.

        Like every other call into the monitor, waits for any listener which is running to return.
        :return:
        """
        with self._lock:
            return dataclasses.replace(
                self._stats, listener_failures=self._registry.listener_failures
            )

    @property
    def watched_paths(self) -> Tuple[Hashable, ...]:
        """
        Identities of every path currently being watched.

        :return:
        """
        with self._lock:
            return tuple(self._entries)

    def last_snapshot(self, path: PathSpec) -> Optional[Snapshot]:
        """
        What the given path looked like at the last poll - or as it was added, if not polled yet.

        :param path:
        :return: None if the path is not watched, or no capture of it has succeeded yet
        """
        identity = as_path_handle(path).identity
        with self._lock:
            entry = self._entries.get(identity)
            return entry.last_snapshot if entry is not None else None

    # - WATCHED PATHS

    def add_path(
        self,
        path: PathSpec,
        listener: Optional[Listener] = None,
        recursive: Optional[bool] = None,
    ) -> PathHandle:
        """
        Start watching a path.

        The path is captured before this returns, and that capture is its baseline.
        So a change made straight after add_path is reported - whether or not the monitor has
        started, and however soon the next poll comes.
        Waits up to slow_poll_warning seconds for the capture - if it fails or takes longer, the
        first poll records the baseline instead.
        If the path is already watched, its baseline is kept and the listener is bound alongside
        any already there.
        :param path: A PathHandle - or a local path, which will be wrapped in a LocalPathHandle
        :param listener: Overrides the monitor wide listener for this path
        :param recursive: Overrides the monitor wide recursive default for this path
        :return: The handle being watched
        """
        handle = as_path_handle(path)
        identity = handle.identity
        listener = listener if listener is not None else self._listener
        if listener is None:
            raise MonitorConfigError(
                f"Cannot watch {identity!r} - no listener given and the monitor has none"
            )

        with self._lock:
            if self._state is MonitorState.CLOSED:
                raise MonitorClosedError("Cannot add a path to a closed monitor")

            if identity in self._entries:
                self._registry.bind(identity, listener)
                return handle

            entry_recursive = self._recursive if recursive is None else bool(recursive)

        # Capturing can be slow - so is done without holding the lock
        baseline = self._capture_baseline(handle, entry_recursive)

        with self._lock:
            if self._state is MonitorState.CLOSED:
                raise MonitorClosedError("Monitor was closed while a path was being added")

            # Someone else may have added the same path while we were capturing it
            if identity not in self._entries:
                self._entries[identity] = WatchEntry(
                    handle=handle, recursive=entry_recursive, last_snapshot=baseline
                )
                self._logger.info("Watching %s (recursive=%s)", identity, entry_recursive)

            self._registry.bind(identity, listener)

        return handle

    def _capture_baseline(self, handle: PathHandle, recursive: bool) -> Optional[Snapshot]:
        """
        Capture a path on the calling thread - bounded by slow_poll_warning.

        :param handle:
        :param recursive:
        :return: None if the path could not be captured - the first poll will take the baseline
        """

        async def bounded_capture() -> Snapshot:
            return await asyncio.wait_for(
                capture(handle, recursive), timeout=self._slow_poll_warning
            )

        try:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                return asyncio.run(bounded_capture())

            # A loop is already running on this thread (we are inside a listener, or a coroutine)
            # and cannot be re-entered - so capture on a helper thread with its own loop
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
                return executor.submit(asyncio.run, bounded_capture()).result()

        except (SnapshotCaptureError, asyncio.TimeoutError) as exc:
            self._logger.warning(
                "Could not record the state of %s as it was added - the first poll will: %s",
                handle.identity,
                exc or type(exc).__name__,
            )
            return None

    def remove_path(self, path: PathSpec) -> None:
        """
        Stop watching a path, and forget every listener bound to it.

        Safe while a poll cycle is running - anything the cycle works out for this path after this
        call returns is thrown away.
        :param path:
        :return:
        """
        identity = as_path_handle(path).identity

        with self._lock:
            entry = self._entries.pop(identity, None)
            self._registry.unbind(identity)

        if entry is None:
            self._logger.debug("Asked to remove %s - which was not being watched", identity)
        else:
            self._logger.info("No longer watching %s", identity)

    # - LIFECYCLE

    def start(self) -> None:
        """
        Begin (or resume) polling.

        Resuming after stop keeps every path's last snapshot - changes made while stopped are
        reported once, on the first cycle after the restart.
        :return:
        """
        with self._lock:
            if self._state is MonitorState.CLOSED:
                raise MonitorClosedError("Cannot start a monitor which has been closed")

            if self._state is MonitorState.RUNNING:
                self._logger.warning("Monitor already running - start has no effect")
                return

            self._state = MonitorState.RUNNING

            # A worker still finishing its last cycle after stop will notice and carry on
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._run_worker,
                    name=f"{type(self).__name__}-{id(self):x}",
                    daemon=True,
                )
                self._worker.start()

        self._logger.info("Monitor started - polling every %ss", self.delay)

    def stop(self) -> None:
        """
        Stop scheduling new poll cycles.

        A cycle which is already running is allowed to finish.
        Watched paths and their snapshots are kept, ready for start.
        :return:
        """
        with self._lock:
            if self._state is not MonitorState.RUNNING:
                self._logger.debug("Monitor is %s - stop has no effect", self._state.value)
                return

            self._state = MonitorState.STOPPED
            self._wake_worker()

        self._logger.info("Monitor stopped")

    def close(self) -> None:
        """
        Permanently shut the monitor down.

        Every watched path and listener binding is dropped.
        No listener will be called by this monitor once close has returned.
        :return:
        """
        with self._lock:
            if self._state is MonitorState.CLOSED:
                return

            self._state = MonitorState.CLOSED
            self._entries.clear()
            self._registry.clear()
            worker = self._worker
            self._wake_worker()

        if worker is not None and worker is not threading.current_thread():
            worker.join(self._close_timeout)
            if worker.is_alive():
                self._logger.warning(
                    "Poll thread %s did not exit within %ss of close - "
                    "a path capability may be hanging",
                    worker.name,
                    self._close_timeout,
                )

        self._logger.info("Monitor closed")

    def __enter__(self) -> PollMonitor:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # - POLL LOOP

    def _wake_worker(self) -> None:
        """
        Cut short the worker's wait between cycles - must be called with the lock held.

        :return:
        """
        if self._loop is None or self._wakeup is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._wakeup.set)
        except RuntimeError:
            # The loop has already shut down
            return

    def _detach_worker(self) -> None:
        """
        Forget the calling thread as the worker - must be called with the lock held.

        :return:
        """
        if self._worker is threading.current_thread():
            self._worker = None
            self._loop = None
            self._wakeup = None

    def _run_worker(self) -> None:
        """
        Entry point of the poll thread.

        :return:
        """
        try:
            asyncio.run(self._poll_loop())
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Poll loop failed - no further cycles will run")
            with self._lock:
                if self._state is MonitorState.RUNNING:
                    self._state = MonitorState.STOPPED
        finally:
            with self._lock:
                self._detach_worker()

    async def _poll_loop(self) -> None:
        """
        Run poll cycles until the monitor is no longer running.

        :return:
        """
        wakeup = asyncio.Event()
        semaphore = asyncio.Semaphore(self._max_concurrent_polls)
        # At most one poll per entry at a time - including ones left over from earlier cycles
        in_flight: Dict[WatchEntry, asyncio.Task[None]] = {}

        with self._lock:
            self._loop = asyncio.get_running_loop()
            self._wakeup = wakeup

        while True:
            with self._lock:
                # Deciding to exit and detaching must happen together - or a start could land
                # in between and find a worker which is about to leave
                if self._state is not MonitorState.RUNNING:
                    self._detach_worker()
                    return
                entries = list(self._entries.values())

            wakeup.clear()
            await self._run_cycle(entries, semaphore, in_flight)
            await self._wait_for_next_cycle(wakeup)

    async def _wait_for_next_cycle(self, wakeup: asyncio.Event) -> None:
        """
        Sleep for the configured delay - or until stop/close asks us to wake up.

        :param wakeup:
        :return:
        """
        with self._lock:
            if self._state is not MonitorState.RUNNING:
                return
            delay = self._delay

        try:
            await asyncio.wait_for(wakeup.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _run_cycle(
        self,
        entries: List[WatchEntry],
        semaphore: asyncio.Semaphore,
        in_flight: Dict[WatchEntry, asyncio.Task[None]],
    ) -> None:
        """
        Poll every given entry once - apart from any still being polled from an earlier cycle.

        Waits up to slow_poll_warning seconds for this cycle's polls.
        A poll still running after that is left to finish in the background - its entry sits out
        later cycles until it does, so a hanging path cannot hold up the others.
        :param entries:
        :param semaphore: Bounds how many captures run at once
        :param in_flight: Poll tasks which have been started, keyed by entry
        :return:
        """
        for finished in [entry for entry, task in in_flight.items() if task.done()]:
            del in_flight[finished]

        started = []
        for entry in entries:
            if entry in in_flight:
                self._logger.debug(
                    "%s is still being polled from an earlier cycle - skipping it", entry.identity
                )
                continue

            task = asyncio.ensure_future(self._poll_entry(entry, semaphore))
            in_flight[entry] = task
            started.append(task)

        if started:
            _, pending = await asyncio.wait(started, timeout=self._slow_poll_warning)
            for entry, task in in_flight.items():
                if task in pending:
                    self._logger.warning(
                        "Polling %s has taken more than %ss - carrying on without it",
                        entry.identity,
                        self._slow_poll_warning,
                    )

        with self._lock:
            self._stats.cycles += 1
            cycles = self._stats.cycles

        self._logger.debug(
            "Poll cycle %i complete - %i of %i paths checked", cycles, len(started), len(entries)
        )

    async def _poll_entry(self, entry: WatchEntry, semaphore: asyncio.Semaphore) -> None:
        """
        Capture, diff and dispatch for a single entry.

        Nothing which goes wrong here is allowed to escape into the rest of the cycle.
        :param entry:
        :param semaphore:
        :return:
        """
        try:
            async with semaphore:
                if not self._is_current(entry):
                    return

                try:
                    snapshot = await capture(entry.handle, entry.recursive)
                except SnapshotCaptureError as exc:
                    with self._lock:
                        self._stats.capture_failures += 1
                    self._logger.warning(
                        "Could not poll %s - keeping its previous state: %s", entry.identity, exc
                    )
                    return

            self._apply_snapshot(entry, snapshot)

        except Exception:  # pylint: disable=broad-except
            self._logger.exception("Unexpected failure while polling %s", entry.identity)

    def _is_current(self, entry: WatchEntry) -> bool:
        with self._lock:
            return (
                self._state is not MonitorState.CLOSED
                and self._entries.get(entry.identity) is entry
            )

    def _apply_snapshot(self, entry: WatchEntry, snapshot: Snapshot) -> None:
        """
        Diff the new snapshot against the stored one, dispatch, then store the new one.

        Done as one step under the lock - so a racing remove_path either wins (and this result is
        dropped) or loses (and the events go out before the removal completes).
        :param entry:
        :param snapshot:
        :return:
        """
        with self._lock:
            if not self._is_current(entry):
                self._logger.debug(
                    "%s was removed while being polled - discarding the result", entry.identity
                )
                return

            previous = entry.last_snapshot
            entry.last_snapshot = snapshot

            if previous is None:
                self._logger.debug("Baseline recorded for %s", entry.identity)
                return

            events = diff(previous, snapshot)
            for event in events:
                self._logger.debug("%s - %s", event.change.name, event.path)
                self._registry.dispatch(entry.identity, event)

            self._stats.events_dispatched += len(events)
