#!/usr/bin/env python3

# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Contains the input class which puts poll monitor events on a bot's input queue.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Set, Type

import asyncio
import logging

from mewbot.api.v1 import Input, InputEvent

from mewbot.io.poll_monitor.fs_events import (
    DirCreatedFSInputEvent,
    DirDeletedFSInputEvent,
    DirUpdatedFSInputEvent,
    FileCreatedFSInputEvent,
    FileDeletedFSInputEvent,
    FileUpdatedFSInputEvent,
    fs_event_from_change,
)
from mewbot.io.poll_monitor.monitors import DEFAULT_DELAY, ChangeEvent, PollMonitor


class PollingFSInput(Input):
    """
    Watches any number of paths by polling - for file systems where native notification is absent.

    Paths do not need to exist when the input starts.
    Each watched path (and, if recursive, everything under it) produces events as it changes.
    """

    _logger: logging.Logger

    _input_paths: List[str]
    _monitor: PollMonitor
    _loop: Optional[asyncio.AbstractEventLoop] = None

    def __init__(
        self,
        input_paths: Iterable[str] = (),
        polling_interval: float = DEFAULT_DELAY,
        recursive: bool = True,
    ) -> None:
        """
        Prepare the monitor - polling starts when run is called.

        :param input_paths: Paths to watch
        :param polling_interval: Seconds between polls
        :param recursive: Should dirs have their contents watched as well?
        """
        super().__init__()

        self._logger = logging.getLogger(__name__ + ":" + type(self).__name__)

        self._input_paths = list(input_paths)
        self._monitor = PollMonitor(
            listener=self._on_change, delay=polling_interval, recursive=recursive
        )

    @staticmethod
    def produces_inputs() -> Set[Type[InputEvent]]:
        """
        Defines the set of input events this Input class can produce.

        :return:
        """
        return {
            FileCreatedFSInputEvent,
            FileUpdatedFSInputEvent,
            FileDeletedFSInputEvent,
            DirCreatedFSInputEvent,
            DirUpdatedFSInputEvent,
            DirDeletedFSInputEvent,
        }

    @property
    def input_paths(self) -> List[str]:
        """
        The paths this input was asked to watch.

        :return:
        """
        return list(self._input_paths)

    @property
    def monitor(self) -> PollMonitor:
        """
        The monitor doing the actual polling.

        :return:
        """
        return self._monitor

    async def run(self) -> None:
        """
        Start polling - runs until cancelled, then shuts the monitor down.
        """
        self._loop = asyncio.get_running_loop()

        if not self._input_paths:
            self._logger.warning("PollingFSInput started with no paths to watch")

        try:
            # add_path captures each path before returning - which must not hold up the bot's loop
            for input_path in self._input_paths:
                await self._loop.run_in_executor(None, self._monitor.add_path, input_path)

            self._monitor.start()
            self._logger.info(
                "Polling %i path(s) every %ss", len(self._input_paths), self._monitor.delay
            )

            # Everything happens on the monitor's thread - we just hold the door open
            await asyncio.Event().wait()
        finally:
            self._monitor.close()
            self._loop = None

    def _on_change(self, event: ChangeEvent) -> None:
        """
        Called on the monitor's thread for every change - hands the event over to the bot's loop.

        :param event:
        :return:
        """
        if self.queue is None or self._loop is None:
            return

        try:
            self._loop.call_soon_threadsafe(self.queue.put_nowait, fs_event_from_change(event))
        except RuntimeError:
            # The loop has been closed under us - nowhere left to send the event
            return
