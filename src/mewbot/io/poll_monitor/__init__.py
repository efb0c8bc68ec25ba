#!/usr/bin/env python3

"""
Public api for the poll monitor IOConfig - which generates events by polling a file system.
"""

# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

from __future__ import annotations

from typing import List, Optional, Sequence

import logging

from mewbot.api.v1 import Input, IOConfig, Output

from mewbot.io.poll_monitor.fs_events import (
    DirCreatedFSInputEvent,
    DirDeletedFSInputEvent,
    DirUpdatedFSInputEvent,
    FileCreatedFSInputEvent,
    FileDeletedFSInputEvent,
    FileUpdatedFSInputEvent,
    FSInputEvent,
)
from mewbot.io.poll_monitor.inputs import PollingFSInput
from mewbot.io.poll_monitor.monitors import (
    DEFAULT_DELAY,
    ChangeEvent,
    FileListener,
    LocalPathHandle,
    PathHandle,
    PollMonitor,
)
from mewbot.io.poll_monitor.monitors.base_monitor import normalise_delay

__version__ = "0.0.1"


__all__ = (
    "FSInputEvent",
    "FileCreatedFSInputEvent",
    "FileUpdatedFSInputEvent",
    "FileDeletedFSInputEvent",
    "DirCreatedFSInputEvent",
    "DirUpdatedFSInputEvent",
    "DirDeletedFSInputEvent",
    "ChangeEvent",
    "FileListener",
    "LocalPathHandle",
    "PathHandle",
    "PollMonitor",
    "PollMonitorIO",
    "PollingFSInput",
)


class PollMonitorIO(IOConfig):
    """
    Exists to produce events when polling detects a file system change.
    """

    _input: Optional[PollingFSInput] = None

    _input_paths: List[str]
    _polling_interval: float = DEFAULT_DELAY
    _recursive: bool = True

    @property
    def input_paths(self) -> List[str]:
        """
        The paths to watch.

        :return:
        """
        return list(getattr(self, "_input_paths", []))

    @input_paths.setter
    def input_paths(self, input_paths: List[str]) -> None:
        """
        Set the watched paths.

        A single path given as a string is accepted and treated as a list of one.
        :param input_paths:
        :return:
        """
        if isinstance(input_paths, str):
            input_paths = [input_paths]
        self._input_paths = [str(input_path) for input_path in input_paths]

    @property
    def polling_interval(self) -> float:
        """
        Seconds between polls of the watched paths.

        :return:
        """
        return self._polling_interval

    @polling_interval.setter
    def polling_interval(self, polling_interval: float) -> None:
        """
        Set the time between polls - very short values are raised to the monitor's minimum.

        :param polling_interval:
        :return:
        """
        self._polling_interval = normalise_delay(
            polling_interval, logging.getLogger(__name__ + ":" + type(self).__name__)
        )

    @property
    def recursive(self) -> bool:
        """
        Should the contents of watched dirs be watched as well?

        :return:
        """
        return self._recursive

    @recursive.setter
    def recursive(self, recursive: bool) -> None:
        """
        Declare if dir contents are to be watched.

        :param recursive:
        :return:
        """
        self._recursive = bool(recursive)

    def get_inputs(self) -> Sequence[Input]:
        """
        Return all the input methods for this IOConfig.

        :return:
        """
        if not self._input:
            self._input = PollingFSInput(
                input_paths=self.input_paths,
                polling_interval=self._polling_interval,
                recursive=self._recursive,
            )

        return [self._input]

    def get_outputs(self) -> Sequence[Output]:
        """
        No outputs are currently supported for this IOConfig.

        :return:
        """
        return []
