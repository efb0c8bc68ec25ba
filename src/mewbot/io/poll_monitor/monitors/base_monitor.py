# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
State shared between the poll monitor and the things which configure it.
"""

from __future__ import annotations

from typing import Any, Hashable, Optional

import dataclasses
import enum
import logging
import math

from mewbot.io.poll_monitor.monitors.errors import MonitorConfigError
from mewbot.io.poll_monitor.monitors.path_handles import PathHandle
from mewbot.io.poll_monitor.monitors.snapshot import Snapshot

# Seconds between the end of one poll cycle and the start of the next
DEFAULT_DELAY: float = 1.0
# Anything shorter than this would turn the poll loop into a busy loop
MINIMUM_DELAY: float = 0.05


class MonitorState(enum.Enum):
    """
    Lifecycle of a poll monitor.

    IDLE -> RUNNING -> STOPPED -> RUNNING ... -> CLOSED
    CLOSED is terminal.
    """

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    CLOSED = "closed"


@dataclasses.dataclass(eq=False)
class WatchEntry:
    """
    A path under observation - along with what it looked like at the last poll.

    last_snapshot is None until the first poll after the entry was added.
    That poll establishes the baseline and reports nothing.
    """

    handle: PathHandle
    recursive: bool = False
    last_snapshot: Optional[Snapshot] = None

    @property
    def identity(self) -> Hashable:
        """
        Key for this entry - taken from the path it watches.

        :return:
        """
        return self.handle.identity


@dataclasses.dataclass
class MonitorStats:
    """
    Counters kept by the monitor.

    A climbing cycle count is the only positive sign that a quiet monitor is still alive.
    """

    cycles: int = 0
    events_dispatched: int = 0
    capture_failures: int = 0
    listener_failures: int = 0


def normalise_delay(value: Any, logger: logging.Logger) -> float:
    """
    Turn a requested poll delay into one the monitor can safely use.

    Values under MINIMUM_DELAY (including zero and negative values) are raised to it.
    :param value: Requested delay in seconds
    :param logger: Where to report that the value was adjusted
    :return:
    """
    try:
        delay = float(value)
    except (TypeError, ValueError) as exc:
        raise MonitorConfigError(f"Poll delay must be a number of seconds - got {value!r}") from exc

    if math.isnan(delay):
        raise MonitorConfigError("Poll delay must be a number of seconds - got NaN")

    if delay < MINIMUM_DELAY:
        logger.warning(
            "Requested poll delay of %ss is below the minimum - using %ss instead",
            value,
            MINIMUM_DELAY,
        )
        return MINIMUM_DELAY

    return delay
