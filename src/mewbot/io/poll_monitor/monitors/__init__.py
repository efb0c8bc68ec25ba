# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
The polling engine - usable on its own, without a bot around it.
"""

from __future__ import annotations

from mewbot.io.poll_monitor.monitors.base_monitor import (
    DEFAULT_DELAY,
    MINIMUM_DELAY,
    MonitorState,
    MonitorStats,
    WatchEntry,
)
from mewbot.io.poll_monitor.monitors.diff_engine import ChangeEvent, diff
from mewbot.io.poll_monitor.monitors.errors import (
    MonitorClosedError,
    MonitorConfigError,
    PollMonitorError,
    SnapshotCaptureError,
)
from mewbot.io.poll_monitor.monitors.external_apis import Change
from mewbot.io.poll_monitor.monitors.listener_registry import (
    FileListener,
    Listener,
    ListenerRegistry,
)
from mewbot.io.poll_monitor.monitors.path_handles import LocalPathHandle, PathHandle
from mewbot.io.poll_monitor.monitors.poll_monitor import PollMonitor
from mewbot.io.poll_monitor.monitors.snapshot import Snapshot, capture

__all__ = [
    "DEFAULT_DELAY",
    "MINIMUM_DELAY",
    "Change",
    "ChangeEvent",
    "FileListener",
    "Listener",
    "ListenerRegistry",
    "LocalPathHandle",
    "MonitorClosedError",
    "MonitorConfigError",
    "MonitorState",
    "MonitorStats",
    "PathHandle",
    "PollMonitor",
    "PollMonitorError",
    "Snapshot",
    "SnapshotCaptureError",
    "WatchEntry",
    "capture",
    "diff",
]
