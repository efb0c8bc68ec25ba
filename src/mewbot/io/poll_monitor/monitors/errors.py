# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Exceptions raised by the polling monitor.
"""


class PollMonitorError(Exception):
    """
    Base class for everything the polling monitor raises on purpose.
    """


class MonitorConfigError(PollMonitorError, ValueError):
    """
    The monitor was given something it cannot work with - raised at the call site.
    """


class MonitorClosedError(PollMonitorError, RuntimeError):
    """
    An operation was attempted on a monitor which has already been closed.
    """


class SnapshotCaptureError(PollMonitorError):
    """
    The path capability failed for a reason other than the path not existing.

    Treated as "no observable change" for the cycle in which it happens.
    """
