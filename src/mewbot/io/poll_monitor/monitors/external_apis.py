# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Single import point for the third party names the monitors rely on.

aiopath ships without type hints - keeping the import here means the ignore lives in one place.
watchfiles is only used for its vocabulary of change kinds - no native watcher is started.
"""

from aiopath import AsyncPath  # type: ignore
from watchfiles import Change

__all__ = [
    "AsyncPath",
    "Change",
]
