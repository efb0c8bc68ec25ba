# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Input events produced when the poll monitor sees a change.

Split by whether the changed path was a file or a dir, so Triggers can filter on type alone.
"""

from __future__ import annotations

from typing import Dict, Tuple, Type

import dataclasses

from mewbot.api.v1 import InputEvent

from mewbot.io.poll_monitor.monitors import Change, ChangeEvent


@dataclasses.dataclass
class FSInputEvent(InputEvent):
    """
    Base class for all events produced by the poll monitor.

    path is the path the change happened on - which may be inside a watched dir.
    base_event is the ChangeEvent the monitor produced.
    """

    path: str
    base_event: ChangeEvent


@dataclasses.dataclass
class FileCreatedFSInputEvent(FSInputEvent):
    """
    A file now exists where nothing did at the last poll.
    """


@dataclasses.dataclass
class FileUpdatedFSInputEvent(FSInputEvent):
    """
    A file's modification time or size has changed since the last poll.
    """


@dataclasses.dataclass
class FileDeletedFSInputEvent(FSInputEvent):
    """
    A file which existed at the last poll has gone.
    """


@dataclasses.dataclass
class DirCreatedFSInputEvent(FSInputEvent):
    """
    A dir now exists where nothing did at the last poll.
    """


@dataclasses.dataclass
class DirUpdatedFSInputEvent(FSInputEvent):
    """
    Something which was a file at the last poll is now a dir.
    """


@dataclasses.dataclass
class DirDeletedFSInputEvent(FSInputEvent):
    """
    A dir which existed at the last poll has gone.
    """


_EVENT_TYPES: Dict[Tuple[Change, bool], Type[FSInputEvent]] = {
    (Change.added, False): FileCreatedFSInputEvent,
    (Change.modified, False): FileUpdatedFSInputEvent,
    (Change.deleted, False): FileDeletedFSInputEvent,
    (Change.added, True): DirCreatedFSInputEvent,
    (Change.modified, True): DirUpdatedFSInputEvent,
    (Change.deleted, True): DirDeletedFSInputEvent,
}


def fs_event_from_change(event: ChangeEvent) -> FSInputEvent:
    """
    Wrap a ChangeEvent from the monitor in the matching InputEvent.

    :param event:
    :return:
    """
    event_type = _EVENT_TYPES[(event.change, event.is_folder)]
    return event_type(path=str(event.path), base_event=event)
