# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Turns two snapshots of the same path into the change events which separate them.

Pure functions only - no I/O happens in here.
"""

from __future__ import annotations

from typing import Hashable, List, Mapping, Optional

import dataclasses

from mewbot.io.poll_monitor.monitors.external_apis import Change
from mewbot.io.poll_monitor.monitors.snapshot import Snapshot


@dataclasses.dataclass(frozen=True)
class ChangeEvent:
    """
    A single change observed on a concrete path.

    `change` uses the watchfiles vocabulary - added (created), modified (changed) and deleted.
    `snapshot` is the state the change was observed in - the new state for added and modified,
    the last known state for deleted.
    """

    change: Change
    path: Hashable
    snapshot: Snapshot

    @property
    def is_folder(self) -> bool:
        """
        Was the changed path a folder?

        :return:
        """
        return self.snapshot.is_folder


def diff(old: Optional[Snapshot], new: Snapshot) -> List[ChangeEvent]:
    """
    Produce the events which take the path from the old snapshot to the new.

    The path itself is compared first.
    Existence is decided purely by the `exists` flag - a delete followed by a recreate is never a
    modification.
    Then any children are compared - which only exist for recursively captured folders.
    Events are reported against the child they happened to, not the watched folder.

    :param old: Previous snapshot - None if the path has never been seen
    :param new: Freshly captured snapshot
    :return:
    """
    events: List[ChangeEvent] = []
    _diff_into(old, new, events)
    return events


def _has_changed(old: Snapshot, new: Snapshot) -> bool:
    if old.is_folder != new.is_folder:
        return True
    if new.is_folder:
        # Folder timestamps move with membership - which is reported per child, if at all
        return False
    return old.last_modified != new.last_modified or old.size != new.size


def _diff_into(old: Optional[Snapshot], new: Snapshot, events: List[ChangeEvent]) -> None:
    old_exists = old is not None and old.exists

    if new.exists and not old_exists:
        events.append(ChangeEvent(change=Change.added, path=new.identity, snapshot=new))
    elif old_exists and not new.exists:
        assert old is not None
        events.append(ChangeEvent(change=Change.deleted, path=old.identity, snapshot=old))
    elif old_exists and new.exists:
        assert old is not None
        if _has_changed(old, new):
            events.append(ChangeEvent(change=Change.modified, path=new.identity, snapshot=new))

    old_children: Mapping[str, Snapshot] = old.children if old is not None else {}
    new_children = new.children

    for name in sorted(set(old_children) | set(new_children)):
        if name not in old_children:
            events.extend(
                ChangeEvent(change=Change.added, path=created.identity, snapshot=created)
                for created in new_children[name].walk()
            )
        elif name not in new_children:
            events.extend(
                ChangeEvent(change=Change.deleted, path=deleted.identity, snapshot=deleted)
                for deleted in old_children[name].walk()
            )
        else:
            _diff_into(old_children[name], new_children[name], events)
