# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Snapshots record what a path looked like at one poll.

Capturing a snapshot is the only part of the poll monitor which does I/O.
Everything downstream of it (diffing, dispatch) works on these immutable records.
"""

from __future__ import annotations

from typing import Dict, Hashable, Iterator, Mapping, Optional

import dataclasses
import types

from mewbot.io.poll_monitor.monitors.errors import SnapshotCaptureError
from mewbot.io.poll_monitor.monitors.path_handles import PathHandle

# How many times a path may vanish out from under a capture before we give up on it this cycle
CAPTURE_ATTEMPTS: int = 3


def _no_children() -> Mapping[str, Snapshot]:
    return types.MappingProxyType({})


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """
    Observed state of one path at one instant.

    Never changed after creation - each poll builds a fresh tree.
    `children` is only populated for folders captured recursively.
    """

    identity: Hashable
    exists: bool = False
    is_folder: bool = False
    last_modified: Optional[float] = None
    size: Optional[int] = None
    children: Mapping[str, Snapshot] = dataclasses.field(default_factory=_no_children)

    @classmethod
    def missing(cls, identity: Hashable) -> Snapshot:
        """
        Snapshot of a path with nothing at it.

        :param identity:
        :return:
        """
        return cls(identity=identity)

    def walk(self) -> Iterator[Snapshot]:
        """
        Yield this snapshot and then every descendant - parents before children, names sorted.

        :return:
        """
        yield self
        for name in sorted(self.children):
            yield from self.children[name].walk()


async def capture(handle: PathHandle, recursive: bool) -> Snapshot:
    """
    Build a snapshot of the given path.

    A path which does not exist is a normal result, not an error.
    If the path disappears part way through (exists() said yes, but a later call found nothing)
    the capture is started again - so the result reflects the latest consistent state.

    :param handle: The path to inspect
    :param recursive: Should folder contents be captured as well?
    :return:
    :raises SnapshotCaptureError: The capability failed for some other reason.
    """
    for _ in range(CAPTURE_ATTEMPTS):
        try:
            return await _capture_once(handle, recursive)
        except FileNotFoundError:
            continue
        except SnapshotCaptureError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise SnapshotCaptureError(
                f"Failed to capture {handle.identity!r} - {type(exc).__name__}: {exc}"
            ) from exc

    raise SnapshotCaptureError(
        f"{handle.identity!r} kept vanishing during capture - gave up after "
        f"{CAPTURE_ATTEMPTS} attempts"
    )


async def _capture_once(handle: PathHandle, recursive: bool) -> Snapshot:
    identity = handle.identity

    if not await handle.exists():
        return Snapshot.missing(identity)

    if await handle.is_folder():
        children: Dict[str, Snapshot] = {}
        if recursive:
            for child in await handle.list_children():
                # Following linked folders could walk in circles
                child_snapshot = await capture(child, recursive=not await child.is_link())
                # A child which went away between the listing and its capture is not a child
                if child_snapshot.exists:
                    children[child.name] = child_snapshot

        return Snapshot(
            identity=identity,
            exists=True,
            is_folder=True,
            last_modified=await handle.last_modified_time(),
            children=types.MappingProxyType(children),
        )

    return Snapshot(
        identity=identity,
        exists=True,
        is_folder=False,
        last_modified=await handle.last_modified_time(),
        size=await handle.content_size(),
    )
