# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
The minimal view of a file system the poll monitor needs.

Anything which can answer these questions for a path can be watched - a local disk, a remote
store, an in-memory tree.
All the questions which touch the backing store are coroutines, so slow stores do not block the
rest of a poll cycle.
"""

from __future__ import annotations

from typing import Any, Hashable, List, Protocol, Sequence, Union, runtime_checkable

import os

from mewbot.io.poll_monitor.monitors.errors import MonitorConfigError
from mewbot.io.poll_monitor.monitors.external_apis import AsyncPath


@runtime_checkable
class PathHandle(Protocol):
    """
    Capability describing one path on some file system.

    `identity` must be stable across polls - it is the key listeners are bound under.
    The value returned by `last_modified_time` is only defined when the path exists.
    `content_size` only when it exists and is not a folder.
    `list_children` only when it exists and is a folder.
    """

    @property
    def identity(self) -> Hashable:
        """
        Comparable key for this path.
        """

    @property
    def name(self) -> str:
        """
        Name of this path within its parent folder.
        """

    async def exists(self) -> bool:
        """
        Is there anything at this path?
        """

    async def is_folder(self) -> bool:
        """
        Is the thing at this path a folder?
        """

    async def is_link(self) -> bool:
        """
        Is this path a link to somewhere else?

        Linked folders are watched as entries, but never recursed into.
        """

    async def last_modified_time(self) -> float:
        """
        Last modification time of the thing at this path.
        """

    async def content_size(self) -> int:
        """
        Size of the content of the file at this path.
        """

    async def list_children(self) -> Sequence[PathHandle]:
        """
        Handles for every immediate child of the folder at this path.
        """


class LocalPathHandle:
    """
    Path capability for the local disk - backed by aiopath.
    """

    _path: str
    _async_path: AsyncPath

    def __init__(self, path: Union[str, os.PathLike[str]]) -> None:
        """
        Wrap a local path - it does not need to exist yet.

        :param path: Relative paths are made absolute against the current working directory.
        """
        self._path = os.path.abspath(os.fspath(path))
        self._async_path = AsyncPath(self._path)

    @property
    def identity(self) -> str:
        """
        The absolute path - which is also what events will report.

        :return:
        """
        return self._path

    @property
    def name(self) -> str:
        """
        Final component of the path.

        :return:
        """
        return os.path.basename(self._path)

    async def exists(self) -> bool:
        return bool(await self._async_path.exists())

    async def is_folder(self) -> bool:
        return bool(await self._async_path.is_dir())

    async def is_link(self) -> bool:
        return bool(await self._async_path.is_symlink())

    async def last_modified_time(self) -> float:
        stat_result = await self._async_path.stat()
        return float(stat_result.st_mtime)

    async def content_size(self) -> int:
        stat_result = await self._async_path.stat()
        return int(stat_result.st_size)

    async def list_children(self) -> List[LocalPathHandle]:
        """
        Everything directly inside this folder.

        :return:
        """
        return [
            LocalPathHandle(os.path.join(self._path, child.name))
            async for child in self._async_path.iterdir()
        ]

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, LocalPathHandle):
            return NotImplemented
        return self._path == other._path

    def __hash__(self) -> int:
        return hash(self._path)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._path!r})"


PathSpec = Union[PathHandle, str, os.PathLike]


def as_path_handle(path: PathSpec) -> PathHandle:
    """
    Accept either a ready-made capability or a local path.

    :param path:
    :return:
    """
    if isinstance(path, (str, os.PathLike)):
        return LocalPathHandle(path)

    if isinstance(path, PathHandle):
        return path

    raise MonitorConfigError(
        f"Cannot watch {path!r} - expected a path or a PathHandle, got {type(path).__name__}"
    )
