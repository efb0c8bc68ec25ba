# SPDX-FileCopyrightText: 2023 Mewbot Developers <mewbot@quicksilver.london>
#
# SPDX-License-Identifier: BSD-2-Clause

"""
Tests for capturing snapshots of paths - the only part of the engine which does I/O.
"""

from __future__ import annotations

from typing import List

import dataclasses
import os
import tempfile

import pytest

from mewbot.io.poll_monitor.monitors import (
    LocalPathHandle,
    Snapshot,
    SnapshotCaptureError,
    capture,
)
from mewbot.io.poll_monitor.monitors.path_handles import as_path_handle
from mewbot.io.poll_monitor.monitors.snapshot import CAPTURE_ATTEMPTS
from tests.io.test_io_poll_monitor.poll_test_utils import MemoryFileSystem

# pylint: disable=invalid-name


class VanishingFileHandle:
    """
    A file which claims to exist, then is gone by the time anyone stats it.

    Stays gone once noticed unless `keeps_coming_back` is set.
    """

    def __init__(self, keeps_coming_back: bool = False) -> None:
        self.keeps_coming_back = keeps_coming_back
        self.exists_calls = 0
        self._gone = False

    @property
    def identity(self) -> str:
        return "/flicker.txt"

    @property
    def name(self) -> str:
        return "flicker.txt"

    async def exists(self) -> bool:
        self.exists_calls += 1
        return self.keeps_coming_back or not self._gone

    async def is_folder(self) -> bool:
        return False

    async def is_link(self) -> bool:
        return False

    async def last_modified_time(self) -> float:
        self._gone = True
        raise FileNotFoundError(self.identity)

    async def content_size(self) -> int:
        raise FileNotFoundError(self.identity)

    async def list_children(self) -> List[VanishingFileHandle]:
        return []


class TestCaptureMemory:
    """
    Capture against the in-memory file system.
    """

    @pytest.mark.asyncio
    async def test_capture_missing_path(self) -> None:
        """
        A path with nothing at it is a normal result - not an error.
        """
        fs = MemoryFileSystem()

        snapshot = await capture(fs.handle("/nothing/here.txt"), recursive=True)

        assert snapshot.exists is False
        assert snapshot.identity == "/nothing/here.txt"
        assert snapshot.last_modified is None
        assert snapshot.size is None
        assert not snapshot.children

    @pytest.mark.asyncio
    async def test_capture_file(self) -> None:
        """
        Files record their size and timestamp - and never have children.
        """
        fs = MemoryFileSystem()
        fs.write("/data/file.txt", "twelve chars")

        snapshot = await capture(fs.handle("/data/file.txt"), recursive=True)

        assert snapshot.exists is True
        assert snapshot.is_folder is False
        assert snapshot.size == 12
        assert snapshot.last_modified == fs.node("/data/file.txt").mtime  # type: ignore
        assert not snapshot.children

    @pytest.mark.asyncio
    async def test_capture_folder_not_recursive(self) -> None:
        """
        Without recursion a folder's contents are invisible.
        """
        fs = MemoryFileSystem()
        fs.write("/data/file.txt")

        snapshot = await capture(fs.handle("/data"), recursive=False)

        assert snapshot.exists is True
        assert snapshot.is_folder is True
        assert not snapshot.children

    @pytest.mark.asyncio
    async def test_capture_folder_recursive(self) -> None:
        """
        Recursion goes all the way down - children keyed by name.
        """
        fs = MemoryFileSystem()
        fs.write("/data/file.txt")
        fs.write("/data/sub/deeper/leaf.txt", "leaf")

        snapshot = await capture(fs.handle("/data"), recursive=True)

        assert set(snapshot.children) == {"file.txt", "sub"}
        sub = snapshot.children["sub"]
        assert sub.is_folder is True
        assert sub.identity == "/data/sub"
        leaf = sub.children["deeper"].children["leaf.txt"]
        assert leaf.identity == "/data/sub/deeper/leaf.txt"
        assert leaf.size == 4

    @pytest.mark.asyncio
    async def test_capture_failure_is_soft_error(self) -> None:
        """
        A failure other than non-existence is reported as a SnapshotCaptureError.
        """
        fs = MemoryFileSystem()
        fs.write("/data/file.txt")
        fs.failing.add("/data/file.txt")

        with pytest.raises(SnapshotCaptureError):
            await capture(fs.handle("/data/file.txt"), recursive=False)

    @pytest.mark.asyncio
    async def test_capture_failure_in_child_fails_whole_capture(self) -> None:
        """
        If any part of a recursive capture fails, the whole capture fails.

        The monitor then keeps the previous snapshot for the entry.
        """
        fs = MemoryFileSystem()
        fs.write("/data/ok.txt")
        fs.write("/data/locked.txt")
        fs.failing.add("/data/locked.txt")

        with pytest.raises(SnapshotCaptureError):
            await capture(fs.handle("/data"), recursive=True)

    @pytest.mark.asyncio
    async def test_capture_path_vanishing_mid_capture(self) -> None:
        """
        A path which disappears between exists() and stat resolves to missing.
        """
        handle = VanishingFileHandle()

        snapshot = await capture(handle, recursive=False)

        assert snapshot.exists is False
        assert handle.exists_calls == 2

    @pytest.mark.asyncio
    async def test_capture_path_which_never_settles(self) -> None:
        """
        A path which keeps flickering gives up after a bounded number of attempts.
        """
        handle = VanishingFileHandle(keeps_coming_back=True)

        with pytest.raises(SnapshotCaptureError):
            await capture(handle, recursive=False)

        assert handle.exists_calls == CAPTURE_ATTEMPTS


class TestSnapshotModel:
    """
    The snapshot record itself.
    """

    def test_snapshot_is_immutable(self) -> None:
        """
        Snapshots cannot be changed once made - neither fields nor children.
        """
        child = Snapshot(identity="/a/b", exists=True, size=1, last_modified=1.0)
        parent = Snapshot(
            identity="/a", exists=True, is_folder=True, children={"b": child}
        )

        with pytest.raises(dataclasses.FrozenInstanceError):
            parent.exists = False  # type: ignore

        frozen_parent = dataclasses.replace(parent)
        assert frozen_parent.children["b"] is child

    @pytest.mark.asyncio
    async def test_captured_children_are_read_only(self) -> None:
        """
        The children mapping of a captured snapshot cannot be written to.
        """
        fs = MemoryFileSystem()
        fs.write("/data/file.txt")

        snapshot = await capture(fs.handle("/data"), recursive=True)

        with pytest.raises(TypeError):
            snapshot.children["other.txt"] = Snapshot.missing("/data/other.txt")  # type: ignore

    def test_walk_order(self) -> None:
        """
        Walk yields parents before children, with siblings sorted by name.
        """
        tree = Snapshot(
            identity="/r",
            exists=True,
            is_folder=True,
            children={
                "z": Snapshot(identity="/r/z", exists=True),
                "a": Snapshot(
                    identity="/r/a",
                    exists=True,
                    is_folder=True,
                    children={"m": Snapshot(identity="/r/a/m", exists=True)},
                ),
            },
        )

        assert [node.identity for node in tree.walk()] == ["/r", "/r/a", "/r/a/m", "/r/z"]


class TestLocalPathHandle:
    """
    Capture against the real disk - through aiopath.
    """

    @pytest.mark.asyncio
    async def test_local_capture_tree(self) -> None:
        """
        A real directory tree is captured with sizes and nested children.
        """
        with tempfile.TemporaryDirectory() as tmp_dir_path:
            os.mkdir(os.path.join(tmp_dir_path, "sub"))
            with open(os.path.join(tmp_dir_path, "sub", "leaf.txt"), "w", encoding="utf-8") as f:
                f.write("hello")

            snapshot = await capture(LocalPathHandle(tmp_dir_path), recursive=True)

            assert snapshot.is_folder is True
            leaf = snapshot.children["sub"].children["leaf.txt"]
            assert leaf.size == 5
            assert leaf.identity == os.path.join(os.path.abspath(tmp_dir_path), "sub", "leaf.txt")

    @pytest.mark.asyncio
    async def test_local_capture_missing(self) -> None:
        """
        A local path which does not exist captures as missing.
        """
        with tempfile.TemporaryDirectory() as tmp_dir_path:
            snapshot = await capture(
                LocalPathHandle(os.path.join(tmp_dir_path, "absent.txt")), recursive=False
            )
            assert snapshot.exists is False

    @pytest.mark.asyncio
    async def test_local_capture_linked_folder_cycle(self) -> None:
        """
        A link pointing back up the tree is recorded - but not followed.
        """
        with tempfile.TemporaryDirectory() as tmp_dir_path:
            os.mkdir(os.path.join(tmp_dir_path, "sub"))
            os.symlink(tmp_dir_path, os.path.join(tmp_dir_path, "sub", "back_to_top"))

            snapshot = await capture(LocalPathHandle(tmp_dir_path), recursive=True)

            link = snapshot.children["sub"].children["back_to_top"]
            assert link.exists is True
            assert link.is_folder is True
            assert not link.children

    @pytest.mark.asyncio
    async def test_local_capture_through_linked_root(self) -> None:
        """
        A watched path which is itself a link is still captured recursively.
        """
        with tempfile.TemporaryDirectory() as tmp_dir_path:
            real_dir = os.path.join(tmp_dir_path, "real")
            os.mkdir(real_dir)
            with open(os.path.join(real_dir, "inner.txt"), "w", encoding="utf-8") as f:
                f.write("inside")
            linked_root = os.path.join(tmp_dir_path, "linked")
            os.symlink(real_dir, linked_root)

            snapshot = await capture(LocalPathHandle(linked_root), recursive=True)

            assert set(snapshot.children) == {"inner.txt"}

    def test_local_handle_identity(self) -> None:
        """
        Handles for the same location are interchangeable.
        """
        with tempfile.TemporaryDirectory() as tmp_dir_path:
            first = LocalPathHandle(os.path.join(tmp_dir_path, "x", "..", "file.txt"))
            second = LocalPathHandle(os.path.join(tmp_dir_path, "file.txt"))

            assert first == second
            assert first.identity == second.identity
            assert first.name == "file.txt"
            assert len({first, second}) == 1

    def test_as_path_handle(self) -> None:
        """
        Strings and path-likes are wrapped - handles pass straight through - anything else fails.
        """
        fs = MemoryFileSystem()
        memory_handle = fs.handle("/data")

        assert as_path_handle(memory_handle) is memory_handle
        assert isinstance(as_path_handle("some/where"), LocalPathHandle)

        with pytest.raises(ValueError):
            as_path_handle(42)  # type: ignore
