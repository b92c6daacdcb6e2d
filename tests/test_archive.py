# test_archive.py -- Tests for archive generation
# Copyright (C) 2026 The gitvault developers
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# gitvault is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Tests for gitvault.archive."""

import gzip
import os
import shutil
import sys
import tarfile
import threading
import zipfile
from io import BytesIO
from unittest import skipIf
from unittest.mock import patch

from dulwich.config import ConfigDict
from dulwich.repo import MemoryRepo

from gitvault.archive import (
    ArchiveFormat,
    archive_file_name,
    archive_path,
    compress,
    compressor_command,
    create_archive,
    tar_stream,
    write_zip,
)
from gitvault.errors import ArchiveError, Cancelled, NotFound
from gitvault.snapshot import SnapshotEntry, snapshot
from gitvault.store import ObjectStoreAdapter

from . import TestCase
from .utils import BASE_TIME, F, G, L, X, build_commit_graph

SUBMODULE_SHA = b"c67be4624545b4263184c4a0e8f887efd0a66320"

TREE = [
    (b"README", b"Read me.\n"),
    (b"bin/run", b"#!/bin/sh\necho hi\n", X),
    (b"docs/index.txt", b"index\n"),
    (b"link", b"README", L),
    (b"vendor", SUBMODULE_SHA, G),
]

no_gzip = shutil.which("gzip") is None

_COPY_STDIN = "import shutil, sys; shutil.copyfileobj(sys.stdin.buffer, sys.stdout.buffer)"


class ArchiveTestCase(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.repo = MemoryRepo()
        self.store = ObjectStoreAdapter(self.repo)
        (self.commit,) = build_commit_graph(
            self.repo.object_store, [[1]], trees={1: TREE}
        )
        self.entries = snapshot(self.store, self.commit.id)

    def raw_tar(self, entries=None) -> bytes:
        if entries is None:
            entries = self.entries
        return b"".join(tar_stream(self.store, entries, "project", BASE_TIME))


class TarStreamTests(ArchiveTestCase):
    def open_tar(self, data: bytes) -> tarfile.TarFile:
        tf = tarfile.open(fileobj=BytesIO(data))
        self.addCleanup(tf.close)
        return tf

    def test_empty(self) -> None:
        tf = self.open_tar(self.raw_tar([]))
        self.assertEqual(["project"], tf.getnames())
        self.assertTrue(tf.getmember("project").isdir())

    def test_names(self) -> None:
        tf = self.open_tar(self.raw_tar())
        self.assertEqual(
            [
                "project",
                "project/README",
                "project/bin/run",
                "project/docs/index.txt",
                "project/link",
                "project/vendor",
            ],
            tf.getnames(),
        )

    def test_one_member_per_entry_plus_prefix(self) -> None:
        tf = self.open_tar(self.raw_tar())
        self.assertEqual(len(self.entries) + 1, len(tf.getmembers()))
        for name in tf.getnames():
            self.assertTrue(name == "project" or name.startswith("project/"))

    def test_contents_and_modes(self) -> None:
        tf = self.open_tar(self.raw_tar())
        readme = tf.getmember("project/README")
        self.assertTrue(readme.isfile())
        self.assertEqual(0o644, readme.mode)
        self.assertEqual(BASE_TIME, readme.mtime)
        self.assertEqual(b"Read me.\n", tf.extractfile(readme).read())
        run = tf.getmember("project/bin/run")
        self.assertEqual(0o755, run.mode)
        self.assertEqual(b"#!/bin/sh\necho hi\n", tf.extractfile(run).read())

    def test_symlink(self) -> None:
        tf = self.open_tar(self.raw_tar())
        link = tf.getmember("project/link")
        self.assertTrue(link.issym())
        self.assertEqual("README", link.linkname)

    def test_submodule_is_empty_directory(self) -> None:
        tf = self.open_tar(self.raw_tar())
        vendor = tf.getmember("project/vendor")
        self.assertTrue(vendor.isdir())
        self.assertEqual(0, vendor.size)

    def test_submodule_never_looked_up(self) -> None:
        # The gitlink points at a commit that is not in this store.
        self.assertNotIn(SUBMODULE_SHA, self.repo.object_store)
        self.raw_tar([SnapshotEntry(b"vendor", G, SUBMODULE_SHA)])

    def test_missing_blob(self) -> None:
        entries = [SnapshotEntry(b"gone", F, b"3" * 40)]
        self.assertRaises(NotFound, self.raw_tar, entries)

    def test_deterministic(self) -> None:
        self.assertEqual(self.raw_tar(), self.raw_tar())


class ZipTests(ArchiveTestCase):
    def write(self) -> zipfile.ZipFile:
        path = os.path.join(self.make_tempdir(), "project.zip")
        write_zip(self.store, self.entries, "project", path, BASE_TIME)
        zf = zipfile.ZipFile(path)
        self.addCleanup(zf.close)
        return zf

    def test_names(self) -> None:
        zf = self.write()
        self.assertEqual(
            [
                "project/",
                "project/README",
                "project/bin/run",
                "project/docs/index.txt",
                "project/link",
                "project/vendor/",
            ],
            zf.namelist(),
        )

    def test_contents(self) -> None:
        zf = self.write()
        self.assertEqual(b"Read me.\n", zf.read("project/README"))
        self.assertEqual(b"", zf.read("project/vendor/"))
        self.assertEqual(X, zf.getinfo("project/bin/run").external_attr >> 16)
        self.assertTrue(zf.getinfo("project/vendor/").is_dir())

    def test_early_mtime(self) -> None:
        path = os.path.join(self.make_tempdir(), "project.zip")
        write_zip(self.store, self.entries, "project", path, 0)
        with zipfile.ZipFile(path) as zf:
            self.assertEqual(1980, zf.getinfo("project/README").date_time[0])

    def test_unix_attributes(self) -> None:
        zf = self.write()
        for info in zf.infolist():
            self.assertEqual(3, info.create_system, info.filename)

    def test_undecodable_path(self) -> None:
        readme = self.entries[0]
        self.entries = [SnapshotEntry(b"caf\xe9.txt", F, readme.sha)]
        zf = self.write()
        self.assertEqual(["project/", "project/caf\ufffd.txt"], zf.namelist())
        self.assertEqual(b"Read me.\n", zf.read("project/caf\ufffd.txt"))


class ArchiveFormatTests(TestCase):
    def test_parse(self) -> None:
        for name in ("tar.bz2", "tbz", "tbz2", "tb2", "bz2"):
            self.assertIs(ArchiveFormat.TAR_BZ2, ArchiveFormat.parse(name))
        self.assertIs(ArchiveFormat.TAR, ArchiveFormat.parse("tar"))
        self.assertIs(ArchiveFormat.ZIP, ArchiveFormat.parse("zip"))
        self.assertIs(ArchiveFormat.ZIP, ArchiveFormat.parse("ZIP"))
        self.assertIs(ArchiveFormat.TAR_GZ, ArchiveFormat.parse("tar.gz"))
        self.assertIs(ArchiveFormat.TAR_GZ, ArchiveFormat.parse("rar"))
        self.assertIs(ArchiveFormat.TAR_GZ, ArchiveFormat.parse(None))

    def test_extension(self) -> None:
        self.assertEqual(".tar.gz", ArchiveFormat.TAR_GZ.extension)
        self.assertEqual(".zip", ArchiveFormat.ZIP.extension)
        self.assertFalse(ArchiveFormat.ZIP.is_tar)
        self.assertTrue(ArchiveFormat.TAR.is_tar)

    def test_compressor_command(self) -> None:
        self.assertEqual(["gzip", "-n"], compressor_command(ArchiveFormat.TAR_GZ))
        self.assertEqual(["bzip2"], compressor_command(ArchiveFormat.TAR_BZ2))
        self.assertEqual(["cat"], compressor_command(ArchiveFormat.TAR))
        self.assertIsNone(compressor_command(ArchiveFormat.ZIP))

    def test_compressor_command_from_config(self) -> None:
        config = ConfigDict()
        config.set((b"tar", b"tar.gz"), b"command", b"gzip -9 -n")
        self.assertEqual(
            ["gzip", "-9", "-n"], compressor_command(ArchiveFormat.TAR_GZ, config)
        )
        self.assertEqual(
            ["bzip2"], compressor_command(ArchiveFormat.TAR_BZ2, config)
        )

    def test_archive_path(self) -> None:
        self.assertEqual(
            "project-" + "a" * 40 + ".tar.gz",
            archive_file_name("project.git", b"a" * 40, ArchiveFormat.TAR_GZ),
        )
        self.assertEqual(
            os.path.join("/srv", "project.git", "project-" + "a" * 40 + ".zip"),
            archive_path("/srv", "project.git", b"a" * 40, ArchiveFormat.ZIP),
        )


class CompressTests(ArchiveTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.tempdir = self.make_tempdir()
        self.output = os.path.join(self.tempdir, "out")

    @skipIf(no_gzip, "gzip not available")
    def test_gzip_roundtrip(self) -> None:
        compress(
            tar_stream(self.store, self.entries, "project", BASE_TIME),
            ["gzip", "-n"],
            self.output,
        )
        with gzip.open(self.output) as f:
            self.assertEqual(self.raw_tar(), f.read())

    @skipIf(no_gzip, "gzip not available")
    def test_gzip_deterministic(self) -> None:
        other = os.path.join(self.tempdir, "other")
        for path in (self.output, other):
            compress(
                tar_stream(self.store, self.entries, "project", BASE_TIME),
                ["gzip", "-n"],
                path,
            )
        with open(self.output, "rb") as f1, open(other, "rb") as f2:
            self.assertEqual(f1.read(), f2.read())

    def test_large_input(self) -> None:
        # Much more than a pipe buffer holds.
        chunks = [b"x" * 65536] * 64
        compress(iter(chunks), [sys.executable, "-c", _COPY_STDIN], self.output)
        self.assertEqual(65536 * 64, os.path.getsize(self.output))

    def test_nonzero_exit(self) -> None:
        with self.assertRaises(ArchiveError) as cm:
            compress(
                iter([b"data"] * 10),
                [sys.executable, "-c", "import sys; sys.stdin.read(); sys.exit(3)"],
                self.output,
            )
        self.assertEqual(3, cm.exception.returncode)

    def test_missing_command(self) -> None:
        self.assertRaises(
            ArchiveError,
            compress,
            iter([b"data"]),
            [os.path.join(self.tempdir, "no-such-compressor")],
            self.output,
        )

    def test_producer_failure(self) -> None:
        entries = [SnapshotEntry(b"gone", F, b"3" * 40)]
        self.assertRaises(
            NotFound,
            compress,
            tar_stream(self.store, entries, "project"),
            [sys.executable, "-c", _COPY_STDIN],
            self.output,
        )

    def test_cancel(self) -> None:
        cancel = threading.Event()
        cancel.set()
        self.assertRaises(
            Cancelled,
            compress,
            iter([b"data"] * 10),
            [sys.executable, "-c", _COPY_STDIN],
            self.output,
            cancel,
        )


class CreateArchiveTests(ArchiveTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.tempdir = self.make_tempdir()
        self.path = os.path.join(self.tempdir, "project", "project-x.tar")

    def create(self, **kwargs) -> bool:
        kwargs.setdefault("command", [sys.executable, "-c", _COPY_STDIN])
        return create_archive(
            self.store,
            self.entries,
            ArchiveFormat.TAR,
            "project",
            self.path,
            mtime=BASE_TIME,
            **kwargs,
        )

    def test_create(self) -> None:
        self.assertTrue(self.create())
        with open(self.path, "rb") as f:
            self.assertEqual(self.raw_tar(), f.read())
        self.assertEqual(["project-x.tar"], os.listdir(os.path.dirname(self.path)))

    def test_existing_archive_reused(self) -> None:
        self.assertTrue(self.create())
        stat_before = os.stat(self.path)
        self.assertFalse(self.create())
        self.assertEqual(stat_before.st_mtime_ns, os.stat(self.path).st_mtime_ns)
        self.assertEqual(stat_before.st_ino, os.stat(self.path).st_ino)

    def test_failure_leaves_nothing_behind(self) -> None:
        self.assertRaises(
            ArchiveError,
            self.create,
            command=[sys.executable, "-c", "import sys; sys.exit(1)"],
        )
        self.assertFalse(os.path.exists(self.path))
        self.assertEqual([], os.listdir(os.path.dirname(self.path)))

    def test_missing_blob_leaves_nothing_behind(self) -> None:
        self.entries = [SnapshotEntry(b"gone", F, b"3" * 40)]
        self.assertRaises(NotFound, self.create)
        self.assertEqual([], os.listdir(os.path.dirname(self.path)))

    def test_zip(self) -> None:
        path = os.path.join(self.tempdir, "project", "project-x.zip")
        self.assertTrue(
            create_archive(
                self.store, self.entries, ArchiveFormat.ZIP, "project", path
            )
        )
        with zipfile.ZipFile(path) as zf:
            self.assertEqual(b"Read me.\n", zf.read("project/README"))

    def test_concurrent_requests(self) -> None:
        barrier = threading.Barrier(2)
        results = []
        failures = []

        def build():
            barrier.wait()
            try:
                results.append(self.create())
            except Exception as exc:
                failures.append(exc)

        threads = [threading.Thread(target=build) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual([], failures)
        self.assertIn(True, results)
        with open(self.path, "rb") as f:
            self.assertEqual(self.raw_tar(), f.read())
        self.assertEqual(["project-x.tar"], os.listdir(os.path.dirname(self.path)))

    def test_tar_format_without_compressor(self) -> None:
        with patch.dict("gitvault.archive._COMPRESSORS", {ArchiveFormat.TAR: None}):
            self.assertRaises(ValueError, self.create, command=None)
        self.assertFalse(os.path.exists(os.path.dirname(self.path)))
