# archive.py -- Creating tar and zip archives of a commit's tree
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

"""Generates tar and zip archives for git trees.

Tar archives are produced as a stream of chunks by :func:`tar_stream` and
written to disk through an external compressor by :func:`compress`. Zip
archives need a trailing central directory, so :func:`write_zip` writes
straight to a file instead.

Every member of an archive carries the same modification time, normally the
commit time, so archiving the same commit twice gives identical bytes.
"""

import enum
import os
import shlex
import stat
import subprocess
import tarfile
import tempfile
import threading
import time
import zipfile
from collections.abc import Iterable, Iterator, Sequence
from io import BytesIO
from typing import TYPE_CHECKING, Optional

from .errors import ArchiveError, Cancelled
from .log_utils import getLogger
from .snapshot import SnapshotEntry

if TYPE_CHECKING:
    from dulwich.config import Config

    from .store import ObjectStoreAdapter

logger = getLogger(__name__)

# Mode used for the prefix directory and for submodule placeholders.
DIRECTORY_MODE = 0o100755

# Zip cannot represent timestamps before 1980-01-01.
_ZIP_EPOCH = 315532800

# How often the pipe wait checks its cancel token, in seconds.
_POLL_INTERVAL = 0.1


class ArchiveFormat(enum.Enum):
    """Supported archive formats, keyed by file extension."""

    TAR = ".tar"
    TAR_GZ = ".tar.gz"
    TAR_BZ2 = ".tar.bz2"
    ZIP = ".zip"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def is_tar(self) -> bool:
        return self is not ArchiveFormat.ZIP

    @property
    def command(self) -> Optional[list[str]]:
        """Default compressor argv, or None for formats written directly."""
        return _COMPRESSORS[self]

    @classmethod
    def parse(cls, name: Optional[str]) -> "ArchiveFormat":
        """Map a user supplied format name to an ArchiveFormat.

        Unknown names, including None, fall back to ``tar.gz``.
        """
        if name is None:
            return cls.TAR_GZ
        return _ALIASES.get(name.lower().lstrip("."), cls.TAR_GZ)


_COMPRESSORS: dict[ArchiveFormat, Optional[list[str]]] = {
    ArchiveFormat.TAR: ["cat"],
    ArchiveFormat.TAR_GZ: ["gzip", "-n"],
    ArchiveFormat.TAR_BZ2: ["bzip2"],
    ArchiveFormat.ZIP: None,
}

_ALIASES = {
    "tar": ArchiveFormat.TAR,
    "tar.gz": ArchiveFormat.TAR_GZ,
    "tgz": ArchiveFormat.TAR_GZ,
    "gz": ArchiveFormat.TAR_GZ,
    "tar.bz2": ArchiveFormat.TAR_BZ2,
    "tbz": ArchiveFormat.TAR_BZ2,
    "tbz2": ArchiveFormat.TAR_BZ2,
    "tb2": ArchiveFormat.TAR_BZ2,
    "bz2": ArchiveFormat.TAR_BZ2,
    "zip": ArchiveFormat.ZIP,
}


def compressor_command(
    format: ArchiveFormat, config: Optional["Config"] = None
) -> Optional[list[str]]:
    """Determine the compressor argv for a format.

    ``tar.<format>.command`` in the repository configuration, as understood
    by git archive, overrides the built-in table.
    """
    if format.command is None:
        return None
    if config is not None:
        section = (b"tar", format.extension[1:].encode("ascii"))
        try:
            value = config.get(section, b"command")
        except KeyError:
            pass
        else:
            return shlex.split(value.decode("utf-8"))
    return list(format.command)


def archive_file_name(repo_name: str, commit_id: bytes, format: ArchiveFormat) -> str:
    if repo_name.endswith(".git"):
        repo_name = repo_name[: -len(".git")]
    return f"{repo_name}-{commit_id.decode('ascii')}{format.extension}"


def archive_path(
    storage_path: str, repo_name: str, commit_id: bytes, format: ArchiveFormat
) -> str:
    """Return where the archive of ``commit_id`` is stored."""
    return os.path.join(
        storage_path, repo_name, archive_file_name(repo_name, commit_id, format)
    )


def _member_name(prefix: str, path: bytes, errors: str = "surrogateescape") -> str:
    # tarfile and zipfile only deal in str.
    return prefix + "/" + path.decode("utf-8", errors)


def _dir_info(name: str, mtime: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = DIRECTORY_MODE
    info.mtime = mtime
    return info


def tar_stream(
    store: "ObjectStoreAdapter",
    entries: Iterable[SnapshotEntry],
    prefix: str,
    mtime: int = 0,
) -> Iterator[bytes]:
    """Generate an uncompressed tar stream for a snapshot.

    The first member is the ``prefix`` directory; every entry follows under
    it. Submodules become empty directories and are never looked up in the
    object store.

    Args:
      store: Object store to read blobs from
      entries: Snapshot entries, in the order they should appear
      prefix: Directory all members are placed in
      mtime: UNIX timestamp assigned to every member
    Returns:
      Iterator over chunks of the tar stream
    Raises:
      NotFound: if a blob is missing from the store
    """
    buf = BytesIO()
    with tarfile.open(name=None, mode="w", fileobj=buf, format=tarfile.PAX_FORMAT) as tar:
        tar.addfile(_dir_info(prefix, mtime))
        for entry in entries:
            name = _member_name(prefix, entry.path)
            if entry.is_submodule:
                tar.addfile(_dir_info(name, mtime))
            elif stat.S_ISLNK(entry.mode):
                info = tarfile.TarInfo(name)
                info.type = tarfile.SYMTYPE
                info.linkname = store.blob_bytes(entry.sha).decode(
                    "utf-8", "surrogateescape"
                )
                info.mode = 0o777
                info.mtime = mtime
                tar.addfile(info)
            else:
                data = store.blob_bytes(entry.sha)
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = entry.mode
                info.mtime = mtime
                tar.addfile(info, BytesIO(data))
            yield buf.getvalue()
            buf.truncate(0)
            buf.seek(0)
    yield buf.getvalue()


def write_zip(
    store: "ObjectStoreAdapter",
    entries: Iterable[SnapshotEntry],
    prefix: str,
    path: str,
    mtime: int = 0,
) -> None:
    """Write a zip archive of a snapshot to ``path``.

    Members are laid out exactly as in :func:`tar_stream`.
    """
    date_time = time.gmtime(max(mtime, _ZIP_EPOCH))[:6]

    def directory(name: str) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(name + "/", date_time)
        info.create_system = 3
        info.external_attr = (stat.S_IFDIR | 0o755) << 16 | 0x10
        return info

    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(directory(prefix), b"")
        for entry in entries:
            # Zip member names must be valid UTF-8.
            name = _member_name(prefix, entry.path, "replace")
            if entry.is_submodule:
                zf.writestr(directory(name), b"")
                continue
            info = zipfile.ZipInfo(name, date_time)
            info.create_system = 3
            info.external_attr = (entry.mode & 0xFFFF) << 16
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, store.blob_bytes(entry.sha))


def compress(
    chunks: Iterable[bytes],
    command: Sequence[str],
    output_path: str,
    cancel: Optional[threading.Event] = None,
) -> None:
    """Pipe ``chunks`` through ``command`` into ``output_path``.

    The chunks are written to the compressor's stdin from a separate
    thread, so neither side can block the other on a full pipe. Both the
    writer and the process are waited for before returning.

    Args:
      chunks: Raw bytes to compress, typically from :func:`tar_stream`
      command: Compressor argv; must read stdin and write stdout
      output_path: File that receives the compressor's output
      cancel: Optional event; when set the compressor is killed
    Raises:
      ArchiveError: if the compressor cannot be started or exits non-zero
      Cancelled: if ``cancel`` was set before the pipe finished
      Any exception raised while producing ``chunks``
    """
    logger.debug("compressing %s with %s", output_path, " ".join(command))
    failures: list[BaseException] = []

    def feed(fd: int) -> None:
        try:
            with os.fdopen(fd, "wb") as pipe:
                for chunk in chunks:
                    if cancel is not None and cancel.is_set():
                        break
                    pipe.write(chunk)
        except BaseException as exc:
            failures.append(exc)

    with open(output_path, "wb") as out:
        read_fd, write_fd = os.pipe()
        try:
            proc = subprocess.Popen(list(command), stdin=read_fd, stdout=out)
        except OSError as exc:
            os.close(read_fd)
            os.close(write_fd)
            raise ArchiveError(f"unable to run {command[0]}: {exc}") from exc
        # The child holds its own copy of the read end.
        os.close(read_fd)
        writer = threading.Thread(
            target=feed, args=(write_fd,), name="gitvault-tar-writer", daemon=True
        )
        writer.start()
        returncode = _wait(proc, cancel)
        writer.join()

    if returncode is None:
        raise Cancelled(output_path)
    for exc in failures:
        if not isinstance(exc, BrokenPipeError):
            raise exc
    if returncode != 0:
        raise ArchiveError(
            f"{command[0]} exited with status {returncode}", returncode=returncode
        )
    if failures:
        raise ArchiveError(f"{command[0]} stopped reading its input")
    if cancel is not None and cancel.is_set():
        raise Cancelled(output_path)


def _wait(
    proc: "subprocess.Popen[bytes]", cancel: Optional[threading.Event]
) -> Optional[int]:
    """Wait for ``proc``; returns None if it was killed due to ``cancel``."""
    if cancel is None:
        return proc.wait()
    while True:
        try:
            return proc.wait(timeout=_POLL_INTERVAL)
        except subprocess.TimeoutExpired:
            if cancel.is_set():
                proc.kill()
                proc.wait()
                return None


def create_archive(
    store: "ObjectStoreAdapter",
    entries: Sequence[SnapshotEntry],
    format: ArchiveFormat,
    prefix: str,
    file_path: str,
    mtime: int = 0,
    command: Optional[Sequence[str]] = None,
    cancel: Optional[threading.Event] = None,
) -> bool:
    """Build an archive at ``file_path`` unless one is already there.

    The archive is assembled in a temporary file next to ``file_path`` and
    renamed into place, so readers never see a partial archive.

    Returns: True if the archive was built, False if it already existed
    Raises:
      ValueError: if ``format`` is a tar format and no compressor is known
    """
    if command is None:
        command = format.command
    if format.is_tar and command is None:
        raise ValueError(f"no compressor command for {format.name}")

    if os.path.exists(file_path):
        logger.info("reusing archive %s", file_path)
        return False

    directory = os.path.dirname(file_path)
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".gitvault-archive-", dir=directory)
    except OSError as exc:
        raise ArchiveError(f"unable to prepare {file_path}: {exc}") from exc
    os.close(fd)

    try:
        if format is ArchiveFormat.ZIP:
            write_zip(store, entries, prefix, tmp_path, mtime)
        else:
            compress(tar_stream(store, entries, prefix, mtime), command, tmp_path, cancel)
        os.replace(tmp_path, file_path)
    except BaseException:
        try:
            os.remove(tmp_path)
        except FileNotFoundError:
            pass
        raise
    logger.info("created archive %s", file_path)
    return True
