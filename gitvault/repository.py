# repository.py -- Repository level operations
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

"""Repository level operations.

:class:`Repository` wraps a dulwich repository on disk and offers the
operations a hosting service needs: listing branches and tags, querying
history, and exporting snapshots as archives.

    >>> repo = Repository("/srv/git/project.git")  # doctest: +SKIP
    >>> repo.log(path="README", limit=5)  # doctest: +SKIP
    >>> repo.archive_repo("v1.0", "/var/cache/archives", "zip")  # doctest: +SKIP
"""

import os
import threading
from collections import defaultdict
from io import BytesIO
from typing import NamedTuple, Optional, Union

from dulwich.config import ConfigFile, parse_submodules
from dulwich.errors import NotGitRepository
from dulwich.graph import can_fast_forward, find_merge_base
from dulwich.objects import Commit, ShaFile, Tag as TagObject
from dulwich.repo import Repo

from .archive import (
    ArchiveFormat,
    archive_path,
    compressor_command,
    create_archive,
)
from .errors import Malformed, NoRepository, NotFound
from .log_utils import getLogger
from .snapshot import snapshot_tree
from .store import ObjectStoreAdapter, PathChange
from .walk import topo_order, walk

logger = getLogger(__name__)

BRANCH_PREFIX = b"refs/heads/"
TAG_PREFIX = b"refs/tags/"

DEFAULT_LOG_LIMIT = 10

# Lines of context around each search hit.
SEARCH_CONTEXT = 3


class Branch(NamedTuple):
    name: str
    target: bytes


class Tag(NamedTuple):
    """A tag; ``message`` is only set for annotated tags."""

    name: str
    target: bytes
    message: Optional[str]


class BlobSnippet(NamedTuple):
    """Lines of a file around a search hit."""

    ref: str
    lines: list[str]
    startline: int
    filename: str


def _decode(name: bytes) -> str:
    return name.decode("utf-8", "replace")


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


class Repository:
    """A git repository on disk."""

    def __init__(self, path: str) -> None:
        """Open the repository at ``path``.

        Raises:
          NoRepository: if there is no git repository at ``path``
        """
        try:
            self.repo = Repo(path)
        except NotGitRepository as exc:
            raise NoRepository(f"no repository for such path: {path}") from exc
        self.path = path
        self.name = os.path.basename(os.path.normpath(path))
        self.store = ObjectStoreAdapter(self.repo)
        self._heads: Optional[list[Branch]] = None
        self._refs_hash: Optional[dict[bytes, list[str]]] = None
        self.root_ref = self.discover_default_branch()

    def close(self) -> None:
        self.repo.close()

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.path!r}>"

    def invalidate_caches(self) -> None:
        """Forget cached ref information; called whenever refs change."""
        self._heads = None
        self._refs_hash = None

    def branch_names(self) -> list[str]:
        return [branch.name for branch in self.branches()]

    def branches(self) -> list[Branch]:
        """Return all local branches, sorted by name."""
        branches = []
        for name in self.repo.refs.keys(base=BRANCH_PREFIX):
            target = self.repo.refs[BRANCH_PREFIX + name]
            branches.append(Branch(_decode(name), target))
        return sorted(branches)

    @property
    def heads(self) -> list[Branch]:
        if self._heads is None:
            self._heads = self.branches()
        return self._heads

    def tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags()]

    def tags(self) -> list[Tag]:
        """Return all tags, sorted by name.

        Annotated tags carry their message, unless it merely repeats the
        message of the commit they point at.
        """
        tags = []
        for name in self.repo.refs.keys(base=TAG_PREFIX):
            target = self.repo.refs[TAG_PREFIX + name]
            message = None
            obj = self.repo.object_store[target]
            if isinstance(obj, TagObject):
                _, tagged_sha = obj.object
                tagged = self.repo.object_store[tagged_sha]
                if isinstance(tagged, Commit) and tagged.message != obj.message:
                    message = _decode(obj.message).rstrip("\n")
            tags.append(Tag(_decode(name), target, message))
        return sorted(tags, key=lambda tag: tag.name)

    def ref_names(self) -> list[str]:
        return self.branch_names() + self.tag_names()

    def refs_hash(self) -> dict[bytes, list[str]]:
        """Map commit ids to the names of the refs pointing at them."""
        if self._refs_hash is None:
            refs_hash: dict[bytes, list[str]] = defaultdict(list)
            for name in self.repo.refs.allkeys():
                if not name.startswith(b"refs/"):
                    continue
                try:
                    refs_hash[self.repo.get_peeled(name)].append(_decode(name))
                except KeyError:
                    continue
            self._refs_hash = dict(refs_hash)
        return self._refs_hash

    def empty(self) -> bool:
        """Check whether HEAD points at a commit yet."""
        try:
            self.repo.head()
        except KeyError:
            return True
        return False

    def has_commits(self) -> bool:
        return not self.empty()

    def _head_branch(self) -> Optional[str]:
        head = self.repo.refs.read_ref(b"HEAD")
        if head is None or not head.startswith(b"ref: " + BRANCH_PREFIX):
            return None
        return _decode(head[len(b"ref: " + BRANCH_PREFIX) :])

    def discover_default_branch(self) -> Optional[str]:
        """Pick the branch that serves as the repository's default.

        - no branches: None
        - a single branch: that branch
        - otherwise the branch HEAD points at, then "master", then the
          first branch by name
        """
        names = self.branch_names()
        if not names:
            return None
        if len(names) == 1:
            return names[0]
        head = self._head_branch()
        if head is not None and head in names:
            return head
        if "master" in names:
            return "master"
        return names[0]

    def commit(self, ref: Union[str, bytes]) -> Optional[Commit]:
        """Look up the commit ``ref`` names, or None if it names no commit."""
        try:
            return self.store.commit(self.store.resolve(ref))
        except (NotFound, Malformed):
            return None

    def lookup(self, sha: Union[str, bytes]) -> "ShaFile":
        return self.repo.object_store[_to_bytes(sha)]

    def archive_repo(
        self,
        ref: Optional[str] = None,
        storage_path: Optional[str] = None,
        format: Optional[str] = "tar.gz",
        cancel: Optional[threading.Event] = None,
    ) -> Optional[str]:
        """Archive the tree of ``ref``, reusing an existing archive.

        Archives live at
        ``<storage_path>/<name>/<name without .git>-<commit id><ext>``.

        Args:
          ref: Ref to archive; defaults to the default branch
          storage_path: Directory archives are kept in; defaults to the
            ``gitvault.storagePath`` configuration value
          format: Archive format name, e.g. "tar.gz", "tbz2" or "zip"
          cancel: Optional event to abandon the build
        Returns: Path of the archive, or None if ``ref`` does not resolve
        Raises:
          ValueError: if no storage path is given or configured
        """
        ref = ref or self.root_ref
        if ref is None:
            return None
        commit = self.commit(ref)
        if commit is None:
            return None

        config = self.repo.get_config_stack()
        if storage_path is None:
            try:
                storage_path = config.get((b"gitvault",), b"storagePath").decode("utf-8")
            except KeyError as exc:
                raise ValueError("no archive storage path given or configured") from exc

        archive_format = ArchiveFormat.parse(format)
        file_path = archive_path(storage_path, self.name, commit.id, archive_format)
        if os.path.exists(file_path):
            logger.debug("archive for %s already at %s", ref, file_path)
            return file_path

        create_archive(
            self.store,
            snapshot_tree(self.store, commit.tree),
            archive_format,
            self.name,
            file_path,
            mtime=commit.commit_time,
            command=compressor_command(archive_format, config),
            cancel=cancel,
        )
        return file_path

    def log(
        self,
        ref: Optional[str] = None,
        path: Optional[str] = None,
        limit: int = DEFAULT_LOG_LIMIT,
        offset: int = 0,
        follow: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> list[Commit]:
        """Return the commits of ``ref``, newest first.

        Args:
          ref: Ref or sha to start from; defaults to the default branch
          path: Only include commits touching paths starting with this
          limit: Maximum number of commits, 0 for no limit
          offset: Number of matching commits to skip
          follow: Follow ``path`` across renames
        Raises:
          NotFound: if ``ref`` does not resolve
        """
        ref = ref or self.root_ref
        if ref is None:
            raise NotFound("HEAD", "ref")
        return list(
            walk(
                self.store,
                ref,
                limit=limit,
                offset=offset,
                path=path,
                follow=follow,
                cancel=cancel,
            )
        )

    def commit_count(self, ref: Union[str, bytes]) -> int:
        """Count the commits reachable from ``ref``."""
        return sum(1 for _ in topo_order(self.store, self.store.resolve(ref)))

    def commits_between(
        self, from_ref: Union[str, bytes], to_ref: Union[str, bytes]
    ) -> list[Commit]:
        """Commits reachable from ``to_ref`` but not ``from_ref``, oldest first."""
        walker = self.repo.get_walker(
            include=[self.store.resolve(to_ref)],
            exclude=[self.store.resolve(from_ref)],
            reverse=True,
        )
        return [entry.commit for entry in walker]

    def merge_base_commit(
        self, from_ref: Union[str, bytes], to_ref: Union[str, bytes]
    ) -> Optional[str]:
        bases = find_merge_base(
            self.repo, [self.store.resolve(to_ref), self.store.resolve(from_ref)]
        )
        if not bases:
            return None
        return _decode(bases[0])

    def diff(
        self, from_ref: Union[str, bytes], to_ref: Union[str, bytes], *paths: str
    ) -> list[PathChange]:
        """List the files changed between two commits.

        With ``paths``, only changes to files under one of them are kept.
        """
        old = self.store.commit(self.store.resolve(from_ref))
        new = self.store.commit(self.store.resolve(to_ref))
        changes = self.store.diff(old.tree, new.tree, detect_renames=True)
        if not paths:
            return changes
        prefixes = [_to_bytes(p) for p in paths]
        return [
            change
            for change in changes
            if any(
                p is not None and p.startswith(prefix)
                for prefix in prefixes
                for p in (change.old_path, change.new_path)
            )
        ]

    def branch_names_contains(self, commit: Union[str, bytes]) -> list[str]:
        """Names of the branches whose history includes ``commit``."""
        sha = self.store.resolve(commit)
        return [
            branch.name
            for branch in self.branches()
            if can_fast_forward(self.repo, sha, branch.target)
        ]

    def submodules(self, ref: Union[str, bytes]) -> dict[str, dict[str, str]]:
        """Describe the submodules registered in ``.gitmodules`` at ``ref``.

        Returns: dict mapping submodule name to a dict with "id" (the
            commit the gitlink points at), "path" and "url"
        """
        commit = self.store.commit(self.store.resolve(ref))
        gitlinks = {}
        gitmodules = None
        for entry in snapshot_tree(self.store, commit.tree):
            if entry.is_submodule:
                gitlinks[entry.path] = entry.sha
            elif entry.path == b".gitmodules":
                gitmodules = self.store.blob_bytes(entry.sha)
        if gitmodules is None:
            return {}

        results = {}
        config = ConfigFile.from_file(BytesIO(gitmodules))
        for path, url, name in parse_submodules(config):
            results[_decode(name)] = {
                "id": _decode(gitlinks[path]) if path in gitlinks else None,
                "path": _decode(path),
                "url": _decode(url),
            }
        return results

    def search_files(self, query: str, ref: Optional[str] = None) -> list[BlobSnippet]:
        """Find lines containing ``query`` (case insensitively) at ``ref``."""
        if not ref:
            ref = self.root_ref
        if ref is None:
            return []
        commit = self.store.commit(self.store.resolve(ref))
        needle = query.lower()
        snippets = []
        for entry in snapshot_tree(self.store, commit.tree):
            if entry.is_submodule:
                continue
            data = self.store.blob_bytes(entry.sha)
            if b"\0" in data:
                # Binary file.
                continue
            lines = data.decode("utf-8", "replace").split("\n")
            for i, line in enumerate(lines):
                if needle not in line.lower():
                    continue
                start = max(i - SEARCH_CONTEXT, 0)
                snippets.append(
                    BlobSnippet(
                        ref,
                        lines[start : i + SEARCH_CONTEXT + 1],
                        start + 1,
                        _decode(entry.path),
                    )
                )
        return snippets

    def size(self) -> float:
        """Return the on-disk size of the repository in megabytes."""
        total = 0
        for dirpath, _, filenames in os.walk(self.repo.controldir()):
            for filename in filenames:
                try:
                    total += os.lstat(os.path.join(dirpath, filename)).st_size
                except FileNotFoundError:
                    continue
        return round(total / 1024 / 1024, 2)

    def create_branch(
        self, name: str, start_point: Union[str, bytes] = "HEAD"
    ) -> Branch:
        """Create branch ``name`` at ``start_point``."""
        sha = self.store.resolve(start_point)
        self.repo.refs[BRANCH_PREFIX + _to_bytes(name)] = sha
        self.invalidate_caches()
        return Branch(name, sha)

    def delete_branch(self, name: str) -> None:
        ref = BRANCH_PREFIX + _to_bytes(name)
        if ref not in self.repo.refs:
            raise NotFound(ref, "branch")
        del self.repo.refs[ref]
        self.invalidate_caches()

    def remote_names(self) -> list[str]:
        config = self.repo.get_config()
        return [
            _decode(section[1])
            for section in config.sections()
            if len(section) > 1 and section[0] == b"remote"
        ]
