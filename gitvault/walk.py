# walk.py -- Walking the history of a repository
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

"""Walking the history of a repository, optionally limited to a path."""

import collections
import heapq
import threading
from collections.abc import Iterable, Iterator
from typing import NamedTuple, Optional, Union

from dulwich.objects import Commit

from .errors import Cancelled
from .log_utils import getLogger
from .store import ObjectStoreAdapter, PathChange

logger = getLogger(__name__)


def _to_bytes(path: Union[str, bytes]) -> bytes:
    if isinstance(path, str):
        return path.encode("utf-8")
    return path


def _path_matches(path: bytes, *changed_paths: Optional[bytes]) -> bool:
    return any(p is not None and p.startswith(path) for p in changed_paths)


class _FollowState(NamedTuple):
    """Path filter of a single walk.

    ``path`` is the name the followed file had in the commit being looked
    at; it moves to the old name whenever a rename is crossed.
    """

    path: Optional[bytes]
    follow: bool

    def step(self, changes: Iterable[PathChange]) -> tuple[bool, "_FollowState"]:
        """Check a commit's changes against the filter.

        Returns: tuple of (whether the commit touches the path, state to
            use for the commit's ancestors)
        """
        if self.path is None:
            return True, self
        for change in changes:
            if not _path_matches(self.path, change.old_path, change.new_path):
                continue
            if (
                self.follow
                and change.renamed
                and change.new_path == self.path
                and change.old_path is not None
            ):
                logger.debug(
                    "following rename of %r to %r", change.old_path, change.new_path
                )
                return True, self._replace(path=change.old_path)
            return True, self
        return False, self


def topo_order(
    store: ObjectStoreAdapter,
    start: bytes,
    cancel: Optional[threading.Event] = None,
) -> Iterator[Commit]:
    """Iterate over the ancestry of ``start`` in topological order.

    A commit is only yielded once all of its children have been; among the
    commits that are ready, the one with the newest commit time comes
    first, ties broken by commit id.

    The whole ancestry is loaded before the first commit is yielded.

    Raises:
      NotFound: if ``start`` or one of its ancestors is missing
      Cancelled: if ``cancel`` is set while loading the graph
    """
    commits: dict[bytes, Commit] = {}
    num_children: dict[bytes, int] = collections.defaultdict(int)
    todo = [start]
    while todo:
        if cancel is not None and cancel.is_set():
            raise Cancelled(start)
        commit_id = todo.pop()
        if commit_id in commits:
            continue
        commit = store.commit(commit_id)
        commits[commit_id] = commit
        for parent_id in commit.parents:
            num_children[parent_id] += 1
            if parent_id not in commits:
                todo.append(parent_id)

    ready = [(-commits[start].commit_time, start)]
    while ready:
        _, commit_id = heapq.heappop(ready)
        commit = commits[commit_id]
        for parent_id in commit.parents:
            num_children[parent_id] -= 1
            if not num_children[parent_id]:
                heapq.heappush(ready, (-commits[parent_id].commit_time, parent_id))
        yield commit


class HistoryWalker:
    """Commits reachable from a starting point, filtered and windowed.

    Each iteration over a HistoryWalker starts a fresh traversal.
    """

    def __init__(
        self,
        store: ObjectStoreAdapter,
        start: Union[str, bytes],
        limit: int = 0,
        offset: int = 0,
        path: Optional[Union[str, bytes]] = None,
        follow: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Constructor.

        Args:
          store: Object store to read commits from
          start: Ref name or sha to start walking from
          limit: Maximum number of commits to return, 0 for no limit
          offset: Number of matching commits to skip
          path: Only return commits changing files whose path starts with this
          follow: Keep following ``path`` across renames
          cancel: Optional event; when set the walk raises Cancelled
        Raises:
          NotFound: if ``start`` can not be resolved
          ValueError: if ``limit`` or ``offset`` is negative
        """
        if limit < 0:
            raise ValueError(f"limit must not be negative: {limit}")
        if offset < 0:
            raise ValueError(f"offset must not be negative: {offset}")
        self.store = store
        self.start = store.resolve(start)
        self.limit = limit
        self.offset = offset
        self.path = _to_bytes(path) if path else None
        self.follow = follow
        self.cancel = cancel

    def _changes(self, commit: Commit) -> list[PathChange]:
        if not commit.parents:
            return self.store.diff(None, commit.tree)
        parent = self.store.commit(commit.parents[0])
        return self.store.diff(parent.tree, commit.tree, detect_renames=self.follow)

    def __iter__(self) -> Iterator[Commit]:
        state = _FollowState(self.path, self.follow)
        skipped = 0
        emitted = 0
        for commit in topo_order(self.store, self.start, self.cancel):
            if self.limit and emitted >= self.limit:
                break
            if self.cancel is not None and self.cancel.is_set():
                raise Cancelled(self.start)
            if state.path is None:
                matched = True
            else:
                matched, state = state.step(self._changes(commit))
            if not matched:
                continue
            skipped += 1
            if skipped > self.offset:
                emitted += 1
                yield commit


def walk(
    store: ObjectStoreAdapter,
    start: Union[str, bytes],
    limit: int = 0,
    offset: int = 0,
    path: Optional[Union[str, bytes]] = None,
    follow: bool = False,
    cancel: Optional[threading.Event] = None,
) -> Iterator[Commit]:
    """Walk the history of ``start``; see :class:`HistoryWalker`."""
    return iter(HistoryWalker(store, start, limit, offset, path, follow, cancel))
