# snapshot.py -- Reading the tree of a commit as a flat list of entries
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

"""Reading the tree of a commit as a flat list of entries."""

from typing import NamedTuple, Union

from dulwich.objects import S_ISGITLINK

from .errors import Malformed
from .store import ObjectStoreAdapter

# Mode of a gitlink, i.e. a tree entry pointing at a submodule commit.
SUBMODULE_MODE = 0o160000


class SnapshotEntry(NamedTuple):
    """A file or submodule in a snapshot, with its path from the tree root."""

    path: bytes
    mode: int
    sha: bytes

    @property
    def is_submodule(self) -> bool:
        return S_ISGITLINK(self.mode)


def snapshot(
    store: ObjectStoreAdapter, ref_or_sha: Union[str, bytes]
) -> list[SnapshotEntry]:
    """Return the entries of the tree of the commit ``ref_or_sha`` names.

    The entries come in the tree's own order; nothing is re-sorted.

    Raises:
      NotFound: if the ref, the commit or one of its trees is missing
      Malformed: if an entry is missing its path, mode or sha
    """
    commit = store.commit(store.resolve(ref_or_sha))
    return snapshot_tree(store, commit.tree)


def snapshot_tree(store: ObjectStoreAdapter, tree_id: bytes) -> list[SnapshotEntry]:
    entries = []
    for entry in store.tree_entries(tree_id):
        if entry.path is None or entry.mode is None or entry.sha is None:
            raise Malformed(tree_id, f"incomplete tree entry {entry!r}")
        entries.append(SnapshotEntry(entry.path, entry.mode, entry.sha))
    return entries
