# store.py -- Object store access for gitvault
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

"""Access to the git objects of a repository.

Everything gitvault needs from the object database goes through
:class:`ObjectStoreAdapter`: resolving refs, loading commits, flattening
trees, reading blobs and diffing two trees. The heavy lifting is done by
dulwich; this module only narrows its interface and turns its lookup
failures into :mod:`gitvault.errors` exceptions.
"""

from typing import TYPE_CHECKING, NamedTuple, Optional, Union

from dulwich.diff_tree import CHANGE_RENAME, RenameDetector, tree_changes
from dulwich.object_store import iter_tree_contents
from dulwich.objects import Blob, Commit, Tree
from dulwich.objectspec import parse_commit

from .errors import Malformed, NotFound

if TYPE_CHECKING:
    from dulwich.objects import TreeEntry
    from dulwich.repo import BaseRepo


class PathChange(NamedTuple):
    """A single file level change between two trees.

    ``old_path`` is None for added files and ``new_path`` is None for
    deleted files.
    """

    old_path: Optional[bytes]
    new_path: Optional[bytes]
    renamed: bool


def _entry_path(entry: Optional["TreeEntry"]) -> Optional[bytes]:
    # Older dulwich releases report a missing side as TreeEntry(None, None, None).
    if entry is None:
        return None
    return entry.path


class ObjectStoreAdapter:
    """Narrow, read-only view of a dulwich repository."""

    def __init__(self, repo: "BaseRepo") -> None:
        self.repo = repo
        self.object_store = repo.object_store

    def resolve(self, ref_or_sha: Union[str, bytes]) -> bytes:
        """Resolve a ref name or (abbreviated) sha to a commit id.

        Annotated tags are peeled to the commit they point at.

        Raises:
          NotFound: if nothing by that name exists
          Malformed: if the name resolves to something other than a commit
        """
        try:
            commit = parse_commit(self.repo, ref_or_sha)
        except KeyError as exc:
            raise NotFound(ref_or_sha, "ref") from exc
        except ValueError as exc:
            raise Malformed(ref_or_sha, str(exc)) from exc
        return commit.id

    def commit(self, sha: bytes) -> Commit:
        try:
            obj = self.object_store[sha]
        except KeyError as exc:
            raise NotFound(sha, "commit") from exc
        if not isinstance(obj, Commit):
            raise Malformed(sha, f"expected commit, got {obj.type_name.decode('ascii')}")
        return obj

    def tree_entries(self, tree_id: bytes) -> list["TreeEntry"]:
        """Flatten a tree into its blob and gitlink entries.

        Entries are returned depth-first in git's tree order, with paths
        relative to the root tree.
        """
        try:
            tree = self.object_store[tree_id]
            if not isinstance(tree, Tree):
                raise Malformed(
                    tree_id, f"expected tree, got {tree.type_name.decode('ascii')}"
                )
            return list(iter_tree_contents(self.object_store, tree_id))
        except KeyError as exc:
            raise NotFound(exc.args[0] if exc.args else tree_id, "tree") from exc

    def blob_bytes(self, sha: bytes) -> bytes:
        try:
            obj = self.object_store[sha]
        except KeyError as exc:
            raise NotFound(sha, "blob") from exc
        if not isinstance(obj, Blob):
            raise Malformed(sha, f"expected blob, got {obj.type_name.decode('ascii')}")
        return obj.as_raw_string()

    def diff(
        self,
        tree_a: Optional[bytes],
        tree_b: Optional[bytes],
        detect_renames: bool = False,
    ) -> list[PathChange]:
        """List the files that differ between two trees.

        Args:
          tree_a: Old tree id, or None for the empty tree
          tree_b: New tree id, or None for the empty tree
          detect_renames: Pair up similar deletes and adds as renames
        Returns: list of PathChange objects
        """
        rename_detector = RenameDetector(self.object_store) if detect_renames else None
        try:
            changes = list(
                tree_changes(
                    self.object_store, tree_a, tree_b, rename_detector=rename_detector
                )
            )
        except KeyError as exc:
            raise NotFound(exc.args[0] if exc.args else b"", "tree") from exc
        return [
            PathChange(
                _entry_path(change.old),
                _entry_path(change.new),
                change.type == CHANGE_RENAME,
            )
            for change in changes
        ]
