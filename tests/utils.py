# utils.py -- Test utilities for gitvault
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

"""Utility functions common to gitvault tests."""

from typing import Optional

from dulwich.index import commit_tree
from dulwich.objects import Blob, Commit

F = 0o100644  # Shorthand mode for files.
X = 0o100755  # Executable files.
L = 0o120000  # Symlinks.
G = 0o160000  # Gitlinks (submodules).

# 2010-01-01T00:00:00Z
BASE_TIME = 1262304000


def make_commit(**attrs: object) -> Commit:
    """Make a Commit object with a default set of members.

    Args:
      attrs: dict of attributes to overwrite from the default values.
    Returns: A newly initialized Commit object.
    """
    all_attrs: dict[str, object] = {
        "author": b"Test Author <test@nodomain.com>",
        "author_time": BASE_TIME,
        "author_timezone": 0,
        "committer": b"Test Committer <test@nodomain.com>",
        "commit_time": BASE_TIME,
        "commit_timezone": 0,
        "message": b"Test message.",
        "parents": [],
        "tree": b"0" * 40,
    }
    all_attrs.update(attrs)
    commit = Commit()
    for name, value in all_attrs.items():
        setattr(commit, name, value)
    return commit


def build_commit_graph(
    object_store,
    commit_spec: list[list[int]],
    trees: Optional[dict[int, list[tuple]]] = None,
    attrs: Optional[dict[int, dict[str, object]]] = None,
) -> list[Commit]:
    """Build a commit graph from a concise specification.

    Sample usage::

        c1, c2, c3 = build_commit_graph(store, [[1], [2, 1], [3, 1, 2]])

    Each entry of ``commit_spec`` is a commit number followed by the
    numbers of its parents; entries must be in topological order. Commits
    get increasing commit times, 100 seconds apart, unless ``attrs`` says
    otherwise.

    Args:
      object_store: An ObjectStore to commit objects to.
      commit_spec: An iterable of iterables of ints defining the commit graph.
      trees: An optional dict of commit number -> tree spec. The tree spec
        is an iterable of (path, data, mode) or (path, data) entries, mode
        defaulting to F. For gitlinks (mode G), data is the submodule's
        commit id instead of file content.
      attrs: A dict of commit number -> (dict of attribute -> value) for
        assigning additional values to the commits.
    Returns: The list of commit objects created.
    Raises:
      ValueError: If an undefined commit identifier is listed as a parent.
    """
    if trees is None:
        trees = {}
    if attrs is None:
        attrs = {}
    commit_time = BASE_TIME
    nums = {}
    commits = []

    for commit in commit_spec:
        commit_num = commit[0]
        try:
            parent_ids = [nums[pn] for pn in commit[1:]]
        except KeyError as e:
            (missing_parent,) = e.args
            raise ValueError(f"Unknown parent {missing_parent}") from e

        blobs = []
        for entry in trees.get(commit_num, []):
            if len(entry) == 2:
                path, data = entry
                mode = F
            else:
                path, data, mode = entry
            if mode == G:
                blobs.append((path, data, mode))
                continue
            blob = Blob.from_string(data)
            object_store.add_object(blob)
            blobs.append((path, blob.id, mode))
        tree_id = commit_tree(object_store, blobs)

        commit_attrs = {
            "message": f"Commit {commit_num}".encode("ascii"),
            "parents": parent_ids,
            "tree": tree_id,
            "commit_time": commit_time,
            "author_time": commit_time,
        }
        commit_attrs.update(attrs.get(commit_num, {}))
        commit_obj = make_commit(**commit_attrs)

        commit_time = commit_attrs["commit_time"] + 100
        nums[commit_num] = commit_obj.id
        object_store.add_object(commit_obj)
        commits.append(commit_obj)

    return commits
