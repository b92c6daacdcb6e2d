# errors.py -- errors for gitvault
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

"""Exceptions raised by gitvault.

Lookups that fail inside dulwich surface as ``KeyError`` or one of the
``dulwich.errors`` classes; :mod:`gitvault.store` translates those into the
classes below so callers only need to handle one family of errors.
"""

from typing import Optional, Union


def _to_str(name: Union[bytes, str]) -> str:
    if isinstance(name, bytes):
        return name.decode("utf-8", "replace")
    return name


class NotFound(KeyError):
    """A ref, commit, tree or blob could not be found in the object store."""

    def __init__(self, name: Union[bytes, str], kind: str = "object") -> None:
        """Initialize a NotFound exception.

        Args:
            name: The ref name or object id that failed to resolve.
            kind: What was being looked up ("ref", "commit", "blob", ...).
        """
        self.name = name
        self.kind = kind
        KeyError.__init__(self, name)

    def __str__(self) -> str:
        return f"{self.kind} {_to_str(self.name)} not found"


class Malformed(ValueError):
    """A tree entry or commit record is structurally inconsistent."""

    def __init__(self, name: Union[bytes, str], reason: str) -> None:
        self.name = name
        self.reason = reason
        ValueError.__init__(self, f"{_to_str(name)}: {reason}")


class ArchiveError(OSError):
    """Writing an archive failed.

    Raised for filesystem errors and for a compressor that exits with a
    non-zero status.
    """

    def __init__(
        self, message: str, returncode: Optional[int] = None
    ) -> None:
        self.returncode = returncode
        OSError.__init__(self, message)


class NoRepository(Exception):
    """Indicates that no git repository exists at the given path."""

    def __init__(self, *args: object, **kwargs: object) -> None:
        Exception.__init__(self, *args, **kwargs)


class Cancelled(Exception):
    """An operation was abandoned because its cancel token was set."""
