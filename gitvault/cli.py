# cli.py -- Command line interface for gitvault
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

"""Simple command line interface to gitvault.

Only the operations an operator typically needs to run by hand are exposed;
everything else is meant to be used through :class:`gitvault.repository.Repository`.
"""

import argparse
import logging
import sys
from collections.abc import Sequence
from typing import Optional

from .errors import ArchiveError, Cancelled, NoRepository, NotFound
from .log_utils import default_logging_config
from .repository import Repository

logger = logging.getLogger(__name__)


class Command:
    """A gitvault subcommand."""

    def run(self, args: Sequence[str]) -> Optional[int]:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_archive(Command):
    """Create an archive of a ref and print its path."""

    def run(self, args: Sequence[str]) -> Optional[int]:
        parser = argparse.ArgumentParser(prog="gitvault archive")
        parser.add_argument("--repo", default=".", help="Repository path")
        parser.add_argument(
            "--storage-path", help="Directory archives are stored in"
        )
        parser.add_argument(
            "--format", default="tar.gz", help="tar, tar.gz, tar.bz2 or zip"
        )
        parser.add_argument("ref", nargs="?")
        parsed_args = parser.parse_args(args)
        with Repository(parsed_args.repo) as repo:
            path = repo.archive_repo(
                parsed_args.ref, parsed_args.storage_path, parsed_args.format
            )
        if path is None:
            logger.error("%s: no such ref", parsed_args.ref or "HEAD")
            return 1
        print(path)
        return None


class cmd_log(Command):
    """Show commit ids and summaries of a ref's history."""

    def run(self, args: Sequence[str]) -> Optional[int]:
        parser = argparse.ArgumentParser(prog="gitvault log")
        parser.add_argument("--repo", default=".", help="Repository path")
        parser.add_argument("-n", "--limit", type=int, default=10)
        parser.add_argument("--skip", dest="offset", type=int, default=0)
        parser.add_argument("--follow", action="store_true")
        parser.add_argument("ref", nargs="?")
        parser.add_argument("path", nargs="?")
        parsed_args = parser.parse_args(args)
        with Repository(parsed_args.repo) as repo:
            commits = repo.log(
                ref=parsed_args.ref,
                path=parsed_args.path,
                limit=parsed_args.limit,
                offset=parsed_args.offset,
                follow=parsed_args.follow,
            )
        for commit in commits:
            summary = commit.message.split(b"\n", 1)[0]
            print(
                commit.id.decode("ascii"), summary.decode("utf-8", "replace")
            )
        return None


class cmd_branches(Command):
    """List branch names, marking the default branch."""

    def run(self, args: Sequence[str]) -> Optional[int]:
        parser = argparse.ArgumentParser(prog="gitvault branches")
        parser.add_argument("--repo", default=".", help="Repository path")
        parsed_args = parser.parse_args(args)
        with Repository(parsed_args.repo) as repo:
            for name in repo.branch_names():
                marker = "*" if name == repo.root_ref else " "
                print(f"{marker} {name}")
        return None


class cmd_tags(Command):
    """List tag names."""

    def run(self, args: Sequence[str]) -> Optional[int]:
        parser = argparse.ArgumentParser(prog="gitvault tags")
        parser.add_argument("--repo", default=".", help="Repository path")
        parsed_args = parser.parse_args(args)
        with Repository(parsed_args.repo) as repo:
            for name in repo.tag_names():
                print(name)
        return None


commands = {
    "archive": cmd_archive,
    "branches": cmd_branches,
    "log": cmd_log,
    "tags": cmd_tags,
}


def main(argv: Optional[Sequence[str]] = None) -> Optional[int]:
    """Main entry point for the gitvault CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code or None
    """
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        print(f"usage: gitvault <{'|'.join(sorted(commands))}> [options]")
        return 1

    default_logging_config()

    cmd = argv[0]
    try:
        cmd_kls = commands[cmd]
    except KeyError:
        logging.fatal("No such subcommand: %s", cmd)
        return 1
    try:
        return cmd_kls().run(argv[1:])
    except (NotFound, NoRepository, ArchiveError, Cancelled, ValueError) as exc:
        logger.error("%s", exc)
        return 1


def _main() -> None:
    sys.exit(main())


if __name__ == "__main__":
    _main()
