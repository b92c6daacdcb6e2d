# log_utils.py -- Logging utilities for gitvault
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

"""Logging utilities for gitvault.

gitvault is mostly used as a library, so its loggers stay silent until the
embedding application configures logging. The command line entry point calls
:func:`default_logging_config`, which also honours ``GITVAULT_TRACE``:

- ``1``, ``2`` or ``true`` traces at debug level to stderr
- an absolute path traces to that file (one file per process when the path
  is a directory)
- anything else, or an unset variable, disables tracing
"""

import logging
import os
import sys
from typing import Optional

getLogger = logging.getLogger

TRACE_ENV = "GITVAULT_TRACE"
TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"

_NULL_HANDLER = logging.NullHandler()
_GITVAULT_LOGGER = getLogger("gitvault")
_GITVAULT_LOGGER.addHandler(_NULL_HANDLER)


def _get_trace_target() -> Optional[str]:
    """Get the trace target from the environment.

    Returns: None if tracing is disabled, "-" for stderr, or a file path.
    """
    trace_value = os.environ.get(TRACE_ENV, "")
    if not trace_value or trace_value.lower() in ("0", "false"):
        return None
    if trace_value.lower() in ("1", "2", "true"):
        return "-"
    if os.path.isabs(trace_value):
        return trace_value
    return None


def _configure_logging_from_trace() -> bool:
    """Configure logging based on GITVAULT_TRACE.

    Returns: True if tracing was configured, False otherwise.
    """
    trace_target = _get_trace_target()
    if trace_target is None:
        return False

    if trace_target == "-":
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format=TRACE_FORMAT)
        return True

    if os.path.isdir(trace_target):
        filename = os.path.join(trace_target, f"trace.{os.getpid()}")
    else:
        filename = trace_target
    try:
        logging.basicConfig(
            level=logging.DEBUG, filename=filename, filemode="a", format=TRACE_FORMAT
        )
    except OSError as e:
        sys.stderr.write(f"Warning: Failed to open {TRACE_ENV} file {filename}: {e}\n")
        return False
    return True


def default_logging_config() -> None:
    """Set up the default gitvault loggers."""
    remove_null_handler()
    if not _configure_logging_from_trace():
        logging.basicConfig(
            level=logging.INFO,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)s: %(message)s",
        )


def remove_null_handler() -> None:
    """Remove the null handler from the gitvault loggers."""
    _GITVAULT_LOGGER.removeHandler(_NULL_HANDLER)
