#!/usr/bin/env python
#
# Copyright (c) 2024-2025, Ryan Galloway (ryan@rsgalloway.com)
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
#  - Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
#  - Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
#  - Neither the name of the software nor the names of its contributors
#    may be used to endorse or promote products derived from this software
#    without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.
#

__doc__ = """
Contains functions for packing tracked paths into a compressed tar archive and
extracting them again. The compression is chosen by the archive suffix:

    .tbz    bzip2 (default)
    .tgz    gzip

Members are stored with absolute names so an archive restores into the same
locations it was packed from.
"""

import os
import re
from contextlib import contextmanager
from typing import Callable, List, Optional

from tqdm import tqdm

from cacher import config, util
from cacher.logger import log
from cacher.util import CacherError, CommandResult

# tar error line for a requested member missing from the archive
NOT_FOUND = re.compile(r"^(?:\S*tar): (.+): Not found in archive$")

# tar summary lines that carry no information of their own
IGNORED_ERRORS = re.compile(r"(Exiting with failure status|Error exit delayed)")


class PackError(CacherError):
    """Raised when packing an archive fails."""

    def __init__(self, message: str, result: CommandResult = None):
        super().__init__(message)
        self.result = result


class ExtractError(CacherError):
    """Raised when extracting an archive fails for a reason other than
    requested paths missing from it, e.g. a corrupt archive."""

    def __init__(self, message: str, result: CommandResult = None):
        super().__init__(message)
        self.result = result


def compression_flag(archive: str) -> str:
    """Returns the tar compression flag for an archive path.

    :param archive: archive path ending in a known suffix.
    :raises ValueError: if the suffix is unknown.
    :return: tar flag, e.g. '-j'.
    """
    for ext, flag in config.COMPRESSION.items():
        if archive.endswith(f".{ext}"):
            return flag
    raise ValueError(f"Unknown archive type: {archive}")


@contextmanager
def progress(desc: str):
    """Yields a tick callable that advances an indeterminate progress bar."""
    with tqdm(desc=f"[{desc}]", unit="s", leave=False) as bar:
        yield lambda: bar.update(1)


def parse_missing(stderr: str) -> List[str]:
    """Returns requested paths tar reported as not found in the archive.

    :param stderr: captured tar error output.
    :return: list of paths in report order.
    """
    missing = []
    for line in stderr.splitlines():
        m = NOT_FOUND.match(line.strip())
        if m:
            missing.append(m.group(1))
    return missing


def other_errors(stderr: str) -> List[str]:
    """Returns tar error lines that are not missing entry reports."""
    return [
        line
        for line in (s.strip() for s in stderr.splitlines())
        if line and not NOT_FOUND.match(line) and not IGNORED_ERRORS.search(line)
    ]


def pack(
    archive: str,
    paths: List[str],
    on_tick: Optional[Callable[[], None]] = None,
    logdir: str = None,
) -> CommandResult:
    """Packs paths into archive.

    :param archive: target archive path, suffix selects the compression.
    :param paths: absolute paths to pack.
    :param on_tick: called about once a second while tar runs.
    :param logdir: directory for captured output, defaults to the archive's.
    :raises PackError: if tar exits non-zero.
    :return: CommandResult.
    """
    flag = compression_flag(archive)
    logdir = logdir or os.path.dirname(os.path.abspath(archive))
    args = ["tar", "-P", flag, "-c", "-f", archive] + list(paths)

    result = util.spawn(args, logdir, "tar", on_tick=on_tick)
    if not result.ok:
        log.error("creating %s failed:", os.path.basename(archive))
        log.error(result.output())
        raise PackError(f"tar exited with {result.returncode}", result)
    return result


def unpack(
    archive: str,
    paths: List[str],
    on_tick: Optional[Callable[[], None]] = None,
    logdir: str = None,
) -> List[str]:
    """Extracts paths from archive into the filesystem. Paths that are not in
    the archive are reported and skipped.

    :param archive: archive path, suffix selects the compression.
    :param paths: absolute paths to extract.
    :param on_tick: called about once a second while tar runs.
    :param logdir: directory for captured output, defaults to the archive's.
    :raises ExtractError: if tar fails for any other reason.
    :return: list of requested paths that were not in the archive.
    """
    flag = compression_flag(archive)
    logdir = logdir or os.path.dirname(os.path.abspath(archive))
    args = ["tar", "-P", flag, "-x", "-f", archive] + list(paths)

    result = util.spawn(args, logdir, "tar", on_tick=on_tick)
    if result.ok:
        return []

    missing = parse_missing(result.stderr)
    for path in missing:
        log.info("%s is not yet cached", path)

    errors = other_errors(result.stderr)
    if errors or not missing:
        log.error("extracting %s failed:", os.path.basename(archive))
        log.error(result.output())
        raise ExtractError(f"tar exited with {result.returncode}", result)

    return missing
