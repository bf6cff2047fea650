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
Contains change detectors deciding whether tracked content differs from the
last cached snapshot.

Two detectors are available. The content hash detector lists a hash for every
tracked file using md5deep and compares the listing taken after extraction
with one taken at push time. The timestamp detector is used when md5deep is
not available and cannot be installed: it records when each path was
baselined and reports a change when any file underneath is newer. It cannot
see files rewritten with an older or equal mtime.
"""

import os
import time
from typing import Iterable, List, Optional

from cacher import config, util
from cacher.config import Settings
from cacher.logger import log
from cacher.state import CacheState

def unique(paths: Iterable[str]) -> List[str]:
    """Removes duplicate paths, keeping the first occurrence."""
    return list(dict.fromkeys(paths))


def diff_listings(before: List[str], after: List[str]) -> List[str]:
    """Compares two hash listings line by line.

    :param before: baseline listing lines.
    :param after: current listing lines.
    :return: '- line' for lines only in before, '+ line' for lines only in
        after, removals first, each group sorted.
    """
    before_set, after_set = set(before), set(after)
    removed = [f"- {line}" for line in sorted(before_set - after_set)]
    added = [f"+ {line}" for line in sorted(after_set - before_set)]
    return removed + added


def summarize(lines: List[str], limit: int = config.DIFF_PREVIEW_BYTES) -> str:
    """Returns at most limit bytes of a diff, with '...' appended when the
    diff was truncated.

    :param lines: diff lines.
    :param limit: max number of bytes.
    :return: summary text.
    """
    text = "\n".join(lines)
    data = text.encode("utf-8")
    if len(data) <= limit:
        return text
    return data[:limit].decode("utf-8", errors="ignore") + "\n..."


def install_tool(os_name: str) -> bool:
    """Tries to install the fingerprint tool with the package manager for the
    given os name.

    :param os_name: os hint, e.g. 'linux' or 'osx'.
    :return: True if the tool is available afterwards.
    """
    commands = config.INSTALL_COMMANDS.get(os_name, [])
    for cmd in commands:
        if not util.which(cmd[0]):
            continue
        result = util.run_command(cmd)
        if not result.ok:
            log.debug("installing %s failed: %s", config.FINGERPRINT_TOOL, result.output())
            continue
        if util.which(config.FINGERPRINT_TOOL):
            return True
    return False


def detection_mode(settings: Settings) -> str:
    """Returns "md5" if the fingerprint tool is available or installable,
    otherwise "mtime". The check runs once and is kept on settings.

    :param settings: runtime settings.
    :return: detection mode.
    """
    if settings.fingerprint != "auto":
        return settings.fingerprint

    if settings.detected_mode is None:
        if util.which(config.FINGERPRINT_TOOL) or install_tool(settings.os_name):
            settings.detected_mode = ContentHashDetector.mode
        else:
            log.debug(
                "%s not available, falling back to mtime detection",
                config.FINGERPRINT_TOOL,
            )
            settings.detected_mode = TimestampDetector.mode
    return settings.detected_mode


class ChangeDetector(object):
    """Base class for change detectors."""

    mode = ""

    def __init__(self, state: CacheState):
        self.state = state

    def snapshot(self, paths: List[str]) -> None:
        """Records a baseline for the given paths."""
        raise NotImplementedError

    def has_changed(self) -> bool:
        """Returns True if tracked content differs from the baseline."""
        raise NotImplementedError


class ContentHashDetector(ChangeDetector):
    """Detects changes by comparing content hash listings."""

    mode = "md5"

    def __init__(self, state: CacheState):
        super().__init__(state)
        self.changes: List[str] = []

    def hash_listing(self, paths: List[str]) -> List[str]:
        """Lists '<hash>  <path>' for every file under paths.

        :param paths: absolute paths.
        :return: listing lines.
        """
        paths = unique(paths)
        if not paths:
            return []
        result = util.run_command(
            [config.FINGERPRINT_TOOL, "-o", "f", "-r"] + paths,
            logdir=self.state.cache_dir,
        )
        if not result.ok:
            log.warning(
                "%s exited with %d: %s",
                config.FINGERPRINT_TOOL,
                result.returncode,
                result.stderr.strip(),
            )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def snapshot(self, paths: List[str]) -> None:
        """Adds the hashes of the given paths to the before listing."""
        before = self.state.read_listing(config.MD5_BEFORE)
        self.state.write_listing(config.MD5_BEFORE, before + self.hash_listing(paths))

    def has_changed(self) -> bool:
        before = self.state.read_listing(config.MD5_BEFORE)
        after = self.state.write_listing(
            config.MD5_AFTER, self.hash_listing(self.state.tracked_paths())
        )
        self.changes = diff_listings(before, after)
        util.write_lines(self.state.path(config.DIFF_FILE), self.changes)

        if not before:
            return True
        if self.changes:
            log.info("change detected (content changed, file is created or deleted):")
            log.info(summarize(self.changes))
            return True
        return False


class TimestampDetector(ChangeDetector):
    """Detects changes by comparing file mtimes with the time each tracked
    path was baselined."""

    mode = "mtime"

    def __init__(self, state: CacheState):
        super().__init__(state)
        self.changed_entry: Optional[str] = None

    def snapshot(self, paths: List[str], now: int = None) -> None:
        """Records the current time for each path."""
        now = int(time.time()) if now is None else int(now)
        for path in unique(paths):
            self.state.record_baseline_timestamp(path, now)

    def find_newer(self, path: str, mtime: int) -> Optional[str]:
        """Returns the first non-directory entry under path modified after
        mtime, or None.

        :param path: tracked path.
        :param mtime: baseline epoch seconds.
        """
        for entry in iter_entries(path):
            try:
                if int(os.path.getmtime(entry)) > mtime:
                    return entry
            except OSError:
                continue
        return None

    def has_changed(self) -> bool:
        self.changed_entry = None
        mtimes = self.state.read_baseline_timestamps()
        if not mtimes:
            return True
        for path, mtime in mtimes.items():
            entry = self.find_newer(path, mtime)
            if entry:
                self.changed_entry = entry
                log.info("%s was modified", entry)
                return True
        return False


def iter_entries(path: str):
    """Yields every non-directory entry under path, including path itself
    when it is a file."""
    if os.path.isfile(path):
        yield path
        return
    for dirname, dirs, files in os.walk(path):
        for name in files:
            yield os.path.join(dirname, name)


def select_detector(settings: Settings, state: CacheState) -> ChangeDetector:
    """Returns the change detector for this run.

    :param settings: runtime settings.
    :param state: cache state.
    :return: ContentHashDetector or TimestampDetector.
    """
    mode = detection_mode(settings)
    for detector in (ContentHashDetector, TimestampDetector):
        if detector.mode == mode:
            return detector(state)
    raise ValueError(f"Unknown detection mode: {mode}")
