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
Contains the Cacher class driving the fetch, add and push operations of one
cache slot:

    $ cacher fetch https://cache.example.com/main.tbz https://cache.example.com/master.tbz
    $ cacher add ~/.cache/pip node_modules
    ... build ...
    $ cacher push https://cache.example.com/main.tbz
"""

import os
from enum import Enum
from typing import List, Optional

from cacher import archive, config, util
from cacher.config import Settings
from cacher.fingerprint import ChangeDetector, select_detector
from cacher.guard import run_with_timeout
from cacher.logger import log
from cacher.state import CacheState
from cacher.transfer import TransferClient


class Command(Enum):
    """The operations a cacher invocation can run."""

    FETCH = "fetch"
    ADD = "add"
    PUSH = "push"


class Cacher(object):
    """Fetches, restores and pushes the archive for one cache slot."""

    def __init__(self, settings: Settings = None):
        """Initializes the cacher.

        :param settings: runtime settings, read from the environment if None.
        """
        self.settings = settings or Settings.from_env()
        self.state = CacheState(self.settings.cache_dir)
        self.transfer = TransferClient(self.state)
        self._detector: Optional[ChangeDetector] = None

    @property
    def detector(self) -> ChangeDetector:
        """The change detector for this run, chosen on first use."""
        if self._detector is None:
            self._detector = select_detector(self.settings, self.state)
        return self._detector

    def run(self, command: Command, args: List[str]) -> bool:
        """Runs a command under the configured timeout.

        :param command: command to run.
        :param args: command arguments.
        :return: True if the command completed in time.
        """
        if command is Command.FETCH:
            operation = self.fetch
        elif command is Command.ADD:
            operation = self.add
        elif command is Command.PUSH:
            if len(args) != 1:
                raise ValueError("push takes exactly one url")
            operation = self.push
        else:
            raise ValueError(f"Unknown command: {command}")

        return run_with_timeout(
            operation, args, seconds=self.settings.timeout, name=command.value
        )

    def fetch(self, *urls: str) -> Optional[str]:
        """Downloads the first available archive.

        :param urls: candidate urls in order of preference.
        :return: local archive path or None.
        """
        log.info("attempting to download cache archive")
        return self.transfer.fetch_first_available(list(urls))

    def add(self, *paths: str) -> List[str]:
        """Registers paths for caching, restores them from the fetched archive
        and records a baseline for change detection.

        :param paths: paths to add, relative paths resolve against cwd.
        :return: expanded paths that were added.
        """
        added = self.state.register_paths(paths)
        self.state.touch_listing(config.MD5_BEFORE)

        fetched = self.state.existing_fetch_archive()
        if not fetched:
            for path in added:
                log.info("%s is not yet cached", path)
            return added

        log.info("adding %s to cache", " ".join(added))
        with archive.progress("extracting") as tick:
            try:
                archive.unpack(
                    fetched, added, on_tick=tick, logdir=self.state.cache_dir
                )
            except archive.ExtractError as e:
                log.warning("could not extract cache: %s", e)

        self.detector.snapshot(added)
        return added

    def push(self, url: str) -> bool:
        """Packs and uploads the tracked paths if they changed.

        :param url: remote url, the suffix selects the compression.
        :return: True if a new archive was uploaded.
        """
        if not self.detector.has_changed():
            log.info("nothing changed, not updating cache")
            return False

        paths = self.state.tracked_paths()
        if not paths:
            log.info("no paths to cache")
            return False

        log.info("changes detected, packing new archive")
        target = self.state.archive_path(config.PUSH_NAME, util.url_extension(url))
        if os.path.exists(target):
            util.remove_object(target)

        with archive.progress("packing") as tick:
            try:
                archive.pack(
                    target,
                    list(dict.fromkeys(paths)),
                    on_tick=tick,
                    logdir=self.state.cache_dir,
                )
            except archive.PackError as e:
                log.error("failed to pack cache: %s", e)
                return False

        log.info("uploading archive")
        if not self.transfer.upload(target, url):
            log.error("failed to upload cache")
            return False

        log.info("cache uploaded")
        return True
