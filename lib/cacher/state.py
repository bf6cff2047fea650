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
Contains the file backed cache state: tracked paths, the mtime index and the
content hash listings.
"""

import json
import os
from typing import Dict, Iterable, List, Optional

from cacher import config, util
from cacher.logger import log


class CacheState(object):
    """Durable record of one cache slot, stored under the cache directory:

        <cache_dir>/
            |- paths            tracked paths, one per line, append only
            |- mtime.json       {"<path>": <epoch seconds>, ...}
            |- md5sums_before   "<hash>  <path>" lines, sorted and unique
            |- md5sums_after
            |- diff.log         last change summary
            `- fetch.tbz        downloaded archive (or fetch.tgz)
    """

    def __init__(self, cache_dir: str):
        """Initializes the state, creating the cache directory if needed.

        :param cache_dir: path to the cache directory.
        """
        self.cache_dir = util.expand_path(cache_dir)
        os.makedirs(self.cache_dir, exist_ok=True)

    def path(self, name: str) -> str:
        """Returns the full path of a file in the cache directory."""
        return os.path.join(self.cache_dir, name)

    @property
    def paths_file(self) -> str:
        return self.path(config.PATHS_FILE)

    @property
    def mtime_file(self) -> str:
        return self.path(config.MTIME_FILE)

    def register_paths(self, paths: Iterable[str]) -> List[str]:
        """Expands paths to absolute paths, creates missing directories and
        appends them to the tracked paths file.

        :param paths: list of paths, relative paths resolve against cwd.
        :return: list of expanded paths in the given order.
        """
        expanded = [util.expand_path(p) for p in paths]
        for path in expanded:
            if not os.path.exists(path):
                log.debug("creating %s", path)
                os.makedirs(path, exist_ok=True)
        util.write_lines(self.paths_file, expanded, append=True)
        return expanded

    def tracked_paths(self) -> List[str]:
        """Returns all paths ever registered, in order. Falls back to the keys
        of the mtime index if the paths file is missing.

        :return: list of absolute paths.
        """
        if os.path.exists(self.paths_file):
            return util.read_lines(self.paths_file)
        return list(self.read_baseline_timestamps().keys())

    def read_baseline_timestamps(self) -> Dict[str, int]:
        """Reads the mtime index.

        :return: dict of path to epoch seconds, empty if missing or invalid.
        """
        try:
            with open(self.mtime_file, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except ValueError as e:
            log.warning("ignoring invalid %s: %s", config.MTIME_FILE, e)
            return {}
        if not isinstance(data, dict):
            log.warning("ignoring invalid %s: not a mapping", config.MTIME_FILE)
            return {}
        try:
            return {str(k): int(v) for k, v in data.items()}
        except (TypeError, ValueError) as e:
            log.warning("ignoring invalid %s: %s", config.MTIME_FILE, e)
            return {}

    def record_baseline_timestamp(self, path: str, time: int) -> None:
        """Records the time a path was baselined in the mtime index.

        :param path: absolute path.
        :param time: epoch seconds.
        """
        data = self.read_baseline_timestamps()
        data[path] = int(time)
        with open(self.mtime_file, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)

    def read_listing(self, name: str) -> List[str]:
        """Returns the sorted unique lines of a hash listing.

        :param name: listing file name, e.g. 'md5sums_before'.
        :return: sorted list of unique lines, empty if missing.
        """
        return sorted(set(util.read_lines(self.path(name))))

    def write_listing(self, name: str, lines: Iterable[str]) -> List[str]:
        """Writes a hash listing, sorted and deduplicated.

        :param name: listing file name.
        :param lines: listing lines.
        :return: the lines as written.
        """
        lines = sorted(set(line for line in lines if line.strip()))
        util.write_lines(self.path(name), lines)
        return lines

    def touch_listing(self, name: str) -> None:
        """Creates an empty listing if it does not exist yet."""
        path = self.path(name)
        if not os.path.exists(path):
            util.write_lines(path, [])

    def archive_path(self, kind: str, ext: str = config.DEFAULT_EXT) -> str:
        """Returns the local archive path, e.g. <cache_dir>/fetch.tgz.

        :param kind: 'fetch' or 'push'.
        :param ext: archive extension.
        :return: archive path.
        """
        return self.path(f"{kind}.{ext}")

    def existing_fetch_archive(self) -> Optional[str]:
        """Returns the previously downloaded archive, if there is one."""
        for ext in config.COMPRESSION:
            path = self.archive_path(config.FETCH_NAME, ext)
            if os.path.isfile(path):
                return path
        return None
