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
Contains the transfer client downloading and uploading cache archives with
curl. Downloads are plain HTTP GETs and uploads plain HTTP PUTs of the
archive bytes.
"""

import os
from typing import List, Optional

from cacher import config, util
from cacher.logger import log
from cacher.state import CacheState


class TransferClient(object):
    """Moves archives between the cache directory and remote urls."""

    def __init__(self, state: CacheState, retries: int = config.FETCH_RETRIES):
        """Initializes the client.

        :param state: cache state providing local archive locations.
        :param retries: curl retries per url when downloading.
        """
        self.state = state
        self.retries = retries

    def download(self, url: str, target: str) -> util.CommandResult:
        """Downloads a single url to target."""
        return util.run_command(
            [
                config.CURL,
                "--retry",
                str(self.retries),
                "--max-time",
                str(config.FETCH_MAX_TIME),
                "-fsSL",
                "-o",
                target,
                url,
            ],
            logdir=self.state.cache_dir,
            name="curl",
        )

    def fetch_first_available(self, urls: List[str]) -> Optional[str]:
        """Tries each url in order and stops at the first that downloads.

        Each attempt writes to fetch.<ext> with the extension taken from the
        url being tried, so the local archive always matches the compression
        of the url it came from.

        :param urls: candidate urls, most specific first.
        :return: local archive path, or None if no url could be downloaded.
        """
        # drop archives left over from an earlier fetch
        for ext in config.COMPRESSION:
            stale = self.state.archive_path(config.FETCH_NAME, ext)
            if os.path.exists(stale):
                util.remove_object(stale)

        for url in urls:
            target = self.state.archive_path(
                config.FETCH_NAME, util.url_extension(url)
            )
            log.debug("trying %s", util.strip_query(url))
            result = self.download(url, target)
            if result.ok and os.path.isfile(target):
                log.info("found cache at %s", util.strip_query(url))
                return target
            log.debug(
                "could not download %s: %s",
                util.strip_query(url),
                result.stderr.strip(),
            )
            if os.path.exists(target):
                util.remove_object(target)

        log.info("could not download cache")
        return None

    def upload(self, archive: str, url: str) -> bool:
        """Uploads archive to url with a single HTTP PUT.

        :param archive: local archive path.
        :param url: remote url.
        :return: True if the upload succeeded.
        """
        result = util.run_command(
            [config.CURL, "-fsS", "-T", archive, url],
            logdir=self.state.cache_dir,
            name="curl",
        )
        if result.ok:
            return True
        log.error(
            "uploading to %s failed with exit code %d",
            util.strip_query(url),
            result.returncode,
        )
        if result.stdout.strip():
            log.error("stdout: %s", result.stdout.strip())
        if result.stderr.strip():
            log.error("stderr: %s", result.stderr.strip())
        return False
