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
Contains default config and settings.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

# default environment settings
HOME = os.getenv("HOME", os.path.expanduser("~"))
CACHE_DIR = os.getenv("CACHER_DIR", os.path.join(HOME, ".casher"))
CACHE_TIMEOUT = os.getenv("CACHER_TIMEOUT", "180")
OS_NAME = os.getenv("CACHER_OS", os.getenv("TRAVIS_OS_NAME", "linux"))
FINGERPRINT = os.getenv("CACHER_FINGERPRINT", "auto")

# logging settings
LOG_NAME = "cacher"
LOG_FILE = "cacher.log"
LOG_LEVEL_DEFAULT = "INFO"
LOG_LEVEL = os.getenv("LOG_LEVEL", LOG_LEVEL_DEFAULT)
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 5

# state directory file names
PATHS_FILE = "paths"
MTIME_FILE = "mtime.json"
MD5_BEFORE = "md5sums_before"
MD5_AFTER = "md5sums_after"
DIFF_FILE = "diff.log"
FETCH_NAME = "fetch"
PUSH_NAME = "push"

# archive suffixes mapped to tar compression flags, first is the default
COMPRESSION = {
    "tbz": "-j",
    "tgz": "-z",
}
DEFAULT_EXT = "tbz"

# fingerprint tool
FINGERPRINT_TOOL = "md5deep"
FINGERPRINT_MODES = ("auto", "md5", "mtime")
INSTALL_COMMANDS = {
    "linux": [
        ["sudo", "apt-get", "install", "-y", "md5deep"],
    ],
    "osx": [
        ["brew", "install", "md5deep"],
    ],
}

# change summary and progress
DIFF_PREVIEW_BYTES = 1000
TICK_INTERVAL = 1.0

# transfer settings
CURL = "curl"
FETCH_RETRIES = 3
FETCH_MAX_TIME = 60


@dataclass
class Settings:
    """Runtime configuration for one invocation, built once at startup and
    passed to each component."""

    cache_dir: str = CACHE_DIR
    timeout: float = 180.0
    os_name: str = OS_NAME
    fingerprint: str = FINGERPRINT

    # detection mode chosen for this run when fingerprint is "auto"
    detected_mode: Optional[str] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.cache_dir = os.path.abspath(os.path.expanduser(self.cache_dir))
        self.timeout = float(self.timeout)
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive: {self.timeout}")
        if self.fingerprint not in FINGERPRINT_MODES:
            raise ValueError(
                f"fingerprint must be one of {', '.join(FINGERPRINT_MODES)}: "
                f"{self.fingerprint}"
            )

    @classmethod
    def from_env(cls, cache_dir: str = None, timeout: float = None) -> "Settings":
        """Builds settings from the environment, with optional overrides.

        :param cache_dir: state directory override.
        :param timeout: timeout override in seconds.
        :return: Settings instance.
        """
        return cls(
            cache_dir=cache_dir or CACHE_DIR,
            timeout=timeout if timeout is not None else CACHE_TIMEOUT,
            os_name=OS_NAME,
            fingerprint=FINGERPRINT,
        )
