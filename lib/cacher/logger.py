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
Contains logging functions and classes.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from cacher import config

log = logging.Logger(config.LOG_NAME)

# fix for ValueErrors raised by python's logging module
LOG_LEVEL_MAP = {
    0: "NOTSET",
    10: "DEBUG",
    20: "INFO",
    30: "WARNING",
    40: "ERROR",
    50: "CRITICAL",
}
VALID_LOG_LEVELS = LOG_LEVEL_MAP.values()


def get_log_level(level=config.LOG_LEVEL) -> str:
    """Returns a valid log level name for a name or number.

    :param level: log level name or number.
    :return: log level name.
    """
    if isinstance(level, int):
        return LOG_LEVEL_MAP.get(level, config.LOG_LEVEL_DEFAULT)
    elif isinstance(level, str) and level.isdigit():
        return LOG_LEVEL_MAP.get(int(level), config.LOG_LEVEL_DEFAULT)
    elif level not in VALID_LOG_LEVELS:
        return config.LOG_LEVEL_DEFAULT
    return level


LOG_LEVEL = get_log_level(config.LOG_LEVEL)

log.setLevel(LOG_LEVEL)
log.addHandler(logging.NullHandler())


def setup_stream_handler(level: str = LOG_LEVEL):
    """Adds a new stdout stream handler.

    :param level: log level.
    :return: handler.
    """
    for h in list(log.handlers):
        if h.name == log.name and type(h) is logging.StreamHandler:
            log.removeHandler(h)

    handler = logging.StreamHandler()
    handler.set_name(log.name)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    log.addHandler(handler)
    return handler


def setup_file_handler(
    logdir: str,
    maxBytes: int = config.LOG_MAX_BYTES,
    backupCount: int = config.LOG_BACKUP_COUNT,
    level: str = LOG_LEVEL,
):
    """Adds a new rotating file handler writing into the cache directory, so
    every operation leaves a trail next to the state it touched.

    :param logdir: directory to store the log files.
    :param maxBytes: max bytes per file.
    :param backupCount: number of backup files.
    :param level: log level.
    :return: handler.
    """
    for h in list(log.handlers):
        if h.name == log.name and isinstance(h, RotatingFileHandler):
            log.removeHandler(h)
            h.close()

    os.makedirs(logdir, exist_ok=True)
    log_file = os.path.join(logdir, config.LOG_FILE)

    handler = RotatingFileHandler(
        log_file, maxBytes=maxBytes, backupCount=backupCount
    )
    handler.set_name(log.name)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    )

    log.addHandler(handler)
    return handler


def setup_logging(logdir: str = None, verbose: bool = False):
    """Setup log handlers.

    :param logdir: optional directory for the rotating log file.
    :param verbose: log debug messages.
    """
    level = "DEBUG" if verbose else LOG_LEVEL
    if verbose:
        log.setLevel(level)

    setup_stream_handler(level=level)

    if logdir:
        try:
            setup_file_handler(logdir, level=level)
        except Exception as err:
            print("Error: %s" % str(err))
