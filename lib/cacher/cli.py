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
Command line interface for cacher: build cache manager for CI jobs.

Usage:

    $ cacher fetch URL [URL ...]
    $ cacher add PATH [PATH ...]
    $ cacher push URL
"""

import argparse
import sys
from typing import List, Optional

from cacher import Cacher, config
from cacher.cacher import Command
from cacher.logger import log, setup_logging


def build_parser() -> argparse.ArgumentParser:
    """Builds the command line parser."""
    from cacher import __version__

    parser = argparse.ArgumentParser(
        prog="cacher",
        description=__doc__,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "--dir",
        metavar="DIR",
        default=config.CACHE_DIR,
        help="cache state directory (default %(default)s)",
    )
    parser.add_argument(
        "--timeout",
        metavar="SECONDS",
        type=float,
        default=None,
        help=f"abort after SECONDS (default {config.CACHE_TIMEOUT})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="show debug information",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"cacher {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    fetch = subparsers.add_parser(
        Command.FETCH.value, help="download the first available cache archive"
    )
    fetch.add_argument("args", metavar="URL", nargs="+", help="candidate urls")

    add = subparsers.add_parser(
        Command.ADD.value, help="add paths to the cache and restore them"
    )
    add.add_argument("args", metavar="PATH", nargs="+", help="paths to cache")

    push = subparsers.add_parser(
        Command.PUSH.value, help="upload the cache archive if it changed"
    )
    push.add_argument("args", metavar="URL", nargs=1, help="upload url")

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return build_parser().parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main thread."""

    args = parse_args(argv)

    try:
        settings = config.Settings.from_env(cache_dir=args.dir, timeout=args.timeout)
    except ValueError as e:
        print("Invalid settings: %s" % e)
        return 2

    setup_logging(logdir=settings.cache_dir, verbose=args.verbose)

    try:
        command = Command(args.command)
        cacher = Cacher(settings)
        if cacher.run(command, args.args):
            return 0

    except KeyboardInterrupt:
        log.error("interrupted")

    except Exception as e:
        log.error("%s failed: %s", args.command, e)

    return 1


if __name__ == "__main__":
    sys.exit(main())
