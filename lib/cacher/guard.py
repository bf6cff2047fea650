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
Contains the execution guard bounding an operation by wall clock time.
"""

import threading
from typing import Callable, Sequence

from cacher.logger import log


def run_with_timeout(
    operation: Callable,
    args: Sequence = (),
    seconds: float = 180,
    name: str = None,
) -> bool:
    """Runs operation(*args) in a daemon thread and waits at most seconds for
    it to finish. On timeout the operation is abandoned: the thread and any
    child process it started keep running until the interpreter exits, and
    state it already wrote is left as is.

    :param operation: callable to run.
    :param args: positional arguments for operation.
    :param seconds: wall clock limit.
    :param name: operation name used in messages.
    :return: True if the operation completed without raising.
    """
    name = name or getattr(operation, "__name__", "operation")
    outcome = {}

    def target():
        try:
            operation(*args)
            outcome["ok"] = True
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=target, name=f"cacher-{name}", daemon=True)
    thread.start()
    thread.join(seconds)

    if thread.is_alive():
        log.error(
            "running %s %s took longer than %s seconds and has been aborted.",
            name,
            " ".join(str(a) for a in args),
            seconds,
        )
        return False

    if "error" in outcome:
        log.error("%s failed: %s", name, outcome["error"])
        return False

    return True
