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
Contains utility functions and classes.
"""

import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from cacher import config
from cacher.logger import log


class CacherError(Exception):
    """Base class for cache errors."""

    pass


@dataclass
class CommandResult:
    """Captured outcome of an external command."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def output(self) -> str:
        """Returns stdout and stderr joined for diagnostics."""
        return "\n".join(s for s in (self.stdout.strip(), self.stderr.strip()) if s)


def which(name: str) -> Optional[str]:
    """Returns the full path of an executable on PATH, or None."""
    return shutil.which(name)


def run_command(
    args: Sequence[str], env: dict = None, logdir: str = None, name: str = None
) -> CommandResult:
    """Runs a command given as an argument vector (no shell) and captures its
    output. With a logdir the output is also written to capture files, see
    log_paths().

    :param args: command and arguments.
    :param env: optional environment for the subprocess.
    :param logdir: optional directory for the capture files.
    :param name: name used for the capture files, defaults to the command.
    :return: CommandResult.
    """
    args = [str(a) for a in args]
    log.debug("Running: %s", " ".join(args))
    try:
        proc = subprocess.run(
            args,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        result = CommandResult(args, 127, "", str(e))
    else:
        result = CommandResult(
            args,
            proc.returncode,
            proc.stdout.decode(errors="replace"),
            proc.stderr.decode(errors="replace"),
        )

    if logdir:
        write_capture(logdir, name or os.path.basename(args[0]), result)
    return result


def write_capture(logdir: str, name: str, result: CommandResult) -> None:
    """Writes the captured stdout and stderr of a finished command."""
    os.makedirs(logdir, exist_ok=True)
    out_path, err_path = log_paths(logdir, name)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(result.stdout)
    with open(err_path, "w", encoding="utf-8") as f:
        f.write(result.stderr)


def log_paths(logdir: str, name: str) -> Tuple[str, str]:
    """Returns the stdout and stderr capture files for a named process.

    :param logdir: directory holding the capture files.
    :param name: process name, e.g. 'tar'.
    :return: tuple of (stdout path, stderr path).
    """
    return (
        os.path.join(logdir, f"{name}.stdout.log"),
        os.path.join(logdir, f"{name}.stderr.log"),
    )


def spawn(
    args: Sequence[str],
    logdir: str,
    name: str,
    on_tick: Optional[Callable[[], None]] = None,
    interval: float = config.TICK_INTERVAL,
) -> CommandResult:
    """Runs a long running command, calling on_tick every interval seconds
    while it is alive. The child's stdout and stderr are written to capture
    files under logdir and returned once it has exited.

    :param args: command and arguments.
    :param logdir: directory for the capture files.
    :param name: name used for the capture files.
    :param on_tick: callable invoked while waiting.
    :param interval: seconds between ticks.
    :return: CommandResult.
    """
    args = [str(a) for a in args]
    os.makedirs(logdir, exist_ok=True)
    out_path, err_path = log_paths(logdir, name)
    log.debug("Running: %s", " ".join(args))

    with open(out_path, "wb") as out, open(err_path, "wb") as err:
        try:
            proc = subprocess.Popen(args, stdout=out, stderr=err)
        except OSError as e:
            return CommandResult(args, 127, "", str(e))
        while True:
            try:
                proc.wait(timeout=interval)
                break
            except subprocess.TimeoutExpired:
                if on_tick:
                    on_tick()

    return CommandResult(
        args, proc.returncode, read_text(out_path), read_text(err_path)
    )


def read_text(path: str) -> str:
    """Reads a text file, returning an empty string if it does not exist."""
    try:
        with open(path, "rb") as f:
            return f.read().decode(errors="replace")
    except FileNotFoundError:
        return ""


def read_lines(path: str) -> List[str]:
    """Reads non-blank lines from a file.

    :param path: file path.
    :return: list of lines without line endings.
    """
    return [line for line in read_text(path).splitlines() if line.strip()]


def write_lines(path: str, lines: Sequence[str], append: bool = False) -> None:
    """Writes lines to a file, one per line.

    :param path: file path.
    :param lines: lines to write.
    :param append: append instead of truncating.
    """
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "a" if append else "w", encoding="utf-8") as f:
        for line in lines:
            f.write(f"{line}\n")


def expand_path(path: str) -> str:
    """Expands '~' and makes a path absolute and normalized.

    :param path: file system path.
    :return: absolute path.
    """
    return os.path.abspath(os.path.expanduser(path))


def remove_object(path: str) -> None:
    """Deletes a file, link or directory tree if it exists.

    :param path: file system path.
    """
    try:
        if os.path.islink(path) or os.path.isfile(path):
            os.remove(path)
        elif os.path.isdir(path):
            shutil.rmtree(path)
    except Exception as e:
        log.error("Error removing '%s': %s", path, e)


def url_extension(url: str, default: str = config.DEFAULT_EXT) -> str:
    """Returns the archive extension for a url, e.g. 'tgz' for
    https://host/cache/main.tgz?signature=abc

    :param url: remote url.
    :param default: extension used when the url has no known suffix.
    :return: archive extension.
    """
    path = strip_query(url)
    for ext in config.COMPRESSION:
        if path.endswith(f".{ext}"):
            return ext
    return default


def strip_query(url: str) -> str:
    """Removes the query string from a url so it can be logged."""
    return url.split("?", 1)[0]
