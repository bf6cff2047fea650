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
Contains tests for the archive module.
"""

import os
import shutil

import pytest

from cacher import archive
from cacher.archive import ExtractError, PackError
from cacher.util import CommandResult

requires_tar = pytest.mark.skipif(shutil.which("tar") is None, reason="tar not found")


def make_tree(root):
    (root / "pkg" / "deep").mkdir(parents=True)
    (root / "pkg" / "a.txt").write_text("alpha")
    (root / "pkg" / "deep" / "b.bin").write_bytes(bytes(range(256)))
    (root / "pkg" / "empty").mkdir()
    return root / "pkg"


def snapshot(root):
    """Maps relative paths to file contents, None for directories."""
    result = {}
    for dirname, dirs, files in os.walk(root):
        for d in dirs:
            result[os.path.relpath(os.path.join(dirname, d), root)] = None
        for f in files:
            p = os.path.join(dirname, f)
            with open(p, "rb") as fh:
                result[os.path.relpath(p, root)] = fh.read()
    return result


def test_compression_flag():
    assert archive.compression_flag("/tmp/cache/fetch.tbz") == "-j"
    assert archive.compression_flag("/tmp/cache/push.tgz") == "-z"
    with pytest.raises(ValueError):
        archive.compression_flag("/tmp/cache/push.zip")


def test_parse_missing():
    stderr = (
        "tar: /tmp/new-dir: Not found in archive\n"
        "tar: /home/ci/.cache/pip: Not found in archive\n"
        "tar: Exiting with failure status due to previous errors\n"
    )
    assert archive.parse_missing(stderr) == ["/tmp/new-dir", "/home/ci/.cache/pip"]
    assert archive.other_errors(stderr) == []


def test_other_errors():
    stderr = (
        "bzip2: (stdin) is not a bzip2 file.\n"
        "tar: Child returned status 2\n"
        "tar: Error is not recoverable: exiting now\n"
    )
    assert archive.parse_missing(stderr) == []
    assert len(archive.other_errors(stderr)) == 3


def test_pack_failure_raises(tmp_path, mocker, messages):
    result = CommandResult(["tar"], 2, "", "tar: /nope: Cannot stat")
    mocker.patch("cacher.util.spawn", return_value=result)

    with pytest.raises(PackError) as err:
        archive.pack(str(tmp_path / "push.tbz"), ["/nope"])

    assert err.value.result is result
    assert "tar: /nope: Cannot stat" in messages


def test_pack_builds_tar_args(tmp_path, mocker):
    spawn = mocker.patch(
        "cacher.util.spawn", return_value=CommandResult(["tar"], 0)
    )
    target = str(tmp_path / "push.tgz")
    archive.pack(target, ["/a", "/b"])
    args, logdir, name = spawn.call_args[0]
    assert args == ["tar", "-P", "-z", "-c", "-f", target, "/a", "/b"]
    assert logdir == str(tmp_path)
    assert name == "tar"


def test_unpack_missing_only(tmp_path, mocker, messages):
    stderr = (
        "tar: /tmp/new-dir: Not found in archive\n"
        "tar: Exiting with failure status due to previous errors\n"
    )
    mocker.patch(
        "cacher.util.spawn", return_value=CommandResult(["tar"], 2, "", stderr)
    )
    missing = archive.unpack(str(tmp_path / "fetch.tbz"), ["/tmp/a", "/tmp/new-dir"])
    assert missing == ["/tmp/new-dir"]
    assert "/tmp/new-dir is not yet cached" in messages


def test_unpack_other_failure_raises(tmp_path, mocker):
    mocker.patch(
        "cacher.util.spawn",
        return_value=CommandResult(["tar"], 2, "", "gzip: stdin: not in gzip format"),
    )
    with pytest.raises(ExtractError):
        archive.unpack(str(tmp_path / "fetch.tgz"), ["/tmp/a"])


@requires_tar
def test_round_trip(tmp_path):
    """Unpacking a packed tree restores the same files and contents."""
    src = make_tree(tmp_path / "src")
    before = snapshot(src)
    target = str(tmp_path / "cache" / "push.tgz")
    os.makedirs(os.path.dirname(target))

    archive.pack(target, [str(src)])
    assert os.path.getsize(target) > 0
    shutil.rmtree(src)

    assert archive.unpack(target, [str(src)]) == []
    assert snapshot(src) == before


@requires_tar
def test_unpack_reports_paths_not_in_archive(tmp_path, messages):
    src = make_tree(tmp_path / "src")
    before = snapshot(src)
    new_dir = tmp_path / "new-dir"
    new_dir.mkdir()
    target = str(tmp_path / "fetch.tgz")

    archive.pack(target, [str(src)])
    shutil.rmtree(src)

    missing = archive.unpack(target, [str(src), str(new_dir)])

    assert missing == [str(new_dir)]
    assert f"{new_dir} is not yet cached" in messages
    assert snapshot(src) == before


@requires_tar
def test_unpack_corrupt_archive(tmp_path):
    target = tmp_path / "fetch.tgz"
    target.write_bytes(b"this is not a gzip stream")
    with pytest.raises(ExtractError):
        archive.unpack(str(target), [str(tmp_path / "x")])


@requires_tar
def test_pack_missing_path_fails(tmp_path):
    with pytest.raises(PackError):
        archive.pack(str(tmp_path / "push.tgz"), [str(tmp_path / "nope")])


@pytest.mark.skipif(shutil.which("bzip2") is None, reason="bzip2 not found")
@requires_tar
def test_round_trip_bzip2(tmp_path):
    src = make_tree(tmp_path / "src")
    before = snapshot(src)
    target = str(tmp_path / "push.tbz")

    archive.pack(target, [str(src)])
    shutil.rmtree(src)
    archive.unpack(target, [str(src)])

    assert snapshot(src) == before


def test_progress_ticks():
    with archive.progress("testing") as tick:
        tick()
        tick()
