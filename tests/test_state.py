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
Contains tests for the state module.
"""

import json
import os

import pytest

from cacher import config
from cacher.state import CacheState


def test_cache_dir_created(tmp_path):
    """The cache directory is created on first use."""
    state = CacheState(str(tmp_path / "a" / "b"))
    assert os.path.isdir(state.cache_dir)


def test_register_paths_order_and_duplicates(tmp_path, state):
    """Tracked paths are the ordered concatenation of every add call."""
    a, b, c = (str(tmp_path / n) for n in ("a", "b", "c"))

    state.register_paths([a, b])
    state.register_paths([c, a])

    assert state.tracked_paths() == [a, b, c, a]


def test_register_paths_creates_directories(tmp_path, state):
    """Missing paths are created as empty directories."""
    path = tmp_path / "deps" / "vendor"
    state.register_paths([str(path)])
    assert path.is_dir()


def test_register_paths_keeps_existing_file(tmp_path, state):
    """An existing file is tracked as is."""
    path = tmp_path / "file.txt"
    path.write_text("x")
    state.register_paths([str(path)])
    assert path.read_text() == "x"
    assert state.tracked_paths() == [str(path)]


def test_register_paths_resolves_relative(tmp_path, state, monkeypatch):
    """Relative paths are resolved when they are registered."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)

    added = state.register_paths(["node_modules", "./build/../out"])
    monkeypatch.chdir(tmp_path)

    expected = [str(workdir / "node_modules"), str(workdir / "out")]
    assert added == expected
    assert state.tracked_paths() == expected


def test_tracked_paths_empty(state):
    assert state.tracked_paths() == []


def test_tracked_paths_falls_back_to_mtime_index(state):
    """Without a paths file the mtime index keys are used."""
    state.record_baseline_timestamp("/tmp/a", 10)
    state.record_baseline_timestamp("/tmp/b", 20)
    assert not os.path.exists(state.paths_file)
    assert sorted(state.tracked_paths()) == ["/tmp/a", "/tmp/b"]


def test_baseline_timestamps_round_trip(state):
    """The mtime index persists integer seconds per path as json."""
    state.record_baseline_timestamp("/tmp/a", 1700000000.7)
    state.record_baseline_timestamp("/tmp/b", 1700000100)
    state.record_baseline_timestamp("/tmp/a", 1700000200)

    other = CacheState(state.cache_dir)
    assert other.read_baseline_timestamps() == {
        "/tmp/a": 1700000200,
        "/tmp/b": 1700000100,
    }
    with open(state.mtime_file) as f:
        assert json.load(f) == {"/tmp/a": 1700000200, "/tmp/b": 1700000100}


def test_invalid_mtime_index_reads_empty(state):
    with open(state.mtime_file, "w") as f:
        f.write("{not json")
    assert state.read_baseline_timestamps() == {}


@pytest.mark.parametrize("value", ["null", '"yesterday"', "[1]"])
def test_non_integer_mtime_index_reads_empty(state, messages, value):
    """An index holding a value that is not a number does not break the
    slot: it reads as empty and can be rewritten."""
    with open(state.mtime_file, "w") as f:
        f.write('{"/tmp/x": %s}' % value)

    assert state.read_baseline_timestamps() == {}
    assert any("ignoring invalid" in m for m in messages)

    state.record_baseline_timestamp("/tmp/y", 10)
    assert state.read_baseline_timestamps() == {"/tmp/y": 10}


def test_non_mapping_mtime_index_reads_empty(state):
    with open(state.mtime_file, "w") as f:
        f.write("[1, 2]")
    assert state.read_baseline_timestamps() == {}


def test_listing_sorted_unique(state):
    lines = ["bbb  /tmp/b", "aaa  /tmp/a", "bbb  /tmp/b", ""]
    written = state.write_listing(config.MD5_AFTER, lines)
    assert written == ["aaa  /tmp/a", "bbb  /tmp/b"]
    assert state.read_listing(config.MD5_AFTER) == written


def test_missing_listing_reads_empty(state):
    assert state.read_listing(config.MD5_BEFORE) == []


def test_touch_listing(state):
    state.touch_listing(config.MD5_BEFORE)
    path = state.path(config.MD5_BEFORE)
    assert os.path.isfile(path)
    assert os.path.getsize(path) == 0

    state.write_listing(config.MD5_BEFORE, ["aaa  /tmp/a"])
    state.touch_listing(config.MD5_BEFORE)
    assert state.read_listing(config.MD5_BEFORE) == ["aaa  /tmp/a"]


def test_existing_fetch_archive(state):
    assert state.existing_fetch_archive() is None

    path = state.archive_path(config.FETCH_NAME, "tgz")
    with open(path, "wb") as f:
        f.write(b"x")
    assert path.endswith("fetch.tgz")
    assert state.existing_fetch_archive() == path
