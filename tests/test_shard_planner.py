# -*- coding: utf-8 -*-
"""
Test cho probe kích thước corpus và lập kế hoạch số shard.
"""

import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))
from pwnbloom.corpus.corpus_probe import probe
from pwnbloom.errors import CorpusProbeError
from pwnbloom.shard.shard_planner import plan


@pytest.mark.parametrize("width", [8, 800, 8 * 1024 * 1024])
def test_plan_table(width):
    assert plan(0, width) == 0
    assert plan(1, width) == 1
    assert plan(width, width) == 1
    assert plan(width + 1, width) == 2
    for n in (1, 2, 7, 100):
        assert plan(n * width, width) == n


def test_plan_rejects_bad_arguments():
    with pytest.raises(ValueError):
        plan(100, 0)
    with pytest.raises(ValueError):
        plan(-1, 800)


def test_probe_reports_size(tmp_path):
    corpus = tmp_path / "corpus.txt"
    corpus.write_bytes(b"ABCDEF0123:1\n" * 10)
    assert probe(corpus) == 130


def test_probe_empty_file_is_zero(tmp_path):
    corpus = tmp_path / "empty.txt"
    corpus.write_bytes(b"")
    assert probe(corpus) == 0


def test_probe_missing_file_raises(tmp_path):
    missing = tmp_path / "missing.txt"
    with pytest.raises(CorpusProbeError) as excinfo:
        probe(missing)
    assert excinfo.value.path == str(missing)
    assert isinstance(excinfo.value, OSError)
