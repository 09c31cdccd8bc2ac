# -*- coding: utf-8 -*-
"""
Test cho hàm kiểm tra mật khẩu của CLI demo.
"""

import hashlib
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))
from demo_pwned import build_index, check_passwords
from pwnbloom.shard.shard_set import Placement

import demo_pwned


def test_check_passwords(tmp_path, monkeypatch):
    corpus = tmp_path / "pwned.txt"
    leaked = ["password123", "admin123", "qwerty123"]
    hashes = sorted(hashlib.sha1(p.encode("utf-8")).hexdigest().upper() for p in leaked)
    corpus.write_text("".join(f"{h}:5\n" for h in hashes), encoding="ascii")

    monkeypatch.setattr(demo_pwned, "BIT_WIDTH", 800)
    index = build_index(str(corpus), Placement.ROUND_ROBIN)
    assert index is not None

    results = check_passwords(index, leaked)
    assert set(results.values()) == {"có thể đã lộ"}


def test_build_index_missing_corpus(tmp_path, capsys):
    assert build_index(str(tmp_path / "missing.txt"), Placement.ROUND_ROBIN) is None
    assert "Không đọc được corpus" in capsys.readouterr().out
