# -*- coding: utf-8 -*-
"""
Test cho nạp corpus vào tập shard và truy vấn contains_any.
"""

import os
import random
import sys
from itertools import islice

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))
from pwnbloom.bloom import bloom_filter as bloom_filter_module
from pwnbloom.bloom.bloom_filter import BloomFilter
from pwnbloom.bloom.bloom_params import FilterParams
from pwnbloom.errors import AllocationError, MalformedLineError
from pwnbloom.shard import shard_set as shard_set_module
from pwnbloom.metrics.metrics import Metrics
from pwnbloom.shard.populator import (
    PopulateCheckpoint,
    Populator,
    populate,
    populate_partitioned,
)
from pwnbloom.shard.query import contains_any, matching_shards
from pwnbloom.shard.shard_set import Placement, ShardSet
from pwnbloom.types.key_types import MalformedLinePolicy, normalize_key


def corpus_lines(n: int, seed: int = 42) -> list:
    """Sinh n dòng `PREFIX10:count` với tiền tố không trùng."""
    rng = random.Random(seed)
    prefixes = set()
    while len(prefixes) < n:
        prefixes.add("%010X" % rng.getrandbits(40))
    return [f"{p}:{rng.randint(0, 9999):04d}\n".encode("ascii") for p in sorted(prefixes)]


def test_single_shard_fills_after_100_inserts():
    shard_set = ShardSet.allocate(1, FilterParams.with_width(800))
    lines = corpus_lines(100)
    populator = Populator(shard_set)
    populator.populate(lines[:99])
    assert not shard_set[0].is_full()
    populator.populate(lines[99:])
    assert shard_set[0].is_full()
    assert populator.current_shard == 0


def test_round_robin_rotation_and_wraparound():
    shard_set = ShardSet.allocate(2, FilterParams.with_width(800))
    metrics = Metrics()
    checkpoint = populate(shard_set, corpus_lines(250), metrics=metrics)

    # 100 + 100 tới khi đầy, 50 dòng còn lại xen kẽ giữa hai shard đã đầy
    assert shard_set[0].inserted_count == 125
    assert shard_set[1].inserted_count == 125
    assert checkpoint == PopulateCheckpoint(line_offset=250, current_shard=0)
    assert metrics.shard_rotations == 52
    assert metrics.wraparounds == 26


def test_no_false_negatives_across_shards():
    lines = corpus_lines(250)
    shard_set = ShardSet.allocate(3, FilterParams.with_width(800))
    populate(shard_set, lines)
    for line in lines:
        key = normalize_key(line[:10])
        assert contains_any(shard_set, key)
        assert matching_shards(shard_set, key)


def test_contains_any_is_idempotent():
    shard_set = ShardSet.allocate(2, FilterParams.with_width(800))
    populate(shard_set, corpus_lines(150))
    before = [bf.to_bytes() for bf in shard_set]
    probe_key = normalize_key("0000000000")
    results = {contains_any(shard_set, probe_key) for _ in range(10)}
    assert len(results) == 1
    assert [bf.to_bytes() for bf in shard_set] == before
    assert shard_set.total_inserted() == 150


def test_empty_shard_set():
    shard_set = ShardSet.allocate(0, FilterParams.with_width(800))
    assert not contains_any(shard_set, normalize_key("ABCDEF0123"))
    populate(shard_set, [b"\n", b"short\n"])
    with pytest.raises(ValueError):
        populate(shard_set, [b"ABCDEF0123:1\n"])


def test_malformed_line_policies():
    lines = [b"ABCDEF0123:1\n", b"\n", b"abc\r\n"]

    shard_set = ShardSet.allocate(1, FilterParams.with_width(800))
    metrics = Metrics()
    populate(shard_set, lines, policy=MalformedLinePolicy.SKIP, metrics=metrics)
    assert shard_set[0].inserted_count == 1
    assert metrics.malformed_lines == 2
    assert metrics.lines_read == 3

    padded = ShardSet.allocate(1, FilterParams.with_width(800))
    populate(padded, lines, policy=MalformedLinePolicy.PAD)
    assert padded[0].inserted_count == 3
    assert contains_any(padded, normalize_key("ABC0000000"))
    assert contains_any(padded, normalize_key("0000000000"))

    strict = ShardSet.allocate(1, FilterParams.with_width(800))
    populator = Populator(strict, policy=MalformedLinePolicy.RAISE)
    with pytest.raises(MalformedLineError) as excinfo:
        populator.populate(lines)
    assert excinfo.value.line_number == 2
    # không rollback: dòng hợp lệ trước đó vẫn nằm trong shard
    assert strict[0].inserted_count == 1
    assert populator.checkpoint().line_offset == 1


def test_stream_yields_checkpoint_per_batch():
    shard_set = ShardSet.allocate(3, FilterParams.with_width(800))
    populator = Populator(shard_set)
    offsets = [cp.line_offset for cp in populator.stream(corpus_lines(250), batch_size=100)]
    assert offsets == [100, 200, 250]

    empty = Populator(ShardSet.allocate(1, FilterParams.with_width(800)))
    assert list(empty.stream([], batch_size=10)) == [PopulateCheckpoint()]


def test_resume_from_checkpoint_matches_single_pass():
    lines = corpus_lines(250)
    params = FilterParams.with_width(800)

    full = ShardSet.allocate(3, params)
    populate(full, lines)

    resumed = ShardSet.allocate(3, params)
    first = Populator(resumed)
    for cp in first.stream(islice(iter(lines), 130), batch_size=50):
        pass
    cp = first.checkpoint()
    assert cp.line_offset == 130
    assert cp.current_shard == 1

    second = Populator(resumed, checkpoint=cp)
    second.populate(Populator.skip_consumed(iter(lines), cp))

    assert [bf.to_bytes() for bf in resumed] == [bf.to_bytes() for bf in full]
    assert [bf.inserted_count for bf in resumed] == [bf.inserted_count for bf in full]
    assert second.checkpoint() == PopulateCheckpoint(line_offset=250, current_shard=2)


def test_checkpoint_validation():
    shard_set = ShardSet.allocate(2, FilterParams.with_width(800))
    with pytest.raises(ValueError):
        Populator(shard_set, checkpoint=PopulateCheckpoint(line_offset=0, current_shard=2))
    with pytest.raises(ValueError):
        Populator(shard_set, checkpoint=PopulateCheckpoint(line_offset=-1, current_shard=0))


def test_partitioned_population_places_by_key():
    lines = corpus_lines(250)
    shard_set = ShardSet.allocate(3, FilterParams.with_width(1_600), placement=Placement.KEYED)
    read = populate_partitioned(shard_set, lines, max_workers=3, batch_size=64)
    assert read == 250
    assert shard_set.total_inserted() == 250

    expected = [0, 0, 0]
    for line in lines:
        key = normalize_key(line[:10])
        expected[shard_set.shard_index(key)] += 1
        assert shard_set[shard_set.shard_index(key)].contains(key)
        assert contains_any(shard_set, key)
    assert [bf.inserted_count for bf in shard_set] == expected


def test_partitioned_population_requires_keyed_set():
    shard_set = ShardSet.allocate(2, FilterParams.with_width(800))
    with pytest.raises(ValueError):
        populate_partitioned(shard_set, corpus_lines(10))


def test_shard_set_rejects_mixed_widths():
    params = FilterParams.with_width(800)
    other = ShardSet.allocate(1, FilterParams.with_width(1_600))
    with pytest.raises(ValueError):
        ShardSet([other[0]], params)


def test_destroy_empties_shard_set():
    shard_set = ShardSet.allocate(2, FilterParams.with_width(800))
    filters = list(shard_set)
    shard_set.destroy()
    assert len(shard_set) == 0
    assert all(bf.destroyed for bf in filters)


def test_raw_line_prefix_queries_match():
    """Truy vấn bằng đúng 10 ký tự đầu của dòng (chữ thường, có khoảng trắng đầu) không âm tính giả."""
    lines = [b"abcdef0123:5\n", b" ABCDEF0123:5\n", b"5baa61e4c9b93f3f:7\r\n"]
    for placement in (Placement.ROUND_ROBIN, Placement.KEYED):
        shard_set = ShardSet.allocate(2, FilterParams.with_width(800), placement=placement)
        if placement is Placement.KEYED:
            populate_partitioned(shard_set, lines, max_workers=2)
        else:
            populate(shard_set, lines)
        for line in lines:
            assert contains_any(shard_set, line[:10])
            assert contains_any(shard_set, line[:10].decode("ascii"))
            assert matching_shards(shard_set, line[:10])


def test_allocation_failure_destroys_built_shards(monkeypatch):
    """MemoryError khi cấp phát shard thứ 2 → AllocationError, shard đã cấp bị giải phóng."""
    real_bitarray = bloom_filter_module.bitarray
    calls = []

    def flaky_bitarray(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise MemoryError
        return real_bitarray(*args, **kwargs)

    created = []

    class RecordingFilter(BloomFilter):
        def __init__(self, *args, **kwargs):
            created.append(self)
            super().__init__(*args, **kwargs)

    monkeypatch.setattr(bloom_filter_module, "bitarray", flaky_bitarray)
    monkeypatch.setattr(shard_set_module, "BloomFilter", RecordingFilter)

    with pytest.raises(AllocationError) as excinfo:
        ShardSet.allocate(3, FilterParams.with_width(800))
    assert isinstance(excinfo.value, MemoryError)
    assert len(calls) == 2
    assert len(created) == 2
    assert created[0].destroyed
