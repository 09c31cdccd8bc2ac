"""Lưu / nạp tập shard dạng nhị phân gọn (header + mảng bit thô của từng shard).

Định dạng file:
    - Header: magic b"PWBF", version, capacity_bits, số shard, mã placement,
      checkpoint (line_offset, current_shard), key_width, mã policy dòng lỗi,
      đóng gói '<4sHQQBQQHB'
    - Mỗi shard: inserted_count ('<Q') rồi capacity_bits / 8 byte mảng bit
"""
from __future__ import annotations

import os
from struct import calcsize, error as struct_error, pack, unpack
from typing import BinaryIO, Optional

from pwnbloom.bloom.bloom_filter import BloomFilter
from pwnbloom.bloom.bloom_params import FilterParams
from pwnbloom.errors import ShardStoreError
from pwnbloom.shard.populator import PopulateCheckpoint
from pwnbloom.shard.shard_set import Placement, ShardSet
from pwnbloom.types.key_types import MalformedLinePolicy

MAGIC = b"PWBF"
VERSION = 2
HEADER_FMT = "<4sHQQBQQHB"
SHARD_FMT = "<Q"

_PLACEMENT_CODES = {Placement.ROUND_ROBIN: 0, Placement.KEYED: 1}
_CODE_PLACEMENTS = {code: placement for placement, code in _PLACEMENT_CODES.items()}
_POLICY_CODES = {MalformedLinePolicy.SKIP: 0, MalformedLinePolicy.PAD: 1, MalformedLinePolicy.RAISE: 2}
_CODE_POLICIES = {code: policy for policy, code in _POLICY_CODES.items()}


def write_shards(
    f: BinaryIO,
    shard_set: ShardSet,
    checkpoint: Optional[PopulateCheckpoint] = None,
    policy: MalformedLinePolicy = MalformedLinePolicy.SKIP,
) -> None:
    """Ghi tập shard vào file nhị phân đã mở ('wb')."""
    checkpoint = checkpoint or PopulateCheckpoint()
    f.write(
        pack(
            HEADER_FMT,
            MAGIC,
            VERSION,
            shard_set.capacity_bits,
            len(shard_set),
            _PLACEMENT_CODES[shard_set.placement],
            checkpoint.line_offset,
            checkpoint.current_shard,
            shard_set.params.key_width,
            _POLICY_CODES[policy],
        )
    )
    for bf in shard_set:
        f.write(pack(SHARD_FMT, bf.inserted_count))
        f.write(bf.to_bytes())


def read_shards(f: BinaryIO) -> tuple[ShardSet, PopulateCheckpoint, MalformedLinePolicy]:
    """Đọc tập shard từ file nhị phân ('rb'); báo ShardStoreError nếu file hỏng."""
    header = f.read(calcsize(HEADER_FMT))
    try:
        (
            magic, version, capacity_bits, count, placement_code,
            line_offset, current, key_width, policy_code,
        ) = unpack(HEADER_FMT, header)
    except struct_error as exc:
        raise ShardStoreError("truncated shard store header") from exc
    if magic != MAGIC:
        raise ShardStoreError(f"bad magic {magic!r}")
    if version != VERSION:
        raise ShardStoreError(f"unsupported shard store version {version}")
    if placement_code not in _CODE_PLACEMENTS:
        raise ShardStoreError(f"unknown placement code {placement_code}")
    if policy_code not in _CODE_POLICIES:
        raise ShardStoreError(f"unknown malformed line policy code {policy_code}")

    try:
        params = FilterParams.with_width(capacity_bits, key_width=key_width)
    except ValueError as exc:
        raise ShardStoreError(str(exc)) from exc

    n_bytes = capacity_bits // 8
    filters: list[BloomFilter] = []
    for idx in range(count):
        raw_count = f.read(calcsize(SHARD_FMT))
        data = f.read(n_bytes)
        if len(raw_count) != calcsize(SHARD_FMT) or len(data) != n_bytes:
            for bf in filters:
                bf.destroy()
            raise ShardStoreError(f"shard {idx}: bit length mismatch")
        (inserted,) = unpack(SHARD_FMT, raw_count)
        filters.append(BloomFilter.from_bytes(capacity_bits, data, inserted))
    if f.read(1):
        for bf in filters:
            bf.destroy()
        raise ShardStoreError("trailing data after last shard")

    shard_set = ShardSet(filters, params, _CODE_PLACEMENTS[placement_code])
    checkpoint = PopulateCheckpoint(line_offset=line_offset, current_shard=current)
    return shard_set, checkpoint, _CODE_POLICIES[policy_code]


def save(
    path: str | os.PathLike[str],
    shard_set: ShardSet,
    checkpoint: Optional[PopulateCheckpoint] = None,
    policy: MalformedLinePolicy = MalformedLinePolicy.SKIP,
) -> None:
    with open(path, "wb") as f:
        write_shards(f, shard_set, checkpoint, policy)


def load(path: str | os.PathLike[str]) -> tuple[ShardSet, PopulateCheckpoint, MalformedLinePolicy]:
    with open(path, "rb") as f:
        return read_shards(f)
