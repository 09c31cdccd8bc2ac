"""Tập shard: dãy Bloom filter cùng dung lượng, đánh chỉ số 0..N-1."""
from __future__ import annotations

from enum import Enum
from typing import Iterator, Sequence

import mmh3

from pwnbloom.bloom.bloom_filter import BloomFilter
from pwnbloom.bloom.bloom_params import FilterParams
from pwnbloom.types.key_types import HashPrefixKey

# Seed chọn shard ở chế độ keyed, tách biệt với bộ ba seed 0/1/2 của filter.
PLACEMENT_SEED = 3


class Placement(Enum):
    ROUND_ROBIN = "round_robin"
    KEYED = "keyed"


class ShardSet:
    def __init__(
        self,
        filters: Sequence[BloomFilter],
        params: FilterParams,
        placement: Placement = Placement.ROUND_ROBIN,
    ) -> None:
        """Nhận quyền sở hữu các filter; tất cả phải có cùng capacity_bits với params."""
        for idx, bf in enumerate(filters):
            if bf.capacity_bits != params.capacity_bits:
                raise ValueError(
                    f"shard {idx} has {bf.capacity_bits} bits, expected {params.capacity_bits}"
                )
        self._filters = list(filters)
        self._params = params
        self._placement = placement

    @classmethod
    def allocate(
        cls,
        shard_count: int,
        params: FilterParams,
        placement: Placement = Placement.ROUND_ROBIN,
    ) -> "ShardSet":
        """Cấp phát shard_count filter; lỗi cấp phát giữa chừng hủy toàn bộ tập."""
        if shard_count < 0:
            raise ValueError("shard_count must be non-negative")
        filters: list[BloomFilter] = []
        try:
            for _ in range(shard_count):
                filters.append(BloomFilter(params.capacity_bits, params.hash_modulus))
        except MemoryError:
            for bf in filters:
                bf.destroy()
            raise
        return cls(filters, params, placement)

    def shard_index(self, key: HashPrefixKey) -> int:
        """Chỉ số shard cố định theo khóa (chỉ dùng cho chế độ keyed)."""
        if not self._filters:
            raise ValueError("shard set is empty")
        return mmh3.hash(key, PLACEMENT_SEED, signed=False) % len(self._filters)

    def total_inserted(self) -> int:
        return sum(bf.inserted_count for bf in self._filters)

    def full_count(self) -> int:
        """Số shard đã chạm ngưỡng đầy heuristic."""
        return sum(1 for bf in self._filters if bf.is_full())

    def destroy(self) -> None:
        """Giải phóng tất cả filter và làm rỗng tập."""
        for bf in self._filters:
            if not bf.destroyed:
                bf.destroy()
        self._filters = []

    @property
    def params(self) -> FilterParams:
        return self._params

    @property
    def placement(self) -> Placement:
        return self._placement

    @property
    def capacity_bits(self) -> int:
        return self._params.capacity_bits

    def __getitem__(self, index: int) -> BloomFilter:
        return self._filters[index]

    def __len__(self) -> int:
        return len(self._filters)

    def __iter__(self) -> Iterator[BloomFilter]:
        return iter(self._filters)

    def __repr__(self) -> str:
        return (
            f"ShardSet(shards={len(self._filters)}, m={self._params.capacity_bits:,} bits, "
            f"placement={self._placement.value}, inserted={self.total_inserted():,})"
        )
