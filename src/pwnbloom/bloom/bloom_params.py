"""Tham số cấu hình Bloom filter cho shard."""
from __future__ import annotations

from dataclasses import dataclass

from pwnbloom.types.key_types import KEY_WIDTH

# 8 Mbit cho mỗi shard (1 MiB mảng bit).
FILTER_BIT_WIDTH = 8 * 1024 * 1024


@dataclass(frozen=True)
class FilterParams:
    capacity_bits: int = FILTER_BIT_WIDTH
    hash_modulus: int = FILTER_BIT_WIDTH
    key_width: int = KEY_WIDTH

    def __post_init__(self) -> None:
        if self.capacity_bits <= 0 or self.capacity_bits % 8 != 0:
            raise ValueError("capacity_bits must be a positive multiple of 8")
        if self.hash_modulus != self.capacity_bits:
            raise ValueError("hash_modulus must equal capacity_bits")
        if self.key_width <= 0:
            raise ValueError("key_width must be positive")

    @staticmethod
    def with_width(bit_width: int, key_width: int = KEY_WIDTH) -> "FilterParams":
        """Tạo tham số với cùng một giá trị cho độ rộng mảng bit và modulus băm."""
        return FilterParams(capacity_bits=bit_width, hash_modulus=bit_width, key_width=key_width)

    @property
    def fullness_threshold(self) -> int:
        """Số lần chèn để coi một shard là đầy (capacity_bits / 8)."""
        return self.capacity_bits // 8
