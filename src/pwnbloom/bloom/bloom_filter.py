"""Bloom filter dung lượng cố định cho một shard tiền tố hash."""
from __future__ import annotations

import threading

import mmh3
from bitarray import bitarray

from pwnbloom.errors import AllocationError
from pwnbloom.types.key_types import HashPrefixKey


class BloomFilter:
    # Bộ ba hàm băm: cùng họ MurmurHash3 32-bit, seed 0, 1, 2.
    HASH_SEEDS = (0, 1, 2)

    def __init__(self, capacity_bits: int, hash_modulus: int | None = None) -> None:
        """Cấp phát mảng bit zero; hash_modulus phải bằng capacity_bits."""
        if capacity_bits <= 0 or capacity_bits % 8 != 0:
            raise ValueError("capacity_bits must be a positive multiple of 8")
        if hash_modulus is None:
            hash_modulus = capacity_bits
        if hash_modulus != capacity_bits:
            raise ValueError(
                f"hash_modulus ({hash_modulus}) must equal capacity_bits ({capacity_bits})"
            )
        try:
            bits = bitarray(capacity_bits, endian="little")
            bits.setall(0)
        except MemoryError as exc:
            raise AllocationError(
                f"cannot allocate {capacity_bits // 8} bytes for bloom filter"
            ) from exc
        self._bits: bitarray | None = bits
        self._m = capacity_bits
        self._modulus = hash_modulus
        self._inserted = 0
        self._lock = threading.RLock()

    @classmethod
    def from_bytes(cls, capacity_bits: int, data: bytes, inserted_count: int) -> "BloomFilter":
        """Khôi phục filter từ mảng byte đã lưu (capacity_bits / 8 byte)."""
        if len(data) != capacity_bits // 8:
            raise ValueError(
                f"expected {capacity_bits // 8} bytes, got {len(data)}"
            )
        if inserted_count < 0:
            raise ValueError("inserted_count must be non-negative")
        bf = cls(capacity_bits)
        bits = bitarray(endian="little")
        bits.frombytes(data)
        bf._bits = bits
        bf._inserted = inserted_count
        return bf

    def insert(self, key: HashPrefixKey) -> None:
        """Đặt 3 bit của khóa; luôn tăng bộ đếm, kể cả khi khóa đã có."""
        positions = self.positions(key)
        with self._lock:
            bits = self._live_bits()
            for pos in positions:
                bits[pos] = 1
            self._inserted += 1

    def contains(self, key: HashPrefixKey) -> bool:
        """True nếu cả 3 bit đều bật (có thể dương tính giả, không âm tính giả)."""
        positions = self.positions(key)
        with self._lock:
            bits = self._live_bits()
            return all(bits[pos] for pos in positions)

    def __contains__(self, key: HashPrefixKey) -> bool:
        return self.contains(key)

    def is_full(self) -> bool:
        """Heuristic cố định: đầy khi số lần chèn >= capacity_bits / 8.

        Không phản ánh mức bão hòa thật của mảng bit, chỉ quyết định thời điểm
        chuyển sang shard kế tiếp khi nạp corpus.
        """
        with self._lock:
            return self._inserted >= self._m // 8

    def positions(self, key: HashPrefixKey) -> list[int]:
        """Ba vị trí bit: mmh3(key, seed) % modulus với seed 0, 1, 2."""
        return [mmh3.hash(key, seed, signed=False) % self._modulus for seed in self.HASH_SEEDS]

    def fill_ratio(self) -> float:
        """Tỉ lệ bit đang bật trên tổng số bit."""
        with self._lock:
            return self._live_bits().count(1) / float(self._m)

    def estimate_fpr(self) -> float:
        """Ước lượng FPR theo độ bão hòa thực tế: (số bit 1 / m) ^ k."""
        with self._lock:
            if self._inserted == 0:
                return 0.0
            ratio = self._live_bits().count(1) / float(self._m)
        return ratio ** len(self.HASH_SEEDS)

    def to_bytes(self) -> bytes:
        """Mảng bit dạng bytes (capacity_bits / 8 byte, bit thấp trước)."""
        with self._lock:
            return self._live_bits().tobytes()

    def destroy(self) -> None:
        """Giải phóng mảng bit; mọi thao tác sau đó đều lỗi."""
        with self._lock:
            self._live_bits()
            self._bits = None

    @property
    def capacity_bits(self) -> int:
        return self._m

    @property
    def hash_modulus(self) -> int:
        return self._modulus

    @property
    def inserted_count(self) -> int:
        with self._lock:
            return self._inserted

    @property
    def destroyed(self) -> bool:
        return self._bits is None

    def __len__(self) -> int:
        return self.inserted_count

    def __repr__(self) -> str:
        state = "destroyed" if self.destroyed else f"inserted={self._inserted:,}"
        return f"BloomFilter(m={self._m:,} bits, k={len(self.HASH_SEEDS)}, {state})"

    # Hàm nội bộ
    def _live_bits(self) -> bitarray:
        """Trả về mảng bit, báo lỗi nếu filter đã bị destroy."""
        if self._bits is None:
            raise RuntimeError("bloom filter has been destroyed")
        return self._bits
