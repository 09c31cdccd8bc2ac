"""Bộ đếm metrics gọn cho quá trình nạp corpus và truy vấn."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Metrics:
    lines_read: int = 0
    keys_inserted: int = 0
    malformed_lines: int = 0
    shard_rotations: int = 0
    wraparounds: int = 0
    queries: int = 0
    query_hits: int = 0
    query_misses: int = 0
    lookup_latency_total_us: int = 0
    lookup_count: int = 0

    def record_line(self, inserted: bool) -> None:
        self.lines_read += 1
        if inserted:
            self.keys_inserted += 1
        else:
            self.malformed_lines += 1

    def record_rotation(self, wrapped: bool) -> None:
        self.shard_rotations += 1
        if wrapped:
            self.wraparounds += 1

    def record_query(self, hit: bool) -> None:
        self.queries += 1
        if hit:
            self.query_hits += 1
        else:
            self.query_misses += 1

    def record_lookup_latency(self, micros: int) -> None:
        self.lookup_latency_total_us += micros
        self.lookup_count += 1

    def average_lookup_latency_us(self) -> float:
        if self.lookup_count == 0:
            return 0.0
        return self.lookup_latency_total_us / float(self.lookup_count)

    def hit_rate(self) -> float:
        if self.queries == 0:
            return 0.0
        return self.query_hits / float(self.queries)
