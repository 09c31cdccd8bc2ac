"""Tính số shard Bloom cần thiết cho một corpus."""
from __future__ import annotations


def plan(file_bytes: int, filter_bit_width: int) -> int:
    """ceil(file_bytes / filter_bit_width): giả định bi quan 1 bit dung lượng cho mỗi byte corpus."""
    if filter_bit_width <= 0:
        raise ValueError("filter_bit_width must be positive")
    if file_bytes < 0:
        raise ValueError("file_bytes must be non-negative")
    return (file_bytes + filter_bit_width - 1) // filter_bit_width
