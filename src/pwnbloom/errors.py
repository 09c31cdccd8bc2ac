"""Các kiểu ngoại lệ của pwnbloom."""
from __future__ import annotations


class AllocationError(MemoryError):
    """Không cấp phát được mảng bit cho một Bloom filter."""


class CorpusProbeError(OSError):
    """Không stat được file corpus (khác với file rỗng)."""

    def __init__(self, path: str, reason: str = "") -> None:
        super().__init__(f"cannot stat corpus {path!r}: {reason}".rstrip(": "))
        self.path = path


class CorpusOpenError(OSError):
    """Không mở được file corpus để đọc."""

    def __init__(self, path: str, reason: str = "") -> None:
        super().__init__(f"cannot open corpus {path!r}: {reason}".rstrip(": "))
        self.path = path


class MalformedLineError(ValueError):
    """Dòng (hoặc khóa truy vấn) ngắn hơn độ rộng khóa."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class ShardStoreError(ValueError):
    """File shard đã lưu bị hỏng hoặc không tương thích."""
