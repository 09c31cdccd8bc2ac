"""Nạp corpus vào tập shard: round robin có chuyển shard khi đầy, hoặc phân vùng theo khóa."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import islice
from typing import Iterable, Iterator, Optional

from pwnbloom.metrics.metrics import Metrics
from pwnbloom.shard.shard_set import Placement, ShardSet
from pwnbloom.types.key_types import HashPrefixKey, MalformedLinePolicy, line_to_key

DEFAULT_BATCH_SIZE = 100_000


@dataclass(frozen=True)
class PopulateCheckpoint:
    line_offset: int = 0
    current_shard: int = 0


class Populator:
    def __init__(
        self,
        shard_set: ShardSet,
        policy: MalformedLinePolicy = MalformedLinePolicy.SKIP,
        checkpoint: Optional[PopulateCheckpoint] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        """Khởi tạo con trỏ shard (mặc định shard 0, hoặc tiếp tục từ checkpoint)."""
        checkpoint = checkpoint or PopulateCheckpoint()
        if checkpoint.line_offset < 0:
            raise ValueError("line_offset must be non-negative")
        if len(shard_set) and not (0 <= checkpoint.current_shard < len(shard_set)):
            raise ValueError(
                f"current_shard {checkpoint.current_shard} out of range for {len(shard_set)} shards"
            )
        self._shard_set = shard_set
        self._key_width = shard_set.params.key_width
        self._policy = policy
        self._line_offset = checkpoint.line_offset
        self._current = checkpoint.current_shard
        self.metrics = metrics or Metrics()

    def populate(self, lines: Iterable[bytes]) -> PopulateCheckpoint:
        """Đọc tuần tự tới hết luồng; lỗi giữa chừng để lại tập shard nạp dở."""
        for line in lines:
            self._feed_line(line)
        return self.checkpoint()

    def stream(
        self, lines: Iterable[bytes], batch_size: int = DEFAULT_BATCH_SIZE
    ) -> Iterator[PopulateCheckpoint]:
        """Nạp theo lô, trả checkpoint sau mỗi lô; ngừng lặp là hủy quá trình nạp."""
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        count = 0
        for line in lines:
            self._feed_line(line)
            count += 1
            if count % batch_size == 0:
                yield self.checkpoint()
        if count == 0 or count % batch_size != 0:
            yield self.checkpoint()

    def checkpoint(self) -> PopulateCheckpoint:
        return PopulateCheckpoint(line_offset=self._line_offset, current_shard=self._current)

    @staticmethod
    def skip_consumed(lines: Iterable[bytes], checkpoint: PopulateCheckpoint) -> Iterator[bytes]:
        """Bỏ qua các dòng đã nạp khi mở lại corpus để tiếp tục."""
        return islice(lines, checkpoint.line_offset, None)

    @property
    def current_shard(self) -> int:
        return self._current

    # Hàm nội bộ
    def _feed_line(self, line: bytes) -> None:
        """Chèn khóa của một dòng vào shard hiện tại rồi chuyển shard nếu đã đầy."""
        key = line_to_key(
            line, self._key_width, self._policy, line_number=self._line_offset + 1
        )
        if key is None:
            self._line_offset += 1
            self.metrics.record_line(inserted=False)
            return

        shard_count = len(self._shard_set)
        if shard_count == 0:
            raise ValueError("cannot populate an empty shard set")

        bf = self._shard_set[self._current]
        bf.insert(key)
        self._line_offset += 1
        self.metrics.record_line(inserted=True)

        if bf.is_full():
            nxt = (self._current + 1) % shard_count
            if nxt != self._current:
                self.metrics.record_rotation(wrapped=nxt == 0)
            self._current = nxt


def populate(
    shard_set: ShardSet,
    lines: Iterable[bytes],
    policy: MalformedLinePolicy = MalformedLinePolicy.SKIP,
    metrics: Optional[Metrics] = None,
) -> PopulateCheckpoint:
    """Nạp một lượt round robin từ shard 0."""
    return Populator(shard_set, policy=policy, metrics=metrics).populate(lines)


def populate_partitioned(
    shard_set: ShardSet,
    lines: Iterable[bytes],
    policy: MalformedLinePolicy = MalformedLinePolicy.SKIP,
    max_workers: int = 4,
    batch_size: int = DEFAULT_BATCH_SIZE,
    metrics: Optional[Metrics] = None,
) -> int:
    """Nạp song song: mỗi khóa vào shard_index(khóa), mỗi shard chỉ có một luồng ghi mỗi lô.

    Trả về số dòng đã đọc.
    """
    if shard_set.placement is not Placement.KEYED:
        raise ValueError("partitioned population requires a keyed shard set")
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    metrics = metrics or Metrics()
    key_width = shard_set.params.key_width

    def _insert_all(shard_idx: int, keys: list[HashPrefixKey]) -> None:
        bf = shard_set[shard_idx]
        for key in keys:
            bf.insert(key)

    line_no = 0
    it = iter(lines)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        while True:
            batch = list(islice(it, batch_size))
            if not batch:
                break
            buckets: dict[int, list[HashPrefixKey]] = {}
            for line in batch:
                line_no += 1
                key = line_to_key(line, key_width, policy, line_number=line_no)
                if key is None:
                    metrics.record_line(inserted=False)
                    continue
                buckets.setdefault(shard_set.shard_index(key), []).append(key)
                metrics.record_line(inserted=True)
            futures = [executor.submit(_insert_all, idx, keys) for idx, keys in buckets.items()]
            for future in futures:
                future.result()
    return line_no
