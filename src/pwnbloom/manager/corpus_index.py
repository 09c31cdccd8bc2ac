"""Điều phối dựng chỉ mục corpus: probe → plan → cấp phát shard → nạp → truy vấn."""
from __future__ import annotations

import os
import time
from itertools import islice
from typing import Any, Dict, Optional

import psutil
from tabulate import tabulate

from pwnbloom.bloom.bloom_params import FilterParams
from pwnbloom.corpus.corpus_probe import probe
from pwnbloom.errors import CorpusOpenError
from pwnbloom.metrics.metrics import Metrics
from pwnbloom.shard.populator import (
    DEFAULT_BATCH_SIZE,
    PopulateCheckpoint,
    Populator,
    populate_partitioned,
)
from pwnbloom.shard.query import contains_any, matching_shards
from pwnbloom.shard.shard_planner import plan
from pwnbloom.shard.shard_set import Placement, ShardSet
from pwnbloom.storage import shard_store
from pwnbloom.types.key_types import (
    MalformedLinePolicy,
    password_to_key,
)


class CorpusIndex:
    def __init__(
        self,
        shard_set: ShardSet,
        metrics: Optional[Metrics] = None,
        malformed_policy: MalformedLinePolicy = MalformedLinePolicy.SKIP,
        checkpoint: Optional[PopulateCheckpoint] = None,
    ) -> None:
        """Bọc một tập shard đã nạp, kèm metrics và checkpoint của lần nạp."""
        self.shard_set = shard_set
        self.metrics = metrics or Metrics()
        self.malformed_policy = malformed_policy
        self.checkpoint = checkpoint or PopulateCheckpoint()

    @classmethod
    def build(
        cls,
        corpus_path: str | os.PathLike[str],
        params: Optional[FilterParams] = None,
        placement: Placement = Placement.ROUND_ROBIN,
        malformed_policy: MalformedLinePolicy = MalformedLinePolicy.SKIP,
        progress_every: int = DEFAULT_BATCH_SIZE,
        max_workers: int = 4,
        max_lines: Optional[int] = None,
        verbose: bool = True,
    ) -> "CorpusIndex":
        """Dựng chỉ mục từ file corpus trong một lượt đọc tuần tự.

        Lỗi stat → CorpusProbeError, lỗi cấp phát → AllocationError (không trả tập shard thiếu),
        lỗi mở file → CorpusOpenError sau khi đã giải phóng các shard.
        max_lines giới hạn số dòng đọc; phần còn lại nạp tiếp bằng resume().
        """
        params = params or FilterParams()
        file_bytes = probe(corpus_path)
        shard_count = plan(file_bytes, params.capacity_bits)
        shard_set = ShardSet.allocate(shard_count, params, placement)
        if verbose:
            print(
                f"[CorpusIndex] corpus={os.fspath(corpus_path)} file_bytes={file_bytes:,} "
                f"shards={shard_count} m={params.capacity_bits:,} bits "
                f"ngưỡng_đầy={params.fullness_threshold:,} placement={placement.value}"
            )
            if shard_count == 0:
                print("[CorpusIndex] Corpus rỗng: không có shard nào, mọi truy vấn trả False.")

        index = cls(shard_set, malformed_policy=malformed_policy)
        if placement is Placement.KEYED:
            if max_lines is not None:
                shard_set.destroy()
                raise ValueError("max_lines is only supported for round robin placement")
            index._populate_keyed(corpus_path, max_workers, progress_every, verbose)
        else:
            index._populate_round_robin(corpus_path, progress_every, max_lines, verbose)
        return index

    def resume(
        self,
        corpus_path: str | os.PathLike[str],
        progress_every: int = DEFAULT_BATCH_SIZE,
        max_lines: Optional[int] = None,
        verbose: bool = True,
    ) -> PopulateCheckpoint:
        """Nạp tiếp corpus từ checkpoint hiện tại (bỏ qua các dòng đã đọc)."""
        if self.shard_set.placement is not Placement.ROUND_ROBIN:
            raise ValueError("resume is only supported for round robin placement")
        self._populate_round_robin(corpus_path, progress_every, max_lines, verbose)
        return self.checkpoint

    def contains(self, key: str | bytes) -> bool:
        """Kiểm tra tiền tố hash có thể nằm trong corpus hay không, có thu thập metrics."""
        start = time.perf_counter_ns()
        hit = contains_any(self.shard_set, key, pad=self._pad_queries())
        self.metrics.record_query(hit)
        self.metrics.record_lookup_latency(self._micros_since(start))
        return hit

    def __contains__(self, key: str | bytes) -> bool:
        return self.contains(key)

    def check_password(self, password: str) -> bool:
        """Băm SHA-1 mật khẩu rồi kiểm tra tiền tố trong chỉ mục."""
        return self.contains(password_to_key(password, key_width=self.shard_set.params.key_width))

    def matching_shards(self, key: str | bytes) -> list[int]:
        return matching_shards(self.shard_set, key, pad=self._pad_queries())

    def estimate_fpr(self) -> float:
        """FPR ước lượng của truy vấn: round robin thử mọi shard nên gộp 1 - Π(1 - fpr_i)."""
        if len(self.shard_set) == 0:
            return 0.0
        fprs = [bf.estimate_fpr() for bf in self.shard_set]
        if self.shard_set.placement is Placement.KEYED:
            return sum(fprs) / len(fprs)
        miss = 1.0
        for fpr in fprs:
            miss *= 1.0 - fpr
        return 1.0 - miss

    def stats(self) -> Dict[str, Any]:
        """Trả về stats copy: cấu hình shard, metrics nạp/truy vấn, FPR ước lượng, memory thật."""
        m = self.metrics
        return {
            "shards": len(self.shard_set),
            "capacity_bits": self.shard_set.capacity_bits,
            "placement": self.shard_set.placement.value,
            "inserted": self.shard_set.total_inserted(),
            "full_shards": self.shard_set.full_count(),
            "lines_read": m.lines_read,
            "keys_inserted": m.keys_inserted,
            "malformed_lines": m.malformed_lines,
            "shard_rotations": m.shard_rotations,
            "wraparounds": m.wraparounds,
            "queries": m.queries,
            "query_hits": m.query_hits,
            "hit_rate": m.hit_rate(),
            "avg_lookup_us": m.average_lookup_latency_us(),
            "estimated_fpr": self.estimate_fpr(),
            "checkpoint_line_offset": self.checkpoint.line_offset,
            "checkpoint_shard": self.checkpoint.current_shard,
            "memory_kb": psutil.Process().memory_info().rss / 1024,
        }

    def print_stats(self) -> None:
        """In stats và bảng từng shard (số lần chèn, tỉ lệ bit, FPR ước lượng)."""
        s = self.stats()
        print("\n=== Chỉ mục corpus ===")
        print(f"Số shard: {s['shards']} (m={s['capacity_bits']:,} bits, placement={s['placement']})")
        print(f"Dòng đã đọc: {s['lines_read']:,} (khóa chèn={s['keys_inserted']:,}, dòng lỗi={s['malformed_lines']:,})")
        print(f"Số lần chuyển shard: {s['shard_rotations']:,} (quay vòng={s['wraparounds']:,})")
        print(f"Shard đã đầy: {s['full_shards']}/{s['shards']}")
        print(f"FPR ước lượng của truy vấn: {s['estimated_fpr']:.4%}")
        if s["queries"]:
            print(f"Truy vấn: {s['queries']:,} (hit={s['hit_rate']:.2%}, ~{s['avg_lookup_us']:.1f} µs/truy vấn)")
        print(f"Memory usage: ~{s['memory_kb']:,.0f} KB")

        if len(self.shard_set):
            table = [
                [idx, f"{bf.inserted_count:,}", "x" if bf.is_full() else "", f"{bf.fill_ratio():.2%}", f"{bf.estimate_fpr():.4%}"]
                for idx, bf in enumerate(self.shard_set)
            ]
            print(tabulate(table, headers=["Shard", "Inserted", "Full", "Fill", "Est FPR"], tablefmt="github"))

    def save(self, path: str | os.PathLike[str]) -> None:
        shard_store.save(path, self.shard_set, self.checkpoint, policy=self.malformed_policy)

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> "CorpusIndex":
        """Nạp chỉ mục đã lưu, khôi phục cả key_width, policy dòng lỗi và checkpoint."""
        shard_set, checkpoint, policy = shard_store.load(path)
        return cls(shard_set, malformed_policy=policy, checkpoint=checkpoint)

    def close(self) -> None:
        """Giải phóng mảng bit của mọi shard."""
        self.shard_set.destroy()

    # Hàm nội bộ
    def _pad_queries(self) -> bool:
        """Chỉ mục dựng với PAD thì khóa truy vấn ngắn cũng được đệm như lúc nạp."""
        return self.malformed_policy is MalformedLinePolicy.PAD

    def _open_corpus(self, corpus_path: str | os.PathLike[str]):
        """Mở corpus ở chế độ nhị phân; lỗi mở thì giải phóng shard và báo CorpusOpenError."""
        try:
            return open(corpus_path, "rb")
        except OSError as exc:
            print(f"[CorpusIndex] Không mở được corpus {os.fspath(corpus_path)}: {exc}")
            self.shard_set.destroy()
            raise CorpusOpenError(os.fspath(corpus_path), exc.strerror or str(exc)) from exc

    def _populate_round_robin(
        self,
        corpus_path: str | os.PathLike[str],
        progress_every: int,
        max_lines: Optional[int],
        verbose: bool,
    ) -> None:
        populator = Populator(
            self.shard_set,
            policy=self.malformed_policy,
            checkpoint=self.checkpoint,
            metrics=self.metrics,
        )
        start = time.time()
        with self._open_corpus(corpus_path) as f:
            lines = Populator.skip_consumed(f, self.checkpoint)
            if max_lines is not None:
                lines = islice(lines, max_lines)
            try:
                for cp in populator.stream(lines, batch_size=progress_every):
                    self.checkpoint = cp
                    if verbose:
                        print(
                            f"[Tiến độ nạp corpus] dòng={cp.line_offset:,} shard_hiện_tại={cp.current_shard} "
                            f"đã_chèn={self.metrics.keys_inserted:,} dòng_lỗi={self.metrics.malformed_lines:,}"
                        )
            finally:
                # lỗi giữa lô: checkpoint trỏ đúng dòng chưa nạp
                self.checkpoint = populator.checkpoint()
        if verbose:
            self._print_build_summary(time.time() - start)

    def _populate_keyed(
        self,
        corpus_path: str | os.PathLike[str],
        max_workers: int,
        batch_size: int,
        verbose: bool,
    ) -> None:
        start = time.time()
        with self._open_corpus(corpus_path) as f:
            lines_read = populate_partitioned(
                self.shard_set,
                f,
                policy=self.malformed_policy,
                max_workers=max_workers,
                batch_size=batch_size,
                metrics=self.metrics,
            )
        self.checkpoint = PopulateCheckpoint(line_offset=lines_read, current_shard=0)
        if verbose:
            self._print_build_summary(time.time() - start)

    def _print_build_summary(self, elapsed: float) -> None:
        throughput = self.metrics.lines_read / max(1e-9, elapsed)
        print(
            f"[CorpusIndex] Nạp xong: dòng={self.metrics.lines_read:,} chèn={self.metrics.keys_inserted:,} "
            f"dòng_lỗi={self.metrics.malformed_lines:,} chuyển_shard={self.metrics.shard_rotations:,} "
            f"thời_gian={elapsed:.2f}s (~{throughput:,.0f} dòng/s) fpr_est={self.estimate_fpr():.4%}"
        )

    @staticmethod
    def _micros_since(start_ns: int) -> int:
        """Tính thời gian đã trôi qua (micro giây) từ thời điểm start_ns."""
        end = time.perf_counter_ns()
        return int((end - start_ns) / 1000)
