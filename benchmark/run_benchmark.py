# benchmark/run_benchmark.py
"""
Benchmark chỉ mục Bloom nhiều shard trên corpus tiền tố hash tổng hợp

- Sinh corpus giả lập định dạng pwned-passwords (`SHA1HEX:count`, sắp theo hash)
- So sánh round robin (thử mọi shard) với keyed (nạp song song, thử 1 shard)
- Đo FPR thực nghiệm, throughput truy vấn, thời gian dựng, memory thật (psutil)
- Nhiều lượt chạy, avg ± std (numpy), in bảng (tabulate), vẽ biểu đồ (matplotlib)
"""

import os
import random
import tempfile
import time
from typing import List, Set

import matplotlib.pyplot as plt
import numpy as np
import psutil
from tabulate import tabulate

from pwnbloom.bloom.bloom_params import FilterParams
from pwnbloom.manager.corpus_index import CorpusIndex
from pwnbloom.shard.shard_set import Placement


def random_sha1_hex(rng: random.Random) -> str:
    return "%040X" % rng.getrandbits(160)


def write_synthetic_corpus(path: str, num_lines: int, rng: random.Random) -> Set[str]:
    """Ghi corpus tổng hợp, trả về tập tiền tố 10 ký tự đã ghi."""
    hashes = sorted(random_sha1_hex(rng) for _ in range(num_lines))
    with open(path, "w", encoding="ascii") as f:
        for h in hashes:
            f.write(f"{h}:{rng.randint(1, 5000)}\n")
    return {h[:10] for h in hashes}


def prepare_probes(prefixes: Set[str], total_queries: int, rng: random.Random) -> List[str]:
    """Sinh tiền tố không nằm trong corpus để đo FPR."""
    probes: List[str] = []
    while len(probes) < total_queries:
        candidate = random_sha1_hex(rng)[:10]
        if candidate not in prefixes:
            probes.append(candidate)
    return probes


def benchmark_index(corpus_path: str, params: FilterParams, placement: Placement, probes: List[str]) -> dict:
    start_build = time.time()
    index = CorpusIndex.build(corpus_path, params=params, placement=placement, verbose=False)
    build_duration = time.time() - start_build

    start_query = time.time()
    false_positives = sum(1 for p in probes if index.contains(p))
    query_duration = time.time() - start_query

    result = {
        "fpr": false_positives / len(probes),
        "estimated_fpr": index.estimate_fpr(),
        "throughput_qps": len(probes) / max(1e-9, query_duration),
        "build_time_s": build_duration,
        "memory_kb": psutil.Process().memory_info().rss / 1024,
        "shards": len(index.shard_set),
    }
    index.close()
    return result


def run_full_benchmark(
    num_lines: int = 200_000,
    bit_width: int = 1 << 20,
    total_queries: int = 100_000,
    num_runs: int = 3,
) -> dict:
    """Chạy benchmark nhiều lượt cho cả hai kiểu placement"""
    results = {"Round robin": [], "Keyed (song song)": []}
    params = FilterParams.with_width(bit_width)

    with tempfile.TemporaryDirectory() as tmp:
        for run in range(1, num_runs + 1):
            print(f"\n{'='*20} RUN {run}/{num_runs} {'='*20}")
            rng = random.Random(run)
            corpus_path = os.path.join(tmp, f"corpus_{run}.txt")
            prefixes = write_synthetic_corpus(corpus_path, num_lines, rng)
            probes = prepare_probes(prefixes, total_queries, rng)
            print(f"Corpus: {num_lines:,} dòng ({os.path.getsize(corpus_path):,} bytes), probes={len(probes):,}")

            results["Round robin"].append(benchmark_index(corpus_path, params, Placement.ROUND_ROBIN, probes))
            results["Keyed (song song)"].append(benchmark_index(corpus_path, params, Placement.KEYED, probes))
            print(f"Run {run} hoàn thành.")

    summary = {}
    for name, runs in results.items():
        fprs = [r["fpr"] for r in runs]
        throughputs = [r["throughput_qps"] for r in runs]
        builds = [r["build_time_s"] for r in runs]
        memories = [r["memory_kb"] for r in runs]

        summary[name] = {
            "shards": runs[0]["shards"],
            "fpr_mean": np.mean(fprs),
            "fpr_std": np.std(fprs),
            "estimated_fpr_mean": np.mean([r["estimated_fpr"] for r in runs]),
            "throughput_mean": np.mean(throughputs),
            "throughput_std": np.std(throughputs),
            "build_mean": np.mean(builds),
            "build_std": np.std(builds),
            "memory_mean": np.mean(memories),
            "memory_std": np.std(memories),
        }

    print_results(summary, num_runs)
    plot_results(summary)
    return summary


def print_results(summary: dict, num_runs: int):
    """In bảng kết quả"""
    table = []
    for name, s in summary.items():
        table.append([
            name,
            s["shards"],
            f"{s['fpr_mean']:.4%} ± {s['fpr_std']:.4%}",
            f"{s['estimated_fpr_mean']:.4%}",
            f"{s['throughput_mean']:,.0f} ± {s['throughput_std']:,.0f} qps",
            f"{s['build_mean']:.2f} ± {s['build_std']:.2f} s",
            f"{s['memory_mean']:,.0f} ± {s['memory_std']:,.0f} KB",
        ])

    print(f"\n=== KẾT QUẢ BENCHMARK (Avg ± Std over {num_runs} runs) ===")
    print(tabulate(table, headers=["Placement", "Shards", "FPR", "Est FPR", "Throughput", "Build", "Memory"], tablefmt="github"))


def plot_results(summary: dict):
    """Vẽ biểu đồ FPR / throughput / thời gian dựng với error bars"""
    names = list(summary.keys())
    fpr_means = [summary[n]["fpr_mean"] * 100 for n in names]
    fpr_stds = [summary[n]["fpr_std"] * 100 for n in names]
    throughput_means = [summary[n]["throughput_mean"] / 1000 for n in names]
    throughput_stds = [summary[n]["throughput_std"] / 1000 for n in names]
    build_means = [summary[n]["build_mean"] for n in names]
    build_stds = [summary[n]["build_std"] for n in names]

    fig, (ax1, ax2, ax3) = plt.subplots(1, 3, figsize=(18, 6))

    ax1.bar(names, fpr_means, yerr=fpr_stds, capsize=5, color=['orange', 'green'], alpha=0.8)
    ax1.set_ylabel("False Positive Rate (%)")
    ax1.set_title("False Positive Rate")

    ax2.bar(names, throughput_means, yerr=throughput_stds, capsize=5, color=['orange', 'green'], alpha=0.8)
    ax2.set_ylabel("Throughput (K queries/s)")
    ax2.set_title("Query throughput")

    ax3.bar(names, build_means, yerr=build_stds, capsize=5, color=['orange', 'green'], alpha=0.8)
    ax3.set_ylabel("Build time (s)")
    ax3.set_title("Build time")

    plt.suptitle("Chỉ mục Bloom nhiều shard: round robin vs keyed")
    plt.tight_layout()

    os.makedirs("plots", exist_ok=True)
    plot_path = "plots/benchmark_shard_placement.png"
    plt.savefig(plot_path, dpi=200)
    plt.close(fig)
    print(f"\nBiểu đồ đã lưu tại: {plot_path}")


if __name__ == "__main__":
    run_full_benchmark()
