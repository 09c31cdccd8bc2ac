"""CLI demo: chỉ mục Bloom nhiều shard trên corpus mật khẩu bị lộ.

- Bước 1: dựng chỉ mục từ file pwned-passwords (mỗi dòng `SHA1HEX:count`).
- Bước 2: kiểm tra mật khẩu / tiền tố hash qua contains_any trên mọi shard.
- Menu console cho phép lưu / nạp chỉ mục và xem thống kê.
"""

from __future__ import annotations

import os
from typing import Dict, Iterable, Optional

from pwnbloom.bloom.bloom_params import FILTER_BIT_WIDTH, FilterParams
from pwnbloom.errors import CorpusOpenError, CorpusProbeError, MalformedLineError, ShardStoreError
from pwnbloom.manager.corpus_index import CorpusIndex
from pwnbloom.shard.shard_set import Placement


# Đường dẫn dữ liệu mặc định
PWNED_CORPUS_TXT = "pwned_data/pwned-passwords-sha1-ordered-by-hash-v8.txt"
INDEX_FILE = "pwned_data/pwned_index.pwbf"

# Cấu hình shard
BIT_WIDTH = FILTER_BIT_WIDTH
PROGRESS_EVERY = 1_000_000


def check_passwords(index: CorpusIndex, passwords: Iterable[str]) -> Dict[str, str]:
    """Kiểm tra danh sách mật khẩu, trả về {mật_khẩu: "có thể đã lộ"/"chưa thấy"}."""
    results: Dict[str, str] = {}
    for pwd in passwords:
        results[pwd] = "có thể đã lộ" if index.check_password(pwd) else "chưa thấy"
    return results


def build_index(corpus_path: str, placement: Placement) -> Optional[CorpusIndex]:
    """Dựng chỉ mục, in lỗi thân thiện nếu corpus không đọc được."""
    try:
        return CorpusIndex.build(
            corpus_path,
            params=FilterParams.with_width(BIT_WIDTH),
            placement=placement,
            progress_every=PROGRESS_EVERY,
        )
    except (CorpusProbeError, CorpusOpenError) as exc:
        print(f"Không đọc được corpus: {exc}")
        return None


def main() -> None:
    print("=== Demo chỉ mục Bloom nhiều shard (pwned passwords) ===")
    index: Optional[CorpusIndex] = None

    while True:
        print("\nMenu:")
        print(" 1. Dựng chỉ mục từ corpus")
        print(" 2. Kiểm tra mật khẩu")
        print(" 3. Kiểm tra tiền tố hash SHA-1")
        print(" 4. Lưu chỉ mục")
        print(" 5. Nạp chỉ mục đã lưu")
        print(" 6. Thống kê")
        print(" 7. Thoát")
        choice = input("Chọn [1-7]: ").strip()

        if choice == "1" or choice == "":
            path = input(f"Đường dẫn corpus [{PWNED_CORPUS_TXT}]: ").strip() or PWNED_CORPUS_TXT
            keyed = input("Nạp song song theo khóa? [y/N]: ").strip().lower() == "y"
            if index is not None:
                index.close()
            index = build_index(path, Placement.KEYED if keyed else Placement.ROUND_ROBIN)
        elif choice in ("2", "3", "4", "6"):
            if index is None:
                print("Hãy dựng hoặc nạp chỉ mục trước (chọn 1 hoặc 5).")
                continue
            if choice == "2":
                pwd = input("Mật khẩu: ")
                for password, status in check_passwords(index, [pwd]).items():
                    print(f"Mật khẩu '{password}' -> {status}.")
            elif choice == "3":
                prefix = input("Tiền tố SHA-1 (>= 10 ký tự hex): ").strip()
                try:
                    hit = index.contains(prefix)
                except MalformedLineError as exc:
                    print(f"Tiền tố không hợp lệ: {exc}")
                    continue
                print(f"Tiền tố {prefix[:10].upper()} -> {'có thể có' if hit else 'không có'} (shard={index.matching_shards(prefix)})")
            elif choice == "4":
                os.makedirs(os.path.dirname(INDEX_FILE) or ".", exist_ok=True)
                index.save(INDEX_FILE)
                print(f"Đã lưu chỉ mục tại: {INDEX_FILE}")
            else:
                index.print_stats()
        elif choice == "5":
            try:
                loaded = CorpusIndex.load(INDEX_FILE)
            except (OSError, ShardStoreError) as exc:
                print(f"Không nạp được chỉ mục: {exc}")
                continue
            if index is not None:
                index.close()
            index = loaded
            print(f"Đã nạp {len(index.shard_set)} shard từ {INDEX_FILE}")
        elif choice == "7":
            print("Thoát.")
            break
        else:
            print("Lựa chọn không hợp lệ.")


if __name__ == "__main__":
    main()
