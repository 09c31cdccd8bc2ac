"""Truy vấn thành viên trên toàn bộ tập shard."""
from __future__ import annotations

from pwnbloom.shard.shard_set import Placement, ShardSet
from pwnbloom.types.key_types import normalize_key


def contains_any(shard_set: ShardSet, key: str | bytes, pad: bool = False) -> bool:
    """True nếu có shard nào chứa khóa.

    Khóa được chuẩn hóa giống hệt lúc nạp (viết hoa, cắt về key_width), nên có thể
    truyền thẳng 10 ký tự đầu của dòng corpus. Ở chế độ round robin, vị trí khóa phụ
    thuộc thứ tự nạp nên phải thử mọi shard; ở chế độ keyed chỉ cần thử shard của khóa.
    Không có side effect.
    """
    if len(shard_set) == 0:
        return False
    normalized = normalize_key(key, key_width=shard_set.params.key_width, pad=pad)
    if shard_set.placement is Placement.KEYED:
        return shard_set[shard_set.shard_index(normalized)].contains(normalized)
    return any(bf.contains(normalized) for bf in shard_set)


def matching_shards(shard_set: ShardSet, key: str | bytes, pad: bool = False) -> list[int]:
    """Danh sách chỉ số shard trả lời dương cho khóa (phục vụ chẩn đoán)."""
    normalized = normalize_key(key, key_width=shard_set.params.key_width, pad=pad)
    return [idx for idx, bf in enumerate(shard_set) if bf.contains(normalized)]
