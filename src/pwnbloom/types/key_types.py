"""Tiện ích khóa tiền tố hash (10 ký tự hex đầu của SHA-1).

Corpus lưu mỗi dòng dạng `HEXPREFIX...:count`. Khóa là 10 ký tự đầu của dòng,
xử lý dưới dạng bytes ASCII viết hoa để khớp cả hexdigest() chữ thường.
Đường chèn và đường truy vấn dùng chung một quy tắc chuẩn hóa.
"""
from __future__ import annotations

import hashlib
from enum import Enum
from typing import NewType

from pwnbloom.errors import MalformedLineError

# 5 byte đầu của hash, dạng hex.
KEY_WIDTH = 10
PAD_BYTE = b"0"
NEWLINE_BYTES = b"\r\n"

HashPrefixKey = NewType("HashPrefixKey", bytes)


class MalformedLinePolicy(Enum):
    SKIP = "skip"
    PAD = "pad"
    RAISE = "raise"


def canonical_key(raw: bytes, key_width: int = KEY_WIDTH, pad: bool = False) -> HashPrefixKey | None:
    """Bỏ ký tự xuống dòng ở cuối, viết hoa, đệm (nếu pad) rồi cắt về key_width.

    Trả None nếu chuỗi ngắn hơn key_width và không được đệm.
    """
    body = raw.rstrip(NEWLINE_BYTES).upper()
    if len(body) < key_width:
        if not pad:
            return None
        body = body.ljust(key_width, PAD_BYTE)
    return HashPrefixKey(body[:key_width])


def normalize_key(
    value: str | bytes,
    key_width: int = KEY_WIDTH,
    pad: bool = False,
) -> HashPrefixKey:
    """Chuẩn hóa str/bytes thành HashPrefixKey theo đúng quy tắc khi nạp corpus."""
    raw = value.encode("ascii") if isinstance(value, str) else bytes(value)
    key = canonical_key(raw, key_width, pad)
    if key is None:
        raise MalformedLineError(
            f"key {raw!r} shorter than {key_width} characters"
        )
    return key


def line_to_key(
    line: bytes,
    key_width: int = KEY_WIDTH,
    policy: MalformedLinePolicy = MalformedLinePolicy.SKIP,
    line_number: int | None = None,
) -> HashPrefixKey | None:
    """Tách khóa từ một dòng corpus; trả None nếu dòng ngắn và policy là SKIP."""
    key = canonical_key(line, key_width, pad=policy is MalformedLinePolicy.PAD)
    if key is None and policy is MalformedLinePolicy.RAISE:
        body_len = len(line.rstrip(NEWLINE_BYTES))
        raise MalformedLineError(
            f"expected at least {key_width} characters, got {body_len}",
            line_number=line_number,
        )
    return key


def password_to_key(password: str, key_width: int = KEY_WIDTH) -> HashPrefixKey:
    """Băm mật khẩu bằng SHA-1 và lấy tiền tố key_width ký tự hex."""
    digest = hashlib.sha1(password.encode("utf-8")).hexdigest()
    return normalize_key(digest, key_width=key_width)
