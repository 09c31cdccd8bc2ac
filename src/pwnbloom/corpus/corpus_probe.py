"""Kiểm tra kích thước file corpus trước khi lập kế hoạch shard."""
from __future__ import annotations

import os

from pwnbloom.errors import CorpusProbeError


def probe(path: str | os.PathLike[str]) -> int:
    """Trả về số byte của file; lỗi stat được báo bằng CorpusProbeError, không quy về 0."""
    try:
        return os.stat(path).st_size
    except OSError as exc:
        raise CorpusProbeError(os.fspath(path), exc.strerror or str(exc)) from exc
