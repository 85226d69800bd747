"""
先进先出 + 过期时间 的内存缓存

路线缓存与地理编码缓存共用：
- 超过容量时淘汰最早插入的条目（FIFO，不是LRU，读取不改变顺序）
- 覆盖写入时条目移到队尾，按新的创建时间计算过期
- 读取不删除过期条目，过期条目只在写入时被淘汰或覆盖
"""
from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Generic, Optional, TypeVar

V = TypeVar("V")


class FifoTtlCache(Generic[V]):
    """
    容量有限的 FIFO/TTL 缓存

    Attributes:
        _entries: 键 -> (值, 创建时间)，按插入顺序排列
        _ttl: 过期时间（秒），条目在 now - created_at < ttl 时有效
        _max_entries: 最大条目数
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries 必须大于0")
        self._entries: "OrderedDict[str, tuple[V, float]]" = OrderedDict()
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock

    def get(self, key: str) -> Optional[V]:
        item = self._entries.get(key)
        if item is None:
            return None
        value, created_at = item
        if self._clock() - created_at >= self._ttl:
            return None
        return value

    def set(self, key: str, value: V) -> None:
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = (value, self._clock())
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        """按插入顺序返回全部键（含已过期）"""
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
