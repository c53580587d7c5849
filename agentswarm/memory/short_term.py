"""
短期记忆模块
============

进程内的记忆存储，为上下文注入提供检索来源。
"""

import re
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from agentswarm.utils.logger import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+|[一-鿿]")

# 检索时忽略的常见词
_STOPWORDS = {
    "a", "an", "the", "and", "or", "of", "to", "for", "in", "on", "with",
    "is", "are", "be", "it", "this", "that", "build", "make", "create",
}


def tokenize(text: str) -> Set[str]:
    return {t for t in _TOKEN_RE.findall(text.lower()) if t not in _STOPWORDS}


class MemoryItem:
    """记忆项"""

    def __init__(
        self,
        key: str,
        value: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.key = key
        self.value = value
        self.metadata = metadata or {}
        self.created_at = datetime.now()
        self.accessed_at = datetime.now()
        self.access_count = 0
        self.tokens = tokenize(f"{key} {value}")

    def access(self) -> str:
        """访问记忆项，更新访问信息"""
        self.accessed_at = datetime.now()
        self.access_count += 1
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "accessed_at": self.accessed_at.isoformat(),
            "access_count": self.access_count,
        }


class ShortTermMemory:
    """
    短期记忆

    基于 LRU（最近最少使用）策略的内存存储。
    当超过最大容量时，自动淘汰最久未访问的记忆项。

    特性：
    - 线程安全
    - LRU 淘汰策略
    - 按关键词重合度检索

    使用示例：
        >>> memory = ShortTermMemory(max_size=100)
        >>> memory.store("card-game", "Deck-building games need a clear turn structure.")
        >>> memory.search("2-player card game")[0]["key"]
        'card-game'
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size 必须至少为 1")
        self.max_size = max_size
        self._storage: "OrderedDict[str, MemoryItem]" = OrderedDict()
        self._lock = threading.RLock()
        self.logger = get_logger(self.__class__.__name__)

    def store(
        self,
        key: str,
        value: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        存储记忆项

        Args:
            key: 键
            value: 文本内容
            metadata: 元数据
        """
        with self._lock:
            if key in self._storage:
                del self._storage[key]

            while len(self._storage) >= self.max_size:
                oldest_key = next(iter(self._storage))
                del self._storage[oldest_key]
                self.logger.debug(f"淘汰记忆项: {oldest_key}")

            self._storage[key] = MemoryItem(key, value, metadata)
            self.logger.debug(f"存储记忆项: {key}")

    def retrieve(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._storage.get(key)
            if item is None:
                return None
            self._storage.move_to_end(key)
            return item.access()

    def search(self, query: str, top_k: int = 5) -> List[Dict[str, Any]]:
        """
        按关键词重合度检索

        只返回与查询至少有一个共同关键词的记忆项，重合度高者在前，
        重合度相同时最近存储的在前。

        Args:
            query: 查询文本
            top_k: 返回数量

        Returns:
            记忆项字典列表
        """
        query_tokens = tokenize(query)
        if not query_tokens or top_k <= 0:
            return []

        with self._lock:
            scored = []
            for position, item in enumerate(self._storage.values()):
                overlap = len(query_tokens & item.tokens)
                if overlap:
                    scored.append((overlap, position, item))

            scored.sort(key=lambda entry: (entry[0], entry[1]), reverse=True)

            results = []
            for _, _, item in scored[:top_k]:
                item.access()
                results.append(item.to_dict())
            return results

    def get_recent(self, n: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            items = list(self._storage.values())[-n:] if n > 0 else []
            items.reverse()
            return [item.to_dict() for item in items]

    def clear(self) -> None:
        with self._lock:
            self._storage.clear()
            self.logger.info("清空短期记忆")

    def size(self) -> int:
        with self._lock:
            return len(self._storage)
